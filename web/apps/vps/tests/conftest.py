import pytest

from apps.vps.models import VPSInstanceModel


@pytest.fixture
def vps_service():
    from apps.vps.providers import get_vps_service

    return get_vps_service()


@pytest.fixture
def running_vps(customer):
    return VPSInstanceModel.objects.create(
        user=customer,
        name="vps-test",
        contabo_instance_id="200000001",
        status=VPSInstanceModel.Status.RUNNING,
        ip_address="10.0.0.5",
        region="EU",
    )

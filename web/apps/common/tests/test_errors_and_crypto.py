import pytest
from django.core.exceptions import ImproperlyConfigured

from apps.common.crypto import decrypt_secret, encrypt_secret, generate_password
from apps.common.errors import ConcurrentModification, ConfigurationError, NotPurchasable, ProviderError


def test_error_code_is_its_string():
    exc = ConfigurationError("region off", code="REGION_NOT_AVAILABLE", region="EU")
    assert str(exc) == "REGION_NOT_AVAILABLE"
    assert exc.http_status == 422
    assert exc.as_dict() == {"detail": "REGION_NOT_AVAILABLE", "message": "region off", "context": {"region": "EU"}}


def test_message_defaults_to_code():
    assert NotPurchasable().message == "NOT_PURCHASABLE"


def test_internal_failures_are_not_user_facing():
    assert ProviderError.user_facing is False
    assert ConcurrentModification.user_facing is False
    assert NotPurchasable.public_context == ("contact_email",)


def test_encrypt_round_trip_is_not_plaintext():
    token = encrypt_secret("S3cret-pass")
    assert "S3cret-pass" not in token
    assert decrypt_secret(token) == "S3cret-pass"


def test_decrypt_with_other_key_fails(settings):
    from cryptography.fernet import Fernet

    token = encrypt_secret("x")
    settings.VPS_ENCRYPTION_KEY = Fernet.generate_key().decode()
    with pytest.raises(ValueError) as e:
        decrypt_secret(token)
    assert str(e.value) == "UNDECRYPTABLE_SECRET"


def test_missing_key_outside_debug(settings):
    settings.VPS_ENCRYPTION_KEY = ""
    settings.DEBUG = False
    with pytest.raises(ImproperlyConfigured):
        encrypt_secret("x")


def test_debug_derives_key_from_secret_key(settings):
    settings.VPS_ENCRYPTION_KEY = ""
    settings.DEBUG = True
    assert decrypt_secret(encrypt_secret("x")) == "x"


def test_generated_password_mixes_classes():
    pw = generate_password()
    assert len(pw) == 20
    assert any(c.islower() for c in pw)
    assert any(c.isupper() for c in pw)
    assert any(c.isdigit() for c in pw)
    assert generate_password() != pw

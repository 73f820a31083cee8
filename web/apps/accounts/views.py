"""HTTP views for a customer's SSH keys."""

from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from gateway.permissions import IsAuthenticatedActor
from .schemas import SshKeyCreateDTO, SshKeyRenameDTO
from .service import SshKeyService


def _validation_error(e: ValidationError) -> Response:
    return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)


def ssh_key_body(k) -> dict:
    return {
        "id": str(k.id),
        "name": k.name,
        "public_key": k.public_key,
        "fingerprint": k.fingerprint,
        "created_at": k.created_at.isoformat(),
    }


class SshKeysCollectionView(APIView):
    permission_classes = [IsAuthenticatedActor]

    def get(self, request):
        return Response({"results": [ssh_key_body(k) for k in SshKeyService().list_keys(request.actor)]})

    def post(self, request):
        try:
            dto = SshKeyCreateDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)
        key = SshKeyService().add_key(request.actor, dto.name, dto.public_key)
        return Response(ssh_key_body(key), status=status.HTTP_201_CREATED)


class SshKeyDetailView(APIView):
    permission_classes = [IsAuthenticatedActor]

    def get(self, request, kid):
        return Response(ssh_key_body(SshKeyService().get_key(kid, request.actor)))

    def patch(self, request, kid):
        try:
            dto = SshKeyRenameDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)
        return Response(ssh_key_body(SshKeyService().rename_key(kid, request.actor, dto.name)))

    def delete(self, request, kid):
        SshKeyService().delete_key(kid, request.actor)
        return Response(status=status.HTTP_204_NO_CONTENT)

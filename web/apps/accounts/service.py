"""Customer SSH keys.

A key is unique per user both by fingerprint and by name. A key referenced
by an order that is still in flight cannot be deleted.
"""

import logging

from django.db import IntegrityError, transaction

from apps.common.errors import Conflict, ConfigurationError, Forbidden, NotFound
from apps.orders.domain import TERMINAL
from apps.orders.models import OrderModel
from .domain import fingerprint, normalize_public_key
from .models import SshKeyModel, UserModel

logger = logging.getLogger(__name__)

TERMINAL_VALUES = [s.value for s in TERMINAL]


class SshKeyService:
    def list_keys(self, actor):
        return SshKeyModel.objects.filter(user_id=actor.user_id)

    def get_key(self, key_id, actor) -> SshKeyModel:
        try:
            key = SshKeyModel.objects.get(id=key_id)
        except SshKeyModel.DoesNotExist:
            raise NotFound("ssh key not found", key_id=key_id)
        if key.user_id != actor.user_id:
            raise NotFound("ssh key not found", key_id=key_id)
        return key

    def add_key(self, actor, name: str, public_key: str) -> SshKeyModel:
        """Store a key for the caller.

        Raises:
            ConfigurationError: ``INVALID_SSH_KEY``.
            Conflict: ``SSH_KEY_EXISTS`` or ``SSH_KEY_NAME_TAKEN``.
        """
        try:
            public_key = normalize_public_key(public_key)
        except ValueError as exc:
            raise ConfigurationError("invalid ssh public key", code=str(exc))
        if not UserModel.objects.filter(id=actor.user_id).exists():
            raise NotFound("user not found", user_id=actor.user_id)

        fp = fingerprint(public_key)
        owned = SshKeyModel.objects.filter(user_id=actor.user_id)
        if owned.filter(fingerprint=fp).exists():
            raise Conflict("ssh key already registered", code="SSH_KEY_EXISTS", fingerprint=fp)
        self._check_name_free(actor, name)
        try:
            with transaction.atomic():
                key = SshKeyModel.objects.create(user_id=actor.user_id, name=name, public_key=public_key, fingerprint=fp)
        except IntegrityError:
            raise Conflict("ssh key already registered", code="SSH_KEY_EXISTS", fingerprint=fp)
        logger.info("ssh key added", extra={"key_id": str(key.id), "fingerprint": fp})
        return key

    def rename_key(self, key_id, actor, name: str) -> SshKeyModel:
        key = self.get_key(key_id, actor)
        if key.name == name:
            return key
        self._check_name_free(actor, name)
        key.name = name
        key.save(update_fields=["name"])
        return key

    def delete_key(self, key_id, actor) -> None:
        key = self.get_key(key_id, actor)
        live = OrderModel.objects.filter(user_id=actor.user_id).exclude(status__in=TERMINAL_VALUES)
        if any(str(key.id) in (ids or []) for ids in live.values_list("ssh_key_ids", flat=True)):
            raise Conflict("ssh key is used by an active order", code="SSH_KEY_IN_USE", key_id=key.id)
        key.delete()
        logger.info("ssh key deleted", extra={"key_id": str(key_id)})

    def owned_keys(self, user_id, key_ids) -> list[SshKeyModel]:
        """The caller's keys for ``key_ids``, in the order given.

        Raises:
            Forbidden: ``SSH_KEY_NOT_OWNED`` if any id is unknown or someone else's.
        """
        wanted = list(dict.fromkeys(str(k) for k in key_ids))
        found = {str(k.id): k for k in SshKeyModel.objects.filter(user_id=user_id, id__in=wanted)}
        missing = [k for k in wanted if k not in found]
        if missing:
            raise Forbidden("ssh keys do not belong to the caller", code="SSH_KEY_NOT_OWNED", key_ids=missing)
        return [found[k] for k in wanted]

    def _check_name_free(self, actor, name: str):
        if SshKeyModel.objects.filter(user_id=actor.user_id, name=name).exists():
            raise Conflict("ssh key name already used", code="SSH_KEY_NAME_TAKEN", name=name)

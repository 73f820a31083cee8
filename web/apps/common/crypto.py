"""Symmetric encryption for secrets stored at rest (VPS root passwords).

Uses Fernet from ``cryptography``. The key comes from
``settings.VPS_ENCRYPTION_KEY``; in DEBUG a key is derived from
``SECRET_KEY`` so local setups work without extra configuration.
"""

import base64
import hashlib
import secrets
import string

from cryptography.fernet import Fernet, InvalidToken
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


def _fernet() -> Fernet:
    key = getattr(settings, "VPS_ENCRYPTION_KEY", "")
    if not key:
        if not settings.DEBUG:
            raise ImproperlyConfigured("VPS_ENCRYPTION_KEY must be set when DEBUG is off")
        digest = hashlib.sha256(settings.SECRET_KEY.encode("utf-8")).digest()
        key = base64.urlsafe_b64encode(digest).decode("ascii")
    return Fernet(key)


def encrypt_secret(plain: str) -> str:
    return _fernet().encrypt(plain.encode("utf-8")).decode("ascii")


def decrypt_secret(token: str) -> str:
    """Decrypt a value produced by ``encrypt_secret``.

    Raises:
        ValueError: ``UNDECRYPTABLE_SECRET`` when the token was produced
            with another key or was tampered with.
    """
    try:
        return _fernet().decrypt(token.encode("ascii")).decode("utf-8")
    except InvalidToken:
        raise ValueError("UNDECRYPTABLE_SECRET")


def generate_password(length: int = 20) -> str:
    """Random root password with at least one lower, upper and digit character."""
    alphabet = string.ascii_letters + string.digits
    while True:
        candidate = "".join(secrets.choice(alphabet) for _ in range(length))
        if (
            any(c.islower() for c in candidate)
            and any(c.isupper() for c in candidate)
            and any(c.isdigit() for c in candidate)
        ):
            return candidate

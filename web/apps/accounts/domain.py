"""SSH public keys accepted for root access on new instances.

Keys are stored in the single-line OpenSSH form ``<type> <base64> [comment]``
and identified by their OpenSSH ``SHA256:`` fingerprint.
"""

import base64
import hashlib

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.serialization import load_ssh_public_key

KEY_TYPES = frozenset(
    {
        "ssh-rsa",
        "ssh-ed25519",
        "ssh-dss",
        "ecdsa-sha2-nistp256",
        "ecdsa-sha2-nistp384",
        "ecdsa-sha2-nistp521",
    }
)


def normalize_public_key(raw: str) -> str:
    """Collapse whitespace and check the key parses.

    Raises:
        ValueError: ``INVALID_SSH_KEY`` for an unknown type or a body that
            does not decode to a key of the announced type.
    """
    parts = " ".join(str(raw).split()).split(" ", 2)
    if len(parts) < 2 or parts[0] not in KEY_TYPES:
        raise ValueError("INVALID_SSH_KEY")
    try:
        load_ssh_public_key(f"{parts[0]} {parts[1]}".encode("ascii"))
    except (ValueError, UnsupportedAlgorithm):
        raise ValueError("INVALID_SSH_KEY")
    return " ".join(parts)


def fingerprint(public_key: str) -> str:
    """OpenSSH SHA256 fingerprint of a normalized key."""
    blob = base64.b64decode(public_key.split(" ")[1])
    digest = base64.b64encode(hashlib.sha256(blob).digest()).decode("ascii").rstrip("=")
    return f"SHA256:{digest}"

import base64
import hashlib

import pytest

from apps.accounts.domain import fingerprint, normalize_public_key


def test_normalize_collapses_whitespace_and_keeps_comment(new_public_key):
    key = new_public_key("")
    kind, body = key.split(" ")
    assert normalize_public_key(f"  {kind}\t{body}   ana  laptop \n") == f"{kind} {body} ana laptop"


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "not a key",
        "ssh-rsa",
        "ssh-foo AAAAC3NzaC1lZDI1NTE5AAAAIA==",
        "ssh-ed25519 !!!notbase64!!!",
        "ssh-ed25519 AAAAB3NzaC1yc2EAAAADAQABAAAAgQC7",
    ],
)
def test_rejects_malformed_keys(raw):
    with pytest.raises(ValueError) as e:
        normalize_public_key(raw)
    assert str(e.value) == "INVALID_SSH_KEY"


def test_rejects_type_that_does_not_match_body(new_public_key):
    body = new_public_key("").split(" ")[1]
    with pytest.raises(ValueError):
        normalize_public_key(f"ssh-rsa {body}")


def test_fingerprint_is_openssh_sha256(new_public_key):
    key = normalize_public_key(new_public_key())
    blob = base64.b64decode(key.split(" ")[1])
    expected = base64.b64encode(hashlib.sha256(blob).digest()).decode().rstrip("=")
    assert fingerprint(key) == f"SHA256:{expected}"
    assert fingerprint(key) == fingerprint(key.rsplit(" ", 1)[0])

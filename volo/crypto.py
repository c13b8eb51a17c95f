from __future__ import annotations

import base64
import getpass
import hashlib
import socket
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from .errors import SessionStoreError


def _machine_secret() -> str:
    return f"{socket.gethostname()}:{getpass.getuser()}:volo-sessions"


def get_fernet(secret: Optional[str] = None) -> Fernet:
    """Build the cipher for data at rest.

    Accepts a Fernet key, a raw 32-character key, or any passphrase (hashed to
    a key). Without a secret, a key tied to the current host and user is used.
    """
    secret = (secret or "").strip() or _machine_secret()
    if len(secret) == 32:
        key = base64.urlsafe_b64encode(secret.encode("utf-8"))
    else:
        try:
            return Fernet(secret.encode("utf-8"))
        except ValueError:
            key = base64.urlsafe_b64encode(hashlib.sha256(secret.encode("utf-8")).digest())
    return Fernet(key)


def encrypt(value: str, secret: Optional[str] = None) -> bytes:
    return get_fernet(secret).encrypt(value.encode("utf-8"))


def decrypt(token: bytes, secret: Optional[str] = None) -> str:
    try:
        return get_fernet(secret).decrypt(token).decode("utf-8")
    except InvalidToken as exc:
        raise SessionStoreError("Stored session cannot be decrypted with this key") from exc

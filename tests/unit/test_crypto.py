import pytest
from cryptography.fernet import Fernet

from volo import crypto
from volo.errors import SessionStoreError


@pytest.mark.parametrize(
    "secret",
    [None, "a passphrase of any length", "0123456789abcdef0123456789abcdef", Fernet.generate_key().decode()],
)
def test_encrypt_round_trip(secret):
    token = crypto.encrypt('{"cookies": []}', secret)
    assert b"cookies" not in token
    assert crypto.decrypt(token, secret) == '{"cookies": []}'


def test_wrong_secret_is_rejected():
    token = crypto.encrypt("payload", "right")
    with pytest.raises(SessionStoreError):
        crypto.decrypt(token, "wrong")

"""At-rest encryption for mailbox credentials.

``FERNET_KEY`` may hold several comma-separated keys. The first one encrypts;
all of them are tried on decrypt, so a key can be rotated by prepending the
new one and re-saving the integrations.
"""

from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from helpdesk.core.config import settings


class CredentialDecryptError(ValueError):
    """Stored ciphertext could not be decrypted with any configured key."""


@lru_cache(maxsize=1)
def _cipher(raw_keys: str) -> MultiFernet:
    keys = [k.strip() for k in raw_keys.split(",") if k.strip()]
    if not keys:
        raise RuntimeError("FERNET_KEY is not configured; mailbox credentials cannot be stored")
    return MultiFernet([Fernet(k.encode()) for k in keys])


def encrypt_secret(plaintext: str) -> str:
    return _cipher(settings.FERNET_KEY).encrypt(plaintext.encode()).decode()


def decrypt_secret(ciphertext: str) -> str:
    try:
        return _cipher(settings.FERNET_KEY).decrypt(ciphertext.encode()).decode()
    except InvalidToken as exc:
        raise CredentialDecryptError("Stored credential is corrupt or was encrypted with an unknown key") from exc

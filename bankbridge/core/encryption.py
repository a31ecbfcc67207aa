"""Fernet encryption of access credentials stored in connected_banks."""

from functools import lru_cache

from cryptography.fernet import Fernet

from bankbridge.core import config


@lru_cache
def get_fernet() -> Fernet:
    if not config.ENCRYPTION_KEY:
        raise ValueError("ENCRYPTION_KEY environment variable is required to store access tokens")
    return Fernet(config.ENCRYPTION_KEY.encode())


def encrypt_token(access_token: str) -> str:
    """Ciphertext of a Plaid access token, as stored in the database."""
    return get_fernet().encrypt(access_token.encode()).decode()


def decrypt_token(ciphertext: str) -> str:
    """
    Recover an access token for an outbound Plaid call.

    Raises:
        cryptography.fernet.InvalidToken: If ENCRYPTION_KEY changed since the token was stored
    """
    return get_fernet().decrypt(ciphertext.encode()).decode()

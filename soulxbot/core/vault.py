"""Credential vault: OAuth tokens are stored encrypted with AES-256-GCM.

Layout of a ciphertext: 12-byte random nonce || GCM ciphertext+tag.
The key is derived from the operator passphrase with PBKDF2-HMAC-SHA256.
"""

from __future__ import annotations

import hashlib
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from soulxbot.core.errors import AuthenticationFailed

NONCE_SIZE = 12
KDF_ITERATIONS = 200_000
KDF_SALT = b"soulxbot.credential-vault.v1"


@lru_cache(maxsize=8)
def derive_key(passphrase: str) -> bytes:
    """Derive a 256-bit key from *passphrase* (memoised, the KDF is slow on purpose)."""
    return hashlib.pbkdf2_hmac("sha256", passphrase.encode("utf-8"), KDF_SALT, KDF_ITERATIONS, 32)


def encrypt(plaintext: bytes, passphrase: str) -> bytes:
    nonce = os.urandom(NONCE_SIZE)
    return nonce + AESGCM(derive_key(passphrase)).encrypt(nonce, plaintext, None)


def decrypt(ciphertext: bytes, passphrase: str) -> bytes:
    """Decrypt *ciphertext*, raising AuthenticationFailed on any integrity failure."""
    if len(ciphertext) <= NONCE_SIZE:
        raise AuthenticationFailed("Ciphertext too short")
    nonce, body = ciphertext[:NONCE_SIZE], ciphertext[NONCE_SIZE:]
    try:
        return AESGCM(derive_key(passphrase)).decrypt(nonce, body, None)
    except InvalidTag as e:
        raise AuthenticationFailed("Ciphertext failed authentication") from e


def encrypt_token(token: str, passphrase: str) -> bytes:
    return encrypt(token.encode("utf-8"), passphrase)


def decrypt_token(ciphertext: bytes, passphrase: str) -> str:
    return decrypt(ciphertext, passphrase).decode("utf-8")

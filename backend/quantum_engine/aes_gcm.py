"""
AES-256-GCM

Authenticated encryption for sealed payloads. Output layout is
nonce (12) + ciphertext + tag (16) in a single blob.
"""

import os

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32


def aes_encrypt_combined(
    plaintext: bytes,
    key: bytes,
    associated_data: bytes = b"",
) -> bytes:
    """
    Encrypt and return nonce + ciphertext + tag.

    Raises:
        ValueError: If the key is not 32 bytes
    """
    if len(key) != KEY_SIZE:
        raise ValueError(f"Key must be {KEY_SIZE} bytes, got {len(key)}")

    nonce = os.urandom(NONCE_SIZE)
    return nonce + AESGCM(key).encrypt(nonce, plaintext, associated_data)


def aes_decrypt_combined(
    combined: bytes,
    key: bytes,
    associated_data: bytes = b"",
) -> bytes:
    """
    Decrypt a blob produced by aes_encrypt_combined.

    Raises:
        ValueError: If the key size or blob length is wrong
        cryptography.exceptions.InvalidTag: If authentication fails
    """
    if len(key) != KEY_SIZE:
        raise ValueError(f"Key must be {KEY_SIZE} bytes, got {len(key)}")

    if len(combined) < NONCE_SIZE + TAG_SIZE:
        raise ValueError("Combined data too short")

    nonce = combined[:NONCE_SIZE]
    return AESGCM(key).decrypt(nonce, combined[NONCE_SIZE:], associated_data)

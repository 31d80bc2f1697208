"""
Key Derivation Functions

HKDF-based derivation of purpose-bound keys from QKD material, so raw
quantum key bytes are never used directly as a cipher key.
"""

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

BALLOT_CONTEXT_PREFIX = "quantumaccess-ballot-"


def derive_key(
    input_key_material: bytes,
    context: bytes,
    length: int = 32,
    salt: bytes = b"",
) -> bytes:
    """
    Derive a key using HKDF-SHA256.

    Args:
        input_key_material: Source key material (QKD or simulated)
        context: Domain-separation string (HKDF info parameter)
        length: Output key length in bytes
        salt: Optional salt

    Returns:
        Derived key of the requested length
    """
    if not input_key_material:
        raise ValueError("Input key material cannot be empty")

    if length <= 0 or length > 255 * 32:
        raise ValueError(f"Invalid key length: {length}")

    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt or None,
        info=context,
    )
    return hkdf.derive(input_key_material)


def derive_ballot_key(key_material: bytes, vote_id: str) -> bytes:
    """Derive the 256-bit AEAD key that seals a single ballot."""
    return derive_key(key_material, (BALLOT_CONTEXT_PREFIX + vote_id).encode())

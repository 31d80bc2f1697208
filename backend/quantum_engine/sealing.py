"""
Ballot Sealing

A ballot is sealed with AES-256-GCM under a key derived from the vote's
quantum key. The stored payload is

    QKD:<key_id>:<base64(nonce + ciphertext + tag)>

and the election and vote ids are bound in as associated data, so a payload
cannot be replayed onto another ballot row.
"""

import base64
import json
from typing import Any, Dict

from models import KeyMaterial
from .aes_gcm import aes_decrypt_combined, aes_encrypt_combined
from .key_derivation import derive_ballot_key


PAYLOAD_SCHEME = "QKD"


def _associated_data(election_id: str, vote_id: str) -> bytes:
    return f"{election_id}:{vote_id}".encode()


def seal_ballot(key: KeyMaterial, vote_id: str, election_id: str, option_id: str) -> str:
    plaintext = json.dumps(
        {"vote_id": vote_id, "election_id": election_id, "option_id": option_id},
        sort_keys=True,
    ).encode()

    blob = aes_encrypt_combined(
        plaintext,
        derive_ballot_key(key.key_bytes, vote_id),
        _associated_data(election_id, vote_id),
    )
    return f"{PAYLOAD_SCHEME}:{key.key_id}:{base64.b64encode(blob).decode('ascii')}"


def open_ballot(
    payload: str,
    key_bytes: bytes,
    vote_id: str,
    election_id: str,
) -> Dict[str, Any]:
    """
    Recover the ballot contents from a sealed payload.

    Raises:
        ValueError: If the payload is not in the sealed format
        cryptography.exceptions.InvalidTag: On the wrong key or tampered data
    """
    parts = payload.split(":", 2)
    if len(parts) != 3 or parts[0] != PAYLOAD_SCHEME:
        raise ValueError("Not a sealed ballot payload")

    blob = base64.b64decode(parts[2])
    plaintext = aes_decrypt_combined(
        blob,
        derive_ballot_key(key_bytes, vote_id),
        _associated_data(election_id, vote_id),
    )
    return json.loads(plaintext)


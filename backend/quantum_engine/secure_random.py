import secrets
import uuid

_system_random = secrets.SystemRandom()

RECEIPT_PREFIX = "#QV-"


def secure_random_bytes(length: int) -> bytes:
    if length <= 0:
        raise ValueError("Length must be positive")
    return secrets.token_bytes(length)


def secure_uniform(low: float, high: float) -> float:
    """Uniform float in [low, high] drawn from the OS CSPRNG."""
    if high < low:
        raise ValueError(f"Invalid range: [{low}, {high}]")
    return _system_random.uniform(low, high)


def secure_random_hex(length: int) -> str:
    byte_length = (length + 1) // 2
    return secrets.token_hex(byte_length)[:length].upper()


def generate_key_id() -> str:
    return str(uuid.uuid4())


def generate_receipt_token() -> str:
    return RECEIPT_PREFIX + secure_random_hex(8)

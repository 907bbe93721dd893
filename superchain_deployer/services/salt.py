"""
Salt formatting shared by every chain's deployment
"""

from ..errors import ConfigValidationError

SALT_LENGTH = 32


def format_salt(salt: str) -> bytes:
    """UTF-8 encode the salt and left-pad it with zero bytes to 32 bytes.

    Salts whose encoding is longer than 32 bytes are rejected, never truncated.
    """
    encoded = salt.encode('utf-8')
    if len(encoded) > SALT_LENGTH:
        raise ConfigValidationError(
            f"Salt is {len(encoded)} bytes when UTF-8 encoded; at most {SALT_LENGTH} allowed",
            field='salt',
        )
    return encoded.rjust(SALT_LENGTH, b'\x00')


def salt_to_hex(formatted_salt: bytes) -> str:
    return '0x' + formatted_salt.hex()

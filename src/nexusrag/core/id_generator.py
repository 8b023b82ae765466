"""
Centralized ID generation for nexusrag.
Every record (chunk, tag, error, span) uses the same hex32 format.
"""

import secrets


def generate_id() -> str:
    """
    Random 32-character lowercase hex ID (SQLite friendly, no dashes).

    Examples:
        >>> generate_id()
        'a3f4b2c1d5e6f7a8b9c0d1e2f3a4b5c6'
    """
    return secrets.token_hex(16)

"""Stored-name derivation for uploaded objects."""
import os
import secrets

TOKEN_BYTES = 16


def derive_stored_name(original_name: str) -> str:
    """
    Random 32-hex-char name that keeps the original extension,
    e.g. "report.pdf" -> "9f0c...e1.pdf". Not checked against existing names.
    """
    ext = os.path.splitext(os.path.basename(original_name or ""))[1]
    return f"{secrets.token_hex(TOKEN_BYTES)}{ext}"

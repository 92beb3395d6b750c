"""Verification code generation and one-way hashing."""

import secrets

from passlib.context import CryptContext

# PBKDF2-SHA256 with a per-hash salt; plaintext codes are never stored
code_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def generate_secure_code(length: int = 6) -> str:
    """Return a uniformly random numeric code of *length* digits."""
    return "".join(secrets.choice("0123456789") for _ in range(length))


def hash_code(code: str) -> str:
    return code_context.hash(code)


def verify_code(code: str, code_hash: str) -> bool:
    """Constant-time check of *code* against a stored hash."""
    if not code or not code_hash:
        return False
    return code_context.verify(code, code_hash)

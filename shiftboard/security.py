from __future__ import annotations

import secrets

import bcrypt

KEY_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False


def generate_key(length: int = 8) -> str:
    return "".join(secrets.choice(KEY_ALPHABET) for _ in range(length))


def generate_session_id() -> str:
    return secrets.token_urlsafe(32)

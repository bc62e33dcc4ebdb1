"""
Password hashing (bcrypt).

bcrypt only reads the first 72 bytes of its input, and bcrypt 5 refuses
anything longer. Passwords are therefore reduced to a fixed 44-byte
base64(SHA-256) digest first, so every length the policy accepts is hashed
in full and no input length can raise.
"""

import base64
import hashlib

import bcrypt


def _prehash(password: str) -> bytes:
    return base64.b64encode(hashlib.sha256(password.encode()).digest())


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(_prehash(password), bcrypt.gensalt(rounds)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time bcrypt comparison; malformed hashes never match"""
    try:
        return bcrypt.checkpw(_prehash(password), password_hash.encode())
    except ValueError:
        return False


def burn_password_check(password: str, rounds: int = 12) -> None:
    """Spend the same bcrypt work as a real check when there is no hash to compare"""
    bcrypt.hashpw(_prehash(password), bcrypt.gensalt(rounds))

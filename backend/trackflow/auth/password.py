"""Password hashing and temporary-password generation."""

import secrets
import string

from passlib.context import CryptContext

from trackflow.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

_SYMBOLS = "!@#$%^&*()-_=+"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def generate_temporary_password(length: int | None = None) -> str:
    """Random password with at least one lower, upper, digit and symbol."""
    length = max(length or settings.temporary_password_length, 4)
    pools = [string.ascii_lowercase, string.ascii_uppercase, string.digits, _SYMBOLS]
    chars = [secrets.choice(pool) for pool in pools]
    alphabet = "".join(pools)
    chars += [secrets.choice(alphabet) for _ in range(length - len(chars))]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)

from typing import NamedTuple

from pwdlib import PasswordHash
from pwdlib.exceptions import UnknownHashError
from pwdlib.hashers.argon2 import Argon2Hasher


# Dashboard logins are argon2 only.
password_hash = PasswordHash((Argon2Hasher(),))

MIN_PASSWORD_LENGTH = 8


class PasswordCheck(NamedTuple):
    valid: bool
    replacement_hash: str | None


def hash_password(raw_password: str) -> str:
    if len(raw_password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    return password_hash.hash(raw_password)


def verify_password(raw_password: str, hashed_password: str | None) -> PasswordCheck:
    """Check a login password; ``replacement_hash`` is set when the stored hash uses outdated parameters."""
    if not raw_password or not hashed_password:
        return PasswordCheck(False, None)
    try:
        valid, updated = password_hash.verify_and_update(raw_password, hashed_password)
    except UnknownHashError:
        return PasswordCheck(False, None)
    return PasswordCheck(valid, updated if valid else None)

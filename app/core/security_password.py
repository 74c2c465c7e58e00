# app/core/security_password.py
from __future__ import annotations

import base64
import binascii
import secrets
from dataclasses import dataclass

from passlib.crypto.digest import pbkdf2_hmac
from passlib.utils import consteq

ITERATIONS = 65536
KEY_LENGTH = 32  # 256-bit derived key
DIGEST = "sha1"


@dataclass(frozen=True)
class SaltedHash:
    hash: str
    salt: str


def _derive(password: str, salt: bytes) -> bytes:
    return pbkdf2_hmac(DIGEST, password.encode("utf-8"), salt, ITERATIONS, KEY_LENGTH)


class HashingService:
    """PBKDF2 salted hashes, stored as base64 ``hash`` + ``salt`` columns."""

    def generate_salted_hash(self, password: str, salt_length: int = 32) -> SaltedHash:
        if salt_length <= 0:
            raise ValueError("salt_length must be positive")
        salt = secrets.token_bytes(salt_length)
        derived = _derive(password, salt)
        return SaltedHash(
            hash=base64.b64encode(derived).decode("ascii"),
            salt=base64.b64encode(salt).decode("ascii"),
        )

    def verify(self, password: str, salted_hash: SaltedHash) -> bool:
        if not salted_hash.hash or not salted_hash.salt:
            return False
        try:
            salt = base64.b64decode(salted_hash.salt, validate=True)
            expected = base64.b64decode(salted_hash.hash, validate=True)
        except (binascii.Error, ValueError):
            return False
        if not salt:
            return False
        return consteq(_derive(password, salt), expected)

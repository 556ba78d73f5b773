"""
auth/passwords.py -- bcrypt password hashing.

bcrypt is used directly rather than through passlib: passlib's wrap-bug
detection builds a password longer than 72 bytes, which bcrypt 4.x rejects.

The cost factor is fixed per process (BCRYPT_ROUNDS). Tests run with the
bcrypt minimum of 4 to stay fast.

Layer rule: no imports from api/ or accounts/.
"""

from __future__ import annotations

import logging

import bcrypt

from core.errors import HashingFailed, Service

logger = logging.getLogger("dogrun.auth")


class CredentialHasher:
    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    def hash(self, plain: str, service: Service = Service.OTHER) -> str:
        """Return a salted bcrypt hash of the plaintext password.

        The API layer caps passwords at 72 bytes (bcrypt's input limit); a
        longer input that slips through is reported as HashingFailed.
        """
        try:
            return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")
        except ValueError as exc:
            logger.error("Password hashing failed: %s", exc)
            raise HashingFailed(service=service) from exc

    def verify(self, hashed: str, plain: str) -> bool:
        """Return True if the plaintext matches the hash. A malformed hash never matches."""
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False

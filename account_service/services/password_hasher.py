"""One-way password hashing with bcrypt."""

import bcrypt

# bcrypt only reads the first 72 bytes of its input; longer inputs are rejected
MAX_PASSWORD_BYTES = 72


def password_too_long(password: str) -> bool:
    """Whether a password exceeds what bcrypt can hash."""
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


class PasswordHasher:
    """Salted bcrypt hashing with a fixed cost factor."""

    def __init__(self, rounds: int = 10):
        self.rounds = rounds

    def hash(self, password: str) -> str:
        """Hash a password with a fresh salt.

        Callers validate that the password is non-empty and at most
        ``MAX_PASSWORD_BYTES`` long before calling this.

        Args:
            password: Plain-text password

        Returns:
            Bcrypt hash string
        """
        salt = bcrypt.gensalt(rounds=self.rounds)
        hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
        return hashed.decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """Check a password against a stored hash in constant time.

        Args:
            password: Plain-text password to check
            password_hash: Bcrypt hash to verify against

        Returns:
            True if the password matches, False otherwise
        """
        if not password or password_too_long(password):
            return False
        return bcrypt.checkpw(
            password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )

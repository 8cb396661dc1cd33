"""Static credential directory used to authenticate POP3 users."""

from typing import Dict
import hmac

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CredentialDirectory(BaseModel):
    """Read-only mapping of username to secret, fixed at startup."""

    model_config = ConfigDict(frozen=True)

    users: Dict[str, str] = Field(default_factory=dict)

    @field_validator("users")
    @classmethod
    def validate_users(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Reject blank usernames and usernames containing whitespace."""
        for username in v:
            if not username or username != username.strip() or " " in username:
                raise ValueError(f"Invalid username in credential directory: {username!r}")
        return v

    def knows(self, username: str) -> bool:
        return username in self.users

    def verify(self, username: str, secret: str) -> bool:
        """
        Check a secret against the directory entry for a user.

        :param username: The username recorded by USER.
        :param secret: The secret sent with PASS.
        :return: True only if the user exists and the secret matches.
        """
        expected = self.users.get(username)
        if expected is None:
            return False
        return hmac.compare_digest(expected.encode("utf-8"), secret.encode("utf-8"))

"""Username, password, and expiration generation for dynamic accounts."""

from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from .errors import GenerationError
from .models import GeneratedCredential, UsernameConfig

USERNAME_PREFIX = "v"
PASSWORD_PREFIX = "A1a-"
RANDOM_SEGMENT_LEN = 20
EXPIRATION_FORMAT = "%Y-%m-%d %H:%M:%S%z"

_ALPHANUMERIC = string.ascii_letters + string.digits


@dataclass(frozen=True, slots=True)
class LengthPolicy:
    """Length budget applied when composing usernames.

    A segment budget of ``None`` drops that segment from the name entirely.
    """

    display_name_len: int | None
    role_name_len: int | None
    username_len: int
    separator: str = "-"

    def validate(self) -> None:
        """Raise ``GenerationError`` if the budget cannot yield a usable name."""

        if self.username_len < 1:
            raise GenerationError(
                f"Maximum username length must be positive, got {self.username_len}"
            )
        for label, budget in (("display name", self.display_name_len), ("role name", self.role_name_len)):
            if budget is not None and budget < 1:
                raise GenerationError(f"The {label} length budget must be positive, got {budget}")


CURRENT_POLICY = LengthPolicy(display_name_len=10, role_name_len=10, username_len=32)
LEGACY_POLICY = LengthPolicy(display_name_len=None, role_name_len=4, username_len=16)


def random_alphanumeric(length: int) -> str:
    """Return ``length`` cryptographically random letters and digits."""

    return "".join(secrets.choice(_ALPHANUMERIC) for _ in range(length))


class CredentialsProducer:
    """Generates the per-account values substituted into creation statements."""

    def __init__(self, policy: LengthPolicy = CURRENT_POLICY) -> None:
        self._policy = policy

    @property
    def policy(self) -> LengthPolicy:
        return self._policy

    def generate_username(self, config: UsernameConfig) -> str:
        """Compose ``v-<display>-<role>-<random>-<unix time>`` within the policy budget."""

        policy = self._policy
        policy.validate()
        segments = [USERNAME_PREFIX]
        for value, budget in (
            (config.display_name, policy.display_name_len),
            (config.role_name, policy.role_name_len),
        ):
            if budget is None:
                continue
            value = value[:budget]
            if value:
                segments.append(value)
        segments.append(random_alphanumeric(RANDOM_SEGMENT_LEN))
        segments.append(str(int(time.time())))
        username = policy.separator.join(segments)
        return username[: policy.username_len]

    def generate_password(self) -> str:
        """Return a random password accepted by MySQL's validation plugin defaults."""

        return PASSWORD_PREFIX + random_alphanumeric(RANDOM_SEGMENT_LEN)

    def generate_expiration(self, expiration: datetime) -> str:
        """Render ``expiration`` as a SQL timestamp literal with a numeric offset."""

        if expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=timezone.utc)
        return expiration.strftime(EXPIRATION_FORMAT)

    def generate(self, config: UsernameConfig, expiration: datetime) -> GeneratedCredential:
        """Produce a fresh username, password, and expiration in one go."""

        return GeneratedCredential(
            username=self.generate_username(config),
            password=self.generate_password(),
            expiration=self.generate_expiration(expiration),
        )


__all__ = [
    "CURRENT_POLICY",
    "CredentialsProducer",
    "LEGACY_POLICY",
    "LengthPolicy",
    "random_alphanumeric",
]

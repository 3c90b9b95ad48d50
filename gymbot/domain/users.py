"""
UserDirectory port — who is this Telegram user on the GymBuddy side?

The GymBuddy API identifies people by email; Telegram gives us a numeric id.
The mapping lives outside both systems (configuration today).
"""

from abc import ABC, abstractmethod


class UserDirectory(ABC):

    @abstractmethod
    def email_for(self, telegram_id: int) -> str | None:
        """Return the account email for a Telegram user, or None if unknown."""
        ...

    @abstractmethod
    def telegram_id_for(self, email: str) -> int | None:
        """Reverse lookup, used to message a partner."""
        ...


class StaticUserDirectory(UserDirectory):
    """Directory backed by a fixed mapping."""

    def __init__(self, mapping: dict[int, str]):
        self._emails = dict(mapping)
        self._ids = {email.lower(): tid for tid, email in mapping.items()}

    @classmethod
    def from_string(cls, value: str) -> "StaticUserDirectory":
        """Build from "<telegram_id>:<email>,<telegram_id>:<email>"."""
        mapping: dict[int, str] = {}
        for entry in value.split(","):
            entry = entry.strip()
            if not entry:
                continue
            telegram_id, sep, email = entry.partition(":")
            if not sep or not email.strip():
                raise ValueError(f"Bad user mapping entry: {entry!r}")
            mapping[int(telegram_id)] = email.strip()
        return cls(mapping)

    def email_for(self, telegram_id: int) -> str | None:
        return self._emails.get(telegram_id)

    def telegram_id_for(self, email: str) -> int | None:
        return self._ids.get(email.lower())

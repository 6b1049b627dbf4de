from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Bot-level role. Ordered: USER < MANAGER < ADMIN."""

    USER = "user"
    MANAGER = "manager"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _RANK[self]

    def satisfies(self, required: Role) -> bool:
        return self.rank >= required.rank

    @classmethod
    def parse(cls, value: str | Role | None, default: Role | None = None) -> Role | None:
        if isinstance(value, Role):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return default


_RANK = {Role.USER: 0, Role.MANAGER: 1, Role.ADMIN: 2}

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rentbot.core.roles import Role
from rentbot.core.time import utcnow
from rentbot.db.base import Base, UTCDateTime


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # stored role; ADMIN_IDS override it at check time
    role: Mapped[str] = mapped_column(String(16), default=Role.USER.value, server_default=Role.USER.value, nullable=False)

    banned: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false", nullable=False)
    ban_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    message_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    exp: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    last_active: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def role_enum(self) -> Role:
        return Role.parse(self.role, Role.USER)

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rentbot.core.time import utcnow
from rentbot.db.base import Base, UTCDateTime


class PaymentStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)  # uuid4
    user_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    group_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    package_type: Mapped[str] = mapped_column(String(32), nullable=False)

    # PayOS wants a positive integer order code
    order_code: Mapped[int] = mapped_column(BigInteger, unique=True, index=True, nullable=False)
    transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    checkout_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # pending -> completed | failed, never back
    status: Mapped[str] = mapped_column(String(16), default=PaymentStatus.PENDING, server_default=PaymentStatus.PENDING, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

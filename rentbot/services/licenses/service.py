from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from rentbot.core.time import Clock, utcnow
from rentbot.db.models import LicenseKey
from rentbot.db.session import SessionMaker
from rentbot.services.subscriptions.service import SubscriptionService

log = logging.getLogger(__name__)

DURATION_MULTIPLIERS = {"day": 1, "week": 7, "month": 30, "year": 365, "custom": 1}
KEY_ALPHABET = string.ascii_letters + string.digits


def duration_days(duration: int, duration_type: str) -> int:
    """Days granted by ``duration`` units of ``duration_type`` (custom counts literal days)."""
    try:
        mult = DURATION_MULTIPLIERS[duration_type.lower()]
    except KeyError:
        raise ValueError(f"Unknown duration type: {duration_type}") from None
    return int(duration) * mult


def _random_code(length: int = 16) -> str:
    return "".join(secrets.choice(KEY_ALPHABET) for _ in range(length))


@dataclass(frozen=True)
class RedeemResult:
    success: bool
    message: str
    days: int | None = None


class LicenseKeyService:
    def __init__(self, sm: SessionMaker, subscriptions: SubscriptionService, clock: Clock = utcnow) -> None:
        self._sm = sm
        self._subscriptions = subscriptions
        self._clock = clock

    async def generate_key(self, duration: int, duration_type: str, created_by: int | None = None) -> LicenseKey | None:
        if duration <= 0:
            raise ValueError("duration must be positive")
        days = duration_days(duration, duration_type)
        now = self._clock()
        # collisions on 62^16 are not expected, one retry covers the unique index
        for _ in range(2):
            key = f"{duration_type.upper()}-{duration}-{_random_code(16)}"
            row = LicenseKey(
                key=key,
                duration=duration,
                duration_type=duration_type.lower(),
                is_used=False,
                created_by=created_by,
                expires_at=now + timedelta(days=days),
                created_at=now,
            )
            try:
                async with self._sm() as session:
                    session.add(row)
                    await session.commit()
            except IntegrityError:
                log.warning("license_key_collision key=%s", key)
                continue
            except SQLAlchemyError:
                log.exception("license_key_generate_failed")
                return None
            log.info("license_key_generated key=%s days=%s created_by=%s", key, days, created_by)
            return row
        return None

    async def generate_batch(
        self, count: int, duration: int, duration_type: str, created_by: int | None = None
    ) -> list[LicenseKey]:
        """Keys that failed to generate are left out of the result."""
        keys: list[LicenseKey] = []
        for _ in range(count):
            key = await self.generate_key(duration, duration_type, created_by)
            if key is not None:
                keys.append(key)
        if len(keys) < count:
            log.warning("license_key_batch_partial requested=%s generated=%s", count, len(keys))
        return keys

    async def find_key(self, key: str) -> LicenseKey | None:
        try:
            async with self._sm() as session:
                return await session.scalar(select(LicenseKey).where(LicenseKey.key == key))
        except SQLAlchemyError:
            log.exception("license_key_lookup_failed")
            return None

    async def unused_keys(self) -> list[LicenseKey]:
        try:
            async with self._sm() as session:
                rows = await session.scalars(
                    select(LicenseKey).where(LicenseKey.is_used.is_(False)).order_by(LicenseKey.created_at)
                )
                return list(rows)
        except SQLAlchemyError:
            log.exception("license_key_list_failed")
            return []

    async def redeem(self, key: str, group_id: int, user_id: int) -> RedeemResult:
        key = (key or "").strip()
        if not key:
            return RedeemResult(False, "Please provide a license key.")

        now = self._clock()
        try:
            async with self._sm() as session:
                lk = await session.scalar(select(LicenseKey).where(LicenseKey.key == key))
            if lk is None:
                return RedeemResult(False, "License key not found.")
            if lk.is_used:
                return RedeemResult(False, "This license key has already been used.")
            if lk.expires_at is not None and lk.expires_at < now:
                return RedeemResult(False, "This license key has expired.")
            days = duration_days(lk.duration, lk.duration_type)

            async with self._sm() as session:
                res = await session.execute(
                    update(LicenseKey)
                    .where(LicenseKey.key == key, LicenseKey.is_used.is_(False))
                    .values(is_used=True, used_by=user_id, used_at=now)
                )
                if res.rowcount != 1:
                    log.info("license_key_race_lost key=%s user_id=%s", key, user_id)
                    return RedeemResult(False, "This license key has already been used.")
                # the used flag only sticks if the group actually gets its days
                await self._subscriptions.grant(session, group_id, user_id, days, [key], now=now)
                await session.commit()
        except (SQLAlchemyError, ValueError):
            log.exception("license_key_redeem_failed key=%s group_id=%s", key, group_id)
            return RedeemResult(False, "Could not process this license key, try again later.")

        log.info("license_key_redeemed key=%s group_id=%s user_id=%s days=%s", key, group_id, user_id, days)
        return RedeemResult(True, "Activation successful.", days)

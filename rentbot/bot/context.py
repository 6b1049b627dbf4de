from __future__ import annotations

from dataclasses import dataclass, field

from rentbot.bot.pipeline import CommandPipeline
from rentbot.bot.registry import CommandRegistry
from rentbot.bot.sender import ReplySender
from rentbot.core.config import Settings
from rentbot.core.scheduler import Scheduler
from rentbot.core.time import Clock, utcnow
from rentbot.db.session import SessionMaker
from rentbot.services.access.service import ActivationGate, PermissionGate
from rentbot.services.antispam.service import AntiSpamService
from rentbot.services.licenses.service import LicenseKeyService
from rentbot.services.payments.payos import MockGateway, PaymentGateway, PayOSClient
from rentbot.services.payments.service import PaymentService
from rentbot.services.subscriptions.service import SubscriptionService


@dataclass
class AppContext:
    """Everything a handler, command or background job needs, built once at startup."""

    settings: Settings
    sessionmaker: SessionMaker
    sender: ReplySender
    registry: CommandRegistry
    antispam: AntiSpamService
    activation: ActivationGate
    permissions: PermissionGate
    subscriptions: SubscriptionService
    licenses: LicenseKeyService
    payments: PaymentService
    pipeline: CommandPipeline
    scheduler: Scheduler = field(default_factory=Scheduler)
    clock: Clock = utcnow


def make_gateway(settings: Settings) -> PaymentGateway:
    if settings.payment_provider == "payos":
        if not settings.payos_configured:
            raise RuntimeError("PAYMENT_PROVIDER=payos needs PAYOS_CLIENT_ID, PAYOS_API_KEY and PAYOS_CHECKSUM_KEY")
        return PayOSClient(
            client_id=settings.payos_client_id,
            api_key=settings.payos_api_key,
            checksum_key=settings.payos_checksum_key,
            return_url=settings.payos_return_url,
            cancel_url=settings.payos_cancel_url,
            base_url=settings.payos_base_url,
            expiry_hours=settings.payos_expiry_hours,
        )
    if settings.payos_checksum_key:
        return MockGateway(checksum_key=settings.payos_checksum_key)
    return MockGateway()


def build_context(
    settings: Settings,
    sm: SessionMaker,
    sender: ReplySender,
    *,
    gateway: PaymentGateway | None = None,
    clock: Clock = utcnow,
    register_defaults: bool = True,
) -> AppContext:
    antispam = AntiSpamService.from_settings(sm, settings, clock=clock)
    activation = ActivationGate(sm, clock=clock)
    permissions = PermissionGate(sm, settings.admin_ids)
    subscriptions = SubscriptionService(sm, clock=clock)
    licenses = LicenseKeyService(sm, subscriptions, clock=clock)
    payments = PaymentService(
        sm,
        gateway or make_gateway(settings),
        subscriptions,
        settings.packages,
        sender=sender,
        bot_name=settings.bot_name,
        clock=clock,
    )
    pipeline = CommandPipeline(
        antispam,
        activation,
        permissions,
        sender,
        settings.packages.values(),
        prefix=settings.command_prefix,
    )
    registry = CommandRegistry()
    ctx = AppContext(
        settings=settings,
        sessionmaker=sm,
        sender=sender,
        registry=registry,
        antispam=antispam,
        activation=activation,
        permissions=permissions,
        subscriptions=subscriptions,
        licenses=licenses,
        payments=payments,
        pipeline=pipeline,
        clock=clock,
    )
    if register_defaults:
        from rentbot.bot.commands import register_all

        register_all(registry)
    return ctx

import logging
import os
from dataclasses import dataclass, field

from rentbot.core.packages import DEFAULT_PACKAGES, Package, parse_packages

log = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_int_list(name: str) -> tuple[int, ...]:
    raw = os.getenv(name) or ""
    out: list[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.lstrip("-").isdigit():
            log.warning("config_bad_int name=%s value=%s", name, part)
            continue
        out.append(int(part))
    return tuple(out)


def _env_str_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(p.strip().lower() for p in raw.split(",") if p.strip())


def make_async_db_url(url: str) -> str:
    """Accepts Railway-style DATABASE_URL and returns sqlalchemy async url."""
    if url.startswith("postgresql+asyncpg://") or url.startswith("sqlite+aiosqlite://"):
        return url
    if url.startswith("postgres://"):
        return "postgresql+asyncpg://" + url[len("postgres://") :]
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://") :]
    raise RuntimeError("Unsupported DATABASE_URL format")


@dataclass(frozen=True)
class Settings:
    bot_token: str = ""
    database_url: str = "sqlite+aiosqlite:///rentbot.sqlite3"
    bot_name: str = "Rent Bot"
    command_prefix: str = "/"

    # static super-admins, always resolve to the admin role
    admin_ids: tuple[int, ...] = ()

    packages: dict[str, Package] = field(default_factory=lambda: dict(DEFAULT_PACKAGES))

    # anti-spam
    anti_spam_max_commands: int = 5
    anti_spam_time_window: int = 10  # seconds
    anti_spam_cooldown: int = 60  # seconds
    anti_spam_excluded: tuple[str, ...] = ("help", "status")
    anti_spam_per_command: bool = True

    # Payments
    # mock: returns a fake checkout link, success arrives through the webhook (dev/test)
    # payos: PayOS payment-requests API
    payment_provider: str = "mock"
    payos_client_id: str | None = None
    payos_api_key: str | None = None
    payos_checksum_key: str | None = None
    payos_base_url: str = "https://api-merchant.payos.vn"
    payos_return_url: str = "https://example.com/payment/success"
    payos_cancel_url: str = "https://example.com/payment/cancel"
    payos_expiry_hours: int = 24

    # webhook server (aiohttp.web)
    webhook_enabled: bool = True
    webhook_host: str = "0.0.0.0"
    webhook_port: int = 8080

    # sweeps
    scheduler_enabled: bool = True
    expiry_sweep_seconds: int = 3600
    reminder_sweep_seconds: int = 86400
    reminder_days: int = 3
    payment_sweep_seconds: int = 900
    pending_payment_ttl_hours: int = 24
    usage_sweep_seconds: int = 3600
    usage_retention_hours: int = 24

    @property
    def payos_configured(self) -> bool:
        return bool(self.payos_client_id and self.payos_api_key and self.payos_checksum_key)


def load_settings() -> Settings:
    bot_token = (os.getenv("BOT_TOKEN") or "").strip()
    if not bot_token:
        raise RuntimeError("BOT_TOKEN is missing")

    database_url_raw = os.getenv("DATABASE_URL", "").strip()
    if not database_url_raw:
        raise RuntimeError("DATABASE_URL is missing")

    packages = dict(DEFAULT_PACKAGES)
    packages_raw = (os.getenv("PACKAGES") or "").strip()
    if packages_raw:
        try:
            packages = parse_packages(packages_raw)
        except ValueError:
            log.exception("config_bad_packages")

    payment_provider = os.getenv("PAYMENT_PROVIDER", "mock").strip().lower()
    if payment_provider not in ("mock", "payos"):
        raise RuntimeError(f"Unsupported PAYMENT_PROVIDER: {payment_provider}")

    return Settings(
        bot_token=bot_token,
        database_url=make_async_db_url(database_url_raw),
        bot_name=(os.getenv("BOT_NAME") or "Rent Bot").strip(),
        command_prefix=(os.getenv("BOT_PREFIX") or "/").strip() or "/",
        admin_ids=_env_int_list("ADMIN_IDS"),
        packages=packages,
        # anti-spam
        anti_spam_max_commands=int(os.getenv("ANTI_SPAM_MAX_COMMANDS", "5")),
        anti_spam_time_window=int(os.getenv("ANTI_SPAM_TIME_WINDOW", "10")),
        anti_spam_cooldown=int(os.getenv("ANTI_SPAM_COOLDOWN", "60")),
        anti_spam_excluded=_env_str_list("ANTI_SPAM_EXCLUDED_COMMANDS", "help,status"),
        anti_spam_per_command=_env_bool("ANTI_SPAM_PER_COMMAND", True),
        # Payments
        payment_provider=payment_provider,
        payos_client_id=(os.getenv("PAYOS_CLIENT_ID") or "").strip() or None,
        payos_api_key=(os.getenv("PAYOS_API_KEY") or "").strip() or None,
        payos_checksum_key=(os.getenv("PAYOS_CHECKSUM_KEY") or "").strip() or None,
        payos_base_url=os.getenv("PAYOS_BASE_URL", "https://api-merchant.payos.vn").strip(),
        payos_return_url=os.getenv("PAYOS_RETURN_URL", "https://example.com/payment/success").strip(),
        payos_cancel_url=os.getenv("PAYOS_CANCEL_URL", "https://example.com/payment/cancel").strip(),
        payos_expiry_hours=int(os.getenv("PAYOS_EXPIRY_HOURS", "24")),
        # Webhook
        webhook_enabled=_env_bool("WEBHOOK_ENABLED", True),
        webhook_host=os.getenv("WEBHOOK_HOST", "0.0.0.0").strip(),
        webhook_port=int(os.getenv("WEBHOOK_PORT", "8080")),
        # Sweeps
        scheduler_enabled=_env_bool("SCHEDULER_ENABLED", True),
        expiry_sweep_seconds=int(os.getenv("EXPIRY_SWEEP_SECONDS", "3600")),
        reminder_sweep_seconds=int(os.getenv("REMINDER_SWEEP_SECONDS", "86400")),
        reminder_days=int(os.getenv("REMINDER_DAYS", "3")),
        payment_sweep_seconds=int(os.getenv("PAYMENT_SWEEP_SECONDS", "900")),
        pending_payment_ttl_hours=int(os.getenv("PENDING_PAYMENT_TTL_HOURS", "24")),
        usage_sweep_seconds=int(os.getenv("USAGE_SWEEP_SECONDS", "3600")),
        usage_retention_hours=int(os.getenv("USAGE_RETENTION_HOURS", "24")),
    )

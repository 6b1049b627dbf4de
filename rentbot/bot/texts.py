from __future__ import annotations

from datetime import datetime
from typing import Iterable

from rentbot.core.packages import Package
from rentbot.core.roles import Role
from rentbot.core.time import fmt_dt, fmt_remaining

SPAM_BLOCKED = "⏳ You are sending commands too fast. Please wait a moment and try again."
GENERIC_ERROR = "⚠️ An error occurred while running this command. Please try again later."
GROUP_ONLY = "This command can only be used in a group."


def fmt_price(amount: int) -> str:
    return f"{amount:,}".replace(",", ".") + " VND"


def permission_denied(role: Role) -> str:
    return f"⛔️ You need the {role.value} role to use this command."


def package_line(p: Package) -> str:
    line = f"• {p.id}: {p.name}, {fmt_price(p.price)} / {p.days} days"
    if p.description:
        line += f"\n  {p.description}"
    return line


def rent_menu(packages: Iterable[Package], prefix: str = "/", command: str = "rent") -> str:
    lines = ["🤖 BOT RENTAL PACKAGES", ""]
    lines += [package_line(p) for p in packages]
    action = "extend" if command == "extend" else "rent"
    lines += ["", f"To {action}, type: {prefix}{command} <package>", f"Example: {prefix}{command} basic"]
    return "\n".join(lines)


def rent_prompt(packages: Iterable[Package], prefix: str = "/") -> str:
    return "🔒 This group has not activated the bot yet or the rental has expired.\n\n" + rent_menu(packages, prefix)


def package_info(p: Package) -> str:
    lines = [
        f"📦 Package: {p.name}",
        f"💲 Price: {fmt_price(p.price)}",
        f"⏱ Duration: {p.days} days",
    ]
    if p.description:
        lines.append(f"📝 {p.description}")
    return "\n".join(lines)


def rent_confirm(p: Package, command: str = "rent", prefix: str = "/", expires_at: datetime | None = None) -> str:
    head = "🛒 EXTENSION DETAILS" if command == "extend" else "🛒 RENTAL DETAILS"
    lines = [head, "", package_info(p)]
    if expires_at is not None:
        lines.append(f"📅 Current expiry: {fmt_dt(expires_at)}")
    lines += ["", "To continue to payment, type:", f"{prefix}{command} {p.id} confirm"]
    return "\n".join(lines)


def payment_created(p: Package, link: str, bot_name: str) -> str:
    return "\n".join(
        [
            f"💳 PAYMENT FOR {p.name.upper()}",
            "",
            f"💲 Amount: {fmt_price(p.price)}",
            f"📝 Description: {bot_name} rental, {p.name}",
            f"🔗 Payment link: {link}",
            "",
            "📱 Scan the QR code or open the link above to pay.",
            "⏳ The link is valid for 24 hours.",
            "The bot activates automatically within a minute or two after payment.",
        ]
    )


def payment_failed_to_start() -> str:
    return "⚠️ Could not create the payment right now. Please try again later."


def activation_success(p: Package, expires_at: datetime | None) -> str:
    return (
        f"✅ Payment received! {p.name} is active for this group.\n"
        f"📅 Active until: {fmt_dt(expires_at)}"
    )


def activation_error() -> str:
    return "⚠️ Your payment was received but activation failed. An admin will look into it shortly."


def subscription_expired() -> str:
    return "⛔️ This group's bot rental has expired. Use /rent to renew."


def expiry_reminder(days: int, end_at: datetime | None) -> str:
    return (
        f"⏰ The bot rental for this group expires in {days} day{'s' if days != 1 else ''} "
        f"({fmt_dt(end_at)}). Use /extend to keep the bot running."
    )


def group_status(name: str, active: bool, expires_at: datetime | None, now: datetime) -> str:
    lines = [f"📊 STATUS: {name or 'this group'}", ""]
    if active:
        lines += [
            "✅ Activated",
            f"📅 Expires: {fmt_dt(expires_at)}",
            f"⏳ Remaining: {fmt_remaining(expires_at, now)}",
        ]
    else:
        lines.append("❌ Not activated")
        if expires_at is not None:
            lines.append(f"📅 Expired: {fmt_dt(expires_at)}")
        lines.append("Use /rent to activate the bot.")
    return "\n".join(lines)


def current_expiry(expires_at: datetime, now: datetime) -> str:
    return f"📅 Current expiry: {fmt_dt(expires_at)}\n⏳ Remaining: {fmt_remaining(expires_at, now)}"


def redeem_success(days: int, expires_at: datetime | None) -> str:
    return f"✅ License key accepted: +{days} days.\n📅 Active until: {fmt_dt(expires_at)}"

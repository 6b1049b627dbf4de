from .user import User
from .group import Group
from .subscription import Subscription
from .license_key import LicenseKey
from .payment import Payment, PaymentStatus
from .command_usage import CommandUsage

__all__ = [
    "User",
    "Group",
    "Subscription",
    "LicenseKey",
    "Payment",
    "PaymentStatus",
    "CommandUsage",
]

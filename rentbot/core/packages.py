from __future__ import annotations

import json
from dataclasses import dataclass


@dataclass(frozen=True)
class Package:
    id: str
    name: str
    price: int  # VND
    days: int
    description: str = ""


DEFAULT_PACKAGES: dict[str, Package] = {
    "basic": Package(id="basic", name="Basic", price=99_000, days=30, description="Core bot features for 30 days"),
    "premium": Package(id="premium", name="Premium", price=249_000, days=90, description="All bot features for 90 days"),
    "vip": Package(id="vip", name="VIP", price=899_000, days=365, description="VIP service for 365 days"),
}


def parse_packages(raw: str) -> dict[str, Package]:
    """Parse the PACKAGES env value.

    Format: {"basic": {"name": "...", "price": 99000, "days": 30, "description": "..."}, ...}
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"PACKAGES is not valid JSON: {e}") from e
    if not isinstance(data, dict) or not data:
        raise ValueError("PACKAGES must be a non-empty JSON object")

    out: dict[str, Package] = {}
    for key, item in data.items():
        if not isinstance(item, dict):
            raise ValueError(f"PACKAGES[{key}] must be an object")
        try:
            price = int(item["price"])
            days = int(item["days"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"PACKAGES[{key}] needs integer price and days") from e
        if price <= 0 or days <= 0:
            raise ValueError(f"PACKAGES[{key}] price and days must be positive")
        pid = str(key).strip().lower()
        out[pid] = Package(
            id=pid,
            name=str(item.get("name") or pid),
            price=price,
            days=days,
            description=str(item.get("description") or ""),
        )
    return out

"""
bumpboard.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for the soft, non-secret settings: site identity,
bot prefix, page size, and optional per-tier cooldown overrides.  Secrets
(database URL, JWT secret, Discord credentials) stay in the environment.

Usage::

    from bumpboard.config import load_config

    cfg = load_config()                  # reads ./config.yaml by default
    print(cfg.site_name)                 # "Bumpboard"
    print(cfg.bump_cooldown_hours)       # {"gold": 2.0}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from bumpboard.constants import DEFAULT_PAGE_SIZE
from bumpboard.database.models import SubscriptionTier


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BumpboardConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    site_name: str
    site_url: str

    # Discord
    bot_prefix: str

    # Directory
    listings_page_size: int = DEFAULT_PAGE_SIZE

    # tier name → hours; only tiers listed here differ from the default table
    bump_cooldown_hours: dict[str, float] = field(default_factory=dict)

    # How often the bot checks for due auto-bumps
    auto_bump_check_minutes: int = 15


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> BumpboardConfig:
    """Read *path* and return a :class:`BumpboardConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If ``bump_cooldown_hours`` names an unknown tier or a non-positive
        duration.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return BumpboardConfig(
        site_name=raw["site_name"],
        site_url=raw["site_url"],
        bot_prefix=raw["bot_prefix"],
        listings_page_size=int(raw.get("listings_page_size") or DEFAULT_PAGE_SIZE),
        bump_cooldown_hours=_parse_cooldown_overrides(raw.get("bump_cooldown_hours")),
        auto_bump_check_minutes=int(raw.get("auto_bump_check_minutes") or 15),
    )


def _parse_cooldown_overrides(raw: dict | None) -> dict[str, float]:
    if not raw:
        return {}
    valid = {t.value for t in SubscriptionTier}
    overrides: dict[str, float] = {}
    for tier, hours in raw.items():
        tier = str(tier).lower()
        if tier not in valid:
            raise ValueError(
                f"Unknown tier in bump_cooldown_hours: '{tier}'. "
                f"Expected one of: {sorted(valid)}"
            )
        hours = float(hours)
        if hours <= 0:
            raise ValueError(f"bump_cooldown_hours.{tier} must be positive, got {hours}")
        overrides[tier] = hours
    return overrides

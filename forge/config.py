"""
forge.config — YAML Configuration Loader
=========================================

Reads ``config.yaml`` for the soft, non-secret settings of the platform
(community identity, dashboard port, leaderboard cache TTLs, archive
retention).  Secrets and connection strings come from the environment
(``.env`` via python-dotenv), never from this file.

Usage::

    from forge.config import load_config

    cfg = load_config()                  # reads ./config.yaml by default
    print(cfg.community_name)            # "The Game Forge"
    print(cfg.leaderboard.weekly_ttl)    # 120
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from forge.constants import ARCHIVE_RETENTION_WEEKS


# ---------------------------------------------------------------------------
# Typed settings objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LeaderboardCacheConfig:
    """Cache lifetimes (seconds) for the three leaderboard views."""

    all_time_ttl: int = 300
    weekly_ttl: int = 120
    widget_ttl: int = 180


@dataclass(frozen=True, slots=True)
class ForgeConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str
    community_motto: str

    # Dashboard
    dashboard_port: int

    # Leaderboards
    leaderboard: LeaderboardCacheConfig = field(default_factory=LeaderboardCacheConfig)
    archive_retention_weeks: int = ARCHIVE_RETENTION_WEEKS


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> ForgeConfig:
    """Read *path* and return a :class:`ForgeConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    lb_raw: dict = raw.get("leaderboard") or {}
    defaults = LeaderboardCacheConfig()
    leaderboard = LeaderboardCacheConfig(
        all_time_ttl=int(lb_raw.get("all_time_ttl_seconds", defaults.all_time_ttl)),
        weekly_ttl=int(lb_raw.get("weekly_ttl_seconds", defaults.weekly_ttl)),
        widget_ttl=int(lb_raw.get("widget_ttl_seconds", defaults.widget_ttl)),
    )

    return ForgeConfig(
        community_name=raw["community_name"],
        community_motto=raw["community_motto"],
        dashboard_port=int(raw["dashboard_port"]),
        leaderboard=leaderboard,
        archive_retention_weeks=int(raw.get("archive_retention_weeks", ARCHIVE_RETENTION_WEEKS)),
    )

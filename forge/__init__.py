"""
The Game Forge — Gamification Backend for a Game-Dev Community
================================================================
Quests, badges, titles, XP/leveling and leaderboards for a community split
into domains (Game Development, Game Design, Game Art, ...).  Every XP award
is one transaction: XP, level, activity log and achievements move together,
and the leaderboards are refreshed once it commits.

Package layout::

    forge/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Leveling formula, domains, roles, XP limits
    ├── jobs.py            # Cron entry point (resets, weekly archive)
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session helpers
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default badges + titles
    ├── engine/
    │   ├── xp.py          # Pure XP arithmetic (limits, bonuses)
    │   ├── periods.py     # Daily / Sunday-start weekly windows, streaks
    │   ├── achievements.py # Achievement trigger handlers
    │   └── cache.py       # TTL + tag cache for leaderboards
    ├── services/
    │   ├── xp_service.py          # Transactional XP award
    │   ├── quest_service.py       # Quest completion
    │   ├── achievement_service.py # Badge/title auto-awarding
    │   ├── badge_service.py       # Badge earning
    │   ├── title_service.py       # Title activation
    │   ├── leaderboard_service.py # Rankings + cache
    │   ├── leaderboard_archive.py # Weekly archive
    │   ├── event_service.py       # Event registration + attendance
    │   ├── module_service.py      # Learning module progress
    │   ├── notification_service.py
    │   └── admin_service.py       # Audit-logged manual awards
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Engine, JWT auth dependencies
        ├── errors.py      # Response envelopes + error handlers
        └── routes/        # Gamification, leaderboard, event, academy routes
"""

__version__ = "1.0.0"

"""
Bumpboard — A Discord Server & Bot Directory Backend
=====================================================
Owners list their Discord servers and bots, visitors browse and search the
directory, and members "bump" listings to push them back to the top.  A
bump is rate-limited per member and per listing by a cooldown that depends
on the member's subscription tier.

Package layout::

    bumpboard/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Tier cooldown table, paging, member buckets
    ├── errors.py          # Bump error taxonomy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # All ORM models
    ├── engine/
    │   ├── bump_policy.py   # Cooldown + eligibility rules (pure)
    │   ├── listing_query.py # Filter / sort / paginate
    │   └── notify.py        # PG LISTEN/NOTIFY event bus
    ├── services/
    │   ├── bump_service.py        # Transactional bump + status
    │   ├── auto_bump_service.py   # Scheduled bumps for paid tiers
    │   ├── listing_service.py     # Listing CRUD
    │   ├── profile_service.py     # Profiles + Discord identity link
    │   ├── announcement_service.py # Bump announcements in Discord
    │   ├── embeds.py              # Embed builders
    │   └── throttle.py            # Per-channel send throttle
    ├── bot/
    │   ├── core.py        # Bot subclass, cog loader
    │   └── cogs/
    │       ├── bump.py    # /bump, /bump-status, /bump-channel
    │       └── tasks.py   # Auto-bump loop
    └── api/
        ├── main.py        # FastAPI app
        ├── auth.py        # JWT identity + Discord account linking
        └── routes/        # Listings + profile endpoints
"""

__version__ = "0.1.0"

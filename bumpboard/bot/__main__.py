"""
bumpboard.bot.__main__ — Entry point for ``python -m bumpboard.bot``
====================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Build the NOTIFY listener (started once the bot is ready).
5. Create the BumpboardBot and run it (blocking).
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

from bumpboard.bot.core import BumpboardBot
from bumpboard.config import load_config
from bumpboard.database.engine import create_db_engine, init_db
from bumpboard.engine.notify import EventListener

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("bumpboard")


def main() -> None:
    load_dotenv()

    token = os.getenv("DISCORD_TOKEN")
    if not token or token == "your-discord-bot-token-here":
        logger.critical(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    cfg = load_config()
    logger.info("Config loaded — Site: %s", cfg.site_name)

    engine = create_db_engine()
    init_db(engine)

    bot = BumpboardBot(cfg=cfg, engine=engine, listener=EventListener(engine))

    logger.info("Starting Bumpboard bot…")
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()

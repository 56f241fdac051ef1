"""
Programmatic Alembic migration runner for the timetrack schema.

No alembic.ini is needed: the script location is this package's migrations
directory and the database URL comes from timetrack.db.config.

Usage examples:
    python -m timetrack.db.run_migrations upgrade head
    python -m timetrack.db.run_migrations downgrade -1
    python -m timetrack.db.run_migrations current
    python -m timetrack.db.run_migrations stamp head
"""

import logging
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

from alembic import command
from alembic.config import Config

from timetrack.db.config import get_settings

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

# command name -> (alembic function, default positional args)
COMMANDS: Dict[str, tuple] = {
    "upgrade": (command.upgrade, ["head"]),
    "downgrade": (command.downgrade, ["-1"]),
    "stamp": (command.stamp, ["head"]),
    "history": (command.history, []),
    "current": (command.current, []),
    "heads": (command.heads, []),
}


# PUBLIC_INTERFACE
def build_config() -> Config:
    """Alembic Config pointing at the bundled migrations and the configured database."""
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    # env.py uses the async URL for online runs; this one serves offline (--sql) mode.
    cfg.set_main_option("sqlalchemy.url", get_settings().sync_database_url)
    return cfg


def _dispatch(cfg: Config, name: str, args: List[str]) -> None:
    if name == "show":
        if not args:
            raise SystemExit("Usage: show <revision>")
        command.show(cfg, args[0])
        return
    if name not in COMMANDS:
        raise SystemExit(f"Unsupported Alembic command: {name}. Choose from: {', '.join(sorted(COMMANDS))}, show")
    func: Callable[..., None] = COMMANDS[name][0]
    defaults: List[str] = COMMANDS[name][1]
    func(cfg, *(args or defaults))


# PUBLIC_INTERFACE
def main(argv: Optional[List[str]] = None) -> None:
    """Run an Alembic command, e.g. main(["upgrade", "head"])."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        raise SystemExit("No Alembic arguments provided. Example: upgrade head")
    logger.info("Alembic %s", " ".join(args))
    _dispatch(build_config(), args[0], args[1:])


if __name__ == "__main__":
    main()

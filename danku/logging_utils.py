"""
logging_utils.py

Responsibility: route danku's diagnostics to stderr at the level picked with
`-v`. Progress lines stay on stdout as plain prints; log records carry the
detail behind them: HTTP calls, git/sv/pnpm command lines, splices that were
skipped.
"""

from __future__ import annotations

import logging

# -v count -> level; anything past the end means DEBUG
_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)
LOG_FORMAT = "danku %(levelname)s [%(name)s] %(message)s"


def configure_logging(verbosity: int) -> None:
    level = _LEVELS[min(max(verbosity, 0), len(_LEVELS) - 1)]
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger("danku").setLevel(level)

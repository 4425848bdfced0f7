"""Logging setup shared by the API and the CLI."""

from __future__ import annotations

import logging

from barangay_payroll.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once; later calls only adjust the level."""
    resolved = (level or get_settings().log_level).upper()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=resolved, format=LOG_FORMAT)
    else:
        root.setLevel(resolved)
    # SQL echo is controlled by the engine, keep its logger quiet by default
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

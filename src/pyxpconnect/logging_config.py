"""Logging helpers for pyxpconnect."""
from __future__ import annotations

import logging
from typing import Optional

from rich.logging import RichHandler

REQUEST_LOGGER = "pyxpconnect.connector.requests"


def configure_logging(
    verbose: bool = False,
    level: Optional[int] = None,
    *,
    trace_requests: bool = False,
) -> None:
    """Install a rich console handler on the root logger.

    The connector re-sends subscription requests on every refresh tick. Those
    messages stay hidden even in verbose mode unless ``trace_requests`` is set.
    """

    resolved_level = level or (logging.DEBUG if verbose else logging.INFO)
    logging.basicConfig(
        level=resolved_level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_time=False, markup=False)],
    )
    logging.getLogger(REQUEST_LOGGER).setLevel(logging.DEBUG if trace_requests else logging.INFO)

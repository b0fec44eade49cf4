"""
Logging setup for plotbuild.

Every module logs through ``logger = get_logger(__name__)``, so all records
sit under the ``plotbuild`` logger: stage progress and inferred scales at
DEBUG, dropped rows and ignored layer parameters at WARNING. Nothing is shown
until a caller attaches a handler, either its own or the stderr handler from
``configure_logging``:

    ```python
    from plotbuild.utils.logging import configure_logging
    configure_logging(level="DEBUG")  # or set PLOTBUILD_LOG_LEVEL=DEBUG
    ```
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional, Union

DEFAULT_FMT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d:%(funcName)s: %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"

LOG_LEVEL_ENV = "PLOTBUILD_LOG_LEVEL"
PACKAGE_LOGGER = "plotbuild"


def _resolve_level(level: Optional[Union[str, int]]) -> int:
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "INFO")
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return level


def configure_logging(
    level: Optional[Union[str, int]] = None,
    *,
    fmt: Optional[str] = None,
    datefmt: Optional[str] = None,
    force: bool = False,
) -> None:
    """Attach a stderr handler to the ``plotbuild`` logger and set its level.

    The root logger is never touched. ``level`` falls back to
    PLOTBUILD_LOG_LEVEL, then INFO; unknown level names mean INFO. A second
    call only updates the level unless ``force`` replaces the handlers.
    """
    level = _resolve_level(level)
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    formatter = logging.Formatter(fmt=fmt or DEFAULT_FMT, datefmt=datefmt or DEFAULT_DATEFMT)

    if force:
        for h in logger.handlers[:]:
            h.close()
            logger.removeHandler(h)
    else:
        for h in logger.handlers:
            if isinstance(h, logging.StreamHandler) and h.stream is sys.stderr:
                return

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(formatter)
    logger.addHandler(console)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger for ``name``; the package logger when ``name`` is None."""
    return logging.getLogger(PACKAGE_LOGGER if name is None else name)

"""Process-wide logging configuration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from offline_pay.config.settings import LoggingConfig


def configure_logging(config: LoggingConfig) -> None:
    """Apply level and format to the ``offline_pay`` logger tree.

    uvicorn configures its own loggers; only ours are touched here, and
    only once (repeated calls replace the handler instead of stacking).
    """
    root = logging.getLogger("offline_pay")
    root.setLevel(config.level.upper())
    for handler in list(root.handlers):
        if getattr(handler, "_offline_pay", False):
            root.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(config.format))
    handler._offline_pay = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.propagate = False

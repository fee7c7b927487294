"""Logging setup for the CLI and the audit channel."""

from __future__ import annotations

import logging

AUDIT_LOGGER_NAME = "wmsync.audit"


def configure_logging(
    *, level: int = logging.INFO, audit_level: int = logging.INFO, force: bool = False
) -> None:
    """Initialise the root logger with a terse CLI format.

    Audit entries use their own ``wmsync.audit`` logger so they can be kept at
    ``audit_level`` while the rest of the package is quieter or louder. Pass
    ``force=True`` to reconfigure during tests.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    logging.getLogger(AUDIT_LOGGER_NAME).setLevel(audit_level)

"""Identity-resolution probe defaults."""

from __future__ import annotations

from wmsync.domain.retry import ProbePolicy

from .env import optional_float, optional_int

DEFAULT_PROBE_TIMEOUT_SECONDS = 3.0
DEFAULT_PROBE_MAX_ATTEMPTS = 3
DEFAULT_PROBE_BACKOFF_SECONDS = 0.5
DEFAULT_PROBE_MAX_BACKOFF_SECONDS = 2.0


def get_probe_policy() -> ProbePolicy:
    return ProbePolicy(
        max_attempts=optional_int("WMSYNC_PROBE_MAX_ATTEMPTS", DEFAULT_PROBE_MAX_ATTEMPTS),
        per_attempt_timeout=optional_float(
            "WMSYNC_PROBE_TIMEOUT_SECONDS", DEFAULT_PROBE_TIMEOUT_SECONDS
        ),
        backoff=DEFAULT_PROBE_BACKOFF_SECONDS,
        max_backoff=DEFAULT_PROBE_MAX_BACKOFF_SECONDS,
    )

from __future__ import annotations

import logging
from typing import Any, Callable

from prometheus_client import Counter

_log = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Metric updates sit on the request path; failures are logged at DEBUG only.
# -----------------------------------------------------------------------------
def _best_effort(msg: str, fn: Callable[[], Any]) -> None:
    try:
        fn()
    except Exception as e:  # pragma: no cover
        # nosec B110 - metrics should never crash request paths; debug for ops.
        _log.debug("%s: %s", msg, e)


headerapp_resolutions_total = Counter(
    "headerapp_resolutions_total",
    "Header resolutions by outcome (matched, unmatched, absent).",
    ["result"],
)

headerapp_cache_events_total = Counter(
    "headerapp_cache_events_total",
    "Rule cache events (hit, miss, invalidate).",
    ["event"],
)

headerapp_secret_fetch_failures_total = Counter(
    "headerapp_secret_fetch_failures_total",
    "Secret store lookups that raised and were treated as no configuration.",
)


def inc_resolution(result: str) -> None:
    _best_effort(
        "inc headerapp_resolutions_total",
        lambda: headerapp_resolutions_total.labels(result=result).inc(),
    )


def inc_cache_event(event: str) -> None:
    _best_effort(
        "inc headerapp_cache_events_total",
        lambda: headerapp_cache_events_total.labels(event=event).inc(),
    )


def inc_secret_fetch_failure() -> None:
    _best_effort(
        "inc headerapp_secret_fetch_failures_total",
        headerapp_secret_fetch_failures_total.inc,
    )

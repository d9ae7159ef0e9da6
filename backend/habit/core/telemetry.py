"""Opik-backed tracing and metrics.

Everything here degrades to a no-op when the ``opik`` package is missing or
``OPIK_ENABLED`` is false, so alarm code can call ``trace``/``log_metric``
unconditionally.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from threading import Lock
from typing import TYPE_CHECKING, Any, Dict, Iterator, Optional

from habit.core.config import settings

try:
    from opik import Opik
except ImportError:  # pragma: no cover
    Opik = None  # type: ignore[assignment]

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from opik.api_objects.trace.trace_client import Trace
else:  # pragma: no cover - typing helper
    Trace = object  # type: ignore[assignment]

logger = logging.getLogger(__name__)

_client: Optional["Opik"] = None
_client_lock = Lock()
_init_attempted = False


def init_opik() -> Optional["Opik"]:
    """Create the Opik client on first use; later calls return the cached result."""
    global _client, _init_attempted

    with _client_lock:
        if _init_attempted:
            return _client
        _init_attempted = True

        if Opik is None or not settings.opik_enabled:
            return None
        if not settings.opik_api_key:
            logger.warning("OPIK_ENABLED is set without OPIK_API_KEY; alarm tracing disabled.")
            return None
        try:
            _client = Opik(project_name=settings.opik_project, api_key=settings.opik_api_key)
        except Exception as exc:  # pragma: no cover - network/SDK failure
            logger.warning("Opik init failed, alarm tracing disabled: %s", exc)
            return None

    logger.info("Opik tracing enabled (project=%s).", settings.opik_project)
    return _client


def get_opik_client() -> Optional["Opik"]:
    if _client is not None:
        return _client
    return init_opik()


@contextmanager
def trace(
    name: str,
    metadata: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
) -> Iterator[Optional["Trace"]]:
    """Open an Opik trace around a block; yields None when tracing is off."""
    client = get_opik_client()
    span: Optional["Trace"] = None

    if client:
        span_metadata = dict(metadata or {})
        if request_id:
            span_metadata.setdefault("request_id", request_id)
        try:
            span = client.trace(name=name, metadata=span_metadata or None)
        except Exception as exc:  # pragma: no cover - SDK failure
            logger.debug("Unable to start trace %s: %s", name, exc)

    try:
        yield span
    except Exception as exc:
        if span:
            try:
                span.update(error_info={"message": str(exc)})
            except Exception:  # pragma: no cover
                logger.debug("Failed to attach error to trace %s", name, exc_info=True)
        raise
    finally:
        if span:
            try:
                span.end()
            except Exception:  # pragma: no cover
                logger.debug("Failed to close trace %s", name, exc_info=True)


def log_metric(name: str, value: float | int, metadata: Optional[Dict[str, Any]] = None) -> None:
    """Record a metric as a short-lived ``metric:<name>`` trace."""
    if not get_opik_client():
        return
    payload: Dict[str, Any] = {"value": value}
    if metadata:
        payload.update(metadata)
    with trace(f"metric:{name}", metadata=payload):
        pass

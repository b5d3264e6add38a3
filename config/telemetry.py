"""
Product telemetry for casetree.

Repository writes (suite/section/case creation, reorders) report a
``casetree.<event>`` event to PostHog, keyed by the configured
``TELEMETRY_INSTALLATION_ID``. Reporting is best effort: a failure to build
the client or to queue an event is logged and never reaches the caller.
"""

from __future__ import annotations

import atexit
import logging
from datetime import datetime, timezone

from django.conf import settings
from posthog import Posthog

logger = logging.getLogger(__name__)

EVENT_PREFIX = "casetree"

_posthog_client: Posthog | None = None
_flush_on_exit_registered: bool = False


def _get_posthog_client() -> Posthog | None:
    """
    Return the process-wide PostHog client, building it on first use.

    Returns None when the client cannot be built from ``POSTHOG_API_KEY``
    and ``POSTHOG_HOST``.
    """
    global _posthog_client, _flush_on_exit_registered

    if _posthog_client is None:
        try:
            _posthog_client = Posthog(
                project_api_key=settings.POSTHOG_API_KEY,
                host=settings.POSTHOG_HOST,
            )
        except Exception as e:
            logger.warning(f"Telemetry client unavailable: {e}")
            return None

        if not _flush_on_exit_registered:
            atexit.register(_shutdown_posthog_client)
            _flush_on_exit_registered = True
        logger.debug(f"Telemetry client created for {settings.POSTHOG_HOST}")

    return _posthog_client


def _shutdown_posthog_client() -> None:
    """Flush queued repository events and drop the client."""
    global _posthog_client
    if _posthog_client is None:
        return
    try:
        _posthog_client.shutdown()
    except Exception as e:
        logger.warning(f"Telemetry flush failed: {e}")
    finally:
        _posthog_client = None


def _installation_id() -> str | None:
    """The distinct id events are reported under, or None when reporting is off."""
    if settings.MODE == "TEST":
        logger.debug("Telemetry disabled in TEST mode")
        return None
    if not settings.TELEMETRY_ENABLED:
        return None
    return settings.TELEMETRY_INSTALLATION_ID or None


def record_event(event_type: str, properties: dict | None = None) -> bool:
    """
    Report a repository event such as ``"repository_reordered"``.

    Args:
        event_type: Event name without the ``casetree.`` prefix
        properties: Extra event properties (e.g. ``{"items": 3}``)

    Returns:
        bool: True when the event was queued
    """
    installation_id = _installation_id()
    if installation_id is None:
        return False

    client = _get_posthog_client()
    if client is None:
        return False

    try:
        client.capture(
            distinct_id=installation_id,
            event=f"{EVENT_PREFIX}.{event_type}",
            properties={
                "package": EVENT_PREFIX,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "installation_id": installation_id,
                **(properties or {}),
            },
        )
    except Exception as e:
        logger.warning(f"Failed to report {event_type} event: {e}")
        return False
    return True

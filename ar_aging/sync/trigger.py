"""Authenticated entry point for user-initiated syncs.

Maps the outcome of a sync to a response body and an HTTP-style status code,
so any web front end can expose it without knowing the error types.
"""

from typing import Any, Dict, Optional, Tuple

from ar_aging.config import Settings, load_settings
from ar_aging.errors import (
    AuthenticationError,
    ConfigurationError,
    PersistenceWriteError,
    SyncError,
    SyncInProgressError,
)
from ar_aging.logging_config import get_logger
from ar_aging.sync.auth import resolve_caller
from ar_aging.sync.orchestrator import run_sync

logger = get_logger(__name__)


def trigger_sync(
    authorization: Optional[str],
    settings: Optional[Settings] = None,
    resolve=resolve_caller,
    runner=run_sync,
    **sync_kwargs: Any,
) -> Tuple[Dict[str, Any], int]:
    """Run a sync on behalf of the bearer of ``authorization``.

    Returns:
        Tuple[Dict[str, Any], int]: ``(body, status)``. 200 on success, 401 if
        the caller cannot be identified, 409 if a sync is already running and
        500 for configuration or persistence failures.
    """
    try:
        settings = settings or load_settings(require_identity=True)
        caller = resolve(authorization, settings)
    except AuthenticationError as e:
        logger.warning(f"Rejected sync request: {e}")
        return {"error": str(e)}, 401
    except ConfigurationError as e:
        logger.error(f"Sync not configured: {e}")
        return {"error": "Sync is not configured", "details": str(e)}, 500

    try:
        result = runner(caller, settings=settings, **sync_kwargs)
    except AuthenticationError as e:
        return {"error": str(e)}, 401
    except SyncInProgressError as e:
        logger.info(f"Sync requested by {caller} while another is running", extra={"caller": caller})
        return {"error": str(e)}, 409
    except PersistenceWriteError as e:
        logger.error(f"Sync failed while writing: {e}", extra={"caller": caller, "batch": e.batch})
        body = {"error": "Failed to save invoices", "details": str(e)}
        if e.batch is not None:
            body["batch"] = e.batch
        return body, 500
    except (SyncError, ConfigurationError) as e:
        logger.error(f"Sync failed: {e}", extra={"caller": caller})
        return {"error": "Sync failed", "details": str(e)}, 500

    return {
        "success": True,
        "message": result.message,
        "count": result.count,
        "upserted": result.upserted,
        "deleted": result.deleted,
        "truncated": result.truncated,
        "syncedBy": caller,
    }, 200

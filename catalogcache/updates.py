"""
Cache side effects of package update operations.

The update pipeline itself lives elsewhere; it reports a result per app.
A successful update may have changed the app's permission manifest, so
its cached permissions are flagged outdated.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Mapping

import aiosqlite

from .errors import StoreUnavailable
from .permissions import PermissionCache

logger = logging.getLogger("updates")


@dataclass
class UpdateResult:
    """Outcome of an install/update/uninstall operation."""
    success: bool
    exit_code: int = 0
    output: List[str] = field(default_factory=list)


async def handle_update_completed(permissions: PermissionCache, app_id: str, result: UpdateResult) -> bool:
    """
    React to a finished update of one app.

    Returns True when the app's permissions were flagged outdated.
    """
    if not result.success:
        logger.info(f"Update of {app_id} failed (exit code {result.exit_code}); permissions kept")
        return False
    try:
        await permissions.mark_outdated(app_id)
    except (aiosqlite.Error, StoreUnavailable) as e:
        logger.error(f"Error marking permissions as outdated for {app_id}: {e}")
        return False
    return True


async def handle_batch_update(permissions: PermissionCache, results: Mapping[str, UpdateResult]) -> List[str]:
    """
    React to an update-all run.

    Flags every successfully updated app in one statement and returns the
    flagged app ids (empty if nothing succeeded or the write failed).
    """
    updated = [app_id for app_id, result in results.items() if result.success]
    failed = len(results) - len(updated)
    if failed:
        logger.info(f"{failed} app update(s) failed; their permissions are kept")
    if not updated:
        return []
    try:
        await permissions.mark_outdated_batch(updated)
    except (aiosqlite.Error, StoreUnavailable) as e:
        logger.error(f"Error marking permissions as outdated after batch update: {e}")
        return []
    return updated

"""
Catalog Cache - local query surface for the catalog browser UI
Serves cached catalog sections instantly and refreshes them in the background
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from config.settings import settings

from .errors import RemoteFetchFailed, StoreUnavailable
from .models import AppVersion, PermissionEntry
from .runtime import CatalogCache, build_catalog_cache
from .schemas import (
    MarkOutdatedRequest,
    NotificationList,
    PermissionLookupRequest,
    PermissionStoreRequest,
    PruneRequest,
    UpdateCompletedRequest,
)
from .updates import UpdateResult, handle_update_completed

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("catalogcache")

APP_VERSION = "0.3.0"
APP_NAME = "Catalog Cache"


def _cache(request: Request) -> CatalogCache:
    return request.app.state.cache


def create_app(cache: Optional[CatalogCache] = None) -> FastAPI:
    """Build the FastAPI app around a catalog cache (a default one if omitted)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            await app.state.cache.store.open()
        except StoreUnavailable as e:
            # Reads degrade to "no cache"; later operations retry the open
            logger.error(f"Cache database unavailable at startup: {e}")
        yield
        await app.state.cache.close()

    app = FastAPI(
        title=APP_NAME,
        description="Local cache of remote catalog data",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.cache = cache if cache is not None else build_catalog_cache()

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint"""
        return {"status": "ok", "database": _cache(request).store.is_open}

    @app.get("/cache/stats")
    async def cache_stats(request: Request):
        """Revalidation statistics"""
        return _cache(request).coordinator.get_stats()

    # ===== SECTIONS =====

    @app.get("/sections/{name}")
    async def get_section(name: str, request: Request):
        """Cached value of a section; schedules a background refresh when needed"""
        coordinator = _cache(request).coordinator
        if name not in coordinator.section_names:
            raise HTTPException(status_code=404, detail=f"Unknown section: {name}")
        state = await coordinator.get_section(name)
        return state.to_dict()

    @app.post("/sections/{name}/refresh")
    async def refresh_section(name: str, request: Request):
        """Refresh a section now and return the outcome"""
        coordinator = _cache(request).coordinator
        if name not in coordinator.section_names:
            raise HTTPException(status_code=404, detail=f"Unknown section: {name}")
        state = await coordinator.refresh(name)
        if state.value is None and isinstance(state.error, RemoteFetchFailed):
            raise HTTPException(status_code=502, detail=str(state.error))
        return state.to_dict()

    # ===== PERMISSIONS =====

    @app.post("/permissions/lookup")
    async def lookup_permissions(body: PermissionLookupRequest, request: Request):
        """Cached permissions for the given app versions (misses omitted)"""
        keys = [AppVersion(app.app_id, app.version) for app in body.apps]
        return await _cache(request).permissions.get_many(keys)

    @app.put("/permissions")
    async def store_permissions(body: PermissionStoreRequest, request: Request):
        """Store permission manifests atomically"""
        entries = {
            app_id: PermissionEntry(version=entry.version, permissions=entry.permissions)
            for app_id, entry in body.entries.items()
        }
        await _cache(request).permissions.put_many(entries)
        return {"stored": len(entries)}

    @app.post("/permissions/outdated")
    async def mark_permissions_outdated(body: MarkOutdatedRequest, request: Request):
        """Flag all cached versions of the given apps as outdated"""
        flagged = await _cache(request).permissions.mark_outdated_batch(body.app_ids)
        return {"flagged": flagged}

    @app.post("/permissions/prune")
    async def prune_permissions(body: PruneRequest, request: Request):
        """Drop cached permissions of versions no longer installed"""
        current = [AppVersion(app.app_id, app.version) for app in body.apps]
        deleted = await _cache(request).permissions.prune_to_current(current)
        return {"deleted": deleted}

    @app.post("/updates/completed")
    async def update_completed(body: UpdateCompletedRequest, request: Request):
        """Hook for the update pipeline"""
        result = UpdateResult(success=body.success, exit_code=body.exit_code, output=body.output)
        invalidated = await handle_update_completed(_cache(request).permissions, body.app_id, result)
        return {"app_id": body.app_id, "permissions_invalidated": invalidated}

    # ===== NOTIFICATIONS =====

    @app.get("/notifications", response_model=NotificationList)
    async def list_notifications(request: Request):
        """All notifications with their viewed state"""
        center = _cache(request).notifications
        items = await center.list_all()
        return {
            "notifications": items,
            "unread_count": sum(1 for item in items if not item["viewed"]),
        }

    @app.post("/notifications/viewed")
    async def mark_all_notifications_viewed(request: Request):
        center = _cache(request).notifications
        await center.mark_all_as_viewed()
        return {"unread_count": await center.unread_count()}

    @app.post("/notifications/{notification_id}/viewed")
    async def mark_notification_viewed(notification_id: str, request: Request):
        center = _cache(request).notifications
        await center.mark_as_viewed(notification_id)
        return {"unread_count": await center.unread_count()}

    return app


app = create_app()

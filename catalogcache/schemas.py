"""
Pydantic schemas for API request/response models
"""
from typing import Dict, List

from pydantic import BaseModel, Field


# ===== PERMISSION SCHEMAS =====

class AppVersionIn(BaseModel):
    """An installed app version"""
    app_id: str
    version: str


class PermissionLookupRequest(BaseModel):
    """Batch lookup of cached permissions"""
    apps: List[AppVersionIn]


class PermissionEntryIn(BaseModel):
    """Permission manifest for one app version"""
    version: str
    permissions: List[str] = Field(default_factory=list)


class PermissionStoreRequest(BaseModel):
    """Batch write of permission manifests, keyed by app id"""
    entries: Dict[str, PermissionEntryIn]


class MarkOutdatedRequest(BaseModel):
    """Apps whose permissions must be re-derived"""
    app_ids: List[str]


class PruneRequest(BaseModel):
    """Currently installed app versions"""
    apps: List[AppVersionIn]


# ===== UPDATE SCHEMAS =====

class UpdateCompletedRequest(BaseModel):
    """Result reported by the update pipeline for one app"""
    app_id: str
    success: bool
    exit_code: int = 0
    output: List[str] = Field(default_factory=list)


# ===== NOTIFICATION SCHEMAS =====

class NotificationOut(BaseModel):
    """A notification with its viewed flag"""
    id: str
    title: str
    content: str
    date: str
    priority: str
    viewed: bool


class NotificationList(BaseModel):
    """All notifications with unread count"""
    notifications: List[NotificationOut]
    unread_count: int

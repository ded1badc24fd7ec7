"""
Data models for the catalog cache.

Records mirror what the remote catalog returns, enriched with the detail
payloads the UI needs. Nested payloads stay plain dicts; only the fields
the cache reasons about are promoted to attributes.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Section(Enum):
    """Independently refreshed units of cached catalog data."""
    APP_OF_THE_DAY = "appOfTheDay"
    APPS_OF_THE_WEEK = "appsOfTheWeek"
    CATEGORIES = "categories"


@dataclass
class FeaturedApp:
    """
    The featured app of the day.

    `detail` is the appstream-style summary; `extended_detail` is the full
    catalog listing (license, developer, verification). Older cache rows
    were written without `extended_detail`.
    """
    app_id: str
    day: str
    name: Optional[str] = None
    icon: Optional[str] = None
    detail: Optional[Dict[str, Any]] = None
    extended_detail: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "app_id": self.app_id,
            "day": self.day,
            "name": self.name,
            "icon": self.icon,
            "detail": self.detail,
            "extended_detail": self.extended_detail,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeaturedApp":
        """Create from dictionary."""
        return cls(
            app_id=data["app_id"],
            day=data.get("day", ""),
            name=data.get("name"),
            icon=data.get("icon"),
            detail=data.get("detail"),
            extended_detail=data.get("extended_detail"),
        )


@dataclass
class WeeklyPick:
    """One entry of the weekly picks list."""
    app_id: str
    position: int
    is_fullscreen: bool = False
    name: Optional[str] = None
    icon: Optional[str] = None
    summary: Optional[str] = None
    detail: Optional[Dict[str, Any]] = None
    extended_detail: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "app_id": self.app_id,
            "position": self.position,
            "is_fullscreen": self.is_fullscreen,
            "name": self.name,
            "icon": self.icon,
            "summary": self.summary,
            "detail": self.detail,
            "extended_detail": self.extended_detail,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeeklyPick":
        """Create from dictionary."""
        return cls(
            app_id=data["app_id"],
            position=int(data.get("position", 0)),
            is_fullscreen=bool(data.get("is_fullscreen", data.get("isFullscreen", False))),
            name=data.get("name"),
            icon=data.get("icon"),
            summary=data.get("summary"),
            detail=data.get("detail"),
            extended_detail=data.get("extended_detail"),
        )


@dataclass(frozen=True)
class AppVersion:
    """An installed (app_id, version) pair."""
    app_id: str
    version: str


@dataclass
class PermissionEntry:
    """Permission manifest of one app version."""
    version: str
    permissions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"version": self.version, "permissions": list(self.permissions)}


@dataclass
class Notification:
    """An in-app announcement shown in the notification menu."""
    id: str
    title: str
    content: str
    date: str
    priority: str = "normal"  # normal, high

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Notification":
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            content=data.get("content", ""),
            date=data.get("date", ""),
            priority=data.get("priority", "normal"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "date": self.date,
            "priority": self.priority,
        }

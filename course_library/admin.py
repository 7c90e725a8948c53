from __future__ import annotations

from collections.abc import Callable
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from .config import get_settings
from .errors import NotFoundError
from .scan import ScanStats, Scanner, folder_playlist, scan_folder_content
from .store import Store


class CustomScanIn(BaseModel):
    directory_path: str = Field(min_length=1)


class SettingIn(BaseModel):
    value: str
    setting_type: str = "string"


class ActivityIn(BaseModel):
    activity_type: str = Field(min_length=1)
    entity_id: str
    entity_type: str
    details: Optional[str] = None


def build_admin_router(
    *,
    get_store_dep: Callable[[], Store],
    meta_func: Callable[[], dict[str, Any]],
    set_scan_meta: Callable[[ScanStats], None],
) -> APIRouter:
    """Library maintenance routes.

    - Scanning configured or custom roots, folder browsing
    - User settings
    - Activity log

    Kept as a router factory so the main app can inject dependencies cleanly.
    """

    r = APIRouter(prefix="/api")

    def _scanner(store: Store) -> Scanner:
        return Scanner(store, reuse_ids=get_settings().reuse_scanned_ids)

    @r.post("/scan")
    def scan_courses(store: Store = Depends(get_store_dep)):
        settings = get_settings()
        scanner = _scanner(store)
        courses = scanner.rescan_courses(settings.course_roots)
        set_scan_meta(scanner.stats)
        store.try_log_activity("library_scanned", "library", "scan", f"{len(courses)} courses")
        return courses

    @r.post("/scan/custom")
    def scan_custom_directory(payload: CustomScanIn, store: Store = Depends(get_store_dep)):
        scanner = _scanner(store)
        courses = scanner.scan_directory(payload.directory_path)
        set_scan_meta(scanner.stats)
        store.try_log_activity(
            "directory_scanned", payload.directory_path, "directory", f"{len(courses)} courses"
        )
        return courses

    @r.get("/scan/status")
    def scan_status():
        return meta_func()

    @r.get("/folders/content")
    def folder_content(path: str):
        return scan_folder_content(path)

    @r.get("/folders/playlist")
    def playlist(path: str):
        return folder_playlist(path)

    @r.get("/settings")
    def all_settings(store: Store = Depends(get_store_dep)):
        return store.all_settings()

    @r.post("/settings/defaults")
    def default_settings(store: Store = Depends(get_store_dep)):
        return {"added": store.initialize_default_settings()}

    @r.get("/settings/{key}")
    def get_setting(key: str, store: Store = Depends(get_store_dep)):
        setting = store.get_setting(key)
        if setting is None:
            raise NotFoundError("Setting", key)
        return setting

    @r.put("/settings/{key}")
    def set_setting(key: str, payload: SettingIn, store: Store = Depends(get_store_dep)):
        return store.set_setting(key, payload.value, payload.setting_type)

    @r.get("/activity")
    def activities(
        limit: int = Query(default=50, ge=1, le=1000),
        activity_type: Optional[str] = None,
        store: Store = Depends(get_store_dep),
    ):
        if activity_type:
            return store.activities_by_type(activity_type, limit)
        return store.recent_activities(limit)

    @r.post("/activity")
    def log_user_activity(payload: ActivityIn, store: Store = Depends(get_store_dep)):
        return store.log_activity(
            payload.activity_type, payload.entity_id, payload.entity_type, payload.details
        )

    return r

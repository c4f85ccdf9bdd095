"""
Settings injection for route handlers.

Handlers declare ``settings: SettingsDependency``; tests swap the settings
object through ``app.dependency_overrides[get_app_settings]``.
"""

from typing import Annotated

from fastapi import Depends

from agent_dashboard.core.config import AppSettings, get_settings


def get_app_settings() -> AppSettings:
    return get_settings()


SettingsDependency = Annotated[AppSettings, Depends(get_app_settings)]

__all__ = ["SettingsDependency", "get_app_settings"]

"""
Dependency wiring for the FastAPI app.

Stores are built once by create_app() and kept on app.state; handlers reach them
through these callables so tests can swap them with dependency_overrides.
"""

from __future__ import annotations

from fastapi import Request

from .repositories import Repository
from .settings import Settings
from .users import UserRepository


def get_repository(request: Request) -> Repository:
    return request.app.state.repository


def get_user_repository(request: Request) -> UserRepository:
    return request.app.state.user_repository


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings

"""
FastAPI dependencies.
"""

from fastapi import Request

from ..core.database import DatabaseManager
from ..services import Services


def get_services(request: Request) -> Services:
    """Services container created by the app factory."""
    return request.app.state.services


def get_db(request: Request) -> DatabaseManager:
    return request.app.state.services.db

"""API dependencies."""

from fastapi import Request

from roleswitch.services.analytics import AnalyticsService
from roleswitch.services.container import ServiceContainer
from roleswitch.services.data_transfer import DataTransferService
from roleswitch.services.role_registry import RoleRegistry
from roleswitch.services.session_engine import SessionEngine
from roleswitch.services.settings_manager import SettingsManager
from roleswitch.services.storage import StorageService


def get_container(request: Request) -> ServiceContainer:
    """Service container created by the application lifespan."""
    return request.app.state.container


def get_engine(request: Request) -> SessionEngine:
    return get_container(request).engine


def get_registry(request: Request) -> RoleRegistry:
    return get_container(request).registry


def get_analytics(request: Request) -> AnalyticsService:
    return get_container(request).analytics


def get_settings_manager(request: Request) -> SettingsManager:
    return get_container(request).settings_manager


def get_data_transfer(request: Request) -> DataTransferService:
    return get_container(request).data_transfer


def get_storage(request: Request) -> StorageService:
    return get_container(request).storage

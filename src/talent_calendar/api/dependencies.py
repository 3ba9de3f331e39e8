"""
Dependency providers for the API routers.

Services are built once at startup and kept on ``app.state``; tests swap
them through ``app.dependency_overrides``.
"""

from fastapi import Request

from talent_calendar.auth.oauth_flow import CalendarConnectionManager
from talent_calendar.services.document_access import DocumentAccessGate
from talent_calendar.services.document_encryption import DocumentEncryptionService
from talent_calendar.sync.controller import CalendarSyncController


def get_sync_controller(request: Request) -> CalendarSyncController:
    return request.app.state.sync_controller


def get_connection_manager(request: Request) -> CalendarConnectionManager:
    return request.app.state.connection_manager


def get_document_encryption(request: Request) -> DocumentEncryptionService:
    return request.app.state.document_encryption


def get_document_access(request: Request) -> DocumentAccessGate:
    return request.app.state.document_access

"""Pydantic schemas for request/response validation"""
from assetguard.schemas.asset import AssetResponse, AssetStateUpdate
from assetguard.schemas.assignment import (
    AssignmentCreate,
    AssignmentListResponse,
    AssignmentResponse,
    AssignmentUpdate,
    ReturningRequestListResponse,
    ReturningRequestResponse,
)
from assetguard.schemas.auth import LoginRequest, LogoutRequest, LogoutResponse, RefreshRequest, TokenResponse

__all__ = [
    "AssetResponse",
    "AssetStateUpdate",
    "AssignmentCreate",
    "AssignmentListResponse",
    "AssignmentResponse",
    "AssignmentUpdate",
    "ReturningRequestListResponse",
    "ReturningRequestResponse",
    "LoginRequest",
    "LogoutRequest",
    "LogoutResponse",
    "RefreshRequest",
    "TokenResponse",
]

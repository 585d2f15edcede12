"""Database models"""
from assetguard.models.asset import Asset
from assetguard.models.assignment import Assignment
from assetguard.models.returning_request import ReturningRequest
from assetguard.models.revoked_session import RevokedSession
from assetguard.models.user import User

__all__ = ["Asset", "Assignment", "ReturningRequest", "RevokedSession", "User"]

"""
Common library for reusable infrastructure components.

This package provides generic modules shared by the matching engine,
its API and its scheduled jobs:

- database: Async MongoDB connection manager (Motor)
- utils: Standard responses and exceptions
- config: Base settings class
"""

from common.database import MongoDB
from common.utils import (
    success_response,
    list_response,
    APIException,
    NotFoundException,
    ConflictException,
    ValidationException,
    ServiceUnavailableException,
)
from common.config import BaseAppSettings

__all__ = [
    # Database
    "MongoDB",
    # Utils
    "success_response",
    "list_response",
    "APIException",
    "NotFoundException",
    "ConflictException",
    "ValidationException",
    "ServiceUnavailableException",
    # Config
    "BaseAppSettings",
]

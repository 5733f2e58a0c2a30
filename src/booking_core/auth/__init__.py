"""Authentication dependencies for administrative endpoints."""

from booking_core.auth.internal_service import (
    InternalAuthDep,
    check_internal_api_key,
    require_internal_api_key,
)

__all__ = ["InternalAuthDep", "check_internal_api_key", "require_internal_api_key"]

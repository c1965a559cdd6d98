"""TenantGuard response models."""

from tenantguard.models.rejection import (
    Rejection,
    build_internal_error_response,
    build_rejection_response,
)

__all__ = [
    "Rejection",
    "build_internal_error_response",
    "build_rejection_response",
]

"""Access control for crudforge."""

from crudforge.auth.types import UserContext
from crudforge.auth.access import (
    Authorizer,
    PermissionSetAuthorizer,
    resolve_permission,
    validate_access,
)

__all__ = [
    "UserContext",
    "Authorizer",
    "PermissionSetAuthorizer",
    "resolve_permission",
    "validate_access",
]

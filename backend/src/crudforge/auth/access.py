"""Permission resolution and access checks for schema actions."""

from __future__ import annotations

import logging
from typing import Protocol

from crudforge.auth.types import UserContext
from crudforge.errors import ForbiddenError
from crudforge.schema.types import SchemaDocument

logger = logging.getLogger(__name__)

# Grants every permission
SUPERUSER_PERMISSION = "*"


class Authorizer(Protocol):
    """Decides whether an actor holds a permission string."""

    def check_access(self, user: UserContext | None, permission: str) -> bool: ...


class PermissionSetAuthorizer:
    """Grants access when the permission is in the actor's resolved set."""

    def check_access(self, user: UserContext | None, permission: str) -> bool:
        if user is None:
            return False
        return permission in user.permissions or SUPERUSER_PERMISSION in user.permissions


def resolve_permission(schema: SchemaDocument, action: str) -> str:
    """Permission string for an action: the schema's mapping or ``crud6.<model>.<action>``."""
    return schema.permissions.get(action) or f"crud6.{schema.model}.{action}"


def validate_access(
    schema: SchemaDocument,
    action: str,
    user: UserContext | None,
    authorizer: Authorizer,
) -> str:
    """Check that the actor may perform ``action`` on the schema's entity.

    Args:
        schema: Entity schema
        action: "read", "create", "update", "delete", ...
        user: The authenticated actor (None when anonymous)
        authorizer: Authorization collaborator

    Returns:
        The permission string that was checked

    Raises:
        ForbiddenError: With a generic message; details go to the log only
    """
    permission = resolve_permission(schema, action)
    if authorizer.check_access(user, permission):
        return permission

    context = {
        "action": action,
        "entity": schema.model,
        "permission": permission,
        "user_id": user.user_id if user else None,
    }
    logger.warning(
        "Access denied: action=%s entity=%s permission=%s user=%s",
        action,
        schema.model,
        permission,
        context["user_id"],
    )
    raise ForbiddenError(context)

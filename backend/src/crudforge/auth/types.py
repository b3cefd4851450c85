"""Type definitions for the authenticated actor."""

from dataclasses import dataclass, field


@dataclass
class UserContext:
    """The authenticated actor as seen by access checks.

    Authentication itself happens upstream; this is what it hands over.

    Attributes:
        user_id: The actor's record id in the identity entity
        tenant_id: Active tenant, if any
        roles: Role names the actor holds
        permissions: Resolved permission strings (e.g. "crud6.groups.delete")
    """

    user_id: str | int | None = None
    tenant_id: str | None = None
    roles: list[str] = field(default_factory=list)
    permissions: set[str] = field(default_factory=set)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

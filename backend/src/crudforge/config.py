"""Runtime settings resolved from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    return int(value)


@dataclass
class Settings:
    """Engine-wide settings.

    Attributes:
        schema_paths: Layered schema directories; later paths override earlier ones
        max_page_size: Hard cap on listing page size regardless of request input
        default_page_size: Page size used when the request gives none
        debug_mode: Emit verbose schema cache/filter debug lines
        cache_ttl: Seconds a cached schema projection stays valid (0 = no expiry)
        identity_model: Entity representing the authenticated actor when no
            schema declares ``identity: true``
    """

    schema_paths: list[Path] = field(default_factory=list)
    max_page_size: int = 100
    default_page_size: int = 25
    debug_mode: bool = False
    cache_ttl: int = 3600
    identity_model: str = "users"

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> Settings:
        """Create settings from environment variables.

        Resolution order for schema paths:
        1. CRUDFORGE_SCHEMA_PATH (os.pathsep-separated, lowest priority first)
        2. Default: {base_path}/schema/crud6
        """
        raw_paths = os.environ.get("CRUDFORGE_SCHEMA_PATH")
        if raw_paths:
            schema_paths = [Path(p) for p in raw_paths.split(os.pathsep) if p]
        else:
            root = base_path or Path.cwd()
            schema_paths = [root / "schema" / "crud6"]

        return cls(
            schema_paths=schema_paths,
            max_page_size=_env_int("CRUDFORGE_MAX_PAGE_SIZE", 100),
            default_page_size=_env_int("CRUDFORGE_DEFAULT_PAGE_SIZE", 25),
            debug_mode=_env_bool("CRUDFORGE_DEBUG", False),
            cache_ttl=_env_int("CRUDFORGE_CACHE_TTL", 3600),
            identity_model=os.environ.get("CRUDFORGE_IDENTITY_MODEL", "users"),
        )

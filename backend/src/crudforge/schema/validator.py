"""
Structural and semantic validation of schema documents.

Structural checks run the bundled JSON Schema (Draft 2020-12); semantic checks
(model name, empty field maps, relationship wiring, through entities) run
alongside. Every problem is collected before anything is raised, so a broken
schema reports all of its issues at once.

Usage:
    validator = SchemaValidator(loader)
    validator.validate(raw, "groups")   # raises SchemaValidationError
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from crudforge.errors import SchemaValidationError
from crudforge.schema.loader import SchemaLoader

logger = logging.getLogger(__name__)

_SCHEMAS_DIR = Path(__file__).parent / "schemas"
_DOCUMENT_SCHEMA = "schema.schema.json"

# Keys each relationship kind needs to build its join
_REQUIRED_RELATIONSHIP_KEYS: dict[str, tuple[str, ...]] = {
    "has_many": ("foreign_key",),
    "belongs_to_many": ("pivot_table", "foreign_key", "related_key"),
    "many_to_many": ("pivot_table", "foreign_key", "related_key"),
    "belongs_to_many_through": (
        "first_pivot_table",
        "first_foreign_key",
        "first_related_key",
        "second_pivot_table",
        "second_foreign_key",
        "second_related_key",
    ),
}


def _load_schema(name: str) -> dict[str, Any]:
    with (_SCHEMAS_DIR / name).open() as fh:
        return json.load(fh)


def _load_registry(schema: dict[str, Any]) -> Registry:
    resource = Resource(contents=schema, specification=DRAFT202012)
    return Registry().with_resources([(schema["$id"], resource)])


def _json_path(error: ValidationError) -> str:
    """Convert a jsonschema ValidationError path to a readable string."""
    parts = []
    for p in error.absolute_path:
        if isinstance(p, int):
            parts.append(f"[{p}]")
        else:
            parts.append(str(p))
    return "/".join(parts).replace("/[", "[")


class SchemaValidator:
    """Validates raw schema dicts against structure and wiring rules."""

    def __init__(self, loader: SchemaLoader | None = None):
        self.loader = loader
        schema = _load_schema(_DOCUMENT_SCHEMA)
        self._validator = Draft202012Validator(schema, registry=_load_registry(schema))

    def collect_issues(
        self,
        data: dict[str, Any],
        model: str,
        connection: str | None = None,
        _seen: frozenset[str] = frozenset(),
    ) -> list[str]:
        """Return every problem found in ``data`` (empty when valid).

        Args:
            data: Raw parsed schema document
            model: The model name the document was requested as
            connection: Connection used to resolve through entities
        """
        issues: list[str] = []
        seen = _seen | {model}
        connection = connection or data.get("connection")

        for error in sorted(self._validator.iter_errors(data), key=_json_path):
            loc = _json_path(error)
            issues.append(f"{loc}: {error.message}" if loc else error.message)

        declared = data.get("model")
        if isinstance(declared, str) and declared and declared != model:
            issues.append(f"model name mismatch: expected '{model}', found '{declared}'")

        fields = data.get("fields")
        if isinstance(fields, (dict, list)) and not fields:
            issues.append("fields: schema declares no fields")

        relationships = data.get("relationships")
        if isinstance(relationships, list):
            for index, rel in enumerate(relationships):
                if isinstance(rel, dict):
                    issues.extend(self._relationship_issues(index, rel, connection, seen))

        return issues

    def validate(self, data: dict[str, Any], model: str, connection: str | None = None) -> None:
        """Validate a raw schema document.

        Raises:
            SchemaValidationError: Listing all issues found
        """
        issues = self.collect_issues(data, model, connection)
        if issues:
            logger.warning("Schema for '%s' has %d issue(s)", model, len(issues))
            raise SchemaValidationError(model, issues)

    def validate_file(self, path: Path) -> list[str]:
        """Validate a single schema file; the model name is the file stem."""
        model = path.stem
        try:
            data = SchemaLoader.read_file(path, model)
        except SchemaValidationError as exc:
            return exc.issues
        return self.collect_issues(SchemaLoader.apply_defaults(data), model)

    def _relationship_issues(
        self,
        index: int,
        rel: dict[str, Any],
        connection: str | None,
        seen: frozenset[str],
    ) -> list[str]:
        loc = f"relationships[{index}]"
        kind = rel.get("type", "belongs_to_many")
        required = _REQUIRED_RELATIONSHIP_KEYS.get(kind)
        if required is None:
            # Unknown kinds are reported by the structural pass
            return []

        issues = [
            f"{loc}: '{key}' is required for {kind} relationships"
            for key in required
            if key not in rel
        ]

        if kind == "belongs_to_many_through":
            through = rel.get("through")
            if not through:
                issues.append(f"{loc}: 'through' entity is required for belongs_to_many_through")
            elif self.loader is not None:
                issues.extend(self._through_issues(loc, through, connection, seen))

        return issues

    def _through_issues(
        self, loc: str, through: str, connection: str | None, seen: frozenset[str]
    ) -> list[str]:
        if self.loader.find_schema_file(through, connection) is None:
            return [f"{loc}: through entity '{through}' has no loadable schema"]
        # Mutually referencing schemas are checked once per chain
        if through in seen:
            return []

        try:
            raw, _ = self.loader.load_raw(through, connection)
        except SchemaValidationError as exc:
            problems = exc.issues
        else:
            problems = self.collect_issues(raw, through, connection, seen)

        if not problems:
            return []
        return [f"{loc}: through entity '{through}' is invalid: {'; '.join(problems)}"]

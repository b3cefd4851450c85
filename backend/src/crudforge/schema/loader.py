"""Load schema documents from YAML/JSON files on a layered lookup path."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from crudforge.errors import SchemaNotFoundError, SchemaValidationError
from crudforge.schema.types import (
    CascadeMode,
    DetailSpec,
    FieldSpec,
    RelationshipKind,
    RelationshipSpec,
    SchemaDocument,
)

logger = logging.getLogger(__name__)

SCHEMA_SUFFIXES = (".yaml", ".yml", ".json")


class SchemaLoader:
    """Resolves and parses schema documents by model name.

    Lookup paths are ordered lowest priority first: a file in a later path
    overrides a file with the same name in an earlier one, so deployments can
    customize a schema without editing the base file.
    """

    def __init__(self, schema_paths: list[Path]):
        self.schema_paths = [Path(p) for p in schema_paths]

    # ------------------------------------------------------------------
    # File resolution
    # ------------------------------------------------------------------

    def candidate_files(self, model: str, connection: str | None = None) -> list[Path]:
        """List candidate file paths in resolution order (first match wins)."""
        candidates: list[Path] = []
        if connection is not None:
            for base in reversed(self.schema_paths):
                candidates.extend(base / connection / f"{model}{s}" for s in SCHEMA_SUFFIXES)
        for base in reversed(self.schema_paths):
            candidates.extend(base / f"{model}{s}" for s in SCHEMA_SUFFIXES)
        return candidates

    def find_schema_file(self, model: str, connection: str | None = None) -> Path | None:
        for candidate in self.candidate_files(model, connection):
            if candidate.is_file():
                return candidate
        return None

    def list_models(self) -> list[str]:
        """List every model name that resolves on the lookup path."""
        names: set[str] = set()
        for base in self.schema_paths:
            if not base.is_dir():
                continue
            for suffix in SCHEMA_SUFFIXES:
                names.update(p.stem for p in base.glob(f"*{suffix}"))
        return sorted(names)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_raw(
        self, model: str, connection: str | None = None
    ) -> tuple[dict[str, Any], Path]:
        """Read the raw schema dict for a model.

        Returns:
            Tuple of (parsed document with defaults applied, source file)

        Raises:
            SchemaNotFoundError: If no file resolves
            SchemaValidationError: If the file cannot be parsed into a mapping
        """
        path = self.find_schema_file(model, connection)
        if path is None:
            searched = [str(p) for p in self.candidate_files(model, connection)]
            raise SchemaNotFoundError(model, searched)

        data = self.read_file(path, model)

        # Schemas found under a connection subdirectory are bound to it
        if connection is not None and path.parent.name == connection:
            data.setdefault("connection", connection)

        logger.debug("Loaded schema for '%s' from %s", model, path)
        return self.apply_defaults(data), path

    @staticmethod
    def read_file(path: Path, model: str) -> dict[str, Any]:
        try:
            with open(path) as f:
                if path.suffix == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise SchemaValidationError(model, [f"parse error in {path}: {exc}"]) from exc

        if not isinstance(data, dict):
            raise SchemaValidationError(model, [f"{path} does not contain a mapping"])
        return data

    @staticmethod
    def apply_defaults(data: dict[str, Any]) -> dict[str, Any]:
        """Fill optional top-level keys with their defaults (returns a copy)."""
        result = dict(data)
        if result.get("primary_key") is None:
            result["primary_key"] = "id"
        if result.get("timestamps") is None:
            result["timestamps"] = True
        if result.get("soft_delete") is None:
            result["soft_delete"] = False
        return result

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse(self, data: dict[str, Any]) -> SchemaDocument:
        """Convert a validated raw dict into a SchemaDocument."""
        model = data["model"]
        fields = {f.name: f for f in self._resolve_fields(data.get("fields", {}))}
        title = data.get("title") or model.capitalize()

        return SchemaDocument(
            model=model,
            table=data["table"],
            fields=fields,
            primary_key=data.get("primary_key", "id"),
            timestamps=bool(data.get("timestamps", True)),
            soft_delete=bool(data.get("soft_delete", False)),
            title=title,
            singular_title=data.get("singular_title") or title,
            description=data.get("description"),
            title_field=data.get("title_field"),
            identity=bool(data.get("identity", False)),
            connection=data.get("connection"),
            relationships=[
                self._resolve_relationship(r) for r in data.get("relationships") or []
            ],
            permissions=dict(data.get("permissions") or {}),
            default_sort=dict(data.get("default_sort") or {}),
            details=self._resolve_details(data),
            actions=list(data.get("actions") or []),
            raw=data,
        )

    def _resolve_fields(self, fields_data: Any) -> list[FieldSpec]:
        # Fields may be a mapping keyed by name or a list of dicts with "name"
        if isinstance(fields_data, dict):
            items = [(name, cfg or {}) for name, cfg in fields_data.items()]
        else:
            items = [(cfg["name"], cfg) for cfg in fields_data or []]
        return [self._resolve_field(name, cfg) for name, cfg in items]

    def _resolve_field(self, name: str, data: dict[str, Any]) -> FieldSpec:
        show_in = data.get("show_in")
        return FieldSpec(
            name=name,
            type=data.get("type", "string"),
            label=data.get("label") or self._to_display_name(name),
            required=bool(data.get("required", False)),
            readonly=bool(data.get("readonly", False)),
            auto_increment=bool(data.get("auto_increment", False)),
            computed=bool(data.get("computed", False)),
            sortable=data.get("sortable") is True,
            filterable=data.get("filterable") is True,
            searchable=data.get("searchable") is True,
            listable=data.get("listable"),
            editable=data.get("editable"),
            filter_type=data.get("filter_type"),
            validation=dict(data.get("validation") or {}),
            default=data.get("default"),
            show_in=list(show_in) if isinstance(show_in, list) else None,
            description=data.get("description"),
            placeholder=data.get("placeholder"),
            width=data.get("width"),
            field_template=data.get("field_template"),
            raw=data,
        )

    def _resolve_relationship(self, data: dict[str, Any]) -> RelationshipSpec:
        return RelationshipSpec(
            name=data["name"],
            kind=RelationshipKind.parse(data.get("type", "belongs_to_many")),
            target=data.get("target") or data.get("model") or data["name"],
            foreign_key=data.get("foreign_key"),
            local_key=data.get("local_key"),
            pivot_table=data.get("pivot_table"),
            related_key=data.get("related_key"),
            through=data.get("through"),
            first_pivot_table=data.get("first_pivot_table"),
            first_foreign_key=data.get("first_foreign_key"),
            first_related_key=data.get("first_related_key"),
            second_pivot_table=data.get("second_pivot_table"),
            second_foreign_key=data.get("second_foreign_key"),
            second_related_key=data.get("second_related_key"),
            actions=dict(data.get("actions") or {}),
            raw=data,
        )

    def _resolve_details(self, data: dict[str, Any]) -> list[DetailSpec]:
        # "detail" (single, legacy) and "details" (list) are both accepted
        entries = list(data.get("details") or [])
        if isinstance(data.get("detail"), dict):
            entries.insert(0, data["detail"])

        details = []
        for entry in entries:
            if not entry.get("model") or not entry.get("foreign_key"):
                logger.warning(
                    "Skipping detail without model/foreign_key in schema '%s'",
                    data.get("model"),
                )
                continue
            details.append(
                DetailSpec(
                    model=entry["model"],
                    foreign_key=entry["foreign_key"],
                    cascade_delete=entry.get("cascade_delete", True) is not False,
                    cascade_delete_mode=CascadeMode(entry.get("cascade_delete_mode", "auto")),
                    list_fields=entry.get("list_fields"),
                    title=entry.get("title"),
                )
            )
        return details

    def _to_display_name(self, name: str) -> str:
        """Convert snake_case or camelCase to Title Case."""
        result = []
        for i, char in enumerate(name):
            if char == "_":
                result.append(" ")
                continue
            if char.isupper() and i > 0 and name[i - 1] != "_":
                result.append(" ")
            result.append(char)
        return "".join(result).title()

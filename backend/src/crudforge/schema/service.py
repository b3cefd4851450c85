"""Schema service: load, validate, cache and project schema documents."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from crudforge.config import Settings
from crudforge.errors import SchemaNotFoundError, SchemaValidationError
from crudforge.persistence.model import DynamicModel
from crudforge.schema.cache import FULL_CONTEXT, Fingerprint, SchemaCache, normalize_context
from crudforge.schema.loader import SchemaLoader
from crudforge.schema.projection import LabelTranslator, filter_for_context
from crudforge.schema.types import Projection, SchemaDocument
from crudforge.schema.validator import SchemaValidator

logger = logging.getLogger(__name__)


def _fingerprint(path: Path) -> Fingerprint:
    return (str(path), path.stat().st_mtime_ns)


class SchemaService:
    """Entry point for everything that needs a schema.

    Example:
        service = SchemaService(Settings.from_env())
        schema = service.load_schema("groups")
        view = service.get_projection("groups", "list")
        model = service.get_model_instance("groups")
    """

    def __init__(
        self,
        settings: Settings,
        cache: SchemaCache | None = None,
        translator: LabelTranslator | None = None,
    ):
        self.settings = settings
        self.loader = SchemaLoader(settings.schema_paths)
        self.validator = SchemaValidator(self.loader)
        self.cache = cache or SchemaCache(ttl=settings.cache_ttl, debug_mode=settings.debug_mode)
        self.translator = translator

    def _locate(self, entity: str, connection: str | None) -> Path:
        path = self.loader.find_schema_file(entity, connection)
        if path is None:
            searched = [str(p) for p in self.loader.candidate_files(entity, connection)]
            raise SchemaNotFoundError(entity, searched)
        return path

    def load_schema(self, entity: str, connection: str | None = None) -> SchemaDocument:
        """Load, validate and cache the schema for an entity.

        Raises:
            SchemaNotFoundError: If no file resolves on the lookup path
            SchemaValidationError: If the document is invalid
        """
        fingerprint = _fingerprint(self._locate(entity, connection))
        cached = self.cache.get(entity, connection, FULL_CONTEXT, fingerprint)
        if cached is not None:
            return cached

        raw, _ = self.loader.load_raw(entity, connection)
        self.validator.validate(raw, entity, connection)
        schema = self.loader.parse(raw)

        self.cache.put(entity, connection, FULL_CONTEXT, schema, fingerprint)
        logger.info("Loaded schema '%s' (%d fields)", entity, len(schema.fields))
        return schema

    def validate(self, schema: SchemaDocument | dict[str, Any], model: str | None = None) -> None:
        """Validate a document, raising with every issue found.

        Raises:
            SchemaValidationError: If any issue is found
        """
        raw = schema.raw if isinstance(schema, SchemaDocument) else schema
        name = model or raw.get("model") or ""
        self.validator.validate(raw, name)

    def filter_for_context(self, schema: SchemaDocument, context_spec: str | None) -> Projection:
        return filter_for_context(schema, context_spec, self.translator)

    def get_projection(
        self, entity: str, context_spec: str | None = None, connection: str | None = None
    ) -> Projection:
        """Cached projection of an entity's schema for a context string."""
        spec = normalize_context(context_spec)
        schema = self.load_schema(entity, connection)
        if spec == FULL_CONTEXT:
            return schema

        fingerprint = _fingerprint(self._locate(entity, connection))
        cached = self.cache.get(entity, connection, spec, fingerprint)
        if cached is not None:
            return cached

        projection = self.filter_for_context(schema, spec)
        self.cache.put(entity, connection, spec, projection, fingerprint)
        return projection

    def get_model_instance(self, entity: str, connection: str | None = None) -> DynamicModel:
        """Build a fresh DynamicModel configured from the entity's schema."""
        return DynamicModel(self.load_schema(entity, connection), models=self)

    def list_models(self) -> list[str]:
        return self.loader.list_models()

    def declared_identity_models(self) -> list[str]:
        """Models whose schema sets ``identity: true``."""
        declared = []
        for model in self.list_models():
            try:
                raw, _ = self.loader.load_raw(model)
            except SchemaValidationError as exc:
                logger.warning("Skipping unreadable schema '%s': %s", model, exc)
                continue
            if raw.get("identity") is True:
                declared.append(model)
        return declared

    def validate_all(self) -> dict[str, list[str]]:
        """Validate every schema on the lookup path.

        Returns:
            Dict of model name to its issues (models without issues omitted)
        """
        results: dict[str, list[str]] = {}
        for model in self.list_models():
            try:
                raw, _ = self.loader.load_raw(model)
            except SchemaValidationError as exc:
                results[model] = exc.issues
                continue
            issues = self.validator.collect_issues(raw, model)
            if issues:
                results[model] = issues
        return results

    def clear_cache(self, entity: str | None = None) -> None:
        if entity is None:
            self.cache.clear_all()
        else:
            self.cache.clear(entity)

"""Schema CLI commands: validate and show."""

import json
from pathlib import Path

import click

from crudforge.config import Settings
from crudforge.errors import ConfigurationError
from crudforge.schema.service import SchemaService
from crudforge.schema.types import SchemaDocument
from crudforge.schema.validator import SchemaValidator


def _resolve_settings() -> Settings:
    """Resolve settings from the environment, relative to cwd."""
    cwd = Path.cwd()
    base_path = cwd.parent if cwd.name == "backend" else cwd
    return Settings.from_env(base_path)


@click.group()
def schema():
    """Schema commands."""
    pass


@schema.command()
@click.option(
    "--path",
    "target_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Validate a single schema file instead of every schema on the lookup path.",
)
def validate(target_path: Path | None):
    """Validate schema documents (structure and relationship wiring)."""
    settings = _resolve_settings()
    service = SchemaService(settings)

    if target_path is not None:
        issues = SchemaValidator(service.loader).validate_file(target_path)
        results = {target_path.stem: issues} if issues else {}
        models = [target_path.stem]
    else:
        existing = [p for p in settings.schema_paths if p.is_dir()]
        if not existing:
            paths = ", ".join(str(p) for p in settings.schema_paths)
            click.echo(f"Error: No schema directory found (searched: {paths})", err=True)
            raise SystemExit(1)
        models = service.list_models()
        results = service.validate_all()

    for model, issues in sorted(results.items()):
        for issue in issues:
            click.echo(click.style(f"[ERROR] {model}: {issue}", fg="red"))

    if results:
        count = sum(len(i) for i in results.values())
        click.echo(
            click.style(
                f"\n{count} schema error(s) found in {len(results)} schema(s)",
                fg="red",
                bold=True,
            )
        )
        raise SystemExit(1)

    click.echo(f"Checked {len(models)} schema(s):")
    for name in models:
        click.echo(f"  ✓ {name}")
    click.echo(click.style("\nAll schemas are valid.", fg="green", bold=True))


@schema.command()
@click.argument("model")
@click.option(
    "--context",
    default=None,
    help="Context list, e.g. 'list' or 'list,form,detail' (default: full schema).",
)
def show(model: str, context: str | None):
    """Print a schema projected for a context as JSON."""
    service = SchemaService(_resolve_settings())
    try:
        projection = service.get_projection(model, context)
    except ConfigurationError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)

    data = projection.raw if isinstance(projection, SchemaDocument) else projection.to_dict()
    click.echo(json.dumps(data, indent=2, default=str))

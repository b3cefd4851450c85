"""crudforge CLI entry point."""

import click


@click.group()
def cli():
    """crudforge: schema-driven CRUD engine CLI."""
    pass


# Register subcommand groups
from crudforge.cli.schema_cmd import schema  # noqa: E402

cli.add_command(schema)

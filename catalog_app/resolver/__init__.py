"""
Catalog resolver package.

Provides the ``flask catalog`` CLI group and the per-app resolver state used by
the batch jobs.
"""

from __future__ import annotations

from flask import Flask

from .cli import catalog_cli
from .state import RESOLVER_EXTENSION_KEY, get_alias_profile, get_resolver, load_tables

__all__ = [
    "RESOLVER_EXTENSION_KEY",
    "get_alias_profile",
    "get_resolver",
    "init_resolver",
]


def init_resolver(app: Flask) -> None:
    """
    Load resolver tables and mount the CLI group.

    A broken override file raises ``CatalogConfigError`` here so a bad
    deployment fails at startup rather than mid-job.
    """

    load_tables(app)

    # Avoid duplicate registrations when running tests
    if catalog_cli.name in app.cli.commands:
        app.cli.commands.pop(catalog_cli.name)
    app.cli.add_command(catalog_cli)

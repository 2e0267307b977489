"""
Per-app resolver state.

The configured alias profile and chassis grammars live in
``app.extensions['catalog_resolver']`` so every job in a process resolves
mentions with the same tables.
"""

from __future__ import annotations

from flask import Flask, current_app

from config.aliases import AliasProfile, load_alias_profile
from config.chassis_codes import CodeGrammar, load_code_grammars

from .pipeline.resolver import MentionResolver

RESOLVER_EXTENSION_KEY = "catalog_resolver"


def ensure_extension_state(app: Flask) -> dict:
    return app.extensions.setdefault(
        RESOLVER_EXTENSION_KEY,
        {
            "sources": None,
            "alias_profile": None,
            "code_grammars": (),
            "resolver": None,
        },
    )


def load_tables(app: Flask) -> dict:
    state = ensure_extension_state(app)
    sources = (app.config.get("CATALOG_ALIAS_PROFILE_PATH"), app.config.get("CATALOG_CODE_GRAMMAR_PATH"))
    if state.get("sources") == sources and state.get("resolver") is not None:
        return state
    profile: AliasProfile = load_alias_profile(app.config)
    grammars: tuple[CodeGrammar, ...] = tuple(load_code_grammars(app.config))
    state.update(
        {
            "sources": sources,
            "alias_profile": profile,
            "code_grammars": grammars,
            "resolver": MentionResolver.from_profile(profile, grammars),
        }
    )
    app.logger.info(
        "Catalog resolver tables loaded (aliases=%s, grammars=%s)",
        profile.key,
        ", ".join(grammar.brand for grammar in grammars),
    )
    return state


def get_resolver(app: Flask | None = None) -> MentionResolver:
    """Return the process-wide resolver, reloading tables when their override paths change."""

    app = app or current_app._get_current_object()
    return load_tables(app)["resolver"]


def get_alias_profile(app: Flask | None = None) -> AliasProfile:
    app = app or current_app._get_current_object()
    return load_tables(app)["alias_profile"]


__all__ = ["RESOLVER_EXTENSION_KEY", "ensure_extension_state", "get_alias_profile", "get_resolver", "load_tables"]

"""Bidirectional alias lookup over configured equivalence classes."""

from __future__ import annotations

from typing import Iterable, Mapping

from config.aliases import AliasGroup, AliasProfile

from .normalize import match_key


class AliasTable:
    """
    Equivalence classes of names keyed by their normalized form.

    Any member of a class finds the whole class, so lookups work from the
    canonical name to its variants and back. A name that belongs to no class
    resolves to a class containing only itself.
    """

    def __init__(self, groups: Iterable[AliasGroup] = ()):
        classes: dict[str, tuple[str, ...]] = {}
        for group in groups:
            members = _dedupe_names(group.names)
            for name in members:
                # A name listed in two groups joins both classes; the earlier canonical wins
                existing = classes.get(match_key(name))
                if existing is not None:
                    members = _dedupe_names((*existing, *members))
            for name in members:
                classes[match_key(name)] = members
        self._classes: Mapping[str, tuple[str, ...]] = classes

    def __len__(self) -> int:
        return len(set(self._classes.values()))

    def __contains__(self, name: object) -> bool:
        return match_key(name) in self._classes

    def expand(self, name: str | None) -> tuple[str, ...]:
        """Return the equivalence class of ``name`` with the canonical name first."""

        if name is None:
            return ()
        members = self._classes.get(match_key(name))
        if members is None:
            return (name,)
        return members

    def resolve_alias(self, name: str | None) -> frozenset[str]:
        return frozenset(self.expand(name))

    def canonical(self, name: str) -> str:
        return self.expand(name)[0]

    @classmethod
    def for_models(cls, profile: AliasProfile) -> "AliasTable":
        return cls(profile.model_groups)

    @classmethod
    def for_brands(cls, profile: AliasProfile) -> "AliasTable":
        return cls(profile.brand_groups)


def _dedupe_names(names: Iterable[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    ordered: list[str] = []
    for name in names:
        text = (name or "").strip()
        key = match_key(text)
        if not key or key in seen:
            continue
        seen.add(key)
        ordered.append(text)
    return tuple(ordered)


__all__ = ["AliasTable"]

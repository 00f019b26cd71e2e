# src/hoursync/sync/matching.py

from __future__ import annotations

"""
Name reconciliation between the time tracker and the workspace.

Deliberately simple rules for messy real-world naming, not fuzzy matching:
- clients: case-insensitive prefix match in either direction, plus an alias table
- tasks: first line only, bracketed/parenthetical segments removed,
  alphanumerics only, then exact equality
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field

from ..config import DEFAULT_CLIENT_ALIASES

# "[Design] Build login page", "Build login page (v2)", ...
_BRACKETED = re.compile(r"\[[^\]]*\]|\([^)]*\)")
_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_client_name(name: str | None, aliases: Mapping[str, str] | None = None) -> str:
    basic = " ".join((name or "").split()).lower()
    table = DEFAULT_CLIENT_ALIASES if aliases is None else aliases
    if basic in table:
        return table[basic]
    # "New Form" and "Newform" are both in use for the same client.
    return basic.replace("new form", "newform")


def client_names_match(a: str | None, b: str | None, aliases: Mapping[str, str] | None = None) -> bool:
    na = normalize_client_name(a, aliases)
    nb = normalize_client_name(b, aliases)
    if not na or not nb:
        return False
    return na.startswith(nb) or nb.startswith(na)


def normalize_task_name(name: str | None) -> str:
    lines = (name or "").strip().splitlines()
    if not lines:
        return ""
    first = _BRACKETED.sub("", lines[0])
    return _NON_ALNUM.sub("", first.lower())


def task_names_match(a: str | None, b: str | None) -> bool:
    na = normalize_task_name(a)
    # Two notes that normalize to nothing ("[wip]", "...") are not the same task.
    return bool(na) and na == normalize_task_name(b)


@dataclass(frozen=True, slots=True)
class NameMatcher:
    """Matching rules bound to one alias table (from settings)."""

    aliases: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_CLIENT_ALIASES))

    @classmethod
    def from_settings(cls, settings) -> "NameMatcher":
        return cls(aliases=dict(settings.client_aliases))

    def clients_match(self, a: str | None, b: str | None) -> bool:
        return client_names_match(a, b, self.aliases)

    def tasks_match(self, a: str | None, b: str | None) -> bool:
        return task_names_match(a, b)

    def task_key(self, client_name: str, task_name: str) -> tuple[str, str]:
        """Identity of a (client, task) pair for de-duplicating entries within one poll."""
        return normalize_client_name(client_name, self.aliases), normalize_task_name(task_name)

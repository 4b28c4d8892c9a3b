"""Entry point resolution.

Packages publish their loadable file in several incompatible ways. Each
convention is a rule producing candidate paths; rules run in a fixed order
and the first candidate that exists as a file wins:

1. ``exports`` (``default``, then ``require``)
2. conventional build output (``dist/index.js``, ``dist/index.cjs``)
3. descriptor fields (``source``, then ``main``)
4. bare fallbacks (``index.js``, then ``index.ts``)
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Sequence

from esmgen.constants import Constants
from esmgen.common.logging_utils import extra_context, is_debug_enabled
from esmgen.errors import EntryNotFound
from esmgen.models import EntryResolution

logger = logging.getLogger(__name__)


def load_descriptor(root: str) -> Dict[str, Any]:
    """Read ``package.json`` under ``root``; unreadable descriptors read as empty."""
    path = os.path.join(root, Constants.PACKAGE_JSON_FILE)
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError) as exc:
        logger.warning("Could not read %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def _as_paths(value: Any) -> List[str]:
    """Normalize a single path or a list of paths; other shapes yield nothing."""
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, str)]
    return []


class EntryRule:
    """Base class for entry candidate rules."""

    name = "rule"

    def candidates(self, descriptor: Dict[str, Any]) -> List[str]:
        """Return root-relative candidate paths, most preferred first."""
        raise NotImplementedError


class ExportsRule(EntryRule):
    """Candidates from the descriptor's ``exports`` map."""

    name = "exports"
    CONDITIONS = ("default", "require")

    def candidates(self, descriptor: Dict[str, Any]) -> List[str]:
        exports = descriptor.get("exports")
        if isinstance(exports, (str, list)):
            return _as_paths(exports)
        if not isinstance(exports, dict):
            return []
        # Subpath form: {".": {...}} or {".": "./index.js"}
        if "." in exports:
            exports = exports["."]
            if not isinstance(exports, dict):
                return _as_paths(exports)
        found: List[str] = []
        for condition in self.CONDITIONS:
            found.extend(_as_paths(exports.get(condition)))
        return found


class FixedPathsRule(EntryRule):
    """Candidates that do not depend on the descriptor."""

    def __init__(self, name: str, paths: Sequence[str]):
        self.name = name
        self._paths = list(paths)

    def candidates(self, descriptor: Dict[str, Any]) -> List[str]:
        return list(self._paths)


class DescriptorFieldsRule(EntryRule):
    """Candidates from plain descriptor fields such as ``main``.

    Values without an extension are probed the way Node resolves them:
    ``<value>.js`` and ``<value>/index.js``.
    """

    name = "fields"

    def __init__(self, fields: Sequence[str] = ("source", "main")):
        self._fields = list(fields)

    def candidates(self, descriptor: Dict[str, Any]) -> List[str]:
        found: List[str] = []
        for field_name in self._fields:
            value = descriptor.get(field_name)
            if not isinstance(value, str) or not value.strip():
                continue
            found.append(value)
            if not os.path.splitext(value)[1]:
                found.append(value + ".js")
                found.append(value.rstrip("/") + "/index.js")
        return found


DEFAULT_RULES: List[EntryRule] = [
    ExportsRule(),
    FixedPathsRule("dist", ["dist/index.js", "dist/index.cjs"]),
    DescriptorFieldsRule(("source", "main")),
    FixedPathsRule("fallback", ["index.js", "index.ts"]),
]


def _inside(root: str, path: str) -> bool:
    root_abs = os.path.abspath(root)
    path_abs = os.path.abspath(path)
    return path_abs == root_abs or path_abs.startswith(root_abs + os.sep)


def existing_candidate(root: str, candidates: Iterable[str]) -> Optional[str]:
    """Return the first candidate that is a file inside ``root``."""
    for candidate in candidates:
        path = os.path.normpath(os.path.join(root, candidate))
        if not _inside(root, path):
            logger.debug("Ignoring entry candidate outside package root: %s", candidate)
            continue
        if os.path.isfile(path):
            return path
    return None


def resolve_entry(
    root: str,
    *,
    strict: bool = False,
    rules: Optional[Sequence[EntryRule]] = None,
    descriptor: Optional[Dict[str, Any]] = None,
) -> EntryResolution:
    """Find the loadable entry file of the package at ``root``.

    Args:
        root: Package root directory.
        strict: Raise instead of returning an empty resolution.
        rules: Rule chain override; defaults to DEFAULT_RULES.
        descriptor: Parsed descriptor; read from ``root`` when omitted.

    Returns:
        EntryResolution with ``chosen_path`` set, or empty for packages
        without an entry (permissive mode).

    Raises:
        EntryNotFound: No rule produced an existing file and ``strict`` is set.
    """
    if descriptor is None:
        descriptor = load_descriptor(root)
    for rule in rules if rules is not None else DEFAULT_RULES:
        chosen = existing_candidate(root, rule.candidates(descriptor))
        if chosen is not None:
            if is_debug_enabled(logger):
                logger.debug(
                    "Entry resolved",
                    extra=extra_context(
                        event="decision",
                        component="entry",
                        action="resolve",
                        outcome=rule.name,
                        target=chosen,
                    ),
                )
            return EntryResolution(chosen_path=chosen, rule=rule.name)

    if strict:
        raise EntryNotFound(f"no entry file found in {root}")
    return EntryResolution()

"""Forward-only schema migrations for the connection file.

Each entry of :data:`MIGRATIONS` upgrades a raw JSON document from one
schema version to the next. :func:`apply_migrations` runs every step whose
``from_version`` is at or above the stored version, in order, so adding a
version means appending one function here and bumping
:data:`~connctl.models.CONNECTIONS_SCHEMA_VERSION`.

Migrations operate on plain dicts rather than models: older layouts do not
validate against the current :class:`~connctl.models.Connection`.
"""

from __future__ import annotations

from typing import Any, Callable

from connctl.models import CONNECTIONS_SCHEMA_VERSION

Document = dict[str, Any]


def _rename_name_to_id(document: Document) -> Document:
    """Version 0 -> 1: connections were keyed by ``name`` instead of ``id``."""
    upgraded = []
    for entry in document.get("connections") or []:
        if not isinstance(entry, dict):
            continue
        if "name" in entry:
            rest = {k: v for k, v in entry.items() if k not in ("name", "id")}
            entry = {"id": entry["name"], **rest}
        upgraded.append(entry)
    document["connections"] = upgraded
    return document


MIGRATIONS: list[tuple[int, Callable[[Document], Document]]] = [
    (0, _rename_name_to_id),
]
"""Ordered ``(from_version, migration)`` pairs."""


def stored_version(document: Document) -> int:
    """Schema version recorded in *document* (files without one are version 0)."""
    version = document.get("schemaversion", 0)
    return version if isinstance(version, int) else 0


def apply_migrations(document: Document) -> tuple[Document, bool]:
    """Upgrade *document* to the current schema version.

    Documents already at or beyond the current version are returned
    untouched.

    Returns:
        A ``(document, changed)`` tuple; ``changed`` is ``True`` when at least
        one migration ran and the file needs rewriting.
    """
    version = stored_version(document)
    if version >= CONNECTIONS_SCHEMA_VERSION:
        return document, False

    for from_version, migrate in MIGRATIONS:
        if from_version < version:
            continue
        document = migrate(document)
        version = from_version + 1
        document["schemaversion"] = version
    return document, True

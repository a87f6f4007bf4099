"""Read access to the module catalog."""

from __future__ import annotations

import logging
import sqlite3

from workflow_dispatch.db import Database
from workflow_dispatch.models import ModuleDescriptor, TriggerType
from workflow_dispatch.results import ErrorKind, Ok, Result, fail, try_catch

LOGGER = logging.getLogger(__name__)


class ModuleCatalog:
    """Looks up module descriptors by id or slug."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def get(self, id_or_slug: str) -> Result[ModuleDescriptor]:
        def action() -> Result[ModuleDescriptor]:
            with self._db.connect() as conn:
                row = conn.execute(
                    """
                    SELECT id, name, slug, endpoint, trigger_type, is_active
                    FROM modules
                    WHERE id = ? OR slug = ?
                    ORDER BY id = ? DESC
                    LIMIT 1
                    """,
                    (id_or_slug, id_or_slug, id_or_slug),
                ).fetchone()
            if row is None:
                return fail(ErrorKind.MODULE_NOT_FOUND, f"Module not found: {id_or_slug}")
            return Ok(_to_module(row))

        result = try_catch(action)
        if not result.success and result.kind == ErrorKind.UNKNOWN_ERROR:
            LOGGER.error("Module lookup failed for %s: %s", id_or_slug, result.message)
        return result

    def list_slugs(self) -> list[str]:
        with self._db.connect() as conn:
            rows = conn.execute("SELECT slug FROM modules ORDER BY slug").fetchall()
        return [row["slug"] for row in rows]

    def upsert(self, module: ModuleDescriptor) -> None:
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT INTO modules(id, name, slug, endpoint, trigger_type, is_active)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name=excluded.name,
                    slug=excluded.slug,
                    endpoint=excluded.endpoint,
                    trigger_type=excluded.trigger_type,
                    is_active=excluded.is_active
                """,
                (
                    module.id,
                    module.name,
                    module.slug,
                    module.endpoint,
                    module.trigger_type.value if module.trigger_type else None,
                    int(module.is_active),
                ),
            )


def _to_module(row: sqlite3.Row) -> ModuleDescriptor:
    trigger = row["trigger_type"]
    return ModuleDescriptor(
        id=row["id"],
        name=row["name"],
        slug=row["slug"],
        endpoint=row["endpoint"] or "",
        trigger_type=TriggerType(trigger) if trigger else None,
        is_active=bool(row["is_active"]),
    )

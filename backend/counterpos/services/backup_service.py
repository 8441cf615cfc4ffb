"""
Bulk snapshot export/import of the business tables.

The snapshot is a plain dict of table name -> list of row dicts, suitable
for JSON. It is an opaque pass-through: no business rule is checked on
import, rows are restored as they were exported.

Users and session tokens are not part of the snapshot; restoring a
backup never changes who can log in.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime

from ..extensions import db
from counterpos.time_utils import parse_iso_datetime, to_utc_z


SNAPSHOT_VERSION = 1
EXCLUDED_TABLES = {"users", "session_tokens", "alembic_version"}


class BackupError(Exception):
    """Raised for malformed snapshots."""
    pass


def _business_tables():
    return [t for t in db.metadata.sorted_tables if t.name not in EXCLUDED_TABLES]


def _encode(value):
    if isinstance(value, datetime):
        return to_utc_z(value)
    return value


def export_snapshot() -> dict:
    """Every business table, parents before children."""
    tables = {}
    for table in _business_tables():
        rows = db.session.execute(table.select().order_by(*table.primary_key.columns)).mappings().all()
        tables[table.name] = [{k: _encode(v) for k, v in row.items()} for row in rows]
    return {"version": SNAPSHOT_VERSION, "tables": tables}


def _decode_row(table, row: dict) -> dict:
    decoded = {}
    for column in table.columns:
        if column.name not in row:
            continue
        value = row[column.name]
        if isinstance(column.type, DateTime) and isinstance(value, str):
            value = parse_iso_datetime(value, f"{table.name}.{column.name}")
        decoded[column.name] = value
    return decoded


def import_snapshot(data: dict) -> dict[str, int]:
    """
    Replace all business tables with the snapshot contents.

    Runs in one transaction: a malformed snapshot leaves the database
    untouched. Tables missing from the snapshot are emptied.

    Returns row counts per table.
    """
    if not isinstance(data, dict) or not isinstance(data.get("tables"), dict):
        raise BackupError("Snapshot must be an object with a 'tables' mapping")
    if data.get("version") != SNAPSHOT_VERSION:
        raise BackupError(f"Unsupported snapshot version: {data.get('version')}")

    tables = _business_tables()
    known = {t.name for t in tables}
    unknown = sorted(set(data["tables"]) - known)
    if unknown:
        raise BackupError(f"Unknown tables in snapshot: {unknown}")

    counts: dict[str, int] = {}
    try:
        for table in reversed(tables):
            db.session.execute(table.delete())
        for table in tables:
            rows = data["tables"].get(table.name) or []
            if not isinstance(rows, list):
                raise BackupError(f"Rows for '{table.name}' must be a list")
            if rows:
                db.session.execute(table.insert(), [_decode_row(table, r) for r in rows])
            counts[table.name] = len(rows)
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        raise BackupError(str(e))
    except Exception:
        db.session.rollback()
        raise

    return counts

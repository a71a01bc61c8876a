"""Key-value repository — JSON values in the ``keyval`` table.

Datetimes are written as ISO-8601 strings and revived on read.
"""

import json
import re
from datetime import datetime, timezone
from typing import Any

from atlas.repos.db import get_connection

_ISO_DATETIME = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})?$"
)


def _default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _revive(value: Any) -> Any:
    if isinstance(value, str) and _ISO_DATETIME.match(value):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, list):
        return [_revive(v) for v in value]
    if isinstance(value, dict):
        return {k: _revive(v) for k, v in value.items()}
    return value


def dumps(value: Any) -> str:
    """Serialize *value* to JSON, encoding datetimes as ISO-8601."""
    return json.dumps(value, default=_default, ensure_ascii=False)


def loads(text: str) -> Any:
    """Parse JSON produced by :func:`dumps`, reviving ISO datetimes."""
    return _revive(json.loads(text))


class KeyValueStore:
    """Data access layer for the key-value table.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    # ── Read ─────────────────────────────────────────────────────────────

    def get(self, key: str, default: Any = None) -> Any:
        """Return the decoded value for *key*, or *default* if absent."""
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT value FROM keyval WHERE key = ?", (key,)
            ).fetchone()
            return loads(row["value"]) if row else default
        finally:
            conn.close()

    # ── Write ────────────────────────────────────────────────────────────

    def set(self, key: str, value: Any) -> None:
        self.set_many({key: value})

    def set_many(self, items: dict[str, Any]) -> None:
        """Write several keys in one transaction."""
        now = datetime.now(timezone.utc).isoformat()
        conn = get_connection(self._db_path)
        try:
            with conn:
                conn.executemany(
                    """
                    INSERT INTO keyval (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE
                    SET value = excluded.value, updated_at = excluded.updated_at
                    """,
                    [(key, dumps(value), now) for key, value in items.items()],
                )
        finally:
            conn.close()

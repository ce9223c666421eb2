"""SQLite store behind the mock backend: users and issued refresh tokens."""

import logging
import sqlite3
from datetime import datetime, timezone

log = logging.getLogger(__name__)


class Database:
    def __init__(self, path: str = ":memory:"):
        self._conn = sqlite3.connect(path)
        self._conn.row_factory = sqlite3.Row
        self._init()

    def _init(self):
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                email TEXT NOT NULL UNIQUE
            );
            CREATE TABLE IF NOT EXISTS tokens (
                value TEXT PRIMARY KEY,
                user_id INTEGER NOT NULL,
                expires_at TEXT NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            );
        """)
        self._conn.commit()

    def close(self):
        self._conn.close()

    # ── users ──────────────────────────────────────────────

    def create_user(self, name: str, email: str, user_id: int | None = None) -> int:
        cur = self._conn.execute(
            "INSERT INTO users (id, name, email) VALUES (?, ?, ?)",
            (user_id, name, email),
        )
        self._conn.commit()
        return cur.lastrowid

    def list_users(self) -> list[dict]:
        rows = self._conn.execute("SELECT id, name, email FROM users ORDER BY id").fetchall()
        return [dict(r) for r in rows]

    def get_user(self, user_id: int) -> dict | None:
        row = self._conn.execute(
            "SELECT id, name, email FROM users WHERE id = ?", (user_id,)
        ).fetchone()
        return dict(row) if row else None

    def get_user_by_email(self, email: str) -> dict | None:
        row = self._conn.execute(
            "SELECT id, name, email FROM users WHERE email = ?", (email,)
        ).fetchone()
        return dict(row) if row else None

    def update_user(self, user_id: int, name: str, email: str) -> bool:
        cur = self._conn.execute(
            "UPDATE users SET name = ?, email = ? WHERE id = ?", (name, email, user_id)
        )
        self._conn.commit()
        return cur.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        cur = self._conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
        self._conn.execute("DELETE FROM tokens WHERE user_id = ?", (user_id,))
        self._conn.commit()
        return cur.rowcount > 0

    # ── refresh tokens ─────────────────────────────────────

    def issue_token(self, value: str, user_id: int, expires_at: datetime):
        self._conn.execute(
            "INSERT INTO tokens (value, user_id, expires_at) VALUES (?, ?, ?)",
            (value, user_id, expires_at.isoformat()),
        )
        self._conn.commit()

    def find_token(self, value: str) -> dict | None:
        """Stored refresh token, or None if unknown or expired."""
        row = self._conn.execute(
            "SELECT value, user_id, expires_at FROM tokens WHERE value = ?", (value,)
        ).fetchone()
        if row is None:
            return None
        if datetime.fromisoformat(row["expires_at"]) <= datetime.now(timezone.utc):
            log.debug("Refresh token expired for user %d", row["user_id"])
            return None
        return dict(row)

    def revoke_token(self, value: str) -> bool:
        cur = self._conn.execute("DELETE FROM tokens WHERE value = ?", (value,))
        self._conn.commit()
        return cur.rowcount > 0

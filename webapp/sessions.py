"""SQLite-backed chat session store.

Each session is an append-only list of user/assistant turns. Clearing a
session empties its turns but keeps the id usable; deleting removes both.
Sessions idle for longer than the TTL are purged when new sessions are
created. Uses WAL mode so web requests can read while another writes.
"""

import logging
import os
import sqlite3
import uuid
from pathlib import Path
from typing import Optional

import orjson

from errors import StoreError
from schemas.conversation import ConversationTurn, Role, Source

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path(__file__).parent.parent / "data" / "sessions.db"
DEFAULT_TTL_HOURS = 24


class SessionManager:
    """Manages chat sessions and their message history via SQLite."""

    def __init__(self, db_path: Optional[str] = None, ttl_hours: int = DEFAULT_TTL_HOURS):
        db_path = db_path or os.getenv("SESSIONS_DB_PATH")
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Could not create session directory {self.db_path.parent}: {e}") from e
        self.ttl_hours = ttl_hours
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=10)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
        except sqlite3.Error as e:
            raise StoreError(f"Could not open session database {self.db_path}: {e}") from e
        return conn

    def _init_db(self):
        try:
            conn = self._get_conn()
            try:
                conn.executescript("""
                    CREATE TABLE IF NOT EXISTS sessions (
                        session_id TEXT PRIMARY KEY,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        last_active_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    );

                    CREATE TABLE IF NOT EXISTS messages (
                        message_id INTEGER PRIMARY KEY AUTOINCREMENT,
                        session_id TEXT NOT NULL REFERENCES sessions(session_id) ON DELETE CASCADE,
                        role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
                        content TEXT NOT NULL,
                        sources TEXT,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    );

                    CREATE INDEX IF NOT EXISTS idx_messages_session
                        ON messages(session_id, message_id);
                    CREATE INDEX IF NOT EXISTS idx_sessions_active
                        ON sessions(last_active_at DESC);
                """)
                conn.commit()
                logger.info("Session database initialized at %s", self.db_path)
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreError(f"Could not initialize session database: {e}") from e

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self) -> str:
        session_id = uuid.uuid4().hex[:16]
        self.purge_expired()
        conn = self._get_conn()
        try:
            conn.execute("INSERT INTO sessions (session_id) VALUES (?)", (session_id,))
            conn.commit()
            logger.info("Created session %s", session_id)
            return session_id
        except sqlite3.Error as e:
            raise StoreError(f"create_session failed: {e}") from e
        finally:
            conn.close()

    def get_session(self, session_id: str) -> Optional[dict]:
        """Return session info with its message count, touching last_active_at."""
        conn = self._get_conn()
        try:
            row = conn.execute(
                """SELECT s.session_id, s.created_at, s.last_active_at,
                          COUNT(m.message_id) AS message_count
                   FROM sessions s
                   LEFT JOIN messages m ON s.session_id = m.session_id
                   WHERE s.session_id = ?
                   GROUP BY s.session_id""",
                (session_id,),
            ).fetchone()
            if not row:
                return None
            self._touch_session(conn, session_id)
            conn.commit()
            return dict(row)
        except sqlite3.Error as e:
            raise StoreError(f"get_session failed: {e}") from e
        finally:
            conn.close()

    def list_sessions(self, limit: int = 50) -> list[dict]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """SELECT s.session_id, s.created_at, s.last_active_at,
                          COUNT(m.message_id) AS message_count
                   FROM sessions s
                   LEFT JOIN messages m ON s.session_id = m.session_id
                   GROUP BY s.session_id
                   ORDER BY s.last_active_at DESC
                   LIMIT ?""",
                (limit,),
            ).fetchall()
            return [dict(r) for r in rows]
        except sqlite3.Error as e:
            raise StoreError(f"list_sessions failed: {e}") from e
        finally:
            conn.close()

    def _touch_session(self, conn: sqlite3.Connection, session_id: str):
        conn.execute(
            "UPDATE sessions SET last_active_at = CURRENT_TIMESTAMP WHERE session_id = ?",
            (session_id,),
        )

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_message(
        self,
        session_id: str,
        role: Role,
        content: str,
        sources: Optional[list[Source]] = None,
    ) -> int:
        role = Role(role)
        sources_json = (
            orjson.dumps([s.model_dump() for s in sources]).decode() if sources else None
        )
        conn = self._get_conn()
        try:
            exists = conn.execute(
                "SELECT 1 FROM sessions WHERE session_id = ?", (session_id,)
            ).fetchone()
            if not exists:
                raise StoreError(f"Session not found: {session_id}")
            cursor = conn.execute(
                "INSERT INTO messages (session_id, role, content, sources) VALUES (?, ?, ?, ?)",
                (session_id, role.value, content, sources_json),
            )
            self._touch_session(conn, session_id)
            conn.commit()
            return cursor.lastrowid
        except sqlite3.Error as e:
            raise StoreError(f"add_message failed: {e}") from e
        finally:
            conn.close()

    def get_messages(self, session_id: str, limit: Optional[int] = None) -> list[ConversationTurn]:
        """Return the session's turns oldest first; with limit, only the most recent ones."""
        conn = self._get_conn()
        try:
            if limit is None:
                rows = conn.execute(
                    """SELECT role, content, sources, created_at FROM messages
                       WHERE session_id = ? ORDER BY message_id ASC""",
                    (session_id,),
                ).fetchall()
            else:
                rows = conn.execute(
                    """SELECT role, content, sources, created_at FROM messages
                       WHERE session_id = ? ORDER BY message_id DESC LIMIT ?""",
                    (session_id, limit),
                ).fetchall()
                # Return in chronological order (oldest first)
                rows = list(reversed(rows))
        except sqlite3.Error as e:
            raise StoreError(f"get_messages failed: {e}") from e
        finally:
            conn.close()

        return [
            ConversationTurn(
                role=r["role"],
                content=r["content"],
                timestamp=r["created_at"],
                sources=orjson.loads(r["sources"]) if r["sources"] else [],
            )
            for r in rows
        ]

    def get_recent_messages(self, session_id: str, limit: int = 5) -> list[ConversationTurn]:
        return self.get_messages(session_id, limit=limit)

    # ------------------------------------------------------------------
    # Clearing, deletion, expiry
    # ------------------------------------------------------------------

    def clear_session(self, session_id: str) -> bool:
        """Remove all turns but keep the session. Returns False for unknown ids."""
        conn = self._get_conn()
        try:
            exists = conn.execute(
                "SELECT 1 FROM sessions WHERE session_id = ?", (session_id,)
            ).fetchone()
            if not exists:
                return False
            conn.execute("DELETE FROM messages WHERE session_id = ?", (session_id,))
            self._touch_session(conn, session_id)
            conn.commit()
            return True
        except sqlite3.Error as e:
            raise StoreError(f"clear_session failed: {e}") from e
        finally:
            conn.close()

    def delete_session(self, session_id: str) -> bool:
        """Delete a session and all its messages. Returns True if deleted."""
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM messages WHERE session_id = ?", (session_id,))
            cursor = conn.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))
            conn.commit()
            return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StoreError(f"delete_session failed: {e}") from e
        finally:
            conn.close()

    def purge_expired(self) -> int:
        """Delete sessions idle for longer than the TTL. Returns count deleted."""
        conn = self._get_conn()
        try:
            cutoff = f"-{int(self.ttl_hours)} hours"
            conn.execute(
                """DELETE FROM messages WHERE session_id IN (
                       SELECT session_id FROM sessions
                       WHERE last_active_at < datetime('now', ?))""",
                (cutoff,),
            )
            cursor = conn.execute(
                "DELETE FROM sessions WHERE last_active_at < datetime('now', ?)",
                (cutoff,),
            )
            conn.commit()
            if cursor.rowcount:
                logger.info("Purged %d expired sessions", cursor.rowcount)
            return cursor.rowcount
        except sqlite3.Error as e:
            raise StoreError(f"purge_expired failed: {e}") from e
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Stats and health
    # ------------------------------------------------------------------

    def get_session_stats(self) -> dict:
        conn = self._get_conn()
        try:
            row = conn.execute(
                """SELECT
                    (SELECT COUNT(*) FROM sessions) AS total_sessions,
                    (SELECT COUNT(*) FROM messages) AS total_messages,
                    (SELECT COUNT(*) FROM sessions
                     WHERE last_active_at >= datetime('now', '-1 hour')) AS active_sessions"""
            ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"get_session_stats failed: {e}") from e
        finally:
            conn.close()

        stats = dict(row)
        stats["average_messages_per_session"] = round(
            stats["total_messages"] / stats["total_sessions"], 2
        ) if stats["total_sessions"] else 0
        return stats

    def health_check(self) -> bool:
        try:
            conn = self._get_conn()
            try:
                conn.execute("SELECT 1").fetchone()
            finally:
                conn.close()
            return True
        except (StoreError, sqlite3.Error) as e:
            logger.warning("Session database health check failed: %s", e)
            return False

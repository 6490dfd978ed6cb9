"""Local SQLite store for peers and conversation state."""

import sqlite3
from typing import Optional

from .errors import StateError
from .models import Conversation, PeerInfo, now_iso


class Mailbox:
    def __init__(self, db_path: str):
        self.db_path = db_path
        try:
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._init_schema()
        except sqlite3.Error as e:
            raise StateError(f"Cannot open mailbox {db_path}: {e}") from e

    def _init_schema(self):
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS peers (
                peer_id TEXT PRIMARY KEY,
                display_name TEXT NOT NULL,
                exchange_public_key TEXT NOT NULL,
                shared_secret TEXT NOT NULL,
                status TEXT DEFAULT 'connected',
                added_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS conversations (
                peer_id TEXT PRIMARY KEY,
                conversation_id TEXT NOT NULL,
                conversation_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_peers_name ON peers(display_name);
        """)

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            cur = self._conn.execute(sql, params)
            self._conn.commit()
            return cur
        except sqlite3.Error as e:
            raise StateError(f"Mailbox query failed: {e}") from e

    def close(self):
        self._conn.close()

    # --- Conversations ---

    def load_conversation(self, peer_id: str) -> Optional[Conversation]:
        row = self._execute(
            "SELECT conversation_json FROM conversations WHERE peer_id = ?", (peer_id,)
        ).fetchone()
        return Conversation.model_validate_json(row["conversation_json"]) if row else None

    def save_conversation(self, peer_id: str, conversation: Conversation):
        self._execute(
            """INSERT OR REPLACE INTO conversations
               (peer_id, conversation_id, conversation_json, updated_at)
               VALUES (?, ?, ?, ?)""",
            (peer_id, conversation.id, conversation.model_dump_json(), now_iso()),
        )

    def delete_conversation(self, peer_id: str):
        self._execute("DELETE FROM conversations WHERE peer_id = ?", (peer_id,))

    # --- Peers ---

    def upsert_peer(self, peer: PeerInfo):
        self._execute(
            """INSERT OR REPLACE INTO peers
               (peer_id, display_name, exchange_public_key, shared_secret, status, added_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                peer.peer_id,
                peer.display_name,
                peer.exchange_public_key,
                peer.shared_secret,
                peer.status,
                peer.added_at,
            ),
        )

    def get_peer(self, peer_id: str) -> Optional[PeerInfo]:
        row = self._execute("SELECT * FROM peers WHERE peer_id = ?", (peer_id,)).fetchone()
        return PeerInfo(**dict(row)) if row else None

    def get_peer_by_name(self, display_name: str) -> Optional[PeerInfo]:
        row = self._execute(
            "SELECT * FROM peers WHERE display_name = ? COLLATE NOCASE", (display_name,)
        ).fetchone()
        return PeerInfo(**dict(row)) if row else None

    def get_peers(self) -> list[PeerInfo]:
        rows = self._execute("SELECT * FROM peers ORDER BY added_at DESC").fetchall()
        return [PeerInfo(**dict(r)) for r in rows]

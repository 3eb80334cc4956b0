"""
Kanban card storage backend (SQLite).

Provides CRUD operations and queries for board cards.
"""
import logging
import sqlite3
from pathlib import Path
from typing import List, Optional, Dict, Any
from datetime import datetime, timezone

from .schema import Card, Column

logger = logging.getLogger(__name__)

SAMPLE_CARDS = [
    ("Sample Task 1", "This is a sample task", Column.TODO),
    ("Sample Task 2", "Another sample task", Column.IN_PROGRESS),
    ("Sample Task 3", "Completed task", Column.DONE),
]


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection in WAL mode with dict-like rows."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


class CardStore:
    """SQLite-backed store for board cards."""

    def __init__(self, db_path: str = None):
        """Initialize store and create tables if needed."""
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "bigo" / "board.db")
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cards (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT DEFAULT '',
                    column_name TEXT NOT NULL DEFAULT 'todo',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_cards_column ON cards(column_name)")
            conn.commit()

    def seed_samples(self) -> int:
        """Insert the sample cards into an empty board. Returns cards added."""
        if self.count():
            return 0
        for title, description, column in SAMPLE_CARDS:
            self.create(title, description, column)
        logger.info(f"Seeded {len(SAMPLE_CARDS)} sample cards into {self.db_path}")
        return len(SAMPLE_CARDS)

    def create(self, title: str, description: str = "", column: Column = Column.TODO) -> Card:
        """Insert a new card and return it with its assigned id."""
        card = Card(title=title, description=description, column=column)
        data = card.to_dict()
        with _connect(self.db_path) as conn:
            cur = conn.execute(
                "INSERT INTO cards (title, description, column_name, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                (data["title"], data["description"], data["column"], data["created_at"], data["updated_at"]),
            )
            conn.commit()
            card.id = cur.lastrowid
        return card

    def save(self, card: Card) -> bool:
        """Persist changes to an existing card."""
        data = card.to_dict()
        with _connect(self.db_path) as conn:
            cur = conn.execute(
                "UPDATE cards SET title = ?, description = ?, column_name = ?, updated_at = ? WHERE id = ?",
                (data["title"], data["description"], data["column"], data["updated_at"], card.id),
            )
            conn.commit()
            return cur.rowcount > 0

    def update(self, card_id: int, fields: Dict[str, Any]) -> Optional[Card]:
        """Apply validated field changes (title, description, column). None if missing."""
        card = self.get(card_id)
        if not card:
            return None
        if "title" in fields:
            card.title = fields["title"]
        if "description" in fields:
            card.description = fields["description"] or ""
        if "column" in fields:
            card.move_to(fields["column"])
        card.updated_at = datetime.now(timezone.utc)
        self.save(card)
        return card

    def get(self, card_id: int) -> Optional[Card]:
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM cards WHERE id = ?", (card_id,)).fetchone()
        return self._row_to_card(row) if row else None

    def list(self) -> List[Card]:
        """All cards in creation order."""
        with _connect(self.db_path) as conn:
            rows = conn.execute("SELECT * FROM cards ORDER BY id ASC").fetchall()
        return [self._row_to_card(row) for row in rows]

    def list_by_column(self, column: Column) -> List[Card]:
        with _connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM cards WHERE column_name = ? ORDER BY id ASC",
                (column.value,),
            ).fetchall()
        return [self._row_to_card(row) for row in rows]

    def search(self, query: str) -> List[Card]:
        """Case-insensitive substring match on title or description."""
        q = query.lower()
        return [
            c for c in self.list()
            if q in c.title.lower() or q in c.description.lower()
        ]

    def delete(self, card_id: int) -> Optional[Card]:
        """Delete a card. Returns the deleted card, or None if missing."""
        card = self.get(card_id)
        if not card:
            return None
        with _connect(self.db_path) as conn:
            conn.execute("DELETE FROM cards WHERE id = ?", (card_id,))
            conn.commit()
        return card

    def count(self) -> int:
        with _connect(self.db_path) as conn:
            return conn.execute("SELECT COUNT(*) FROM cards").fetchone()[0]

    def get_stats(self) -> Dict[str, int]:
        """Card counts per column plus total."""
        stats = {c.value: 0 for c in Column}
        with _connect(self.db_path) as conn:
            for row in conn.execute("SELECT column_name, COUNT(*) FROM cards GROUP BY column_name"):
                stats[row[0]] = row[1]
        stats["total"] = sum(stats[c.value] for c in Column)
        return stats

    def columns(self) -> Dict[str, List[Card]]:
        """Cards grouped by column."""
        grouped = {c.value: [] for c in Column}
        for card in self.list():
            grouped[card.column.value].append(card)
        return grouped

    def _row_to_card(self, row: sqlite3.Row) -> Card:
        data = dict(row)
        data["column"] = data.pop("column_name", "todo")
        return Card.from_dict(data)

"""
Kanban card schema.

A card lives in exactly one column:
  todo → in-progress → done

Columns are a closed set; anything else is rejected at the API edge.
"""
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any


class Column(Enum):
    """Valid board columns."""
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"

    @classmethod
    def values(cls) -> list:
        return [c.value for c in cls]

    @classmethod
    def parse(cls, value: Any) -> Optional["Column"]:
        """Column for a raw value, or None if it is not a valid column."""
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass
class Card:
    """One task on the board."""

    title: str
    column: Column = Column.TODO
    description: str = ""
    id: Optional[int] = None        # assigned by the store on first save

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def move_to(self, column: Column) -> bool:
        """Move to another column. Returns False if already there."""
        if column == self.column:
            return False
        self.column = column
        self.updated_at = datetime.now(timezone.utc)
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "column": self.column.value,
            "created_at": self.created_at.isoformat() if isinstance(self.created_at, datetime) else self.created_at,
            "updated_at": self.updated_at.isoformat() if isinstance(self.updated_at, datetime) else self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Card":
        """Deserialize from dict (unknown columns fall back to todo)."""
        return cls(
            id=data.get("id"),
            title=data.get("title", ""),
            description=data.get("description") or "",
            column=Column.parse(data.get("column")) or Column.TODO,
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else datetime.now(timezone.utc),
            updated_at=datetime.fromisoformat(data["updated_at"]) if data.get("updated_at") else datetime.now(timezone.utc),
        )

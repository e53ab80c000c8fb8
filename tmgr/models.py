from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

# Canonical storage format for every timestamp (local wall-clock time).
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"


class TaskStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"


def format_timestamp(dt: datetime) -> str:
    return dt.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(text: str) -> datetime:
    """Parse a stored timestamp. Raises ValueError on anything but YYYY-MM-DD HH:MM:SS."""
    return datetime.strptime(text, TIMESTAMP_FORMAT)


@dataclass(frozen=True)
class Task:
    id: int
    description: str
    status: TaskStatus
    created_at: datetime
    due: Optional[datetime]
    bad_due: Optional[str] = None  # stored due_date text that could not be parsed

    @property
    def is_done(self) -> bool:
        return self.status is TaskStatus.DONE


@dataclass(frozen=True)
class Note:
    id: int
    content: str
    created_at: datetime

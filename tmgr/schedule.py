from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, List, Optional

from .models import Task

logger = logging.getLogger(__name__)

UPCOMING_WINDOW = timedelta(hours=24)

CHECK_DUE_FORMAT = "%a, %d %b - %H:%M"
ALL_CLEAR = "No overdue or upcoming tasks found. You're all clear!"


class Urgency(Enum):
    OVERDUE = "overdue"
    UPCOMING = "upcoming"
    LATER = "later"


@dataclass
class CheckReport:
    overdue: List[Task] = field(default_factory=list)
    upcoming: List[Task] = field(default_factory=list)

    @property
    def is_clear(self) -> bool:
        return not self.overdue and not self.upcoming


def classify(task: Task, now: datetime) -> Optional[Urgency]:
    """
    None means the task takes no part in the check:
    it is done, has no due date, or its stored due date is unreadable.
    """
    if task.is_done or task.due is None:
        return None
    if task.due < now:
        return Urgency.OVERDUE
    if task.due < now + UPCOMING_WINDOW:
        return Urgency.UPCOMING
    return Urgency.LATER


def is_overdue(task: Task, now: datetime) -> bool:
    return classify(task, now) is Urgency.OVERDUE


def check(tasks: Iterable[Task], now: datetime) -> CheckReport:
    """
    Partition tasks into overdue and upcoming.

    Input order is kept within each bucket; the store hands tasks over
    sorted by due date.
    """
    report = CheckReport()
    for t in tasks:
        if t.bad_due is not None:
            logger.warning(
                "Could not parse due date '%s' from DB for task ID %d; skipping.", t.bad_due, t.id
            )
            continue
        urgency = classify(t, now)
        if urgency is Urgency.OVERDUE:
            report.overdue.append(t)
        elif urgency is Urgency.UPCOMING:
            report.upcoming.append(t)
    return report


def _section(title: str, tasks: List[Task]) -> List[str]:
    lines = [title]
    if not tasks:
        lines.append("  (None)")
    for t in tasks:
        lines.append(f"  - ID {t.id}: {t.description} (Due: {t.due.strftime(CHECK_DUE_FORMAT)})")
    return lines


def render_check(report: CheckReport, quiet: bool = False) -> List[str]:
    if report.is_clear:
        return [] if quiet else [ALL_CLEAR]
    lines = ["---------------"]
    lines += _section("Overdue Tasks:", report.overdue)
    lines.append("")
    lines += _section("Upcoming Tasks (due within 24 hours):", report.upcoming)
    lines.append("---------------")
    return lines

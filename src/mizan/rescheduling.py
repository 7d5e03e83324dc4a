from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Sequence

from .models import PrayerSlot, Task

GRID_MINUTES = 15
ROLLOVER_MINUTE = 53


@dataclass(frozen=True, slots=True)
class Accepted:
    snapped_instant: datetime


@dataclass(frozen=True, slots=True)
class Rejected:
    colliding_prayer: PrayerSlot
    snapped_instant: datetime


Verdict = Accepted | Rejected


def snap(instant: datetime) -> datetime:
    """Round to the 15-minute grid used by drag and drop.

    Minutes 53 to 59 roll over to the top of the next hour; everything else
    goes to the nearest quarter. Seconds are dropped.
    """
    base = instant.replace(second=0, microsecond=0)
    minute = base.minute
    if minute >= ROLLOVER_MINUTE:
        return base.replace(minute=0) + timedelta(hours=1)
    return base.replace(minute=(minute + GRID_MINUTES // 2) // GRID_MINUTES * GRID_MINUTES)


def validate(
    proposed_instant: datetime,
    task_duration_minutes: int,
    prayers: Sequence[PrayerSlot],
) -> Verdict:
    """Check a dragged task against ``prayers``, which come in display order.

    The first colliding prayer in that order is reported.
    """
    snapped = snap(proposed_instant)
    for slot in prayers:
        if slot.effective_window.overlaps(snapped, task_duration_minutes):
            return Rejected(colliding_prayer=slot, snapped_instant=snapped)
    return Accepted(snapped_instant=snapped)


def apply(task: Task, verdict: Verdict) -> Task:
    if isinstance(verdict, Accepted):
        return task.rescheduled(verdict.snapped_instant)
    return task

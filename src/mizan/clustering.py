from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Sequence

from .models import (
    Cluster,
    EventKind,
    PrayerSlot,
    ScheduleEvent,
    ScheduleInputError,
    Task,
    TimeWindow,
    VoluntarySlot,
)


def flatten(
    prayers: Iterable[PrayerSlot],
    voluntary: Iterable[VoluntarySlot],
    tasks: Iterable[Task],
) -> list[ScheduleEvent]:
    events: list[ScheduleEvent] = []
    for task in tasks:
        if task.duration_minutes is not None and task.duration_minutes < 0:
            raise ScheduleInputError(
                f"Task '{task.title or task.task_id}' has a negative duration ({task.duration_minutes} minutes)"
            )
        events.append(ScheduleEvent(EventKind.TASK_START, task.start_time, task.window, task))
        end = task.end_time
        if end is not None:
            events.append(ScheduleEvent(EventKind.TASK_END, end, TimeWindow(end, end), task))
    for slot in prayers:
        window = slot.effective_window
        events.append(ScheduleEvent(EventKind.PRAYER, window.start, window, slot))
    for slot in voluntary:
        window = slot.window
        events.append(ScheduleEvent(EventKind.VOLUNTARY, window.start, window, slot))
    return events


def cluster(
    prayers: Iterable[PrayerSlot],
    voluntary: Iterable[VoluntarySlot],
    tasks: Iterable[Task],
) -> list[Cluster]:
    """Group the day's items into chronologically ordered clusters.

    Events are ordered by instant with ties going task start, prayer,
    voluntary, task end, so a task that begins when a prayer window opens
    leads its cluster. An event joins the running cluster unless it starts
    after the running end; touching items therefore share a cluster.
    """
    events = flatten(prayers, voluntary, tasks)
    ordered = sorted(
        enumerate(events),
        key=lambda item: (item[1].instant, item[1].kind.priority, item[0]),
    )

    clusters: list[Cluster] = []
    members: list[ScheduleEvent] = []
    start: datetime | None = None
    end: datetime | None = None
    for _, event in ordered:
        if members and event.window.start > end:
            clusters.append(Cluster(events=tuple(members), window=TimeWindow(start, end)))
            members = []
        if not members:
            start, end = event.window.start, event.window.end
        else:
            end = max(end, event.window.end)
        members.append(event)
    if members:
        clusters.append(Cluster(events=tuple(members), window=TimeWindow(start, end)))
    return clusters


class SegmentKind(str, Enum):
    CLUSTER = "cluster"
    GAP = "gap"


@dataclass(frozen=True, slots=True)
class AgendaSegment:
    kind: SegmentKind
    window: TimeWindow
    cluster: Cluster | None = None


def with_gaps(clusters: Sequence[Cluster], day_start: datetime, day_end: datetime) -> list[AgendaSegment]:
    """Interleave free-time gaps between clusters across ``[day_start, day_end]``."""
    segments: list[AgendaSegment] = []
    cursor = day_start
    for item in clusters:
        if item.window.start > cursor:
            segments.append(AgendaSegment(SegmentKind.GAP, TimeWindow(cursor, item.window.start)))
        segments.append(AgendaSegment(SegmentKind.CLUSTER, item.window, item))
        cursor = max(cursor, item.window.end)
    if cursor < day_end:
        segments.append(AgendaSegment(SegmentKind.GAP, TimeWindow(cursor, day_end)))
    return segments

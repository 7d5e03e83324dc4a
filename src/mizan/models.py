from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterator
from uuid import uuid4


class ScheduleInputError(ValueError):
    """Raised when a caller hands the core inputs that break a basic invariant."""


class PrayerType(str, Enum):
    FAJR = "fajr"
    DHUHR = "dhuhr"
    ASR = "asr"
    MAGHRIB = "maghrib"
    ISHA = "isha"

    @property
    def display_order(self) -> int:
        return _PRAYER_ORDER.index(self)

    @property
    def english_name(self) -> str:
        return self.value.capitalize()

    @classmethod
    def ordered(cls) -> tuple["PrayerType", ...]:
        return _PRAYER_ORDER

    @classmethod
    def parse(cls, value: str) -> "PrayerType":
        key = value.strip().lower()
        if key == "duhr":
            key = "dhuhr"
        return cls(key)


_PRAYER_ORDER = (
    PrayerType.FAJR,
    PrayerType.DHUHR,
    PrayerType.ASR,
    PrayerType.MAGHRIB,
    PrayerType.ISHA,
)


class CalculationMethod(str, Enum):
    MWL = "mwl"
    UMM_AL_QURA = "umm_al_qura"
    EGYPTIAN = "egyptian"
    KARACHI = "karachi"
    ISNA = "isna"
    DUBAI = "dubai"
    SINGAPORE = "singapore"
    TURKEY = "turkey"

    @classmethod
    def parse(cls, value: "str | CalculationMethod | None") -> "CalculationMethod":
        if isinstance(value, CalculationMethod):
            return value
        if not value:
            return cls.MWL
        key = "".join(ch for ch in value.lower() if ch.isalnum())
        for method in cls:
            if key == method.value.replace("_", ""):
                return method
        return _METHOD_ALIASES.get(key, cls.MWL)


_METHOD_ALIASES = {
    "muslimworldleague": CalculationMethod.MWL,
    "ummalqura": CalculationMethod.UMM_AL_QURA,
    "makkah": CalculationMethod.UMM_AL_QURA,
    "egyptiangeneralauthority": CalculationMethod.EGYPTIAN,
    "universityofislamicscienceskarachi": CalculationMethod.KARACHI,
    "islamicsocietyofnorthamerica": CalculationMethod.ISNA,
    "diyanet": CalculationMethod.TURKEY,
    "muis": CalculationMethod.SINGAPORE,
}


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """Immutable span of civil time with any buffers already folded in."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ScheduleInputError(
                f"Window start {self.start.isoformat()} is after its end {self.end.isoformat()}"
            )

    @classmethod
    def from_minutes(cls, start: datetime, duration_minutes: int) -> "TimeWindow":
        if duration_minutes < 0:
            raise ScheduleInputError(f"Negative duration: {duration_minutes} minutes")
        return cls(start, start + timedelta(minutes=duration_minutes))

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: "TimeWindow | datetime", duration_minutes: int = 0) -> bool:
        """Half-open intersection test.

        Accepts either another window or a candidate start plus its duration in
        minutes. Windows that only touch at an edge do not overlap. A
        zero-length window is a single instant and overlaps a window that
        holds it, start included and end excluded.
        """
        if isinstance(other, datetime):
            other = TimeWindow.from_minutes(other, duration_minutes)
        if self.start == self.end:
            if other.start == other.end:
                return self.start == other.start
            return other.start <= self.start < other.end
        if other.start == other.end:
            return self.start <= other.start < self.end
        return self.start < other.end and other.start < self.end

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end

    def shifted(self, delta: timedelta) -> "TimeWindow":
        return TimeWindow(self.start + delta, self.end + delta)

    def intersection(self, other: "TimeWindow") -> "TimeWindow | None":
        start = max(self.start, other.start)
        end = min(self.end, other.end)
        if end <= start:
            return None
        return TimeWindow(start, end)


@dataclass(frozen=True, slots=True)
class OverlapMetrics:
    overlap: timedelta
    ratio: float

    @classmethod
    def between(cls, first: TimeWindow, second: TimeWindow) -> "OverlapMetrics":
        shared = first.intersection(second)
        if shared is None:
            return cls(overlap=timedelta(0), ratio=0.0)
        shorter = min(first.duration, second.duration)
        if shorter <= timedelta(0):
            return cls(overlap=shared.duration, ratio=0.0)
        return cls(overlap=shared.duration, ratio=min(1.0, shared.duration / shorter))


@dataclass(frozen=True, slots=True)
class PrayerSlot:
    prayer: PrayerType
    day: date
    canonical_instant: datetime
    calculation_method: CalculationMethod = CalculationMethod.MWL
    manual_offset_minutes: int = 0
    duration_minutes: int = 15
    buffer_before_minutes: int = 5
    buffer_after_minutes: int = 5
    is_congregational_substitute: bool = False
    congregation_delay_minutes: int | None = None

    @property
    def adhan_instant(self) -> datetime:
        return self.canonical_instant + timedelta(minutes=self.manual_offset_minutes)

    @property
    def effective_window(self) -> TimeWindow:
        adhan = self.adhan_instant
        return TimeWindow(
            adhan - timedelta(minutes=self.buffer_before_minutes),
            adhan + timedelta(minutes=self.duration_minutes + self.buffer_after_minutes),
        )

    @property
    def prayer_end(self) -> datetime:
        delay = self.congregation_delay_minutes or 0
        return self.adhan_instant + timedelta(minutes=delay + self.duration_minutes)

    @property
    def display_name(self) -> str:
        if self.is_congregational_substitute:
            return "Jumuah"
        return self.prayer.english_name


class AttachmentPosition(str, Enum):
    BEFORE = "before"
    AFTER = "after"


@dataclass(frozen=True, slots=True)
class Attachment:
    prayer: PrayerType
    position: AttachmentPosition


@dataclass(frozen=True, slots=True)
class VoluntarySlot:
    rule_id: str
    day: date
    suggested_instant: datetime
    duration_minutes: int
    rakaat: int
    attachment: Attachment | None = None
    is_completed: bool = False
    is_dismissed: bool = False

    @property
    def window(self) -> TimeWindow:
        return TimeWindow.from_minutes(self.suggested_instant, self.duration_minutes)

    @property
    def key(self) -> tuple[str, date]:
        return self.rule_id, self.day

    @property
    def is_standalone(self) -> bool:
        return self.attachment is None

    def mark_completed(self) -> "VoluntarySlot":
        return replace(self, is_completed=True)

    def unmark_completed(self) -> "VoluntarySlot":
        return replace(self, is_completed=False)

    def dismiss(self) -> "VoluntarySlot":
        return replace(self, is_dismissed=True)

    def undismiss(self) -> "VoluntarySlot":
        return replace(self, is_dismissed=False)


@dataclass(frozen=True, slots=True)
class Task:
    start_time: datetime
    duration_minutes: int | None = None
    is_completed: bool = False
    title: str = ""
    task_id: str = field(default_factory=lambda: uuid4().hex)

    @property
    def end_time(self) -> datetime | None:
        if self.duration_minutes is None:
            return None
        return self.start_time + timedelta(minutes=self.duration_minutes)

    @property
    def window(self) -> TimeWindow:
        return TimeWindow.from_minutes(self.start_time, self.duration_minutes or 0)

    def rescheduled(self, instant: datetime) -> "Task":
        return replace(self, start_time=instant)


class EventKind(str, Enum):
    TASK_START = "task_start"
    PRAYER = "prayer"
    VOLUNTARY = "voluntary"
    TASK_END = "task_end"

    @property
    def priority(self) -> int:
        return _EVENT_PRIORITY[self]


_EVENT_PRIORITY = {
    EventKind.TASK_START: 0,
    EventKind.PRAYER: 1,
    EventKind.VOLUNTARY: 2,
    EventKind.TASK_END: 3,
}


@dataclass(frozen=True, slots=True)
class ScheduleEvent:
    kind: EventKind
    instant: datetime
    window: TimeWindow
    source: Task | PrayerSlot | VoluntarySlot


@dataclass(frozen=True, slots=True)
class Cluster:
    """Maximal run of schedule events whose windows chain into each other."""

    events: tuple[ScheduleEvent, ...]
    window: TimeWindow

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self) -> Iterator[ScheduleEvent]:
        return iter(self.events)

    @property
    def tasks(self) -> list[Task]:
        return [event.source for event in self.events if event.kind is EventKind.TASK_START]

    @property
    def prayers(self) -> list[PrayerSlot]:
        return [event.source for event in self.events if event.kind is EventKind.PRAYER]

    @property
    def voluntary(self) -> list[VoluntarySlot]:
        return [event.source for event in self.events if event.kind is EventKind.VOLUNTARY]

    @property
    def has_task_overlap(self) -> bool:
        return any(len(active) > 1 for _, active in self.active_tasks())

    def active_tasks(self) -> list[tuple[datetime, frozenset[str]]]:
        """Task ids running after each task boundary in the cluster, in order.

        A task without a known duration is active from its start to the end of
        the cluster.
        """
        points: list[tuple[datetime, frozenset[str]]] = []
        running: set[str] = set()
        for event in self.events:
            if event.kind is EventKind.TASK_START:
                running.add(event.source.task_id)
            elif event.kind is EventKind.TASK_END:
                running.discard(event.source.task_id)
            else:
                continue
            snapshot = frozenset(running)
            if points and points[-1][0] == event.instant:
                points[-1] = (event.instant, snapshot)
            else:
                points.append((event.instant, snapshot))
        return points

    def active_tasks_at(self, instant: datetime) -> frozenset[str]:
        current: frozenset[str] = frozenset()
        for moment, active in self.active_tasks():
            if moment > instant:
                break
            current = active
        return current

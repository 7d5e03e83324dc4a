from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
import logging
from typing import Iterable, Mapping, Protocol

from . import clustering, nawafil, rescheduling
from .config import MizanConfig
from .models import Cluster, PrayerSlot, PrayerType, Task, VoluntarySlot
from .resolver import PrayerTimeResolver
from .services.prayer import static_instants

logger = logging.getLogger(__name__)


class CanonicalTimeSource(Protocol):
    def get_canonical_instants(self, day: date) -> Mapping[PrayerType, datetime]:
        ...


@dataclass(frozen=True, slots=True)
class DaySchedule:
    day: date
    prayers: tuple[PrayerSlot, ...]
    voluntary: tuple[VoluntarySlot, ...]
    clusters: tuple[Cluster, ...]

    def prayer(self, prayer: PrayerType) -> PrayerSlot | None:
        for slot in self.prayers:
            if slot.prayer is prayer:
                return slot
        return None


class Scheduler:
    def __init__(self, config: MizanConfig, prayer_service: CanonicalTimeSource | None = None) -> None:
        self.config = config
        self.prayer_service = prayer_service
        self.resolver = PrayerTimeResolver(config.prayer_defaults, config.congregation)

    def canonical_instants(self, day: date) -> Mapping[PrayerType, datetime]:
        if self.prayer_service is not None:
            try:
                return self.prayer_service.get_canonical_instants(day)
            except Exception as exc:
                logger.warning("Prayer service failed for %s: %s; using configured times", day, exc)
        return static_instants(self.config.prayers, day)

    def resolve_prayers(
        self,
        day: date,
        canonical: Mapping[PrayerType, datetime] | None = None,
    ) -> list[PrayerSlot]:
        instants = canonical if canonical is not None else self.canonical_instants(day)
        return self.resolver.resolve_day(
            day,
            instants,
            self.config.prayer_settings.calculation_method,
            self.config.adjustments,
        )

    def voluntary_for(
        self,
        day: date,
        prayers: Iterable[PrayerSlot],
        previous: Iterable[VoluntarySlot] = (),
    ) -> list[VoluntarySlot]:
        preferences = self.config.nawafil
        fresh = nawafil.generate(
            day,
            prayers,
            preferences.enabled,
            self.config.nawafil_rules,
            rakaat_preferences=preferences.rakaat,
            time_preferences=preferences.times,
        )
        return nawafil.carry_forward(fresh, previous)

    def build_day(
        self,
        day: date,
        tasks: Iterable[Task] = (),
        *,
        canonical: Mapping[PrayerType, datetime] | None = None,
        previous_voluntary: Iterable[VoluntarySlot] = (),
    ) -> DaySchedule:
        prayers = self.resolve_prayers(day, canonical)
        voluntary = self.voluntary_for(day, prayers, previous_voluntary)
        clusters = clustering.cluster(prayers, voluntary, tasks)
        logger.debug(
            "Built %s: %d prayers, %d nawafil, %d clusters",
            day,
            len(prayers),
            len(voluntary),
            len(clusters),
        )
        return DaySchedule(
            day=day,
            prayers=tuple(prayers),
            voluntary=tuple(voluntary),
            clusters=tuple(clusters),
        )

    def validate_move(self, schedule: DaySchedule, task: Task, proposed: datetime) -> rescheduling.Verdict:
        return rescheduling.validate(proposed, task.duration_minutes or 0, schedule.prayers)

"""Voluntary prayer (nawafil) windows derived from declarative timing rules.

Each rule carries exactly one timing variant:

``AttachedTiming``
    Anchored to one of the day's prayers. ``before`` rules start from the
    adhan instant (canonical time plus the user's manual offset), giving the
    worshipper the gap before the congregation; ``after`` rules start from the
    end of the prayer itself.
``LastThirdOfNightTiming``
    Two thirds of the way from maghrib to the following fajr.
``MidMorningTiming``
    Fajr plus a fixed 30 minute sunrise approximation plus 15 minutes. Sunrise
    is not computed here, so the result is an estimate and should be presented
    as a suggestion only.

Rules that cannot be resolved for the day (their prayer is missing) are left
out of the result instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
import logging
import math
from typing import Iterable, Mapping

from .models import Attachment, AttachmentPosition, PrayerSlot, PrayerType, VoluntarySlot
from .timeutils import minutes_after_midnight, project_after

logger = logging.getLogger(__name__)

SUNRISE_APPROXIMATION = timedelta(minutes=30)
POST_SUNRISE_OFFSET = timedelta(minutes=15)
BEFORE_PRAYER_OFFSET_MINUTES = 2
FALLBACK_RAKAAT = 2
MINUTES_PER_RAKAA = 3


@dataclass(frozen=True, slots=True)
class AttachedTiming:
    prayer: PrayerType
    position: AttachmentPosition
    offset_minutes: int | None = None

    @property
    def effective_offset(self) -> int:
        if self.offset_minutes is not None:
            return self.offset_minutes
        if self.position is AttachmentPosition.BEFORE:
            return BEFORE_PRAYER_OFFSET_MINUTES
        return 0


@dataclass(frozen=True, slots=True)
class LastThirdOfNightTiming:
    pass


@dataclass(frozen=True, slots=True)
class MidMorningTiming:
    pass


NawafilTiming = AttachedTiming | LastThirdOfNightTiming | MidMorningTiming


@dataclass(frozen=True, slots=True)
class NawafilRule:
    rule_id: str
    timing: NawafilTiming
    english_name: str = ""
    default_rakaat: int | None = None
    fixed_rakaat: int | None = None
    duration_per_two_rakaat: int | None = None
    duration_table: Mapping[int, int] = field(default_factory=dict)
    duration_minutes: int | None = None

    def resolve_rakaat(self, preference: int | None = None) -> int:
        """Stored preference, then the default, then the fixed count, then two.

        A preference below one rakaa is ignored.
        """
        if preference is not None and preference >= 1:
            return preference
        if self.default_rakaat is not None:
            return self.default_rakaat
        if self.fixed_rakaat is not None:
            return self.fixed_rakaat
        return FALLBACK_RAKAAT

    def resolve_duration(self, rakaat: int) -> int:
        if self.duration_per_two_rakaat is not None:
            return math.ceil(rakaat / 2) * self.duration_per_two_rakaat
        if rakaat in self.duration_table:
            return self.duration_table[rakaat]
        if self.duration_minutes is not None:
            return self.duration_minutes
        return estimate_duration(rakaat)


def estimate_duration(rakaat: int) -> int:
    """Three minutes per rakaa; anything longer than five minutes snaps to the nearest ten."""
    raw = rakaat * MINUTES_PER_RAKAA
    if raw <= 5:
        return raw
    return int(math.floor(raw / 10 + 0.5)) * 10


def _attached(prayer: PrayerType, position: AttachmentPosition, offset: int | None = None) -> AttachedTiming:
    return AttachedTiming(prayer=prayer, position=position, offset_minutes=offset)


DEFAULT_RULES: dict[str, NawafilRule] = {
    rule.rule_id: rule
    for rule in (
        NawafilRule(
            "before_fajr",
            _attached(PrayerType.FAJR, AttachmentPosition.BEFORE),
            english_name="Sunnah before Fajr",
            fixed_rakaat=2,
            duration_per_two_rakaat=5,
        ),
        NawafilRule(
            "before_dhuhr",
            _attached(PrayerType.DHUHR, AttachmentPosition.BEFORE),
            english_name="Sunnah before Dhuhr",
            default_rakaat=4,
            duration_per_two_rakaat=5,
        ),
        NawafilRule(
            "after_dhuhr",
            _attached(PrayerType.DHUHR, AttachmentPosition.AFTER),
            english_name="Sunnah after Dhuhr",
            fixed_rakaat=2,
            duration_per_two_rakaat=5,
        ),
        NawafilRule(
            "after_maghrib",
            _attached(PrayerType.MAGHRIB, AttachmentPosition.AFTER),
            english_name="Sunnah after Maghrib",
            fixed_rakaat=2,
            duration_per_two_rakaat=5,
        ),
        NawafilRule(
            "after_isha",
            _attached(PrayerType.ISHA, AttachmentPosition.AFTER),
            english_name="Sunnah after Isha",
            fixed_rakaat=2,
            duration_per_two_rakaat=5,
        ),
        NawafilRule(
            "witr",
            _attached(PrayerType.ISHA, AttachmentPosition.AFTER, 10),
            english_name="Witr",
            default_rakaat=3,
            duration_table={1: 3, 3: 10, 5: 15, 7: 20, 9: 25, 11: 30},
        ),
        NawafilRule(
            "duha",
            MidMorningTiming(),
            english_name="Duha",
            default_rakaat=2,
            duration_table={2: 10, 4: 15, 6: 20, 8: 25},
        ),
        NawafilRule(
            "qiyam",
            LastThirdOfNightTiming(),
            english_name="Qiyam al-Layl",
            default_rakaat=8,
            duration_minutes=30,
        ),
    )
}


def suggested_instant(rule: NawafilRule, prayers: Mapping[PrayerType, PrayerSlot]) -> datetime | None:
    match rule.timing:
        case AttachedTiming(prayer=prayer, position=position) as attached:
            slot = prayers.get(prayer)
            if slot is None:
                return None
            anchor = slot.adhan_instant if position is AttachmentPosition.BEFORE else slot.prayer_end
            return anchor + timedelta(minutes=attached.effective_offset)
        case LastThirdOfNightTiming():
            maghrib = prayers.get(PrayerType.MAGHRIB)
            fajr = prayers.get(PrayerType.FAJR)
            if maghrib is None or fajr is None:
                return None
            return last_third_of_night(maghrib.canonical_instant, fajr.canonical_instant)
        case MidMorningTiming():
            fajr = prayers.get(PrayerType.FAJR)
            if fajr is None:
                return None
            return fajr.canonical_instant + SUNRISE_APPROXIMATION + POST_SUNRISE_OFFSET
    return None


def last_third_of_night(sunset: datetime, dawn: datetime) -> datetime:
    """Start of the final third of the night between ``sunset`` and ``dawn``.

    A dawn that reads earlier than sunset belongs to the next morning and is
    projected forward a day before the night length is measured.
    """
    dawn = project_after(dawn, sunset)
    return sunset + (dawn - sunset) * 2 / 3


def generate(
    day: date,
    prayers: Iterable[PrayerSlot],
    enabled_rule_ids: Iterable[str],
    rules: Mapping[str, NawafilRule] | None = None,
    *,
    rakaat_preferences: Mapping[str, int] | None = None,
    time_preferences: Mapping[str, int] | None = None,
) -> list[VoluntarySlot]:
    """Fresh voluntary slots for every enabled rule that resolves against ``prayers``.

    ``time_preferences`` holds minutes after midnight per rule id and replaces
    the computed instant. Completion and dismissal always start out cleared;
    use :func:`carry_forward` to restore them.
    """
    catalog = DEFAULT_RULES if rules is None else rules
    rakaat_preferences = rakaat_preferences or {}
    time_preferences = time_preferences or {}
    by_type = {slot.prayer: slot for slot in prayers}
    enabled = set(enabled_rule_ids)

    slots: list[VoluntarySlot] = []
    for rule_id, rule in catalog.items():
        if rule_id not in enabled:
            continue
        computed = suggested_instant(rule, by_type)
        if computed is None:
            logger.debug("Skipping nawafil rule %s on %s: referenced prayer missing", rule_id, day)
            continue
        if rule_id in time_preferences:
            computed = minutes_after_midnight(day, time_preferences[rule_id])
        rakaat = rule.resolve_rakaat(rakaat_preferences.get(rule_id))
        attachment = None
        if isinstance(rule.timing, AttachedTiming):
            attachment = Attachment(prayer=rule.timing.prayer, position=rule.timing.position)
        slots.append(
            VoluntarySlot(
                rule_id=rule_id,
                day=day,
                suggested_instant=computed,
                duration_minutes=rule.resolve_duration(rakaat),
                rakaat=rakaat,
                attachment=attachment,
            )
        )
    unknown = enabled.difference(catalog)
    if unknown:
        logger.debug("Ignoring unknown nawafil rules: %s", ", ".join(sorted(unknown)))
    slots.sort(key=lambda slot: (slot.suggested_instant, slot.rule_id))
    return slots


def carry_forward(fresh: Iterable[VoluntarySlot], previous: Iterable[VoluntarySlot]) -> list[VoluntarySlot]:
    known = {slot.key: slot for slot in previous}
    merged: list[VoluntarySlot] = []
    for slot in fresh:
        prior = known.get(slot.key)
        if prior is not None:
            slot = replace(slot, is_completed=prior.is_completed, is_dismissed=prior.is_dismissed)
        merged.append(slot)
    return merged

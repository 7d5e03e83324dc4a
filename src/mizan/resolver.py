from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta
import logging
from typing import Mapping

from .config import (
    FALLBACK_PRAYER_DEFAULTS,
    MAX_MANUAL_OFFSET,
    CongregationConfig,
    PrayerDefaults,
    UserAdjustments,
)
from .models import CalculationMethod, PrayerSlot, PrayerType

logger = logging.getLogger(__name__)

FRIDAY = 4


def clamp_offset(minutes: int) -> int:
    return max(-MAX_MANUAL_OFFSET, min(MAX_MANUAL_OFFSET, minutes))


class PrayerTimeResolver:
    """Turn canonical prayer instants into effective prayer slots.

    Durations and buffers come from the injected ``PrayerDefaults`` table; a
    prayer missing from it falls back to the built-in per-type values.
    """

    def __init__(
        self,
        defaults: PrayerDefaults | None = None,
        congregation: CongregationConfig | None = None,
    ) -> None:
        self.defaults = defaults or PrayerDefaults()
        self.congregation = congregation or CongregationConfig()

    def resolve(
        self,
        prayer: PrayerType,
        canonical_instant: datetime,
        calculation_method: CalculationMethod = CalculationMethod.MWL,
        manual_offset_minutes: int = 0,
        congregational_override: CongregationConfig | None = None,
        *,
        congregation_delay_minutes: int | None = None,
    ) -> PrayerSlot:
        entry = self.defaults.lookup(prayer)
        if entry is None:
            logger.debug("No configured defaults for %s; using built-in values", prayer.value)
            entry = FALLBACK_PRAYER_DEFAULTS[prayer]
        offset = clamp_offset(manual_offset_minutes)
        if offset != manual_offset_minutes:
            logger.debug("Clamped %s offset from %s to %s", prayer.value, manual_offset_minutes, offset)
        slot = PrayerSlot(
            prayer=prayer,
            day=canonical_instant.date(),
            canonical_instant=canonical_instant,
            calculation_method=calculation_method,
            manual_offset_minutes=offset,
            duration_minutes=entry.duration_minutes,
            buffer_before_minutes=entry.buffer_before_minutes,
            buffer_after_minutes=entry.buffer_after_minutes,
            congregation_delay_minutes=congregation_delay_minutes,
        )
        if congregational_override is not None:
            slot = substitute_congregation(slot, congregational_override)
        return slot

    def resolve_day(
        self,
        day: date,
        canonical_instants: Mapping[PrayerType, datetime],
        calculation_method: CalculationMethod = CalculationMethod.MWL,
        adjustments: UserAdjustments | None = None,
    ) -> list[PrayerSlot]:
        """Resolve every prayer of ``day`` in display order.

        On Fridays the midday slot is replaced by the congregation when it is
        enabled. Prayers absent from ``canonical_instants`` are skipped.
        """
        adjustments = adjustments or UserAdjustments()
        congregate = self.congregation.enabled and day.weekday() == FRIDAY
        slots: list[PrayerSlot] = []
        for prayer in PrayerType.ordered():
            instant = canonical_instants.get(prayer)
            if instant is None:
                logger.debug("No canonical time for %s on %s", prayer.value, day)
                continue
            override = self.congregation if congregate and prayer is PrayerType.DHUHR else None
            slots.append(
                self.resolve(
                    prayer,
                    instant,
                    calculation_method,
                    adjustments.offset_for(prayer),
                    override,
                    congregation_delay_minutes=adjustments.congregation_delays.get(prayer),
                )
            )
        return slots


def adjust(slot: PrayerSlot, delta_minutes: int) -> PrayerSlot:
    """Apply a user increment on top of the slot's current offset, clamped to +/-30."""
    return replace(slot, manual_offset_minutes=clamp_offset(slot.manual_offset_minutes + delta_minutes))


def substitute_congregation(slot: PrayerSlot, congregation: CongregationConfig) -> PrayerSlot:
    """Swap the midday slot's timing for the Friday congregation.

    Other prayers come back untouched, and a slot that is already substituted
    is never shifted a second time.
    """
    if slot.prayer is not PrayerType.DHUHR:
        logger.debug("Congregational substitution only applies to dhuhr, not %s", slot.prayer.value)
        return slot
    if slot.is_congregational_substitute:
        return slot
    return replace(
        slot,
        canonical_instant=slot.canonical_instant + timedelta(minutes=congregation.offset_from_dhuhr_minutes),
        duration_minutes=congregation.duration_minutes,
        buffer_before_minutes=congregation.buffer_before_minutes,
        buffer_after_minutes=congregation.buffer_after_minutes,
        is_congregational_substitute=True,
    )

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
import logging
from pathlib import Path
import tomllib
from typing import Any

from .models import AttachmentPosition, CalculationMethod, PrayerType
from .nawafil import (
    DEFAULT_RULES,
    AttachedTiming,
    LastThirdOfNightTiming,
    MidMorningTiming,
    NawafilRule,
    NawafilTiming,
)
from .timeutils import format_hhmm, format_minutes, parse_hhmm, parse_minutes

logger = logging.getLogger(__name__)

MAX_MANUAL_OFFSET = 30


def _default_config_root() -> Path:
    return Path.home() / ".config" / "mizan"


def _duration(value: Any, label: str) -> int:
    minutes = parse_minutes(value)
    if minutes < 0:
        raise ValueError(f"{label} must not be negative (got {minutes} minutes)")
    return minutes


def _rakaat(value: Any, label: str) -> int:
    count = int(value)
    if count < 1:
        raise ValueError(f"{label} needs at least one rakaa (got {count})")
    return count


@dataclass(slots=True)
class LocationSettings:
    city: str = ""
    country: str = ""
    latitude: float | None = None
    longitude: float | None = None
    timezone: str | None = None


@dataclass(slots=True)
class PrayerSchedule:
    """Static fallback times used when no provider answers."""

    fajr: time
    dhuhr: time
    asr: time
    maghrib: time
    isha: time

    @classmethod
    def from_dict(cls, values: dict[str, str]) -> "PrayerSchedule":
        return cls(
            fajr=parse_hhmm(values.get("fajr", "05:00")),
            dhuhr=parse_hhmm(values.get("dhuhr", "12:30")),
            asr=parse_hhmm(values.get("asr", "15:30")),
            maghrib=parse_hhmm(values.get("maghrib", "18:05")),
            isha=parse_hhmm(values.get("isha", "19:45")),
        )

    def to_dict(self) -> dict[str, str]:
        return {prayer.value: format_hhmm(self.get(prayer)) for prayer in PrayerType.ordered()}

    def get(self, prayer: PrayerType) -> time:
        return getattr(self, prayer.value)


@dataclass(slots=True)
class PrayerSettings:
    provider: str = "pyislam"
    calculation_method: CalculationMethod = CalculationMethod.MWL
    madhab: str = "Shafi"


@dataclass(frozen=True, slots=True)
class PrayerDefault:
    duration_minutes: int
    buffer_before_minutes: int = 5
    buffer_after_minutes: int = 5


FALLBACK_PRAYER_DEFAULTS: dict[PrayerType, PrayerDefault] = {
    PrayerType.FAJR: PrayerDefault(15),
    PrayerType.DHUHR: PrayerDefault(20),
    PrayerType.ASR: PrayerDefault(20),
    PrayerType.MAGHRIB: PrayerDefault(15),
    PrayerType.ISHA: PrayerDefault(20),
}


@dataclass(slots=True)
class PrayerDefaults:
    entries: dict[PrayerType, PrayerDefault] = field(default_factory=dict)

    @classmethod
    def builtin(cls) -> "PrayerDefaults":
        return cls(entries=dict(FALLBACK_PRAYER_DEFAULTS))

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> "PrayerDefaults":
        entries: dict[PrayerType, PrayerDefault] = {}
        for key, raw in values.items():
            prayer = PrayerType.parse(key)
            fallback = FALLBACK_PRAYER_DEFAULTS[prayer]
            entries[prayer] = PrayerDefault(
                duration_minutes=_duration(raw.get("duration", fallback.duration_minutes), f"{prayer.value} duration"),
                buffer_before_minutes=_duration(
                    raw.get("buffer_before", fallback.buffer_before_minutes), f"{prayer.value} buffer_before"
                ),
                buffer_after_minutes=_duration(
                    raw.get("buffer_after", fallback.buffer_after_minutes), f"{prayer.value} buffer_after"
                ),
            )
        return cls(entries=entries)

    def lookup(self, prayer: PrayerType) -> PrayerDefault | None:
        return self.entries.get(prayer)

    def to_dict(self) -> dict[str, dict[str, int]]:
        return {
            prayer.value: {
                "duration": entry.duration_minutes,
                "buffer_before": entry.buffer_before_minutes,
                "buffer_after": entry.buffer_after_minutes,
            }
            for prayer, entry in sorted(self.entries.items(), key=lambda item: item[0].display_order)
        }


@dataclass(frozen=True, slots=True)
class CongregationConfig:
    """Friday congregation that stands in for the midday prayer."""

    enabled: bool = True
    duration_minutes: int = 45
    buffer_before_minutes: int = 15
    buffer_after_minutes: int = 10
    offset_from_dhuhr_minutes: int = 15

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> "CongregationConfig":
        base = cls()
        return cls(
            enabled=bool(values.get("enabled", base.enabled)),
            duration_minutes=_duration(values.get("duration", base.duration_minutes), "congregation duration"),
            buffer_before_minutes=_duration(
                values.get("buffer_before", base.buffer_before_minutes), "congregation buffer_before"
            ),
            buffer_after_minutes=_duration(
                values.get("buffer_after", base.buffer_after_minutes), "congregation buffer_after"
            ),
            offset_from_dhuhr_minutes=parse_minutes(
                values.get("offset_from_dhuhr", base.offset_from_dhuhr_minutes)
            ),
        )


@dataclass(slots=True)
class UserAdjustments:
    offsets: dict[PrayerType, int] = field(default_factory=dict)
    congregation_delays: dict[PrayerType, int] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> "UserAdjustments":
        return cls(
            offsets={PrayerType.parse(key): parse_minutes(value) for key, value in values.get("offsets", {}).items()},
            congregation_delays={
                PrayerType.parse(key): _duration(value, f"{key} congregation delay")
                for key, value in values.get("congregation_delays", {}).items()
            },
        )

    def offset_for(self, prayer: PrayerType) -> int:
        return self.offsets.get(prayer, 0)


@dataclass(slots=True)
class NawafilPreferences:
    enabled: list[str] = field(default_factory=list)
    rakaat: dict[str, int] = field(default_factory=dict)
    # minutes after midnight
    times: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> "NawafilPreferences":
        times: dict[str, int] = {}
        for rule_id, value in values.get("times", {}).items():
            moment = parse_hhmm(str(value))
            times[rule_id] = moment.hour * 60 + moment.minute
        return cls(
            enabled=[str(rule_id) for rule_id in values.get("enabled", [])],
            rakaat={
                rule_id: _rakaat(count, f"nawafil.rakaat.{rule_id}")
                for rule_id, count in values.get("rakaat", {}).items()
            },
            times=times,
        )


_TIMING_KINDS = ("attached", "last_third_of_night", "mid_morning")


def parse_rule(rule_id: str, values: dict[str, Any]) -> NawafilRule:
    kind = str(values.get("timing", "attached")).strip().lower()
    timing: NawafilTiming
    if kind == "attached":
        if "prayer" not in values:
            raise ValueError(f"Nawafil rule '{rule_id}' needs a prayer to attach to")
        offset = values.get("offset")
        timing = AttachedTiming(
            prayer=PrayerType.parse(str(values["prayer"])),
            position=AttachmentPosition(str(values.get("position", "after")).strip().lower()),
            offset_minutes=parse_minutes(offset) if offset is not None else None,
        )
    elif kind == "last_third_of_night":
        timing = LastThirdOfNightTiming()
    elif kind == "mid_morning":
        timing = MidMorningTiming()
    else:
        raise ValueError(
            f"Nawafil rule '{rule_id}' has unsupported timing '{kind}' (expected one of {', '.join(_TIMING_KINDS)})"
        )

    def optional(key: str, read) -> int | None:
        value = values.get(key)
        return None if value is None else read(value, f"{rule_id}.{key}")

    return NawafilRule(
        rule_id=rule_id,
        timing=timing,
        english_name=str(values.get("name", "")),
        default_rakaat=optional("default_rakaat", _rakaat),
        fixed_rakaat=optional("fixed_rakaat", _rakaat),
        duration_per_two_rakaat=optional("duration_per_two_rakaat", _duration),
        duration_table={
            _rakaat(count, f"{rule_id}.durations"): _duration(minutes, f"{rule_id}.durations.{count}")
            for count, minutes in values.get("durations", {}).items()
        },
        duration_minutes=optional("duration", _duration),
    )


def rule_to_dict(rule: NawafilRule) -> dict[str, Any]:
    data: dict[str, Any] = {}
    if isinstance(rule.timing, AttachedTiming):
        data["timing"] = "attached"
        data["prayer"] = rule.timing.prayer.value
        data["position"] = rule.timing.position.value
        if rule.timing.offset_minutes is not None:
            data["offset"] = rule.timing.offset_minutes
    elif isinstance(rule.timing, LastThirdOfNightTiming):
        data["timing"] = "last_third_of_night"
    else:
        data["timing"] = "mid_morning"
    if rule.english_name:
        data["name"] = rule.english_name
    for key, value in (
        ("default_rakaat", rule.default_rakaat),
        ("fixed_rakaat", rule.fixed_rakaat),
        ("duration_per_two_rakaat", rule.duration_per_two_rakaat),
        ("duration", rule.duration_minutes),
    ):
        if value is not None:
            data[key] = value
    if rule.duration_table:
        data["durations"] = dict(rule.duration_table)
    return data


@dataclass(slots=True)
class MizanConfig:
    location: LocationSettings
    prayers: PrayerSchedule
    prayer_settings: PrayerSettings
    prayer_defaults: PrayerDefaults
    congregation: CongregationConfig
    adjustments: UserAdjustments
    nawafil: NawafilPreferences
    nawafil_rules: dict[str, NawafilRule]

    @classmethod
    def default(cls) -> "MizanConfig":
        return cls(
            location=LocationSettings(),
            prayers=PrayerSchedule.from_dict({}),
            prayer_settings=PrayerSettings(),
            prayer_defaults=PrayerDefaults.builtin(),
            congregation=CongregationConfig(),
            adjustments=UserAdjustments(),
            nawafil=NawafilPreferences(),
            nawafil_rules=dict(DEFAULT_RULES),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "location": {
                "city": self.location.city,
                "country": self.location.country,
                "latitude": self.location.latitude,
                "longitude": self.location.longitude,
                "timezone": self.location.timezone,
            },
            "prayer_settings": {
                "provider": self.prayer_settings.provider,
                "calculation_method": self.prayer_settings.calculation_method.value,
                "madhab": self.prayer_settings.madhab,
            },
            "prayers": self.prayers.to_dict(),
            "prayer_defaults": self.prayer_defaults.to_dict(),
            "congregation": {
                "enabled": self.congregation.enabled,
                "duration": self.congregation.duration_minutes,
                "buffer_before": self.congregation.buffer_before_minutes,
                "buffer_after": self.congregation.buffer_after_minutes,
                "offset_from_dhuhr": self.congregation.offset_from_dhuhr_minutes,
            },
            "adjustments": {
                "offsets": {prayer.value: value for prayer, value in self.adjustments.offsets.items()},
                "congregation_delays": {
                    prayer.value: value for prayer, value in self.adjustments.congregation_delays.items()
                },
            },
            "nawafil": {
                "enabled": list(self.nawafil.enabled),
                "rakaat": dict(self.nawafil.rakaat),
                "times": {rule_id: format_minutes(value) for rule_id, value in self.nawafil.times.items()},
            },
            "nawafil_rules": {rule_id: rule_to_dict(rule) for rule_id, rule in self.nawafil_rules.items()},
        }


class ConfigManager:
    """Simple TOML configuration loader."""

    def __init__(self, config_path: Path | None = None) -> None:
        self.config_path = config_path or (_default_config_root() / "config.toml")
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self._errors: list[str] = []

    def errors(self) -> list[str]:
        return list(self._errors)

    def load(self) -> MizanConfig:
        self._errors.clear()
        if not self.config_path.exists():
            config = MizanConfig.default()
            self._write(config)
            return config

        with self.config_path.open("rb") as handle:
            raw = tomllib.load(handle)

        config = MizanConfig.default()
        location_cfg = raw.get("location", {})

        def _float_or_none(value: float | str | None) -> float | None:
            if value in (None, "", "nan"):
                return None
            try:
                return float(value)
            except (TypeError, ValueError):
                self._errors.append(f"Invalid coordinate in config: {value!r}")
                return None

        config.location = LocationSettings(
            city=location_cfg.get("city", ""),
            country=location_cfg.get("country", ""),
            latitude=_float_or_none(location_cfg.get("latitude")),
            longitude=_float_or_none(location_cfg.get("longitude")),
            timezone=location_cfg.get("timezone") or None,
        )

        settings_cfg = raw.get("prayer_settings", {})
        method_raw = settings_cfg.get("calculation_method", CalculationMethod.MWL.value)
        method = CalculationMethod.parse(method_raw)
        if method.value != str(method_raw).strip().lower():
            logger.debug("Calculation method %r read as %s", method_raw, method.value)
        config.prayer_settings = PrayerSettings(
            provider=settings_cfg.get("provider", "pyislam"),
            calculation_method=method,
            madhab=settings_cfg.get("madhab", "Shafi"),
        )

        try:
            config.prayers = PrayerSchedule.from_dict(raw.get("prayers", {}))
        except Exception as exc:
            self._errors.append(f"Invalid prayer time in config: {exc}")

        if "prayer_defaults" in raw:
            try:
                config.prayer_defaults = PrayerDefaults.from_dict(raw["prayer_defaults"])
            except Exception as exc:
                self._errors.append(f"Invalid prayer_defaults in config: {exc}")

        try:
            config.congregation = CongregationConfig.from_dict(raw.get("congregation", {}))
        except Exception as exc:
            self._errors.append(f"Invalid congregation settings in config: {exc}")

        try:
            adjustments = UserAdjustments.from_dict(raw.get("adjustments", {}))
        except Exception as exc:
            self._errors.append(f"Invalid adjustments in config: {exc}")
        else:
            for prayer, value in adjustments.offsets.items():
                if abs(value) > MAX_MANUAL_OFFSET:
                    logger.debug("Manual offset %s for %s exceeds +/-%s", value, prayer.value, MAX_MANUAL_OFFSET)
            config.adjustments = adjustments

        try:
            config.nawafil = NawafilPreferences.from_dict(raw.get("nawafil", {}))
        except Exception as exc:
            self._errors.append(f"Invalid nawafil preferences in config: {exc}")

        for rule_id, values in raw.get("nawafil_rules", {}).items():
            try:
                config.nawafil_rules[rule_id] = parse_rule(rule_id, values)
            except Exception as exc:
                self._errors.append(f"Invalid nawafil rule '{rule_id}': {exc}")

        for message in self._errors:
            logger.warning(message)
        return config

    def _write(self, config: MizanConfig) -> None:
        data = config.to_dict()
        lines = ["[location]"]
        lines.append(f"city = \"{data['location']['city']}\"")
        lines.append(f"country = \"{data['location']['country']}\"")
        if data["location"]["latitude"] is not None:
            lines.append(f"latitude = {data['location']['latitude']}")
        if data["location"]["longitude"] is not None:
            lines.append(f"longitude = {data['location']['longitude']}")
        lines.append(f"timezone = \"{data['location']['timezone'] or ''}\"")
        lines.extend([
            "",
            "[prayer_settings]",
            f"provider = \"{data['prayer_settings']['provider']}\"",
            f"calculation_method = \"{data['prayer_settings']['calculation_method']}\"",
            f"madhab = \"{data['prayer_settings']['madhab']}\"",
            "",
            "[prayers]",
        ])
        for prayer, value in data["prayers"].items():
            lines.append(f"{prayer} = \"{value}\"")
        for prayer, values in data["prayer_defaults"].items():
            lines.extend(["", f"[prayer_defaults.{prayer}]"])
            lines.extend(f"{key} = {value}" for key, value in values.items())
        congregation = data["congregation"]
        lines.extend([
            "",
            "[congregation]",
            f"enabled = {str(congregation['enabled']).lower()}",
            f"duration = {congregation['duration']}",
            f"buffer_before = {congregation['buffer_before']}",
            f"buffer_after = {congregation['buffer_after']}",
            f"offset_from_dhuhr = {congregation['offset_from_dhuhr']}",
            "",
            "[adjustments.offsets]",
        ])
        lines.extend(f"{prayer} = {value}" for prayer, value in data["adjustments"]["offsets"].items())
        lines.extend(["", "[adjustments.congregation_delays]"])
        lines.extend(
            f"{prayer} = {value}" for prayer, value in data["adjustments"]["congregation_delays"].items()
        )
        enabled = ", ".join(f"\"{rule_id}\"" for rule_id in data["nawafil"]["enabled"])
        lines.extend(["", "[nawafil]", f"enabled = [{enabled}]", "", "[nawafil.rakaat]"])
        lines.extend(f"{rule_id} = {value}" for rule_id, value in data["nawafil"]["rakaat"].items())
        lines.extend(["", "[nawafil.times]"])
        lines.extend(f"{rule_id} = \"{value}\"" for rule_id, value in data["nawafil"]["times"].items())
        for rule_id, values in data["nawafil_rules"].items():
            lines.extend(["", f"[nawafil_rules.{rule_id}]"])
            for key, value in values.items():
                if isinstance(value, str):
                    lines.append(f"{key} = \"{value}\"")
                elif isinstance(value, dict):
                    table = ", ".join(f"{count} = {minutes}" for count, minutes in value.items())
                    lines.append(f"{key} = {{ {table} }}")
                else:
                    lines.append(f"{key} = {value}")
        self.config_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    def save(self, config: MizanConfig) -> None:
        self._write(config)

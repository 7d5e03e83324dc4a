from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
import logging
from typing import Mapping, Protocol
from zoneinfo import ZoneInfo

import httpx  # type: ignore[import]
from pyIslam.praytimes import Prayer as PyIslamPrayer, PrayerConf  # type: ignore[import]

from ..config import LocationSettings, MizanConfig, PrayerSchedule, PrayerSettings
from ..models import CalculationMethod, PrayerType
from ..timeutils import parse_hhmm

logger = logging.getLogger(__name__)

ALADHAN_API = "https://api.aladhan.com/v1/timings/{day}"

ALADHAN_METHODS = {
    CalculationMethod.KARACHI: 1,
    CalculationMethod.ISNA: 2,
    CalculationMethod.MWL: 3,
    CalculationMethod.UMM_AL_QURA: 4,
    CalculationMethod.EGYPTIAN: 5,
    CalculationMethod.SINGAPORE: 11,
    CalculationMethod.TURKEY: 13,
    CalculationMethod.DUBAI: 16,
}

PYISLAM_METHODS = {
    CalculationMethod.KARACHI: 1,
    CalculationMethod.MWL: 2,
    CalculationMethod.EGYPTIAN: 3,
    CalculationMethod.UMM_AL_QURA: 4,
    CalculationMethod.DUBAI: 4,
    CalculationMethod.TURKEY: 4,
    CalculationMethod.ISNA: 5,
    CalculationMethod.SINGAPORE: 7,
}

ALADHAN_KEYS = {
    PrayerType.FAJR: "Fajr",
    PrayerType.DHUHR: "Dhuhr",
    PrayerType.ASR: "Asr",
    PrayerType.MAGHRIB: "Maghrib",
    PrayerType.ISHA: "Isha",
}

CanonicalInstants = dict[PrayerType, datetime]


class PrayerProvider(Protocol):
    name: str

    def fetch(self, day: date, location: LocationSettings, settings: PrayerSettings) -> CanonicalInstants:
        ...


class AladhanProvider:
    name = "aladhan"

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout

    def fetch(self, day: date, location: LocationSettings, settings: PrayerSettings) -> CanonicalInstants:
        params = {
            "latitude": location.latitude or 0.0,
            "longitude": location.longitude or 0.0,
            "method": ALADHAN_METHODS.get(settings.calculation_method, 3),
            "school": 1 if settings.madhab.lower() == "hanafi" else 0,
        }
        url = ALADHAN_API.format(day=day.strftime("%d-%m-%Y"))
        response = httpx.get(url, params=params, timeout=self.timeout)
        response.raise_for_status()
        payload = response.json()
        timings = payload.get("data", {}).get("timings", {})
        instants: CanonicalInstants = {}
        for prayer, key in ALADHAN_KEYS.items():
            value = timings.get(key)
            if value:
                instants[prayer] = datetime.combine(day, parse_hhmm(_sanitize_time(value)))
        if not instants:
            raise ValueError("Unexpected response from Aladhan API")
        return instants


class PyIslamProvider:
    name = "pyislam"

    def fetch(self, day: date, location: LocationSettings, settings: PrayerSettings) -> CanonicalInstants:
        tz = _resolve_timezone(location.timezone)
        conf = PrayerConf(
            longitude=location.longitude or 0.0,
            latitude=location.latitude or 0.0,
            timezone=_offset_minutes(tz, day) / 60,
            angle_ref=PYISLAM_METHODS.get(settings.calculation_method, 2),
            asr_madhab=2 if settings.madhab.lower() == "hanafi" else 1,
            enable_summer_time=_is_dst(tz, day),
        )
        calculator = PyIslamPrayer(conf, datetime(day.year, day.month, day.day))
        return {
            PrayerType.FAJR: _combine(day, calculator.fajr_time()),
            PrayerType.DHUHR: _combine(day, calculator.dohr_time()),
            PrayerType.ASR: _combine(day, calculator.asr_time()),
            PrayerType.MAGHRIB: _combine(day, calculator.maghreb_time()),
            PrayerType.ISHA: _combine(day, calculator.ishaa_time()),
        }


class PrayerService:
    """Supply canonical prayer instants for a day from the configured provider."""

    def __init__(
        self,
        config: MizanConfig,
        providers: Mapping[str, PrayerProvider] | None = None,
    ) -> None:
        self.config = config
        if providers is None:
            pyislam_provider = PyIslamProvider()
            providers = {
                "praytimes": pyislam_provider,
                "pyislam": pyislam_provider,
                "aladhan": AladhanProvider(),
            }
        self.providers = dict(providers)

    def get_canonical_instants(self, day: date) -> CanonicalInstants:
        settings = self.config.prayer_settings
        provider = self.providers.get(settings.provider)
        if provider is None:
            logger.warning("Unknown prayer provider %r; using configured times", settings.provider)
            return static_instants(self.config.prayers, day)
        try:
            instants = provider.fetch(day, self.config.location, settings)
        except Exception as exc:
            logger.warning("Prayer provider %s failed for %s: %s", provider.name, day, exc)
            return static_instants(self.config.prayers, day)
        fallback = static_instants(self.config.prayers, day)
        missing = [prayer for prayer in PrayerType.ordered() if prayer not in instants]
        if missing:
            logger.debug(
                "Provider %s omitted %s; filling from configured times",
                provider.name,
                ", ".join(prayer.value for prayer in missing),
            )
        return {prayer: instants.get(prayer, fallback[prayer]) for prayer in PrayerType.ordered()}


def static_instants(schedule: PrayerSchedule, day: date) -> CanonicalInstants:
    return {prayer: datetime.combine(day, schedule.get(prayer)) for prayer in PrayerType.ordered()}


def _combine(day: date, value: time | datetime | str) -> datetime:
    if isinstance(value, datetime):
        value = value.time()
    if isinstance(value, str):
        value = parse_hhmm(_sanitize_time(value))
    return datetime.combine(day, value.replace(second=0, microsecond=0))


def _sanitize_time(value: str) -> str:
    value = value.strip()
    if " " in value:
        value = value.split(" ", 1)[0]
    if "+" in value:
        value = value.split("+", 1)[0]
    return value


def _resolve_timezone(tz_name: str | None) -> tzinfo:
    if tz_name:
        try:
            return ZoneInfo(tz_name)
        except Exception:  # pragma: no cover - fallback
            logger.debug("Unknown timezone %r; using the local zone", tz_name)
    return datetime.now().astimezone().tzinfo or timezone.utc


def _offset_minutes(tz: tzinfo, day: date) -> int:
    dt = datetime(day.year, day.month, day.day, tzinfo=tz)
    offset = dt.utcoffset() or timedelta()
    return int(offset.total_seconds() // 60)


def _is_dst(tz: tzinfo, day: date) -> bool:
    dt = datetime(day.year, day.month, day.day, tzinfo=tz)
    delta = dt.dst()
    return bool(delta and delta.total_seconds())

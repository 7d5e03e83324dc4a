from __future__ import annotations

from datetime import date, datetime
import unittest
from unittest.mock import patch

from mizan.config import MizanConfig, PrayerSchedule
from mizan.models import CalculationMethod, PrayerType
from mizan.services.prayer import AladhanProvider, PrayerService, static_instants

DAY = date(2024, 1, 1)


class DummyProvider:
    name = "aladhan"

    def __init__(self, instants) -> None:
        self.instants = instants
        self.calls = 0

    def fetch(self, day, location, settings):
        self.calls += 1
        return self.instants


class BrokenProvider:
    name = "aladhan"

    def fetch(self, day, location, settings):
        raise ConnectionError("no route to host")


class FakeResponse:
    def __init__(self, payload) -> None:
        self.payload = payload

    def raise_for_status(self) -> None:
        return None

    def json(self):
        return self.payload


def _base_config() -> MizanConfig:
    config = MizanConfig.default()
    config.prayers = PrayerSchedule.from_dict({
        "fajr": "05:00",
        "dhuhr": "12:30",
        "asr": "15:30",
        "maghrib": "18:00",
        "isha": "20:00",
    })
    config.prayer_settings.provider = "aladhan"
    return config


class PrayerServiceTests(unittest.TestCase):
    def test_provider_instants_are_returned(self) -> None:
        instants = {prayer: datetime(2024, 1, 1, 6 + index, 5) for index, prayer in enumerate(PrayerType.ordered())}
        provider = DummyProvider(instants)
        service = PrayerService(_base_config(), providers={"aladhan": provider})

        result = service.get_canonical_instants(DAY)

        self.assertEqual(result, instants)
        self.assertEqual(provider.calls, 1)

    def test_missing_prayers_filled_from_configured_times(self) -> None:
        provider = DummyProvider({PrayerType.FAJR: datetime(2024, 1, 1, 5, 17)})
        service = PrayerService(_base_config(), providers={"aladhan": provider})

        result = service.get_canonical_instants(DAY)

        self.assertEqual(result[PrayerType.FAJR], datetime(2024, 1, 1, 5, 17))
        self.assertEqual(result[PrayerType.ISHA], datetime(2024, 1, 1, 20, 0))
        self.assertEqual(list(result), list(PrayerType.ordered()))

    def test_provider_failure_falls_back(self) -> None:
        config = _base_config()
        service = PrayerService(config, providers={"aladhan": BrokenProvider()})

        with self.assertLogs("mizan.services.prayer", level="WARNING"):
            result = service.get_canonical_instants(DAY)

        self.assertEqual(result, static_instants(config.prayers, DAY))

    def test_unknown_provider_falls_back(self) -> None:
        config = _base_config()
        config.prayer_settings.provider = "carrier-pigeon"
        service = PrayerService(config, providers={})

        result = service.get_canonical_instants(DAY)

        self.assertEqual(result[PrayerType.DHUHR], datetime(2024, 1, 1, 12, 30))

    def test_aladhan_provider_parses_timings(self) -> None:
        config = _base_config()
        config.location.latitude = 30.0
        config.location.longitude = 31.0
        config.prayer_settings.calculation_method = CalculationMethod.EGYPTIAN
        payload = {
            "data": {
                "timings": {
                    "Fajr": "05:16 (EET)",
                    "Sunrise": "06:47",
                    "Dhuhr": "11:58",
                    "Asr": "14:51",
                    "Maghrib": "17:09",
                    "Isha": "18:30 (EET)",
                }
            }
        }
        with patch("mizan.services.prayer.httpx.get", return_value=FakeResponse(payload)) as mocked:
            result = AladhanProvider().fetch(DAY, config.location, config.prayer_settings)

        self.assertEqual(result[PrayerType.FAJR], datetime(2024, 1, 1, 5, 16))
        self.assertEqual(result[PrayerType.ISHA], datetime(2024, 1, 1, 18, 30))
        params = mocked.call_args.kwargs["params"]
        self.assertEqual(params["method"], 5)
        self.assertEqual(params["latitude"], 30.0)

    def test_aladhan_provider_rejects_empty_payload(self) -> None:
        config = _base_config()
        with patch("mizan.services.prayer.httpx.get", return_value=FakeResponse({"data": {}})):
            with self.assertRaises(ValueError):
                AladhanProvider().fetch(DAY, config.location, config.prayer_settings)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()

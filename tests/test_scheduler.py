from datetime import date, datetime
import unittest

from mizan.config import MizanConfig, PrayerSchedule
from mizan.models import PrayerType, Task, VoluntarySlot
from mizan.rescheduling import Accepted, Rejected
from mizan.scheduler import Scheduler
from mizan.services.prayer import PrayerService

THURSDAY = date(2025, 1, 2)
FRIDAY = date(2025, 1, 3)


class DummyPrayerService:
    def __init__(self, instants) -> None:
        self.instants = instants
        self.calls: list[date] = []

    def get_canonical_instants(self, day):
        self.calls.append(day)
        return self.instants


class FailingPrayerService:
    def get_canonical_instants(self, day):
        raise RuntimeError("offline")


class SchedulerTest(unittest.TestCase):
    def setUp(self) -> None:
        self.config = MizanConfig.default()
        self.config.prayers = PrayerSchedule.from_dict(
            {
                "fajr": "05:00",
                "dhuhr": "12:30",
                "asr": "15:30",
                "maghrib": "18:00",
                "isha": "19:30",
            }
        )
        self.config.nawafil.enabled = ["before_fajr", "after_dhuhr", "qiyam"]
        self.scheduler = Scheduler(self.config)

    def test_build_day_from_configured_times(self) -> None:
        tasks = [Task(datetime(2025, 1, 2, 12, 0), 45, title="Standup", task_id="standup")]
        schedule = self.scheduler.build_day(THURSDAY, tasks)
        self.assertEqual([slot.prayer for slot in schedule.prayers], list(PrayerType.ordered()))
        self.assertEqual(
            [slot.rule_id for slot in schedule.voluntary],
            ["before_fajr", "after_dhuhr", "qiyam"],
        )
        qiyam = schedule.voluntary[-1]
        self.assertEqual(qiyam.suggested_instant, datetime(2025, 1, 3, 1, 20))
        events = sum(len(item) for item in schedule.clusters)
        # five prayers, three nawafil, one task start and one task end
        self.assertEqual(events, 10)
        starts = [item.window.start for item in schedule.clusters]
        self.assertEqual(starts, sorted(starts))

    def test_prayer_service_is_preferred(self) -> None:
        instants = {
            prayer: datetime(2025, 1, 2, hour, 10)
            for prayer, hour in zip(PrayerType.ordered(), (5, 13, 16, 18, 20))
        }
        service = DummyPrayerService(instants)
        scheduler = Scheduler(self.config, prayer_service=service)
        schedule = scheduler.build_day(THURSDAY)
        self.assertEqual(service.calls, [THURSDAY])
        dhuhr = schedule.prayer(PrayerType.DHUHR)
        assert dhuhr is not None
        self.assertEqual(dhuhr.canonical_instant, datetime(2025, 1, 2, 13, 10))

    def test_prayer_service_with_provider_plugs_in(self) -> None:
        class FixedProvider:
            name = "pyislam"

            def fetch(self, day, location, settings):
                return {PrayerType.MAGHRIB: datetime(day.year, day.month, day.day, 17, 40)}

        service = PrayerService(self.config, providers={"pyislam": FixedProvider()})
        schedule = Scheduler(self.config, prayer_service=service).build_day(THURSDAY)
        maghrib = schedule.prayer(PrayerType.MAGHRIB)
        fajr = schedule.prayer(PrayerType.FAJR)
        assert maghrib is not None and fajr is not None
        self.assertEqual(maghrib.canonical_instant, datetime(2025, 1, 2, 17, 40))
        self.assertEqual(fajr.canonical_instant, datetime(2025, 1, 2, 5, 0))

    def test_failing_service_falls_back_to_configured_times(self) -> None:
        scheduler = Scheduler(self.config, prayer_service=FailingPrayerService())
        with self.assertLogs("mizan.scheduler", level="WARNING"):
            schedule = scheduler.build_day(THURSDAY)
        fajr = schedule.prayer(PrayerType.FAJR)
        assert fajr is not None
        self.assertEqual(fajr.canonical_instant, datetime(2025, 1, 2, 5, 0))

    def test_friday_uses_congregation(self) -> None:
        schedule = self.scheduler.build_day(FRIDAY)
        dhuhr = schedule.prayer(PrayerType.DHUHR)
        assert dhuhr is not None
        self.assertTrue(dhuhr.is_congregational_substitute)
        self.assertEqual(dhuhr.duration_minutes, self.config.congregation.duration_minutes)

    def test_previous_state_is_carried_forward(self) -> None:
        previous = [VoluntarySlot("before_fajr", THURSDAY, datetime(2025, 1, 2, 5, 2), 5, 2, is_completed=True)]
        schedule = self.scheduler.build_day(THURSDAY, previous_voluntary=previous)
        by_rule = {slot.rule_id: slot for slot in schedule.voluntary}
        self.assertTrue(by_rule["before_fajr"].is_completed)
        self.assertFalse(by_rule["qiyam"].is_completed)

    def test_manual_offsets_from_config(self) -> None:
        self.config.adjustments.offsets[PrayerType.ASR] = 50
        schedule = Scheduler(self.config).build_day(THURSDAY)
        asr = schedule.prayer(PrayerType.ASR)
        assert asr is not None
        self.assertEqual(asr.manual_offset_minutes, 30)

    def test_validate_move(self) -> None:
        schedule = self.scheduler.build_day(THURSDAY)
        task = Task(datetime(2025, 1, 2, 9, 0), 30)
        rejected = self.scheduler.validate_move(schedule, task, datetime(2025, 1, 2, 12, 20))
        self.assertIsInstance(rejected, Rejected)
        accepted = self.scheduler.validate_move(schedule, task, datetime(2025, 1, 2, 10, 7))
        self.assertEqual(accepted, Accepted(datetime(2025, 1, 2, 10, 0)))


if __name__ == "__main__":
    unittest.main()

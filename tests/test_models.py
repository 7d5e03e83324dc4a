from datetime import date, datetime, timedelta
import unittest

from mizan.models import (
    CalculationMethod,
    OverlapMetrics,
    PrayerSlot,
    PrayerType,
    ScheduleInputError,
    Task,
    TimeWindow,
    VoluntarySlot,
)


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 1, 1, hour, minute)


class TimeWindowTest(unittest.TestCase):
    def test_rejects_start_after_end(self) -> None:
        with self.assertRaises(ScheduleInputError):
            TimeWindow(_at(10), _at(9))
        with self.assertRaises(ValueError):
            TimeWindow.from_minutes(_at(10), -1)

    def test_zero_length_window_is_allowed(self) -> None:
        window = TimeWindow(_at(10), _at(10))
        self.assertEqual(window.duration, timedelta(0))

    def test_overlap_is_symmetric(self) -> None:
        windows = [
            TimeWindow(_at(9), _at(10)),
            TimeWindow(_at(9, 30), _at(11)),
            TimeWindow(_at(10), _at(10, 30)),
            TimeWindow(_at(12), _at(12)),
            TimeWindow(_at(11, 45), _at(12, 15)),
            TimeWindow(_at(12), _at(12)),
        ]
        for first in windows:
            for second in windows:
                self.assertEqual(first.overlaps(second), second.overlaps(first), (first, second))

    def test_touching_windows_do_not_overlap(self) -> None:
        self.assertFalse(TimeWindow(_at(9), _at(10)).overlaps(TimeWindow(_at(10), _at(11))))
        self.assertTrue(TimeWindow(_at(9), _at(10, 1)).overlaps(TimeWindow(_at(10), _at(11))))

    def test_overlaps_with_candidate_start_and_duration(self) -> None:
        prayer = TimeWindow(_at(12), _at(12, 30))
        self.assertTrue(prayer.overlaps(_at(11, 45), 20))
        self.assertFalse(prayer.overlaps(_at(11, 30), 30))
        self.assertFalse(prayer.overlaps(_at(12, 30), 15))
        self.assertTrue(prayer.overlaps(_at(12, 10), 0))

    def test_instant_at_window_start_overlaps(self) -> None:
        prayer = TimeWindow(_at(12), _at(12, 30))
        instant = TimeWindow(_at(12), _at(12))
        self.assertTrue(prayer.overlaps(_at(12), 0))
        self.assertTrue(prayer.overlaps(instant))
        self.assertTrue(instant.overlaps(prayer))
        self.assertFalse(prayer.overlaps(_at(12, 30), 0))
        self.assertFalse(TimeWindow(_at(12, 30), _at(12, 30)).overlaps(prayer))

    def test_intersection_and_shift(self) -> None:
        first = TimeWindow(_at(9), _at(10))
        self.assertEqual(first.intersection(TimeWindow(_at(9, 30), _at(11))), TimeWindow(_at(9, 30), _at(10)))
        self.assertIsNone(first.intersection(TimeWindow(_at(10), _at(11))))
        self.assertEqual(first.shifted(timedelta(hours=1)), TimeWindow(_at(10), _at(11)))
        self.assertTrue(first.contains(_at(10)))


class OverlapMetricsTest(unittest.TestCase):
    def test_ratio_is_relative_to_shorter_window(self) -> None:
        hour = TimeWindow(_at(10), _at(11))
        metrics = OverlapMetrics.between(hour, TimeWindow(_at(10, 30), _at(10, 45)))
        self.assertEqual(metrics.overlap, timedelta(minutes=15))
        self.assertAlmostEqual(metrics.ratio, 1.0)
        metrics = OverlapMetrics.between(hour, TimeWindow(_at(10, 30), _at(11, 30)))
        self.assertEqual(metrics.overlap, timedelta(minutes=30))
        self.assertAlmostEqual(metrics.ratio, 0.5)

    def test_disjoint_windows(self) -> None:
        metrics = OverlapMetrics.between(TimeWindow(_at(8), _at(9)), TimeWindow(_at(10), _at(11)))
        self.assertEqual(metrics.overlap, timedelta(0))
        self.assertEqual(metrics.ratio, 0.0)


class SlotModelTest(unittest.TestCase):
    def test_prayer_slot_derived_times(self) -> None:
        slot = PrayerSlot(
            prayer=PrayerType.DHUHR,
            day=date(2025, 1, 1),
            canonical_instant=_at(12, 30),
            manual_offset_minutes=5,
            duration_minutes=20,
            buffer_before_minutes=5,
            buffer_after_minutes=10,
            congregation_delay_minutes=10,
        )
        self.assertEqual(slot.adhan_instant, _at(12, 35))
        self.assertEqual(slot.effective_window, TimeWindow(_at(12, 30), _at(13, 5)))
        self.assertEqual(slot.prayer_end, _at(13, 5))
        self.assertEqual(slot.display_name, "Dhuhr")

    def test_voluntary_slot_state_helpers_return_copies(self) -> None:
        slot = VoluntarySlot("duha", date(2025, 1, 1), _at(6, 45), 10, 2)
        done = slot.mark_completed().dismiss()
        self.assertFalse(slot.is_completed)
        self.assertTrue(done.is_completed)
        self.assertTrue(done.is_dismissed)
        self.assertEqual(done.key, ("duha", date(2025, 1, 1)))
        self.assertTrue(slot.is_standalone)
        self.assertEqual(slot.window.end, _at(6, 55))

    def test_task_end_time(self) -> None:
        task = Task(start_time=_at(9), duration_minutes=45, title="Review")
        self.assertEqual(task.end_time, _at(9, 45))
        self.assertIsNone(Task(start_time=_at(9)).end_time)
        moved = task.rescheduled(_at(14))
        self.assertEqual(moved.task_id, task.task_id)
        self.assertEqual(moved.start_time, _at(14))

    def test_prayer_type_order_and_parse(self) -> None:
        self.assertEqual([prayer.display_order for prayer in PrayerType.ordered()], [0, 1, 2, 3, 4])
        self.assertIs(PrayerType.parse(" Duhr "), PrayerType.DHUHR)

    def test_calculation_method_parse(self) -> None:
        self.assertIs(CalculationMethod.parse("umm_al_qura"), CalculationMethod.UMM_AL_QURA)
        self.assertIs(CalculationMethod.parse("UmmAlQura"), CalculationMethod.UMM_AL_QURA)
        self.assertIs(CalculationMethod.parse("Diyanet"), CalculationMethod.TURKEY)
        self.assertIs(CalculationMethod.parse("unknown"), CalculationMethod.MWL)
        self.assertIs(CalculationMethod.parse(None), CalculationMethod.MWL)


if __name__ == "__main__":
    unittest.main()

import unittest

from gradewise.core.absences import AbsenceEvent, compute_stats


def _events(kind, count):
    return [AbsenceEvent(student_id="s1", subject_id="math", type=kind) for _ in range(count)]


class AbsenceAccumulatorTests(unittest.TestCase):
    def test_no_absences(self):
        stats = compute_stats([], 10)
        self.assertEqual(stats.percentage, 0)
        self.assertFalse(stats.exceeds_limit)
        self.assertFalse(stats.will_fail)

    def test_zero_sessions_returns_empty_stats(self):
        stats = compute_stats(_events("without_excuse", 5), 0)
        self.assertEqual(stats.total_absences, 0)
        self.assertEqual(stats.attendance_deduction, 0)
        self.assertFalse(stats.will_fail)
        self.assertFalse(compute_stats(_events("with_excuse", 1), None).will_fail)

    def test_over_twenty_percent_fails(self):
        stats = compute_stats(_events("without_excuse", 21), 100)
        self.assertEqual(stats.percentage, 21)
        self.assertTrue(stats.exceeds_limit)
        self.assertTrue(stats.will_fail)
        self.assertEqual(stats.attendance_deduction, 10.5)

    def test_exactly_twenty_percent_passes(self):
        stats = compute_stats(_events("with_excuse", 20), 100)
        self.assertEqual(stats.percentage, 20)
        self.assertFalse(stats.will_fail)

    def test_type_buckets_and_deduction(self):
        events = (
            _events("with_excuse", 2)
            + _events("without_excuse", 2)
            + _events("bereavement", 3)
            + _events("beyond_control", 1)
        )
        stats = compute_stats(events, 40)
        self.assertEqual(stats.total_absences, 8)
        self.assertEqual(stats.with_excuse, 6)
        self.assertEqual(stats.without_excuse, 2)
        self.assertEqual(stats.percentage, 20)
        # bereavement counts as an absence but is not deducted
        self.assertEqual(stats.attendance_deduction, 2 * 0.25 + 2 * 0.5 + 0.25)

    def test_accepts_plain_documents(self):
        stats = compute_stats([{"type": "without_excuse"}, {"type": "unknown"}], 3)
        self.assertEqual(stats.total_absences, 2)
        self.assertEqual(stats.without_excuse, 1)
        self.assertEqual(stats.percentage, 66.67)
        self.assertTrue(stats.will_fail)


if __name__ == "__main__":
    unittest.main()

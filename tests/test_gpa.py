import unittest

from gradewise.core.gpa import GOOD_STANDING, PROBATION, academic_standing, calculate_gpa


class GPATests(unittest.TestCase):
    def test_credit_weighted_gpa(self):
        results = [(3, 4.0), (4, 3.5), (2, 2.0)]
        self.assertAlmostEqual(calculate_gpa(results), 3.33, places=2)

    def test_grades_without_points_are_skipped(self):
        results = [(3, 3.0), (3, None)]
        self.assertEqual(calculate_gpa(results), 3.0)

    def test_no_graded_courses(self):
        self.assertEqual(calculate_gpa([]), 0.0)
        self.assertEqual(calculate_gpa([(3, None)]), 0.0)

    def test_rejects_non_positive_credits(self):
        with self.assertRaises(ValueError):
            calculate_gpa([(0, 3.0)])

    def test_standing(self):
        self.assertEqual(academic_standing(1.5, 1.5), GOOD_STANDING)
        self.assertEqual(academic_standing(1.49, 1.5), PROBATION)


if __name__ == "__main__":
    unittest.main()

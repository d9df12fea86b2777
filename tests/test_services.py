import unittest
from unittest import mock

from requests import RequestException

from gradewise.core.absences import AbsenceEvent
from gradewise.core.distribution import DEFAULT_DISTRIBUTION
from gradewise.core.errors import PersistenceError, ValidationError
from gradewise.core.grade_scale import ScaleVariant
from gradewise.core.penalties import PenaltyEvent
from gradewise.services.absence_service import AbsenceRegister
from gradewise.services.distribution_service import MarksDistributionManager, ProgramGradingRules
from gradewise.services.grading_service import GradingOrchestrator
from gradewise.services.notification_service import NotificationDispatcher
from gradewise.services.penalty_service import PenaltyLedger
from gradewise.services.sqlite_store import SqliteStore


MARKS = {
    "midTermExam": 80,
    "finalExam": 90,
    "homework": 100,
    "labsProjectResearch": 70,
    "quizzes": 60,
    "participation": 100,
    "attendance": 100,
}


class BrokenWriteStore(SqliteStore):
    def write_merged(self, *args, **kwargs):
        raise PersistenceError("permission-denied")


class BrokenReadStore(SqliteStore):
    def get_distribution(self, subject_id):
        raise PersistenceError("unavailable")


class BrokenNotificationStore(SqliteStore):
    def add_notification(self, data):
        raise PersistenceError("unavailable")


class DistributionManagerTests(unittest.TestCase):
    def setUp(self):
        self.store = SqliteStore(":memory:")
        self.manager = MarksDistributionManager(self.store)

    def tearDown(self):
        self.store.close()

    def test_default_when_absent(self):
        self.assertEqual(self.manager.get("math"), DEFAULT_DISTRIBUTION)

    def test_storage_failure(self):
        store = BrokenReadStore(":memory:")
        manager = MarksDistributionManager(store)
        with self.assertRaises(PersistenceError):
            manager.load("math")
        self.assertEqual(manager.get("math"), DEFAULT_DISTRIBUTION)
        store.close()

    def test_round_trip(self):
        weights = {
            "midTermExam": 25,
            "finalExam": 35,
            "homework": 10,
            "labsProjectResearch": 10,
            "quizzes": 5,
            "participation": 5,
            "attendance": 10,
        }
        self.manager.set("math", weights)
        self.assertEqual(self.manager.get("math"), weights)
        stored = self.store.get_distribution("math")
        self.assertEqual(stored["total"], 100)
        self.assertIn("updatedAt", stored)

    def test_invalid_total_leaves_state_unchanged(self):
        self.manager.set("math", DEFAULT_DISTRIBUTION)
        with self.assertRaises(ValidationError):
            self.manager.set("math", dict(DEFAULT_DISTRIBUTION, finalExam=45))
        self.assertEqual(self.manager.get("math"), DEFAULT_DISTRIBUTION)
        with self.assertRaises(ValidationError):
            self.manager.set("physics", {"finalExam": 50})
        self.assertIsNone(self.store.get_distribution("physics"))

    def test_nested_legacy_document(self):
        self.store.set_distribution("bio", {"distribution": dict(DEFAULT_DISTRIBUTION, finalExam=30, homework=15)})
        self.assertEqual(self.manager.get("bio")["homework"], 15)

    def test_stored_weights_not_totalling_100_are_rejected(self):
        self.store.set_distribution("bio", dict(DEFAULT_DISTRIBUTION, finalExam=20))
        with self.assertRaises(ValidationError):
            self.manager.load("bio")
        self.assertEqual(self.manager.get("bio"), DEFAULT_DISTRIBUTION)

        self.store.set_distribution("chem", {"distribution": {"finalExam": 60}})
        with self.assertRaises(ValidationError):
            self.manager.load("chem")


class ProgramGradingRulesTests(unittest.TestCase):
    def setUp(self):
        self.store = SqliteStore(":memory:")
        self.rules = ProgramGradingRules(self.store)

    def tearDown(self):
        self.store.close()

    def test_defaults(self):
        data = self.rules.get("cs")
        self.assertTrue(data["useDefault"])
        self.assertEqual(data["gradingScale"][0]["grade"], "A")
        self.assertEqual(data["retakeGradingScale"][0]["grade"], "B+")

    def test_custom_scale(self):
        self.rules.set(
            "cs",
            [
                {"grade": "P", "minScore": 50, "maxScore": 100, "points": 1.0},
                {"grade": "F", "minScore": 0, "maxScore": 49, "points": 0.0},
            ],
            [{"grade": "P", "minScore": 60, "maxScore": 100, "points": 1.0}],
        )
        data = self.rules.get("cs")
        self.assertFalse(data["useDefault"])
        scale = self.rules.scale_for("cs", ScaleVariant.RETAKE)
        self.assertEqual([rule.grade for rule in scale], ["P"])

    def test_invalid_scale_rejected(self):
        with self.assertRaises(ValidationError):
            self.rules.set("cs", [{"grade": "A", "minScore": 90}], [])
        self.assertIsNone(self.store.get_program_rules("cs"))


class GradingOrchestratorTests(unittest.TestCase):
    def setUp(self):
        self.store = SqliteStore(":memory:")
        self.notifier = NotificationDispatcher(self.store)
        self.orchestrator = GradingOrchestrator(self.store, notifier=self.notifier)

    def tearDown(self):
        self.store.close()

    def test_submit_scenario(self):
        result = self.orchestrator.submit_marks("s1", "math", "c1", MARKS, "t1")
        self.assertEqual(result.total_score, 87.0)
        self.assertEqual((result.grade, result.points), ("B+", 3.5))
        self.assertFalse(result.is_update)

        enrollment = self.store.read_for_merge("s1", "c1")
        mark = enrollment["marks"]["math"]
        self.assertEqual(mark["totalScore"], 87.0)
        self.assertEqual(mark["grade"], "B+")
        self.assertEqual(mark["instructorId"], "t1")
        self.assertEqual(enrollment["userId"], "s1")
        self.assertEqual(enrollment["role"], "student")

    def test_retake_enrollment_uses_retake_scale(self):
        self.store.write_merged("s1", "c1", "history", {"grade": "C"}, {"isRetake": True})
        perfect = {name: 100 for name in MARKS}
        result = self.orchestrator.submit_marks("s1", "math", "c1", perfect, "t1")
        self.assertTrue(result.is_retake)
        self.assertEqual((result.grade, result.points), ("B+", 3.5))

    def test_regrade_merges_single_subject(self):
        first = self.orchestrator.submit_marks("s1", "math", "c1", MARKS, "t1")
        self.orchestrator.submit_marks("s1", "physics", "c1", {"finalExam": 100}, "t2")
        created_at = self.store.read_for_merge("s1", "c1")["marks"]["math"]["createdAt"]

        again = self.orchestrator.submit_marks("s1", "math", "c1", dict(MARKS, finalExam=100), "t1")
        self.assertFalse(first.is_update)
        self.assertTrue(again.is_update)
        self.assertEqual(again.total_score, 91.0)

        marks = self.store.read_for_merge("s1", "c1")["marks"]
        self.assertEqual(set(marks), {"math", "physics"})
        self.assertEqual(marks["physics"]["instructorId"], "t2")
        self.assertEqual(marks["math"]["grade"], "A")
        self.assertEqual(marks["math"]["createdAt"], created_at)

    def test_uses_subject_distribution(self):
        MarksDistributionManager(self.store).set(
            "art",
            {"midTermExam": 0, "finalExam": 100, "homework": 0, "labsProjectResearch": 0,
             "quizzes": 0, "participation": 0, "attendance": 0},
        )
        result = self.orchestrator.submit_marks("s1", "art", "c1", {"finalExam": 64, "midTermExam": 100}, "t1")
        self.assertEqual((result.total_score, result.grade), (64.0, "D"))

    def test_missing_identifiers_are_rejected_before_persistence(self):
        for args in (("", "math", "c1"), ("s1", "", "c1"), ("s1", "math", None)):
            with self.assertRaises(ValidationError):
                self.orchestrator.submit_marks(*args, MARKS, "t1")
        self.assertIsNone(self.store.read_for_merge("s1", "c1"))

    def test_persistence_failure_is_surfaced(self):
        store = BrokenWriteStore(":memory:")
        with self.assertRaises(PersistenceError):
            GradingOrchestrator(store).submit_marks("s1", "math", "c1", MARKS, "t1")
        self.assertIsNone(store.read_for_merge("s1", "c1"))
        store.close()

    def test_distribution_read_failure_aborts_submission(self):
        store = BrokenReadStore(":memory:")
        with self.assertRaises(PersistenceError):
            GradingOrchestrator(store).submit_marks("s1", "art", "c1", {"finalExam": 100}, "t1")
        self.assertIsNone(store.read_for_merge("s1", "c1"))
        store.close()

    def test_invalid_stored_distribution_aborts_submission(self):
        self.store.set_distribution("art", {"finalExam": 100, "midTermExam": 20})
        with self.assertRaises(ValidationError):
            self.orchestrator.submit_marks("s1", "art", "c1", {"finalExam": 100}, "t1")
        self.assertIsNone(self.store.read_for_merge("s1", "c1"))

    def test_absence_limit_overrides_grade(self):
        register = AbsenceRegister(self.store)
        for _ in range(3):
            register.record(AbsenceEvent(student_id="s1", subject_id="math", type="without_excuse"))

        passing = self.orchestrator.submit_marks("s1", "math", "c1", MARKS, "t1", total_sessions=20)
        self.assertEqual(passing.grade, "B+")
        self.assertFalse(passing.auto_fail)

        failing = self.orchestrator.submit_marks("s1", "math", "c1", MARKS, "t1", total_sessions=10)
        self.assertTrue(failing.auto_fail)
        self.assertEqual((failing.grade, failing.points), ("FB", 0.0))
        self.assertEqual(failing.total_score, 87.0)
        self.assertEqual(failing.absence_stats.percentage, 30)
        self.assertEqual(self.store.read_for_merge("s1", "c1")["marks"]["math"]["grade"], "FB")

    def test_penalties_do_not_change_grades(self):
        PenaltyLedger(self.store).record(PenaltyEvent(student_id="s1", type="forgery", subject_id="math"))
        result = self.orchestrator.submit_marks("s1", "math", "c1", MARKS, "t1")
        self.assertEqual((result.total_score, result.grade), (87.0, "B+"))

    def test_notification_written(self):
        self.orchestrator.submit_marks("s1", "math", "c1", MARKS, "t1", notify=True)
        self.orchestrator.submit_marks("s1", "math", "c1", MARKS, "t1", notify=True)
        notes = self.store.list_notifications("s1")
        self.assertEqual([n["title"] for n in notes], ["Marks Updated", "Marks Entered"])
        self.assertEqual(notes[0]["type"], "marks")
        self.assertIn("Grade: B+ (87.00%)", notes[0]["message"])

    def test_notification_failure_does_not_block(self):
        store = BrokenNotificationStore(":memory:")
        orchestrator = GradingOrchestrator(store, notifier=NotificationDispatcher(store))
        with self.assertLogs("gradewise.services.notification_service", level="WARNING"):
            result = orchestrator.submit_marks("s1", "math", "c1", MARKS, "t1", notify=True)
        self.assertEqual(result.grade, "B+")
        self.assertIn("math", store.read_for_merge("s1", "c1")["marks"])
        store.close()

    def test_get_student_marks_filters(self):
        self.orchestrator.submit_marks("s1", "math", "c1", MARKS, "t1", semester="fall")
        self.orchestrator.submit_marks("s1", "physics", "c1", MARKS, "t1", semester="spring")

        rows = self.orchestrator.get_student_marks("s1", "c1")
        self.assertEqual([row["subjectId"] for row in rows], ["physics", "math"])
        self.assertEqual(len(self.orchestrator.get_student_marks("s1", "c1", semester="fall")), 1)
        self.assertEqual(len(self.orchestrator.get_student_marks("s1", "c1", subject_id="math")), 1)
        self.assertEqual(self.orchestrator.get_student_marks("s2", "c1"), [])

    def test_student_gpa(self):
        self.orchestrator.submit_marks("s1", "math", "c1", {name: 100 for name in MARKS}, "t1")
        self.orchestrator.submit_marks("s1", "physics", "c1", {}, "t1")

        summary = self.orchestrator.student_gpa("s1", "c1", 1.5, credits={"math": 3, "physics": 1})
        self.assertEqual(summary.gpa, 3.0)
        self.assertEqual(summary.standing, "good")
        self.assertEqual(self.orchestrator.student_gpa("s1", "c1", 2.5).standing, "probation")


class PenaltyLedgerTests(unittest.TestCase):
    def setUp(self):
        self.store = SqliteStore(":memory:")
        self.ledger = PenaltyLedger(self.store, NotificationDispatcher(self.store))

    def tearDown(self):
        self.store.close()

    def test_record_uses_catalog_points(self):
        stored = self.ledger.record(PenaltyEvent(student_id="s1", type="cheating", points=99))
        self.assertEqual(stored.points, 10)
        self.assertIsNotNone(stored.id)
        self.assertIsNotNone(stored.created_at)

    def test_unknown_type_and_severity(self):
        with self.assertRaises(ValidationError):
            self.ledger.record(PenaltyEvent(student_id="s1", type="jaywalking"))
        with self.assertRaises(ValidationError):
            self.ledger.record(PenaltyEvent(student_id="s1", type="late", severity="critical"))
        with self.assertRaises(ValidationError):
            self.ledger.record(PenaltyEvent(student_id="", type="late"))
        self.assertEqual(self.ledger.list(), [])

    def test_list_newest_first_and_totals(self):
        self.ledger.record(PenaltyEvent(student_id="s1", type="late", subject_id="math"))
        self.ledger.record(PenaltyEvent(student_id="s1", type="forgery"))
        self.ledger.record(PenaltyEvent(student_id="s2", type="cheating", subject_id="math"))

        self.assertEqual([e.type for e in self.ledger.list("s1")], ["forgery", "late"])
        self.assertEqual([e.student_id for e in self.ledger.list(subject_id="math")], ["s2", "s1"])
        self.assertEqual(self.ledger.total_points("s1"), 21)
        self.assertEqual(self.ledger.total_points("s1", "math"), 1)

    def test_notification(self):
        self.ledger.record(PenaltyEvent(student_id="s1", type="late", subject_id="math"), notify=True)
        notes = self.store.list_notifications("s1")
        self.assertEqual(notes[0]["title"], "Academic Penalty Recorded")
        self.assertEqual(notes[0]["message"], "A penalty has been recorded: Late for math")


class AbsenceRegisterTests(unittest.TestCase):
    def setUp(self):
        self.store = SqliteStore(":memory:")
        self.register = AbsenceRegister(self.store)

    def tearDown(self):
        self.store.close()

    def test_record_and_list(self):
        self.register.record(AbsenceEvent("s1", "math", "with_excuse", date="2026-09-01", semester="fall"))
        self.register.record(AbsenceEvent("s1", "math", "bereavement", date="2026-09-03", semester="fall"))
        self.register.record(AbsenceEvent("s1", "physics", "without_excuse", date="2026-09-02"))

        math = self.register.list("s1", "math")
        self.assertEqual([e.date for e in math], ["2026-09-03", "2026-09-01"])
        self.assertEqual(len(self.register.list("s1")), 3)
        self.assertEqual(len(self.register.list(semester="fall")), 2)

    def test_unknown_type_rejected(self):
        with self.assertRaises(ValidationError):
            self.register.record(AbsenceEvent("s1", "math", "holiday"))
        with self.assertRaises(ValidationError):
            self.register.record(AbsenceEvent("s1", "", "with_excuse"))

    def test_standing(self):
        self.register.record(AbsenceEvent("s1", "math", "without_excuse"))
        stats = self.register.standing("s1", "math", 4)
        self.assertEqual(stats.percentage, 25)
        self.assertTrue(stats.will_fail)
        self.assertFalse(self.register.standing("s1", "math", 0).will_fail)


class NotificationDispatcherTests(unittest.TestCase):
    def setUp(self):
        self.store = SqliteStore(":memory:")

    def tearDown(self):
        self.store.close()

    def test_email_skipped_without_endpoint(self):
        dispatcher = NotificationDispatcher(self.store)
        self.assertFalse(dispatcher.send_email("a@example.com", "marksEntered", {}))

    @mock.patch("gradewise.services.notification_service.requests.post")
    def test_email_posts_to_callable(self, post):
        post.return_value = mock.Mock(status_code=200)
        dispatcher = NotificationDispatcher(self.store, "https://functions.example.com/sendEmail/")
        self.assertTrue(dispatcher.send_email("a@example.com", "marksEntered", {"grade": "A"}))

        url = post.call_args.args[0]
        body = post.call_args.kwargs["json"]
        self.assertEqual(url, "https://functions.example.com/sendEmail")
        self.assertEqual(body["data"]["template"], "marksEntered")
        self.assertEqual(body["data"]["to"], "a@example.com")

    @mock.patch("gradewise.services.notification_service.requests.post")
    def test_email_failures_are_logged(self, post):
        post.side_effect = RequestException("timeout")
        dispatcher = NotificationDispatcher(self.store, "https://functions.example.com/sendEmail")
        with self.assertLogs("gradewise.services.notification_service", level="WARNING"):
            self.assertFalse(dispatcher.send_email("a@example.com", "marksEntered", {}))


if __name__ == "__main__":
    unittest.main()

import unittest
import datetime

import pandas as pd

from constraint_engine import detect_constraint_conflict
from leveling_engine import suggest_resource_leveling, diagnose_task
from models import ProjectSnapshot

D = datetime.date
MON = D(2024, 1, 1)


def make_resource(**overrides):
    resource = {
        "id": 1,
        "name": "Alice",
        "working_days": ["monday", "tuesday", "wednesday", "thursday", "friday"],
        "calendar_exceptions": [],
        "max_hours_per_day": 8,
        "max_hours_per_week": 40,
    }
    resource.update(overrides)
    return resource


def make_assignment(resource, allocation=100):
    return {"id": resource["id"], "task_id": 1, "resource_id": resource["id"],
            "allocation": allocation, "effort_hours": None, "resource": resource}


class TestConstraintConflict(unittest.TestCase):

    def test_finish_constraint_violated(self):
        task = {"id": 1, "constraint_type": "mfo", "constraint_date": "2024-01-05"}
        res = detect_constraint_conflict(task, D(2024, 1, 8))

        self.assertTrue(res["has_conflict"])
        self.assertEqual(res["conflict_days"], 3)
        self.assertEqual(res["constraint_type"], "mfo")
        self.assertEqual(res["constraint_date"], D(2024, 1, 5))
        self.assertEqual(
            res["message"],
            "Computed finish date (2024-01-08) is 3 days after constraint date (2024-01-05)"
        )

    def test_finish_constraint_met(self):
        task = {"id": 1, "constraint_type": "fnlt", "constraint_date": D(2024, 1, 10)}
        res = detect_constraint_conflict(task, D(2024, 1, 10))
        self.assertFalse(res["has_conflict"])
        self.assertIsNone(res["conflict_days"])
        self.assertEqual(res["message"], "")

    def test_start_constraint_uses_task_start(self):
        task = {"id": 1, "constraint_type": "snlt", "constraint_date": "2024-01-08", "start_date": "2024-01-10"}
        res = detect_constraint_conflict(task, D(2024, 1, 20))
        self.assertTrue(res["has_conflict"])
        self.assertEqual(res["conflict_days"], 2)
        self.assertTrue(res["message"].startswith("Computed start date (2024-01-10)"))

    def test_soft_constraints_never_conflict(self):
        for ctype in ("asap", "alap", "snet", "fnet", None):
            task = {"id": 1, "constraint_type": ctype, "constraint_date": "2024-01-01"}
            self.assertFalse(detect_constraint_conflict(task, D(2024, 3, 1))["has_conflict"], ctype)

    def test_missing_dates(self):
        task = {"id": 1, "constraint_type": "mfo", "constraint_date": None}
        self.assertFalse(detect_constraint_conflict(task, D(2024, 3, 1))["has_conflict"])

        task = {"id": 1, "constraint_type": "mfo", "constraint_date": "2024-01-01"}
        self.assertFalse(detect_constraint_conflict(task, None)["has_conflict"])

    def test_unparseable_inputs_are_not_conflicts(self):
        task = {"id": 1, "constraint_type": "mfo", "constraint_date": "not-a-date"}
        res = detect_constraint_conflict(task, D(2024, 3, 1))
        self.assertFalse(res["has_conflict"])
        self.assertIsNone(res["constraint_date"])

        task = {"id": 1, "constraint_type": "whenever", "constraint_date": "2024-01-01"}
        res = detect_constraint_conflict(task, D(2024, 3, 1))
        self.assertFalse(res["has_conflict"])
        self.assertEqual(res["constraint_type"], "asap")


class TestLeveling(unittest.TestCase):

    def setUp(self):
        self.task = {"id": 1, "estimated_hours": 80, "progress": 0, "start_date": MON, "work_mode": "parallel"}

    def test_options_for_single_resource(self):
        suggestions = suggest_resource_leveling(
            self.task, [make_assignment(make_resource())], 5, D(2024, 1, 10), "mfo", today=MON
        )
        by_option = {s["option"]: s for s in suggestions}
        self.assertEqual(set(by_option), {"increase_allocation_1", "add_duplicate_resource", "increase_hours_1"})

        alloc = by_option["increase_allocation_1"]
        self.assertEqual(alloc["feasibility"], "high")
        self.assertEqual(alloc["changes"][0]["new_value"], 150)
        # 12h/day but still capped at 40h a week
        self.assertEqual(alloc["preview_duration"], 9)

        hours = by_option["increase_hours_1"]
        self.assertEqual(hours["feasibility"], "high")
        self.assertEqual(hours["changes"][0]["new_value"], 10)
        self.assertEqual(hours["preview_duration"], 9)

        dup = by_option["add_duplicate_resource"]
        self.assertEqual(dup["feasibility"], "medium")
        self.assertEqual(dup["preview_duration"], 5)
        self.assertEqual(dup["preview_end_date"], D(2024, 1, 8))
        self.assertEqual(dup["changes"][0]["new_value"], 2)

        # high before medium
        self.assertEqual(suggestions[-1]["option"], "add_duplicate_resource")

    def test_allocation_capped(self):
        suggestions = suggest_resource_leveling(
            self.task, [make_assignment(make_resource())], 10, D(2024, 1, 10), "mfo", today=MON
        )
        alloc = next(s for s in suggestions if s["option"] == "increase_allocation_1")
        self.assertEqual(alloc["changes"][0]["new_value"], 200)
        self.assertEqual(alloc["feasibility"], "low")
        self.assertEqual(suggestions[-1]["option"], "increase_allocation_1")

    def test_no_hours_option_at_cap(self):
        suggestions = suggest_resource_leveling(
            self.task, [make_assignment(make_resource(max_hours_per_day=12))], 5, D(2024, 1, 10), "mfo", today=MON
        )
        self.assertNotIn("increase_hours_1", [s["option"] for s in suggestions])

    def test_no_assignments(self):
        suggestions = suggest_resource_leveling(self.task, [], 5, D(2024, 1, 10), "mfo", today=MON)
        self.assertEqual(len(suggestions), 1)
        self.assertEqual(suggestions[0]["option"], "add_resources")
        self.assertEqual(suggestions[0]["changes"], [])

    def test_sorted_by_feasibility_then_duration(self):
        assignments = [
            make_assignment(make_resource(id=1), allocation=100),
            make_assignment(make_resource(id=2, name="Bob"), allocation=100),
        ]
        suggestions = suggest_resource_leveling(self.task, assignments, 3, D(2024, 1, 10), "mfo", today=MON)
        order = {"high": 0, "medium": 1, "low": 2}
        keys = [(order[s["feasibility"]], s["preview_duration"]) for s in suggestions]
        self.assertEqual(keys, sorted(keys))


class TestDiagnoseTask(unittest.TestCase):

    def setUp(self):
        self.snapshot = ProjectSnapshot(
            project_id=1,
            tasks=pd.DataFrame([
                {"id": 1, "name": "Pour", "estimated_hours": 80, "progress": 0, "start_date": "2024-01-01",
                 "constraint_type": "mfo", "constraint_date": "2024-01-03", "work_mode": "parallel"},
                {"id": 2, "name": "Cure", "estimated_hours": 8, "progress": 0, "start_date": "2024-01-01",
                 "constraint_type": "asap", "constraint_date": None, "work_mode": "parallel"},
            ]),
            resources=pd.DataFrame([
                {"id": 1, "project_id": 1, "name": "Crew", "working_days": "monday;tuesday;wednesday;thursday;friday",
                 "calendar_exceptions": None, "max_hours_per_day": 8, "max_hours_per_week": 40},
            ]),
            assignments=pd.DataFrame([
                {"id": 1, "task_id": 1, "resource_id": 1, "allocation": 100, "effort_hours": None},
            ]),
        )

    def test_conflicting_task(self):
        res = diagnose_task(self.snapshot, 1, today=MON)
        self.assertEqual(res["computed_duration"], 10)
        self.assertEqual(res["computed_end_date"], D(2024, 1, 15))
        self.assertTrue(res["conflict"]["has_conflict"])
        self.assertEqual(res["conflict"]["conflict_days"], 12)
        self.assertTrue(res["suggestions"])

    def test_unconstrained_task(self):
        res = diagnose_task(self.snapshot, 2, today=MON)
        self.assertEqual(res["computed_duration"], 1)
        self.assertFalse(res["conflict"]["has_conflict"])
        self.assertEqual(res["suggestions"], [])

    def test_unknown_task(self):
        with self.assertRaises(KeyError):
            diagnose_task(self.snapshot, 42)


if __name__ == '__main__':
    unittest.main()

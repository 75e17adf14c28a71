import unittest

from timetable.config import SolverConfig
from timetable.data_loader import load_school
from timetable.model import (
    ARRIVAL,
    BREAK,
    EVENT,
    FREE,
    LESSON,
    LUNCH,
    Constraints,
    DoublePeriodRule,
    SpecialEvent,
    SyncGroup,
)
from timetable.scheduler import TimetableScheduler

from school_fixtures import (
    SAMPLE_DATA,
    assert_invariants,
    lessons,
    make_periods,
    make_school,
    per_day,
    run,
)


def strict_art(count, **kwargs):
    school = make_school({"upperPrimary": {"Art": count}}, {"4A": {"Art": "Kamau"}}, **kwargs)
    constraints = Constraints(double_period_rules=[DoublePeriodRule("Art", ("upperPrimary",), True)])
    return school, constraints


class ScenarioTests(unittest.TestCase):
    def test_generic_subject_respects_daily_cap(self):
        school = make_school({"lowerPrimary": {"Math": 5}}, {"1A": {"Math": "Njeri"}})
        result = run(school)
        self.assertTrue(result.complete)
        self.assertEqual(len(lessons(result, "1A", "Math")), 5)
        for pids in per_day(result, "1A", "Math").values():
            self.assertLessEqual(len(pids), 2)
        assert_invariants(self, result)

    def test_strict_double_places_consecutive_pairs(self):
        school, constraints = strict_art(4)
        result = run(school, constraints)
        self.assertTrue(result.complete)
        days = per_day(result, "4A", "Art")
        self.assertEqual(len(days), 2)
        for pids in days.values():
            self.assertEqual(len(pids), 2)
            self.assertEqual(pids[1] - pids[0], 1)
        self.assertEqual(result.split_doubles, {})
        assert_invariants(self, result)

    def test_strict_double_without_pairs_is_reported(self):
        school, constraints = strict_art(4, lesson_slots=(1, 3, 5))
        result = run(school, constraints, strict_double_singles_fallback=False)
        self.assertEqual(lessons(result, "4A", "Art"), [])
        self.assertEqual(len(result.unresolved), 1)
        item = result.unresolved[0]
        self.assertEqual((item.class_name, item.subject, item.remaining, item.phase), ("4A", "Art", 4, "strict_double"))
        self.assertIn("No slot for double period", item.reason)
        assert_invariants(self, result)

    def test_strict_double_falls_back_to_singles(self):
        school, constraints = strict_art(4, lesson_slots=(1, 3, 5))
        result = run(school, constraints)
        self.assertTrue(result.complete)
        self.assertEqual(result.split_doubles, {("4A", "Art"): 2})
        self.assertEqual(sorted(len(p) for p in per_day(result, "4A", "Art").values()), [2, 2])
        assert_invariants(self, result)

    def test_synchronized_group_shares_slots(self):
        school = make_school(
            {"lowerSecondary": {"P.E.": 2, "Math": 4}},
            {"7A": {"P.E.": "Otieno", "Math": "Barasa"}, "7B": {"P.E.": "Otieno", "Math": "Were"}},
        )
        constraints = Constraints(sync_groups=[SyncGroup("P.E.", ("7A", "7B"))])
        result = run(school, constraints)
        self.assertTrue(result.complete)
        slots_a = [(d, p) for d, p, _ in lessons(result, "7A", "P.E.")]
        slots_b = [(d, p) for d, p, _ in lessons(result, "7B", "P.E.")]
        self.assertEqual(len(slots_a), 2)
        self.assertEqual(slots_a, slots_b)
        self.assertTrue(all(cell.group == "7A+7B" for _, _, cell in lessons(result, "7A", "P.E.")))
        load = result.teacher_loads["Otieno"]
        self.assertEqual(load.assigned, 2)
        self.assertEqual(load.required, 2)
        self.assertEqual(sum(load.daily.values()), 2)
        assert_invariants(self, result)

    def test_exclusive_resource_never_shared(self):
        school = make_school(
            {"lowerPrimary": {"ICT": 2, "Math": 3}},
            {"1A": {"ICT": "Wanjiru", "Math": "Njeri"}, "2A": {"ICT": "Mutua", "Math": "Kariuki"}},
        )
        result = run(school, Constraints(exclusive_resources={"ICT": "ICT"}))
        self.assertTrue(result.complete)
        slots_a = {(d, p) for d, p, _ in lessons(result, "1A", "ICT")}
        slots_b = {(d, p) for d, p, _ in lessons(result, "2A", "ICT")}
        self.assertEqual(slots_a & slots_b, set())
        self.assertEqual(result.validation.resource_clashes, [])
        assert_invariants(self, result)

    def test_exclusive_resource_shortfall_is_flagged(self):
        school = make_school(
            {"lowerPrimary": {"ICT": 2}},
            {"1A": {"ICT": "Wanjiru"}, "2A": {"ICT": "Mutua"}},
            lesson_slots=(1, 2),
            days=["Mon"],
        )
        result = run(school, Constraints(exclusive_resources={"ICT": "ICT"}))
        self.assertEqual(len(lessons(result, "1A", "ICT")), 2)
        self.assertEqual(len(result.unresolved), 1)
        item = result.unresolved[0]
        self.assertEqual((item.class_name, item.remaining, item.phase), ("2A", 2, "exclusive"))
        self.assertIn("ICT resource booked by 1A", item.reason)
        assert_invariants(self, result)


class PolicyTests(unittest.TestCase):
    def test_odd_strict_double_with_singles_fallback(self):
        school, constraints = strict_art(3)
        result = run(school, constraints)
        self.assertTrue(result.complete)
        self.assertEqual(sorted(len(p) for p in per_day(result, "4A", "Art").values()), [1, 2])
        assert_invariants(self, result)

    def test_odd_strict_double_without_fallback(self):
        school, constraints = strict_art(3)
        result = run(school, constraints, strict_double_singles_fallback=False)
        self.assertEqual(len(lessons(result, "4A", "Art")), 2)
        self.assertEqual(len(result.unresolved), 1)
        self.assertEqual(result.unresolved[0].remaining, 1)
        self.assertEqual(result.unresolved[0].reason, "Odd period count for strict double subject")
        self.assertTrue(result.validation.ok)
        self.assertEqual(len(result.validation.shortfalls), 1)
        assert_invariants(self, result)

    def test_mixed_structure_counts_split_double_against_doubles(self):
        school = make_school({"upperPrimary": {"Science": 4}}, {"4A": {"Science": "Mwangi"}}, lesson_slots=(1, 3, 5))
        rule = DoublePeriodRule("Science", ("upperPrimary",), "mixed", doubles=1, singles=2)
        result = run(school, Constraints(double_period_rules=[rule]))
        self.assertTrue(result.complete)
        self.assertEqual(result.split_doubles, {("4A", "Science"): 1})
        self.assertEqual(len(lessons(result, "4A", "Science")), 4)
        assert_invariants(self, result)

    def test_mixed_structure_overflow_as_singles(self):
        school = make_school({"upperPrimary": {"Science": 5}}, {"4A": {"Science": "Mwangi"}})
        rule = DoublePeriodRule("Science", ("upperPrimary",), "mixed", doubles=1, singles=2)
        result = run(school, Constraints(double_period_rules=[rule]))
        self.assertTrue(result.complete)
        self.assertEqual(len(lessons(result, "4A", "Science")), 5)
        self.assertEqual(result.split_doubles, {})
        assert_invariants(self, result)

    def test_preferred_double_accepts_singles(self):
        school = make_school({"lowerPrimary": {"P.E.": 2}}, {"1A": {"P.E.": "Otieno"}}, lesson_slots=(1, 3, 5))
        rule = DoublePeriodRule("P.E.", ("lowerPrimary",), False)
        result = run(school, Constraints(double_period_rules=[rule]), strict_double_singles_fallback=False)
        self.assertTrue(result.complete)
        self.assertEqual(result.split_doubles, {("1A", "P.E."): 1})
        assert_invariants(self, result)

    def test_attempt_bound(self):
        school = make_school({"lowerPrimary": {"Math": 5}}, {"1A": {"Math": "Njeri"}})
        result = run(school, max_attempts_per_requirement=1)
        self.assertEqual(len(lessons(result, "1A", "Math")), 1)
        self.assertEqual(result.unresolved[0].remaining, 4)
        self.assertEqual(result.unresolved[0].reason, "Attempt limit reached")
        assert_invariants(self, result)

    def test_shortfall_reported_once_by_owning_phase(self):
        school = make_school({"lowerPrimary": {"ICT": 3}}, {"1A": {"ICT": "Wanjiru"}})
        constraints = Constraints(subject_restrictions={"ICT": ("Tue",)}, exclusive_resources={"ICT": "ICT"})
        result = run(school, constraints)
        self.assertEqual(len(result.unresolved), 1)
        self.assertEqual(result.unresolved[0].phase, "restricted")
        self.assertEqual(result.unresolved[0].remaining, 1)
        self.assertEqual(set(per_day(result, "1A", "ICT")), {"Tue"})
        assert_invariants(self, result)

    def test_phases_run_in_order(self):
        school = make_school({"lowerPrimary": {"Math": 2}}, {"1A": {"Math": "Njeri"}})
        result = run(school)
        self.assertEqual(
            [h["phase"] for h in result.history],
            ["events", "restricted", "exclusive", "synchronized", "strict_double", "remaining"],
        )
        self.assertEqual(sum(h["placed"] for h in result.history), 2)


class SynchronizedGroupTests(unittest.TestCase):
    def test_first_member_teacher_teaches_group(self):
        school = make_school(
            {"lowerSecondary": {"P.E.": 2}},
            {"7A": {"P.E.": "Otieno"}, "7B": {"P.E.": "Chebet"}},
        )
        result = run(school, Constraints(sync_groups=[SyncGroup("P.E.", ("7A", "7B"))]))
        self.assertIn("sync_teacher_mismatch", [i.kind for i in result.issues])
        self.assertTrue(all(cell.teacher == "Otieno" for _, _, cell in lessons(result, "7B", "P.E.")))
        self.assertEqual(result.teacher_loads["Chebet"].required, 0)
        self.assertEqual(result.teacher_loads["Chebet"].assigned, 0)
        assert_invariants(self, result)

    def test_requirement_mismatch_reports_member_shortfall(self):
        school = make_school(
            {"lowerSecondary": {"P.E.": 2}, "upperSecondary": {"P.E.": 3}},
            {"7A": {"P.E.": "Otieno"}, "7B": {"P.E.": "Otieno"}},
        )
        school.class_divisions["7B"] = "upperSecondary"
        result = run(school, Constraints(sync_groups=[SyncGroup("P.E.", ("7A", "7B"))]))
        self.assertIn("sync_requirement_mismatch", [i.kind for i in result.issues])
        self.assertEqual(len(lessons(result, "7A", "P.E.")), 2)
        self.assertEqual(len(lessons(result, "7B", "P.E.")), 2)
        self.assertEqual([(u.class_name, u.remaining, u.phase) for u in result.unresolved], [("7B", 1, "synchronized")])
        assert_invariants(self, result)

    def test_invalid_group_is_ignored(self):
        school = make_school({"lowerSecondary": {"P.E.": 2}}, {"7A": {"P.E.": "Otieno"}})
        result = run(school, Constraints(sync_groups=[SyncGroup("P.E.", ("7A", "8Z"))]))
        self.assertIn("invalid_sync_group", [i.kind for i in result.issues])
        self.assertTrue(result.complete)
        self.assertTrue(all(cell.group is None for _, _, cell in lessons(result, "7A", "P.E.")))
        assert_invariants(self, result)

    def synced_art(self, **kwargs):
        school = make_school(
            {"upperPrimary": {"Art": 2}},
            {"4A": {"Art": "Kamau"}, "4B": {"Art": "Kamau"}},
            **kwargs
        )
        constraints = Constraints(
            double_period_rules=[DoublePeriodRule("Art", ("upperPrimary",), True)],
            sync_groups=[SyncGroup("Art", ("4A", "4B"))],
        )
        return school, constraints

    def test_double_falls_back_to_same_day_joint_singles(self):
        school, constraints = self.synced_art(lesson_slots=(1, 3, 5))
        result = run(school, constraints)
        self.assertTrue(result.complete)
        days = per_day(result, "4A", "Art")
        self.assertEqual(len(days), 1)
        self.assertEqual([len(p) for p in days.values()], [2])
        self.assertEqual(days, per_day(result, "4B", "Art"))
        self.assertEqual(result.split_doubles, {("4A", "Art"): 1, ("4B", "Art"): 1})
        self.assertEqual(result.teacher_loads["Kamau"].assigned, 2)
        assert_invariants(self, result)

    def test_double_may_straddle_break(self):
        school, constraints = self.synced_art(lesson_slots=(1, 3), break_period=2, days=["Mon"])
        result = run(school, constraints, strict_double_singles_fallback=False)
        self.assertTrue(result.complete)
        self.assertEqual(dict(per_day(result, "4A", "Art")), {"Mon": [1, 3]})
        self.assertEqual(dict(per_day(result, "4B", "Art")), {"Mon": [1, 3]})
        self.assertEqual(result.split_doubles, {})
        assert_invariants(self, result)

    def test_missing_pair_is_reported_as_such(self):
        school, constraints = self.synced_art(lesson_slots=(1, 3), break_period=2, days=["Mon"])
        result = run(school, constraints, strict_double_singles_fallback=False, allow_split_doubles=False)
        self.assertEqual(lessons(result, "4A", "Art"), [])
        self.assertEqual(sorted(u.class_name for u in result.unresolved), ["4A", "4B"])
        for item in result.unresolved:
            self.assertIn("No free consecutive pair on Mon", item.reason)
            self.assertNotIn("no available day", item.reason)
        assert_invariants(self, result)


class EventTests(unittest.TestCase):
    def test_pinning_is_idempotent(self):
        assembly = SpecialEvent("Mon", (1,), "Assembly")
        school = make_school(
            {"lowerPrimary": {"Math": 4}},
            {"1A": {"Math": "Njeri"}, "2A": {"Math": "Kariuki"}},
            events=[assembly, assembly],
        )
        result = run(school)
        self.assertEqual(result.collisions, [])
        for class_name in ("1A", "2A"):
            cell = result.timetables[class_name]["Mon"][1]
            self.assertEqual((cell.kind, cell.name), (EVENT, "Assembly"))
        assert_invariants(self, result)

    def test_collision_is_recorded(self):
        school = make_school(
            {"lowerPrimary": {"Math": 2}},
            {"1A": {"Math": "Njeri"}},
            events=[SpecialEvent("Mon", (1,), "Assembly"), SpecialEvent("Mon", (1,), "Photo day")],
        )
        result = run(school)
        self.assertEqual(len(result.collisions), 1)
        collision = result.collisions[0]
        self.assertEqual((collision.event, collision.occupant), ("Photo day", "Assembly"))
        self.assertEqual(result.timetables["1A"]["Mon"][1].name, "Assembly")

    def test_division_specific_event(self):
        school = make_school(
            {"lowerPrimary": {"Math": 2}, "upperPrimary": {"Math": 2}},
            {"1A": {"Math": "Njeri"}, "4A": {"Math": "Chebet"}},
            events=[SpecialEvent("Fri", (5, 6), "Clubs", applies_to=("upperPrimary",))],
        )
        result = run(school)
        self.assertEqual(result.timetables["4A"]["Fri"][5].kind, EVENT)
        self.assertNotEqual(result.timetables["1A"]["Fri"][5].kind, EVENT)
        assert_invariants(self, result)

    def test_unknown_day_and_period(self):
        school = make_school(
            {"lowerPrimary": {"Math": 2}},
            {"1A": {"Math": "Njeri"}},
            events=[SpecialEvent("Sun", (1,), "Fair"), SpecialEvent("Mon", (42,), "Late show")],
        )
        result = run(school)
        kinds = [i.kind for i in result.issues]
        self.assertIn("unknown_event_day", kinds)
        self.assertIn("unknown_event_period", kinds)
        assert_invariants(self, result)


class InputTests(unittest.TestCase):
    def test_missing_teacher_is_a_reported_shortfall(self):
        school = make_school({"lowerPrimary": {"Math": 3, "English": 3}}, {"1A": {"Math": "Njeri"}})
        result = run(school)
        self.assertIn("missing_teacher", [i.kind for i in result.issues])
        item = result.unresolved[0]
        self.assertEqual((item.subject, item.remaining, item.reason, item.phase), ("English", 3, "No teacher assigned", "input"))
        self.assertTrue(result.validation.ok)
        self.assertEqual(len(result.validation.shortfalls), 1)
        assert_invariants(self, result)

    def test_gap_filling(self):
        school = make_school(
            {"lowerPrimary": {"Math": 2}},
            {"1A": {"Math": "Njeri"}},
            lesson_slots=(1, 2, 4, 5),
            break_period=3,
            lunch_period=6,
            periods=make_periods(6, arrival=True),
        )
        result = run(school)
        for day in result.days:
            row = result.timetables["1A"][day]
            self.assertEqual(row[0].kind, ARRIVAL)
            self.assertEqual(row[3].kind, BREAK)
            self.assertEqual(row[6].kind, LUNCH)
            for pid in (1, 2, 4, 5):
                self.assertIn(row[pid].kind, (LESSON, FREE))
        assert_invariants(self, result)


class DeterminismTests(unittest.TestCase):
    def test_same_seed_same_timetable(self):
        bundle = load_school(str(SAMPLE_DATA))
        first = run(bundle.school, bundle.constraints, seed=5)
        second = run(bundle.school, bundle.constraints, seed=5)
        self.assertEqual(first.timetables, second.timetables)
        self.assertEqual(first.unresolved, second.unresolved)

    def test_seed_defaults_to_config(self):
        school = make_school({"lowerPrimary": {"Math": 2}}, {"1A": {"Math": "Njeri"}})
        scheduler = TimetableScheduler(school, Constraints(), SolverConfig(seed=11))
        self.assertEqual(scheduler.generate().seed, 11)

    def test_invariants_hold_across_seeds(self):
        bundle = load_school(str(SAMPLE_DATA))
        for seed in range(8):
            with self.subTest(seed=seed):
                assert_invariants(self, run(bundle.school, bundle.constraints, seed=seed))

    def test_invariants_hold_without_shuffling(self):
        bundle = load_school(str(SAMPLE_DATA))
        result = run(bundle.school, bundle.constraints, shuffle_single_slots=False, shuffle_generic_subjects=False)
        assert_invariants(self, result)


if __name__ == "__main__":
    unittest.main()

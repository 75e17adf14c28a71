import tempfile
import unittest
from pathlib import Path

from timetable.data_loader import DataIntegrityError, load_school, parse_school
from timetable.model import ALL

from school_fixtures import SAMPLE_DATA


def raw_school(**overrides):
    school = {
        "days": ["Mon", "Tue"],
        "periods": [
            {"id": 2, "time": "08:40", "type": "normal"},
            {"id": 0, "time": "07:30", "type": "arrival"},
            {"id": 1, "time": "08:00"},
            {"id": 3, "time": "09:20", "type": "normal"},
        ],
        "divisionSchedules": {
            "lowerPrimary": {"lessonSlots": [1, 3], "breakPeriod": 2},
        },
        "subjects": {"lowerPrimary": {"Math": 2, "P.E.": 1}},
        "teachers": {"1A": {"Math": ["Njeri", "Kariuki"], "P.E.": "Otieno"}, "2A": {"Math": "Kariuki"}},
        "specialEvents": [{"day": "Mon", "periodId": 1, "name": "Assembly"}],
    }
    school.update(overrides)
    return school


class ParseSchoolTests(unittest.TestCase):
    def test_school_data(self):
        bundle = parse_school({"schoolData": raw_school()})
        school = bundle.school
        self.assertEqual([p.id for p in school.periods], [0, 1, 2, 3])
        self.assertTrue(school.periods[0].is_arrival)
        self.assertEqual(school.periods[1].type, "normal")
        self.assertEqual(school.division_schedules["lowerPrimary"].lesson_slots, (1, 3))
        self.assertEqual(school.division_schedules["lowerPrimary"].break_period, 2)
        self.assertIsNone(school.division_schedules["lowerPrimary"].lunch_period)
        self.assertEqual(school.teachers["1A"]["Math"], "Njeri")
        self.assertEqual(school.classes, ["1A", "2A"])
        event = school.special_events[0]
        self.assertEqual((event.period_ids, event.applies_to, event.color), ((1,), ALL, "#bbb"))
        self.assertEqual(bundle.issues, [])

    def test_constraints(self):
        raw = {
            "schoolData": raw_school(),
            "constraints": {
                "subjectRestrictions": {"P.E.": {"days": ["Tue"]}, "Math": ["Mon", "Tue"]},
                "singleResourceSubjects": ["ICT"],
                "exclusiveResources": {"Chemistry": "Science Lab"},
                "workloadLimits": {"maxTeacherPeriodsPerDay": 5, "maxClassPeriodsPerDay": 1},
                "teacherWorkloadExceptions": ["Otieno"],
                "teacherAvailability": {"Njeri": {"unavailableDays": ["Tue"]}},
                "doublePeriodSubjects": [
                    {"subject": "Art", "divisions": ["upperPrimary"], "strict": True},
                    {"subject": "Science", "divisions": ["upperPrimary"], "strict": "mixed",
                     "structure": {"doubles": 1, "singles": 2}},
                    {"subject": "P.E.", "divisions": ["lowerPrimary"], "strict": False},
                ],
                "peSynchronization": [["7A", "7B"]],
                "syncGroups": [{"subject": "Music", "classes": ["4A", "4B", "4C"]}],
                "partTimeTeachers": ["Njeri"],
            },
        }
        c = parse_school(raw).constraints
        self.assertEqual(c.subject_restrictions, {"P.E.": ("Tue",), "Math": ("Mon", "Tue")})
        self.assertEqual(c.exclusive_resources, {"ICT": "ICT", "Chemistry": "Science Lab"})
        self.assertEqual(c.workload_limits.max_teacher_periods_per_day, 5)
        self.assertEqual(c.workload_limits.max_teacher_periods_per_day_exception, 8)
        self.assertEqual(c.workload_limits.max_class_periods_per_day, 1)
        self.assertEqual(c.workload_exceptions, ("Otieno",))
        self.assertFalse(c.teacher_availability["Njeri"].permits("Tue"))
        self.assertTrue(c.teacher_availability["Njeri"].permits("Mon"))
        art, science, pe = c.double_period_rules
        self.assertTrue(art.is_strict)
        self.assertTrue(science.is_mixed)
        self.assertEqual((science.doubles, science.singles), (1, 2))
        self.assertFalse(pe.is_strict or pe.is_mixed)
        self.assertEqual([(g.subject, g.label) for g in c.sync_groups], [("P.E.", "7A+7B"), ("Music", "4A+4B+4C")])
        self.assertEqual(c.part_time_teachers, ("Njeri",))

    def test_missing_workload_limits_defers_to_config(self):
        self.assertIsNone(parse_school({"schoolData": raw_school()}).constraints.workload_limits)

    def test_structural_errors(self):
        with self.assertRaises(DataIntegrityError):
            parse_school(["not", "a", "mapping"])
        with self.assertRaises(DataIntegrityError):
            parse_school({"schoolData": raw_school(days=[])})
        with self.assertRaises(DataIntegrityError):
            parse_school({"schoolData": raw_school(periods=[{"id": 1}, {"id": 1}])})
        with self.assertRaises(DataIntegrityError):
            parse_school({"schoolData": raw_school(periods=[{"time": "08:00"}])})
        with self.assertRaises(DataIntegrityError):
            parse_school({"schoolData": raw_school(divisionSchedules={})})

    def test_non_mapping_records(self):
        for periods in (["p1"], [5], [None]):
            with self.assertRaises(DataIntegrityError):
                parse_school({"schoolData": raw_school(periods=periods)})
        for rule in (["Mon"], "Mon", None):
            with self.assertRaises(DataIntegrityError):
                parse_school({"schoolData": raw_school(), "constraints": {"teacherAvailability": {"Njeri": rule}}})

    def test_soft_issues(self):
        raw = {
            "schoolData": raw_school(
                divisionSchedules={"lowerPrimary": {"lessonSlots": [1, 9]}},
                specialEvents=[{"periodId": 1, "name": "Nowhere"}],
            ),
            "constraints": {
                "peSynchronization": [["7A"]],
                "doublePeriodSubjects": [{"divisions": ["upperPrimary"]}],
            },
        }
        kinds = [i.kind for i in parse_school(raw).issues]
        self.assertEqual(kinds, ["unknown_lesson_slot", "invalid_event", "invalid_double_rule", "invalid_sync_group"])

    def test_no_classes(self):
        bundle = parse_school({"schoolData": raw_school(teachers={})})
        self.assertEqual([i.kind for i in bundle.issues], ["no_classes"])

    def test_bare_school_data_is_accepted(self):
        self.assertEqual(parse_school(raw_school()).school.days, ["Mon", "Tue"])


class LoadSchoolTests(unittest.TestCase):
    def test_missing_file(self):
        with self.assertRaises(DataIntegrityError):
            load_school("/nonexistent/school.json")

    def test_yaml_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "school.yaml"
            path.write_text(
                "schoolData:\n"
                "  days: [Mon]\n"
                "  periods:\n"
                "    - {id: 1, time: '08:00'}\n"
                "  divisionSchedules:\n"
                "    lowerPrimary: {lessonSlots: [1]}\n"
                "  subjects:\n"
                "    lowerPrimary: {Math: 1}\n"
                "  teachers:\n"
                "    1A: {Math: Njeri}\n",
                encoding="utf-8",
            )
            bundle = load_school(str(path))
        self.assertEqual(bundle.school.subjects, {"lowerPrimary": {"Math": 1}})
        self.assertEqual(bundle.school.teachers, {"1A": {"Math": "Njeri"}})

    def test_sample_data(self):
        bundle = load_school(str(SAMPLE_DATA))
        self.assertEqual(bundle.issues, [])
        self.assertEqual(bundle.school.classes, ["1A", "2A", "4A", "5A", "7A", "7B"])
        self.assertEqual(bundle.school.teachers["7A"]["ICT"], "Ms. Wanjiru")
        self.assertEqual(bundle.constraints.exclusive_resources, {"ICT": "ICT"})
        self.assertEqual(bundle.constraints.sync_groups[0].classes, ("7A", "7B"))


if __name__ == "__main__":
    unittest.main()

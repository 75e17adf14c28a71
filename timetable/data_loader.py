# timetable/data_loader.py
"""
Build the input model from a school description.

The accepted shape is the ``data.json`` layout: a mapping with
``schoolData`` (days, periods, divisionSchedules, subjects, teachers,
specialEvents) and ``constraints`` (subjectRestrictions,
singleResourceSubjects, doublePeriodSubjects, workloadLimits,
teacherWorkloadExceptions, teacherAvailability, peSynchronization,
partTimeTeachers). JSON and YAML files are both read with ``yaml.safe_load``.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .model import (
    ALL,
    AvailabilityRule,
    Constraints,
    DataIssue,
    DivisionSchedule,
    DoublePeriodRule,
    Period,
    SchoolData,
    SpecialEvent,
    SyncGroup,
    WorkloadLimits,
)

DEFAULT_SYNC_SUBJECT = "P.E."


class DataIntegrityError(ValueError):
    """The school description cannot be turned into an input model."""


@dataclass(frozen=True)
class DataBundle:
    school: SchoolData
    constraints: Constraints
    issues: List[DataIssue]


def load_school(path: str) -> DataBundle:
    p = Path(path)
    if not p.exists():
        raise DataIntegrityError(f"School data file not found: {path}")
    return parse_school(yaml.safe_load(p.read_text(encoding="utf-8")))


def parse_school(raw: Any) -> DataBundle:
    if not isinstance(raw, dict):
        raise DataIntegrityError("School data must be a mapping")
    issues: List[DataIssue] = []
    school = _parse_school_data(raw.get("schoolData", raw), issues)
    constraints = _parse_constraints(raw.get("constraints") or {}, issues)
    return DataBundle(school=school, constraints=constraints, issues=issues)


# ---- schoolData ----

def _required(raw: Dict[str, Any], key: str) -> Any:
    value = raw.get(key)
    if not value:
        raise DataIntegrityError(f"Missing or empty '{key}'")
    return value


def _period_ids(value: Any) -> Tuple[int, ...]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(int(v) for v in value)
    return (int(value),)


def _parse_schedule(raw: Dict[str, Any]) -> DivisionSchedule:
    brk = raw.get("breakPeriod")
    lunch = raw.get("lunchPeriod")
    return DivisionSchedule(
        lesson_slots=tuple(sorted(_period_ids(raw.get("lessonSlots")))),
        break_period=int(brk) if brk is not None else None,
        lunch_period=int(lunch) if lunch is not None else None,
    )


def _parse_periods(raw_periods: List[Dict[str, Any]]) -> List[Period]:
    periods: List[Period] = []
    seen = set()
    for rec in raw_periods:
        if not isinstance(rec, dict):
            raise DataIntegrityError(f"Period record must be a mapping: {rec!r}")
        if "id" not in rec:
            raise DataIntegrityError(f"Period without id: {rec}")
        pid = int(rec["id"])
        if pid in seen:
            raise DataIntegrityError(f"Duplicate period id {pid}")
        seen.add(pid)
        periods.append(Period(id=pid, time=str(rec.get("time", "")), type=str(rec.get("type", "normal"))))
    return sorted(periods, key=lambda p: p.id)


def _first_teacher(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        return str(value[0]) if value else None
    return str(value) if value else None


def _parse_event(rec: Dict[str, Any]) -> SpecialEvent:
    applies = rec.get("appliesTo", ALL)
    if applies != ALL:
        applies = tuple(applies) if isinstance(applies, (list, tuple)) else (str(applies),)
    return SpecialEvent(
        day=str(rec["day"]),
        period_ids=_period_ids(rec.get("periodIds", rec.get("periodId"))),
        name=str(rec.get("name", "Event")),
        applies_to=applies,
        color=str(rec.get("color", "#bbb")),
    )


def _parse_school_data(raw: Dict[str, Any], issues: List[DataIssue]) -> SchoolData:
    if not isinstance(raw, dict):
        raise DataIntegrityError("'schoolData' must be a mapping")
    days = [str(d) for d in _required(raw, "days")]
    periods = _parse_periods(_required(raw, "periods"))
    known = {p.id for p in periods}

    division_schedules = {
        str(div): _parse_schedule(rec) for div, rec in _required(raw, "divisionSchedules").items()
    }
    class_schedules = {str(c): _parse_schedule(rec) for c, rec in (raw.get("classSchedules") or {}).items()}
    for owner, sched in list(division_schedules.items()) + list(class_schedules.items()):
        unknown = [s for s in sched.lesson_slots if s not in known]
        if unknown:
            issues.append(DataIssue("unknown_lesson_slot", f"{owner} lists unknown periods {unknown}"))

    subjects = {
        str(div): {str(s): int(n) for s, n in (by_subject or {}).items()}
        for div, by_subject in (raw.get("subjects") or {}).items()
    }

    teachers: Dict[str, Dict[str, str]] = {}
    for class_name, by_subject in (raw.get("teachers") or {}).items():
        row = {}
        for subject, value in (by_subject or {}).items():
            teacher = _first_teacher(value)
            if teacher:
                row[str(subject)] = teacher
        teachers[str(class_name)] = row
    for class_name in raw.get("classes") or []:
        teachers.setdefault(str(class_name), {})
    if not teachers:
        issues.append(DataIssue("no_classes", "No classes found in the teacher table"))

    events = []
    for rec in raw.get("specialEvents") or []:
        if "day" not in rec:
            issues.append(DataIssue("invalid_event", f"Special event without day: {rec}"))
            continue
        events.append(_parse_event(rec))

    return SchoolData(
        days=days,
        periods=periods,
        division_schedules=division_schedules,
        subjects=subjects,
        teachers=teachers,
        class_schedules=class_schedules,
        class_divisions={str(c): str(d) for c, d in (raw.get("classDivisions") or {}).items()},
        special_events=events,
    )


# ---- constraints ----

def _parse_double_rule(rec: Dict[str, Any]) -> DoublePeriodRule:
    strict = rec.get("strict", True)
    structure = rec.get("structure") or {}
    divisions = rec.get("divisions") or []
    return DoublePeriodRule(
        subject=str(rec["subject"]),
        divisions=tuple(str(d) for d in divisions),
        strict=strict if strict == "mixed" else bool(strict),
        doubles=int(structure.get("doubles", 0)),
        singles=int(structure.get("singles", 0)),
    )


def _parse_sync_groups(raw: Dict[str, Any], issues: List[DataIssue]) -> List[SyncGroup]:
    groups = []
    entries = list(raw.get("peSynchronization") or []) + list(raw.get("syncGroups") or [])
    for entry in entries:
        if isinstance(entry, dict):
            subject = str(entry.get("subject", DEFAULT_SYNC_SUBJECT))
            classes = tuple(str(c) for c in entry.get("classes") or [])
        else:
            subject = DEFAULT_SYNC_SUBJECT
            classes = tuple(str(c) for c in entry)
        if len(classes) < 2:
            issues.append(DataIssue("invalid_sync_group", f"Synchronized group needs two classes: {entry}"))
            continue
        groups.append(SyncGroup(subject=subject, classes=classes))
    return groups


def _parse_constraints(raw: Dict[str, Any], issues: List[DataIssue]) -> Constraints:
    restrictions = {}
    for subject, rule in (raw.get("subjectRestrictions") or {}).items():
        days = rule.get("days") if isinstance(rule, dict) else rule
        restrictions[str(subject)] = tuple(str(d) for d in days or [])

    exclusive = {str(s): str(s) for s in raw.get("singleResourceSubjects") or []}
    exclusive.update({str(s): str(r) for s, r in (raw.get("exclusiveResources") or {}).items()})

    limits = None
    wl = raw.get("workloadLimits")
    if wl:
        defaults = WorkloadLimits()
        limits = WorkloadLimits(
            max_teacher_periods_per_day=int(wl.get("maxTeacherPeriodsPerDay", defaults.max_teacher_periods_per_day)),
            max_teacher_periods_per_day_exception=int(
                wl.get("maxTeacherPeriodsPerDayException", defaults.max_teacher_periods_per_day_exception)
            ),
            max_class_periods_per_day=int(wl.get("maxClassPeriodsPerDay", defaults.max_class_periods_per_day)),
        )

    availability = {}
    for teacher, rule in (raw.get("teacherAvailability") or {}).items():
        if not isinstance(rule, dict):
            raise DataIntegrityError(f"Availability for {teacher} must be a mapping, got {rule!r}")
        available = rule.get("availableDays")
        unavailable = rule.get("unavailableDays")
        availability[str(teacher)] = AvailabilityRule(
            available_days=tuple(available) if available is not None else None,
            unavailable_days=tuple(unavailable) if unavailable is not None else None,
        )

    rules = []
    for rec in raw.get("doublePeriodSubjects") or []:
        if "subject" not in rec:
            issues.append(DataIssue("invalid_double_rule", f"Double period rule without subject: {rec}"))
            continue
        rules.append(_parse_double_rule(rec))

    return Constraints(
        subject_restrictions=restrictions,
        exclusive_resources=exclusive,
        double_period_rules=rules,
        workload_limits=limits,
        workload_exceptions=tuple(raw.get("teacherWorkloadExceptions") or ()),
        teacher_availability=availability,
        sync_groups=_parse_sync_groups(raw, issues),
        part_time_teachers=tuple(raw.get("partTimeTeachers") or ()),
    )

# timetable/domains.py
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Tuple

from .config import SolverConfig, resolve_division_for_year
from .model import (
    Constraints,
    DataIssue,
    Day,
    DivisionSchedule,
    DoublePeriodRule,
    PeriodId,
    SchoolData,
)

_YEAR_RE = re.compile(r"^\s*(\d+)")


@dataclass(frozen=True)
class ClassDomain:
    division: str
    schedule: DivisionSchedule
    lesson_slots: Dict[Day, Tuple[PeriodId, ...]]      # special-event periods removed
    event_periods: Dict[Day, FrozenSet[PeriodId]]

    def slots_on(self, day: Day) -> Tuple[PeriodId, ...]:
        return self.lesson_slots.get(day, ())

    def split_gap_periods(self) -> FrozenSet[PeriodId]:
        """Periods a double may straddle (break and lunch)."""
        gaps = {self.schedule.break_period, self.schedule.lunch_period}
        return frozenset(p for p in gaps if p is not None)


def class_year(class_name: str) -> Optional[int]:
    m = _YEAR_RE.match(class_name)
    return int(m.group(1)) if m else None


def resolve_class_division(class_name: str, school: SchoolData, cfg: SolverConfig) -> Optional[str]:
    """
    Explicit ``class_divisions`` entries win; otherwise the leading year of
    the class name is looked up in the configured year ranges.
    """
    if class_name in school.class_divisions:
        return school.class_divisions[class_name]
    year = class_year(class_name)
    if year is None:
        return None
    return resolve_division_for_year(year, cfg.division_year_ranges)


def schedule_for_class(class_name: str, division: str, school: SchoolData) -> Optional[DivisionSchedule]:
    if class_name in school.class_schedules:
        return school.class_schedules[class_name]
    return school.division_schedules.get(division)


def build_class_domains(
    school: SchoolData,
    cfg: SolverConfig,
) -> Tuple[Dict[str, ClassDomain], List[DataIssue]]:

    domains: Dict[str, ClassDomain] = {}
    issues: List[DataIssue] = []

    for class_name in school.classes:
        division = resolve_class_division(class_name, school, cfg)
        if division is None:
            issues.append(DataIssue(
                "unknown_division",
                f"Cannot derive a division for class {class_name}",
                class_name=class_name,
            ))
            continue
        schedule = schedule_for_class(class_name, division, school)
        if schedule is None:
            issues.append(DataIssue(
                "missing_schedule",
                f"No slot layout for division {division} (class {class_name})",
                class_name=class_name,
            ))
            continue

        lesson_slots: Dict[Day, Tuple[PeriodId, ...]] = {}
        event_periods: Dict[Day, FrozenSet[PeriodId]] = {}
        for day in school.days:
            blocked = frozenset(
                pid
                for ev in school.special_events
                if ev.day == day and ev.applies_to_division(division)
                for pid in ev.period_ids
            )
            event_periods[day] = blocked
            lesson_slots[day] = tuple(sorted(s for s in schedule.lesson_slots if s not in blocked))

        domains[class_name] = ClassDomain(
            division=division,
            schedule=schedule,
            lesson_slots=lesson_slots,
            event_periods=event_periods,
        )

    return domains, issues


def find_double_rule(constraints: Constraints, subject: str, division: str) -> Optional[DoublePeriodRule]:
    for rule in constraints.double_period_rules:
        if rule.subject == subject and division in rule.divisions:
            return rule
    return None


def allowed_days_for_teacher(days: List[Day], constraints: Constraints, teacher: str) -> List[Day]:
    rule = constraints.teacher_availability.get(teacher)
    if rule is None:
        return list(days)
    return [d for d in days if rule.permits(d)]


def required_periods(school: SchoolData, division: str, subject: str) -> int:
    return int(school.subjects.get(division, {}).get(subject, 0))

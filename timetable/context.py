# timetable/context.py
"""
Run-scoped mutable state of one generation.

A ``RunContext`` is built fresh for every run and passed explicitly to the
evaluator, the placement search, the phases and the gap filler. Nothing here
is shared between runs, so independent runs may proceed side by side.
"""
import logging
import random
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from .config import SolverConfig
from .domains import ClassDomain, build_class_domains, required_periods
from .model import (
    Assignment,
    Constraints,
    DataIssue,
    Day,
    EventCollision,
    PeriodId,
    SchoolData,
    Slot,
    SyncGroup,
    UnresolvedLesson,
    WorkloadLimits,
)

logger = logging.getLogger(__name__)

Grid = Dict[str, Dict[Day, Dict[PeriodId, Assignment]]]


@dataclass
class SlotOccupancy:
    teachers: Set[str] = field(default_factory=set)
    resources: Dict[str, str] = field(default_factory=dict)   # resource -> claimant


@dataclass
class TeacherLoad:
    daily: Dict[Day, int]
    assigned: int = 0
    required: int = 0


class RunContext:
    def __init__(
        self,
        school: SchoolData,
        constraints: Constraints,
        cfg: SolverConfig,
        rng: Optional[random.Random] = None,
    ):
        self.school = school
        self.constraints = constraints
        self.cfg = cfg
        self.rng = rng if rng is not None else random.Random(cfg.seed)
        self.limits = constraints.workload_limits or WorkloadLimits(
            max_teacher_periods_per_day=cfg.max_teacher_periods_per_day,
            max_teacher_periods_per_day_exception=cfg.max_teacher_periods_per_day_exception,
            max_class_periods_per_day=cfg.max_subject_periods_per_day,
        )

        self.domains: Dict[str, ClassDomain]
        self.domains, issues = build_class_domains(school, cfg)
        self.issues: List[DataIssue] = list(issues)
        self.unresolved: List[UnresolvedLesson] = []
        self.collisions: List[EventCollision] = []
        self.split_doubles: Counter = Counter()

        period_ids = [p.id for p in school.periods]
        self.grid: Grid = {c: {d: {} for d in school.days} for c in school.classes}
        self.occupancy: Dict[Slot, SlotOccupancy] = {
            (d, pid): SlotOccupancy() for d in school.days for pid in period_ids
        }

        self.loads: Dict[str, TeacherLoad] = {}
        for class_name, by_subject in school.teachers.items():
            dom = self.domains.get(class_name)
            for subject, teacher in by_subject.items():
                load = self.load_for(teacher)
                if dom is not None:
                    load.required += required_periods(school, dom.division, subject)

    # ---- lookups ----

    def load_for(self, teacher: str) -> TeacherLoad:
        if teacher not in self.loads:
            self.loads[teacher] = TeacherLoad(daily={d: 0 for d in self.school.days})
        return self.loads[teacher]

    def teacher_cap(self, teacher: str) -> int:
        if teacher in self.constraints.workload_exceptions:
            return self.limits.max_teacher_periods_per_day_exception
        return self.limits.max_teacher_periods_per_day

    def class_daily_cap(self, class_name: str) -> Optional[int]:
        caps = self.cfg.class_daily_lesson_caps
        if class_name in caps:
            return caps[class_name]
        dom = self.domains.get(class_name)
        if dom is not None and dom.division in caps:
            return caps[dom.division]
        return None

    def resource_for(self, subject: str) -> Optional[str]:
        return self.constraints.exclusive_resources.get(subject)

    def cell(self, class_name: str, day: Day, period_id: PeriodId) -> Optional[Assignment]:
        return self.grid[class_name][day].get(period_id)

    def is_empty(self, class_name: str, day: Day, period_id: PeriodId) -> bool:
        return period_id not in self.grid[class_name][day]

    def subject_count_on_day(self, class_name: str, subject: str, day: Day) -> int:
        return sum(
            1 for a in self.grid[class_name][day].values()
            if a.is_lesson and a.subject == subject
        )

    def lessons_on_day(self, class_name: str, day: Day) -> int:
        return sum(1 for a in self.grid[class_name][day].values() if a.is_lesson)

    def scheduled_count(self, class_name: str, subject: str) -> int:
        return sum(self.subject_count_on_day(class_name, subject, d) for d in self.school.days)

    def open_slots(self, class_name: str, day: Day) -> List[PeriodId]:
        """Empty, non-event lesson slots of the class on ``day``, ascending."""
        dom = self.domains[class_name]
        return [s for s in dom.slots_on(day) if self.is_empty(class_name, day, s)]

    # ---- writes ----

    def _claim(self, class_name: str, day: Day, period_id: PeriodId, assignment: Assignment):
        row = self.grid[class_name][day]
        if period_id in row:
            raise ValueError(f"Cell {class_name} {day} {period_id} is already occupied by {row[period_id].label()}")
        row[period_id] = assignment

    def commit_lesson(self, class_name: str, subject: str, teacher: str, day: Day, period_id: PeriodId):
        self._claim(class_name, day, period_id, Assignment.lesson(subject, teacher))
        occ = self.occupancy[(day, period_id)]
        occ.teachers.add(teacher)
        resource = self.resource_for(subject)
        if resource:
            occ.resources[resource] = class_name
        load = self.load_for(teacher)
        load.daily[day] += 1
        load.assigned += 1
        logger.debug("Placed %s/%s (%s) on %s p%s", class_name, subject, teacher, day, period_id)

    def commit_joint(self, group: SyncGroup, teacher: str, day: Day, period_id: PeriodId):
        # One joint lesson: the teacher is committed and counted once per slot.
        for class_name in group.classes:
            self._claim(class_name, day, period_id, Assignment.lesson(group.subject, teacher, group.label))
        occ = self.occupancy[(day, period_id)]
        occ.teachers.add(teacher)
        resource = self.resource_for(group.subject)
        if resource:
            occ.resources[resource] = group.label
        load = self.load_for(teacher)
        load.daily[day] += 1
        load.assigned += 1
        logger.debug("Placed joint %s/%s (%s) on %s p%s", group.label, group.subject, teacher, day, period_id)

    def pin(self, class_name: str, day: Day, period_id: PeriodId, assignment: Assignment) -> bool:
        """Write a fixed entry; returns False if the cell was already taken."""
        if not self.is_empty(class_name, day, period_id):
            return False
        self.grid[class_name][day][period_id] = assignment
        return True

    def add_unresolved(self, class_name: str, subject: str, remaining: int, reason: str, phase: str):
        item = UnresolvedLesson(class_name, subject, remaining, reason, phase)
        self.unresolved.append(item)
        logger.warning("Unresolved: %s %s x%d (%s)", class_name, subject, remaining, reason)

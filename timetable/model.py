# timetable/model.py
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

Day = str
PeriodId = int
Slot = Tuple[Day, PeriodId]

ALL = "all"

# Assignment kinds
LESSON = "lesson"
EVENT = "event"
BREAK = "break"
LUNCH = "lunch"
FREE = "free"
ARRIVAL = "arrival"


@dataclass(frozen=True)
class Period:
    id: PeriodId
    time: str = ""
    type: str = "normal"   # "normal" | "arrival"

    @property
    def is_arrival(self) -> bool:
        return self.type == ARRIVAL


@dataclass(frozen=True)
class DivisionSchedule:
    lesson_slots: Tuple[PeriodId, ...]
    break_period: Optional[PeriodId] = None
    lunch_period: Optional[PeriodId] = None


@dataclass(frozen=True)
class SpecialEvent:
    day: Day
    period_ids: Tuple[PeriodId, ...]
    name: str
    applies_to: Union[str, Tuple[str, ...]] = ALL   # "all" or division names
    color: str = "#bbb"

    def applies_to_division(self, division: str) -> bool:
        if isinstance(self.applies_to, str):
            return self.applies_to in (ALL, division)
        return division in self.applies_to


@dataclass(frozen=True)
class DoublePeriodRule:
    subject: str
    divisions: Tuple[str, ...]
    strict: Union[bool, str] = True   # True, False (preferred) or "mixed"
    doubles: int = 0                  # only for "mixed"
    singles: int = 0

    @property
    def is_mixed(self) -> bool:
        return self.strict == "mixed"

    @property
    def is_strict(self) -> bool:
        return self.strict is True


@dataclass(frozen=True)
class AvailabilityRule:
    available_days: Optional[Tuple[Day, ...]] = None
    unavailable_days: Optional[Tuple[Day, ...]] = None

    def permits(self, day: Day) -> bool:
        if self.available_days is not None and day not in self.available_days:
            return False
        if self.unavailable_days is not None and day in self.unavailable_days:
            return False
        return True


@dataclass(frozen=True)
class SyncGroup:
    subject: str
    classes: Tuple[str, ...]

    @property
    def label(self) -> str:
        return "+".join(self.classes)


@dataclass
class WorkloadLimits:
    max_teacher_periods_per_day: int = 6
    max_teacher_periods_per_day_exception: int = 8
    max_class_periods_per_day: int = 2   # per subject, per class


@dataclass
class SchoolData:
    days: List[Day]
    periods: List[Period]
    division_schedules: Dict[str, DivisionSchedule]
    subjects: Dict[str, Dict[str, int]]            # division -> subject -> periods/week
    teachers: Dict[str, Dict[str, str]]            # class -> subject -> teacher
    class_schedules: Dict[str, DivisionSchedule] = field(default_factory=dict)
    class_divisions: Dict[str, str] = field(default_factory=dict)
    special_events: List[SpecialEvent] = field(default_factory=list)

    @property
    def classes(self) -> List[str]:
        return list(self.teachers.keys())


@dataclass
class Constraints:
    subject_restrictions: Dict[str, Tuple[Day, ...]] = field(default_factory=dict)
    exclusive_resources: Dict[str, str] = field(default_factory=dict)   # subject -> resource
    double_period_rules: List[DoublePeriodRule] = field(default_factory=list)
    workload_limits: Optional[WorkloadLimits] = None   # None: SolverConfig caps apply
    workload_exceptions: Tuple[str, ...] = ()
    teacher_availability: Dict[str, AvailabilityRule] = field(default_factory=dict)
    sync_groups: List[SyncGroup] = field(default_factory=list)
    part_time_teachers: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Assignment:
    # Exactly one per (class, day, period) cell
    kind: str
    subject: Optional[str] = None
    teacher: Optional[str] = None
    name: Optional[str] = None
    color: Optional[str] = None
    group: Optional[str] = None     # synchronized group label

    @classmethod
    def lesson(cls, subject: str, teacher: str, group: Optional[str] = None) -> "Assignment":
        return cls(LESSON, subject=subject, teacher=teacher, group=group)

    @classmethod
    def event(cls, ev: SpecialEvent) -> "Assignment":
        return cls(EVENT, name=ev.name, color=ev.color)

    @property
    def is_lesson(self) -> bool:
        return self.kind == LESSON

    def label(self) -> str:
        if self.kind == LESSON:
            return f"{self.subject} ({self.teacher})"
        if self.kind == EVENT:
            return self.name or "Event"
        return self.kind.capitalize()


BREAK_CELL = Assignment(BREAK)
LUNCH_CELL = Assignment(LUNCH)
FREE_CELL = Assignment(FREE)
ARRIVAL_CELL = Assignment(ARRIVAL)


@dataclass(frozen=True)
class UnresolvedLesson:
    class_name: str
    subject: str
    remaining: int
    reason: str
    phase: str = ""


@dataclass(frozen=True)
class DataIssue:
    kind: str
    message: str
    class_name: Optional[str] = None
    subject: Optional[str] = None


@dataclass(frozen=True)
class EventCollision:
    class_name: str
    day: Day
    period_id: PeriodId
    event: str
    occupant: str

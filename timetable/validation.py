# timetable/validation.py
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, DefaultDict, Dict, List, Set, Tuple

import numpy as np

from .model import Day, PeriodId

if TYPE_CHECKING:
    from .scheduler import GenerationResult


@dataclass
class ValidationReport:
    ok: bool
    violations: List[str]
    lesson_counts: Dict[Tuple[str, str], int]
    teacher_clashes: List[Tuple[str, Day, PeriodId]] = field(default_factory=list)
    resource_clashes: List[Tuple[str, Day, PeriodId]] = field(default_factory=list)
    teacher_daily: Dict[str, Dict[Day, int]] = field(default_factory=dict)
    # Requirement mismatches explained by an unresolved-lesson diagnostic
    shortfalls: List[str] = field(default_factory=list)


def _index(items) -> Dict:
    return {item: i for i, item in enumerate(items)}


def validate(result: "GenerationResult") -> ValidationReport:
    """
    Recompute the hard invariants from the finished grids.

    Occupancy is rebuilt from the cells instead of trusting the solver's own
    bookkeeping. A synchronized lesson counts as one commitment of its
    teacher, however many classes share it. Nothing is modified.
    """
    violations: List[str] = []
    period_ids = [p.id for p in result.periods]
    known_periods = set(period_ids)
    lesson_counts: Counter = Counter()

    # (entity, day, period) -> set of commitment keys (class or group label)
    teacher_keys: DefaultDict[Tuple[str, Day, PeriodId], Set[str]] = defaultdict(set)
    resource_keys: DefaultDict[Tuple[str, Day, PeriodId], Set[str]] = defaultdict(set)

    for class_name, by_day in result.timetables.items():
        for day in result.days:
            row = by_day.get(day, {})
            for pid in period_ids:
                cell = row.get(pid)
                if cell is None:
                    violations.append(f"Empty cell: {class_name} {day} p{pid}")
                    continue
                if not cell.is_lesson:
                    continue
                lesson_counts[(class_name, cell.subject)] += 1
                key = cell.group or class_name
                teacher_keys[(cell.teacher, day, pid)].add(key)
                resource = result.exclusive_resources.get(cell.subject)
                if resource:
                    resource_keys[(resource, day, pid)].add(key)
            for pid in sorted(set(row) - known_periods):
                violations.append(f"Cell outside the period table: {class_name} {day} p{pid}")

    day_idx = _index(result.days)
    period_idx = _index(period_ids)
    teachers = sorted({t for t, _, _ in teacher_keys})
    resources = sorted({r for r, _, _ in resource_keys})
    t_idx = _index(teachers)
    r_idx = _index(resources)

    # Matrices [entity][day][period]
    ch_teach = np.zeros((len(teachers), len(result.days), len(period_ids)), dtype=int)
    ch_res = np.zeros((len(resources), len(result.days), len(period_ids)), dtype=int)
    for (t, d, p), keys in teacher_keys.items():
        ch_teach[t_idx[t], day_idx[d], period_idx[p]] = len(keys)
    for (r, d, p), keys in resource_keys.items():
        ch_res[r_idx[r], day_idx[d], period_idx[p]] = len(keys)

    teacher_clashes = []
    for ti, di, pi in np.argwhere(ch_teach > 1):
        clash = (teachers[ti], result.days[di], period_ids[pi])
        teacher_clashes.append(clash)
        who = ", ".join(sorted(teacher_keys[clash]))
        violations.append(f"Teacher {clash[0]} double-booked on {clash[1]} p{clash[2]}: {who}")

    resource_clashes = []
    for ri, di, pi in np.argwhere(ch_res > 1):
        clash = (resources[ri], result.days[di], period_ids[pi])
        resource_clashes.append(clash)
        who = ", ".join(sorted(resource_keys[clash]))
        violations.append(f"Resource {clash[0]} claimed more than once on {clash[1]} p{clash[2]}: {who}")

    per_day = ch_teach.sum(axis=2)
    teacher_daily: Dict[str, Dict[Day, int]] = {}
    for t in teachers:
        teacher_daily[t] = {d: int(per_day[t_idx[t], day_idx[d]]) for d in result.days}
        cap = result.teacher_caps.get(t)
        if cap is None:
            continue
        for d, n in teacher_daily[t].items():
            if n > cap:
                violations.append(f"Teacher {t} has {n} periods on {d} (cap {cap})")

    reported: Counter = Counter()
    for item in result.unresolved:
        reported[(item.class_name, item.subject)] += item.remaining
    shortfalls: List[str] = []
    for (class_name, subject), needed in result.requirements.items():
        actual = lesson_counts.get((class_name, subject), 0)
        if actual == needed:
            continue
        if actual < needed and reported[(class_name, subject)] == needed - actual:
            shortfalls.append(f"{class_name} {subject}: {actual}/{needed} lessons (reported unresolved)")
        else:
            violations.append(f"{class_name} {subject}: {actual}/{needed} lessons (not reported)")
    for (class_name, subject), actual in lesson_counts.items():
        if (class_name, subject) not in result.requirements:
            violations.append(f"{class_name} {subject}: {actual} lessons without a requirement")

    return ValidationReport(
        ok=not violations,
        violations=violations,
        lesson_counts=dict(lesson_counts),
        teacher_clashes=teacher_clashes,
        resource_clashes=resource_clashes,
        teacher_daily=teacher_daily,
        shortfalls=shortfalls,
    )

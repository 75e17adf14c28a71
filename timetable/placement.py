# timetable/placement.py
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from .constraints import OK, Verdict, can_assign
from .context import RunContext
from .domains import allowed_days_for_teacher
from .model import Day, PeriodId, SyncGroup


@dataclass(frozen=True)
class BlockResult:
    requested: int
    placed: int = 0
    as_double: bool = False
    reason: str = ""

    def __bool__(self) -> bool:
        return self.placed == self.requested

    @property
    def partial(self) -> bool:
        return 0 < self.placed < self.requested


def _candidate_pairs(ctx: RunContext, class_name: str, slots: List[PeriodId]) -> List[Tuple[PeriodId, PeriodId]]:
    # Back-to-back pairs first, then pairs straddling break/lunch.
    pairs = [(a, b) for a, b in zip(slots, slots[1:]) if b - a == 1]
    if ctx.cfg.allow_split_doubles:
        open_set = set(slots)
        gaps = ctx.domains[class_name].split_gap_periods()
        pairs += [(a, a + 2) for a in slots if a + 2 in open_set and a + 1 in gaps]
    return pairs


def _check_run(
    ctx: RunContext,
    class_name: str,
    subject: str,
    teacher: str,
    day: Day,
    run: Iterable[PeriodId],
) -> Verdict:
    for pending, pid in enumerate(run):
        verdict = can_assign(ctx, class_name, subject, teacher, day, pid, pending=pending)
        if not verdict:
            return verdict
    return OK


def _place_single_on_day(ctx: RunContext, class_name: str, subject: str, teacher: str, day: Day) -> Verdict:
    if ctx.subject_count_on_day(class_name, subject, day) >= ctx.limits.max_class_periods_per_day:
        return Verdict(False, "Subject max daily load")
    slots = ctx.open_slots(class_name, day)
    if ctx.cfg.shuffle_single_slots:
        ctx.rng.shuffle(slots)
    last = Verdict(False, f"No open slot on {day}")
    for pid in slots:
        verdict = can_assign(ctx, class_name, subject, teacher, day, pid)
        if verdict:
            ctx.commit_lesson(class_name, subject, teacher, day, pid)
            return OK
        last = verdict
    return last


def place_block(
    ctx: RunContext,
    class_name: str,
    subject: str,
    teacher: str,
    allowed_days: Iterable[Day],
    length: int,
    allow_singles_fallback: bool = False,
) -> BlockResult:
    """
    Place one run of ``length`` periods (1 or 2) for a class/subject/teacher.

    Days are visited in a shuffled order drawn from the run's random source.
    A double first looks for a consecutive pair on any day; when none exists
    and the fallback is allowed, two singles are tried on the same day. Every
    single is committed as soon as it is found, so a half-placed double comes
    back as ``placed == 1`` rather than being lost.
    """
    if length not in (1, 2):
        raise ValueError(f"Block length must be 1 or 2, got {length}")

    days = list(allowed_days)
    ctx.rng.shuffle(days)
    cap = ctx.limits.max_class_periods_per_day
    last_reason = "No allowed day"

    if length == 1:
        for day in days:
            verdict = _place_single_on_day(ctx, class_name, subject, teacher, day)
            if verdict:
                return BlockResult(1, 1)
            last_reason = verdict.reason
        return BlockResult(1, 0, reason=last_reason)

    for day in days:
        if ctx.subject_count_on_day(class_name, subject, day) >= cap:
            last_reason = "Subject max daily load"
            continue
        pairs = _candidate_pairs(ctx, class_name, ctx.open_slots(class_name, day))
        if not pairs:
            last_reason = f"No free consecutive pair on {day}"
            continue
        for a, b in pairs:
            verdict = _check_run(ctx, class_name, subject, teacher, day, (a, b))
            if verdict:
                ctx.commit_lesson(class_name, subject, teacher, day, a)
                ctx.commit_lesson(class_name, subject, teacher, day, b)
                return BlockResult(2, 2, as_double=True)
            last_reason = verdict.reason

    if not allow_singles_fallback:
        return BlockResult(2, 0, reason=f"No slot for double period ({last_reason})")

    for day in days:
        placed = 0
        for _ in range(2):
            verdict = _place_single_on_day(ctx, class_name, subject, teacher, day)
            if not verdict:
                last_reason = verdict.reason
                break
            placed += 1
        if placed:
            reason = "" if placed == 2 else f"Only one single for double period ({last_reason})"
            return BlockResult(2, placed, reason=reason)
    return BlockResult(2, 0, reason=f"No slot for double period or singles ({last_reason})")


def _check_joint(ctx: RunContext, group: SyncGroup, teacher: str, day: Day, run: Tuple[PeriodId, ...]) -> Verdict:
    for class_name in group.classes:
        verdict = _check_run(ctx, class_name, group.subject, teacher, day, run)
        if not verdict:
            return Verdict(False, f"{class_name}: {verdict.reason}")
    return OK


def _place_joint_single_on_day(ctx: RunContext, group: SyncGroup, teacher: str, day: Day) -> Verdict:
    slots = ctx.open_slots(group.classes[0], day)
    if ctx.cfg.shuffle_single_slots:
        ctx.rng.shuffle(slots)
    last = Verdict(False, f"No open slot on {day}")
    for pid in slots:
        verdict = _check_joint(ctx, group, teacher, day, (pid,))
        if verdict:
            ctx.commit_joint(group, teacher, day, pid)
            return OK
        last = verdict
    return last


def place_synchronized(
    ctx: RunContext,
    group: SyncGroup,
    teacher: str,
    length: int,
    allow_singles_fallback: bool = False,
) -> BlockResult:
    """
    Joint counterpart of ``place_block``: every class of ``group`` gets the
    same (day, period) cells, taught once by ``teacher``. Candidate runs come
    from the first member's open slots and are committed only if every member
    passes every slot. A double that finds no pair may fall back to two joint
    singles on the same day.
    """
    if length not in (1, 2):
        raise ValueError(f"Block length must be 1 or 2, got {length}")
    lead = group.classes[0]
    if lead not in ctx.domains:
        return BlockResult(length, 0, reason=f"Class {lead} has no slot layout")

    days = allowed_days_for_teacher(ctx.school.days, ctx.constraints, teacher)
    ctx.rng.shuffle(days)
    last_reason = f"Teacher {teacher} has no available day"

    if length == 1:
        for day in days:
            verdict = _place_joint_single_on_day(ctx, group, teacher, day)
            if verdict:
                return BlockResult(1, 1)
            last_reason = verdict.reason
        return BlockResult(1, 0, reason=f"No synchronized slot for {group.label} ({last_reason})")

    for day in days:
        pairs = _candidate_pairs(ctx, lead, ctx.open_slots(lead, day))
        if not pairs:
            last_reason = f"No free consecutive pair on {day}"
            continue
        for run in pairs:
            verdict = _check_joint(ctx, group, teacher, day, run)
            if verdict:
                for pid in run:
                    ctx.commit_joint(group, teacher, day, pid)
                return BlockResult(2, 2, as_double=True)
            last_reason = verdict.reason

    if not allow_singles_fallback:
        return BlockResult(2, 0, reason=f"No synchronized double for {group.label} ({last_reason})")

    for day in days:
        placed = 0
        for _ in range(2):
            verdict = _place_joint_single_on_day(ctx, group, teacher, day)
            if not verdict:
                last_reason = verdict.reason
                break
            placed += 1
        if placed:
            reason = "" if placed == 2 else f"Only one joint single for double period ({last_reason})"
            return BlockResult(2, placed, reason=reason)
    return BlockResult(2, 0, reason=f"No synchronized slot for {group.label} ({last_reason})")

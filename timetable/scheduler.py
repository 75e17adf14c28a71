import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from .config import SolverConfig
from .context import Grid, RunContext, TeacherLoad
from .domains import allowed_days_for_teacher, find_double_rule
from .gaps import fill_gaps
from .model import (
    ALL,
    Assignment,
    Constraints,
    DataIssue,
    Day,
    EventCollision,
    Period,
    SchoolData,
    SyncGroup,
    UnresolvedLesson,
)
from .placement import BlockResult, place_block, place_synchronized
from .validation import ValidationReport, validate

logger = logging.getLogger(__name__)

PHASE_EVENTS = "events"
PHASE_RESTRICTED = "restricted"
PHASE_EXCLUSIVE = "exclusive"
PHASE_SYNC = "synchronized"
PHASE_STRICT = "strict_double"
PHASE_MIXED = "mixed"
PHASE_PREFERRED = "preferred_double"
PHASE_GENERIC = "generic"
PHASE_INPUT = "input"


@dataclass
class GenerationResult:
    days: List[Day]
    periods: List[Period]
    timetables: Grid
    unresolved: List[UnresolvedLesson]
    issues: List[DataIssue]
    collisions: List[EventCollision]
    teacher_loads: Dict[str, TeacherLoad]
    teacher_caps: Dict[str, int]
    requirements: Dict[Tuple[str, str], int]
    exclusive_resources: Dict[str, str]
    split_doubles: Dict[Tuple[str, str], int]
    part_time_teachers: Tuple[str, ...] = ()
    seed: Optional[int] = None
    history: List[Dict] = field(default_factory=list)
    validation: Optional[ValidationReport] = None

    @property
    def complete(self) -> bool:
        return not self.unresolved


class TimetableScheduler:
    """
    Greedy multi-phase generator.

    Phases run strictly one after another so that tightly constrained
    subjects claim scarce slots before generic subjects compete for them:
    special events, day-restricted subjects, exclusive-resource subjects,
    synchronized groups and strict doubles, then mixed, preferred-double and
    generic subjects. Each (class, subject) requirement belongs to exactly one
    phase, so a shortfall is reported once.
    """

    def __init__(
        self,
        school: SchoolData,
        constraints: Constraints,
        cfg: Optional[SolverConfig] = None,
        seed: Optional[int] = None,
    ):
        self.school = school
        self.constraints = constraints
        self.cfg = cfg or SolverConfig()
        self.seed = seed if seed is not None else self.cfg.seed
        self.ctx = RunContext(school, constraints, self.cfg, rng=random.Random(self.seed))
        self.history: List[Dict] = []
        self.requirements: Dict[Tuple[str, str], int] = {}
        self._synced: Set[Tuple[str, str]] = set()
        self._groups: List[SyncGroup] = []
        self._missing_teacher: Set[Tuple[str, str]] = set()
        self._collect_requirements()
        self._check_sync_groups()
        self._check_special_events()

    # ---- input checks ----

    def _collect_requirements(self):
        ctx = self.ctx
        for class_name in self.school.classes:
            dom = ctx.domains.get(class_name)
            if dom is None:
                continue
            for subject, needed in self.school.subjects.get(dom.division, {}).items():
                if needed <= 0:
                    continue
                self.requirements[(class_name, subject)] = int(needed)
                if not self.school.teachers.get(class_name, {}).get(subject):
                    self._missing_teacher.add((class_name, subject))
                    ctx.issues.append(DataIssue(
                        "missing_teacher",
                        f"Class {class_name} has no teacher for {subject}",
                        class_name=class_name,
                        subject=subject,
                    ))
                    ctx.add_unresolved(class_name, subject, int(needed), "No teacher assigned", PHASE_INPUT)

    def _check_sync_groups(self):
        ctx = self.ctx
        for group in self.constraints.sync_groups:
            problems = []
            unknown = [c for c in group.classes if c not in ctx.domains]
            if unknown:
                problems.append(f"unknown or unschedulable classes {', '.join(unknown)}")
            if len(set(group.classes)) != len(group.classes):
                problems.append("class listed twice")
            if any((c, group.subject) in self._synced for c in group.classes):
                problems.append("class already in another group for this subject")
            lead_teacher = self.school.teachers.get(group.classes[0], {}).get(group.subject)
            missing = [c for c in group.classes if not self.school.teachers.get(c, {}).get(group.subject)]
            if missing:
                problems.append(f"no {group.subject} teacher for {', '.join(missing)}")
            if not problems:
                teachers = {self.school.teachers.get(c, {}).get(group.subject) for c in group.classes}
                needs = {self.requirements.get((c, group.subject), 0) for c in group.classes}
                if len(teachers) > 1:
                    ctx.issues.append(DataIssue(
                        "sync_teacher_mismatch",
                        f"Group {group.label} has different {group.subject} teachers; using {lead_teacher}",
                        subject=group.subject,
                    ))
                if len(needs) > 1:
                    ctx.issues.append(DataIssue(
                        "sync_requirement_mismatch",
                        f"Group {group.label} has different {group.subject} requirements; using the smallest",
                        subject=group.subject,
                    ))
            if problems:
                ctx.issues.append(DataIssue(
                    "invalid_sync_group",
                    f"Group {group.label} ignored: {'; '.join(problems)}",
                    subject=group.subject,
                ))
                continue
            self._groups.append(group)
            self._synced.update((c, group.subject) for c in group.classes)
            # The lead teacher teaches the group once; other members add no load.
            for class_name in group.classes[1:]:
                teacher = self.school.teachers[class_name][group.subject]
                ctx.loads[teacher].required -= self.requirements.get((class_name, group.subject), 0)

    def _check_special_events(self):
        known = {p.id for p in self.school.periods}
        for ev in self.school.special_events:
            if ev.day not in self.school.days:
                self.ctx.issues.append(DataIssue("unknown_event_day", f"Event {ev.name} is on unknown day {ev.day}"))
            bad = [p for p in ev.period_ids if p not in known]
            if bad:
                self.ctx.issues.append(DataIssue(
                    "unknown_event_period",
                    f"Event {ev.name} refers to unknown periods {bad}",
                ))

    # ---- helpers ----

    def _phase_of(self, class_name: str, subject: str) -> str:
        if (class_name, subject) in self._synced:
            return PHASE_SYNC
        if subject in self.constraints.subject_restrictions:
            return PHASE_RESTRICTED
        if subject in self.constraints.exclusive_resources:
            return PHASE_EXCLUSIVE
        rule = find_double_rule(self.constraints, subject, self.ctx.domains[class_name].division)
        if rule is None:
            return PHASE_GENERIC
        if rule.is_strict:
            return PHASE_STRICT
        if rule.is_mixed:
            return PHASE_MIXED
        return PHASE_PREFERRED

    def _all_subjects(self) -> List[str]:
        seen: Dict[str, None] = {}
        for by_subject in self.school.subjects.values():
            for subject in by_subject:
                seen.setdefault(subject, None)
        return list(seen)

    def _run_phase(self, name: str, fn):
        placed_before = sum(load.assigned for load in self.ctx.loads.values())
        unresolved_before = len(self.ctx.unresolved)
        fn()
        self.history.append({
            "phase": name,
            "placed": sum(load.assigned for load in self.ctx.loads.values()) - placed_before,
            "unresolved": len(self.ctx.unresolved) - unresolved_before,
        })

    # ---- phases ----

    def _pin_special_events(self):
        ctx = self.ctx
        for ev in self.school.special_events:
            if ev.day not in self.school.days:
                continue
            cell = Assignment.event(ev)
            for class_name in self.school.classes:
                dom = ctx.domains.get(class_name)
                applies = ev.applies_to == ALL if dom is None else ev.applies_to_division(dom.division)
                if not applies:
                    continue
                for pid in ev.period_ids:
                    if (ev.day, pid) not in ctx.occupancy:
                        continue
                    existing = ctx.cell(class_name, ev.day, pid)
                    if existing == cell:
                        continue
                    if existing is None:
                        ctx.pin(class_name, ev.day, pid, cell)
                        continue
                    ctx.collisions.append(EventCollision(class_name, ev.day, pid, ev.name, existing.label()))
                    logger.warning(
                        "Event %s collides with %s for %s on %s p%s",
                        ev.name, existing.label(), class_name, ev.day, pid,
                    )

    def _schedule_restricted(self):
        restricted = sorted(
            self.constraints.subject_restrictions.items(),
            key=lambda item: (len(item[1]), item[0]),
        )
        for subject, days in restricted:
            allowed = [d for d in self.school.days if d in days]
            self._schedule_subject(subject, PHASE_RESTRICTED, allowed)

    def _schedule_exclusive(self):
        for subject in self.constraints.exclusive_resources:
            self._schedule_subject(subject, PHASE_EXCLUSIVE)

    def _schedule_synchronized(self):
        ctx = self.ctx
        budget = self.cfg.max_attempts_per_requirement
        for group in self._groups:
            lead = group.classes[0]
            teacher = self.school.teachers[lead][group.subject]
            target = min(self.requirements.get((c, group.subject), 0) for c in group.classes)
            remaining = target - ctx.scheduled_count(lead, group.subject)
            rule = find_double_rule(self.constraints, group.subject, ctx.domains[lead].division)
            strict = rule is not None and rule.is_strict
            singles_ok = not strict or self.cfg.strict_double_singles_fallback
            attempts = 0
            reason = ""
            while remaining > 0:
                if attempts >= budget:
                    reason = "Attempt limit reached"
                    break
                if remaining == 1 and not singles_ok:
                    reason = "Odd period count for strict double subject"
                    break
                attempts += 1
                length = 2 if rule is not None and remaining >= 2 else 1
                result = place_synchronized(ctx, group, teacher, length, allow_singles_fallback=singles_ok)
                if length == 2 and result.placed and not result.as_double:
                    for class_name in group.classes:
                        ctx.split_doubles[(class_name, group.subject)] += 1
                if result.placed == 0:
                    reason = result.reason
                    break
                remaining -= result.placed
            for class_name in group.classes:
                short = self.requirements.get((class_name, group.subject), 0) - ctx.scheduled_count(class_name, group.subject)
                if short > 0:
                    ctx.add_unresolved(class_name, group.subject, short, reason or "Group requirement below class requirement", PHASE_SYNC)

    def _schedule_strict_doubles(self):
        subjects = dict.fromkeys(r.subject for r in self.constraints.double_period_rules if r.is_strict)
        for subject in subjects:
            self._schedule_subject(subject, PHASE_STRICT)

    def _schedule_remaining(self):
        subjects = self._all_subjects()
        for phase in (PHASE_MIXED, PHASE_PREFERRED):
            for subject in subjects:
                self._schedule_subject(subject, phase)
        generic = list(subjects)
        if self.cfg.shuffle_generic_subjects:
            self.ctx.rng.shuffle(generic)
        for subject in generic:
            self._schedule_subject(subject, PHASE_GENERIC)

    # ---- per requirement ----

    def _schedule_subject(self, subject: str, phase: str, allowed_days: Optional[List[Day]] = None):
        ctx = self.ctx
        for class_name in self.school.classes:
            needed = self.requirements.get((class_name, subject))
            if not needed or (class_name, subject) in self._missing_teacher:
                continue
            if self._phase_of(class_name, subject) != phase:
                continue
            remaining = needed - ctx.scheduled_count(class_name, subject)
            if remaining <= 0:
                continue
            teacher = self.school.teachers[class_name][subject]
            days = allowed_days if allowed_days is not None else self.school.days
            days = allowed_days_for_teacher(days, self.constraints, teacher)
            self._schedule_requirement(class_name, subject, teacher, remaining, days, phase)

    def _schedule_requirement(
        self,
        class_name: str,
        subject: str,
        teacher: str,
        remaining: int,
        days: List[Day],
        phase: str,
    ):
        ctx = self.ctx
        rule = find_double_rule(self.constraints, subject, ctx.domains[class_name].division)
        budget = self.cfg.max_attempts_per_requirement
        attempts = 0
        reason = ""

        def attempt(length: int, fallback: bool) -> Optional[BlockResult]:
            nonlocal attempts, remaining, reason
            if attempts >= budget:
                reason = "Attempt limit reached"
                return None
            attempts += 1
            result = place_block(ctx, class_name, subject, teacher, days, length, fallback)
            remaining -= result.placed
            if length == 2 and result.placed and not result.as_double:
                ctx.split_doubles[(class_name, subject)] += 1
            if not result:
                reason = result.reason
            return result

        if rule is not None and rule.is_mixed:
            plan = [2] * rule.doubles + [1] * rule.singles
            for length in plan:
                if remaining <= 0:
                    break
                if attempt(min(length, remaining), True) is None:
                    break
        elif rule is not None:
            # Strict doubles fall back to singles only when the policy allows it;
            # preferred doubles always may.
            fallback = self.cfg.strict_double_singles_fallback if rule.is_strict else True
            while remaining >= 2:
                result = attempt(2, fallback)
                if result is None or result.placed == 0:
                    break
            if fallback:
                while remaining > 0:
                    result = attempt(1, False)
                    if result is None or result.placed == 0:
                        break
            elif remaining == 1:
                reason = reason or "Odd period count for strict double subject"
        # Singles for everything left: generic subjects and mixed overflow.
        while remaining > 0 and (rule is None or rule.is_mixed):
            result = attempt(1, False)
            if result is None or result.placed == 0:
                break

        if remaining > 0:
            ctx.add_unresolved(class_name, subject, remaining, reason or "Could not find slot", phase)

    # ---- driver ----

    def generate(self) -> GenerationResult:
        logger.info("Generating timetables for %d classes (seed=%s)", len(self.school.classes), self.seed)
        logger.info("Phase 1: pinning special events")
        self._run_phase(PHASE_EVENTS, self._pin_special_events)
        logger.info("Phase 2: scheduling day-restricted subjects")
        self._run_phase(PHASE_RESTRICTED, self._schedule_restricted)
        logger.info("Phase 3: scheduling exclusive-resource subjects")
        self._run_phase(PHASE_EXCLUSIVE, self._schedule_exclusive)
        logger.info("Phase 4: scheduling synchronized groups and strict doubles")
        self._run_phase(PHASE_SYNC, self._schedule_synchronized)
        self._run_phase(PHASE_STRICT, self._schedule_strict_doubles)
        logger.info("Phase 5: scheduling mixed, preferred-double and generic subjects")
        self._run_phase("remaining", self._schedule_remaining)
        fill_gaps(self.ctx)

        result = self._build_result()
        result.validation = validate(result)
        logger.info(
            "Generation complete: %d unresolved lesson groups, validation %s",
            len(result.unresolved), "passed" if result.validation.ok else "failed",
        )
        return result

    def _build_result(self) -> GenerationResult:
        ctx = self.ctx
        return GenerationResult(
            days=list(self.school.days),
            periods=list(self.school.periods),
            timetables=ctx.grid,
            unresolved=list(ctx.unresolved),
            issues=list(ctx.issues),
            collisions=list(ctx.collisions),
            teacher_loads=ctx.loads,
            teacher_caps={t: ctx.teacher_cap(t) for t in ctx.loads},
            requirements=dict(self.requirements),
            exclusive_resources=dict(self.constraints.exclusive_resources),
            split_doubles=dict(ctx.split_doubles),
            part_time_teachers=tuple(self.constraints.part_time_teachers),
            seed=self.seed,
            history=list(self.history),
        )


def generate_timetable(
    school: SchoolData,
    constraints: Constraints,
    cfg: Optional[SolverConfig] = None,
    seed: Optional[int] = None,
) -> GenerationResult:
    return TimetableScheduler(school, constraints, cfg, seed).generate()

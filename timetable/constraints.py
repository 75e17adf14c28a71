# timetable/constraints.py
from typing import NamedTuple

from .context import RunContext
from .model import Day, PeriodId


class Verdict(NamedTuple):
    ok: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.ok


OK = Verdict(True)


def can_assign(
    ctx: RunContext,
    class_name: str,
    subject: str,
    teacher: str,
    day: Day,
    period_id: PeriodId,
    pending: int = 0,
) -> Verdict:
    """
    Test whether a lesson may go into (class, day, period) without writing
    anything. ``pending`` counts periods of the same block that were already
    approved for this class/teacher on ``day`` but are not committed yet.

    Checks run in a fixed order and stop at the first failure; the reason is
    diagnostic text only.
    """
    dom = ctx.domains.get(class_name)
    if dom is None or period_id not in dom.slots_on(day) or (day, period_id) not in ctx.occupancy:
        return Verdict(False, f"Period {period_id} is not a lesson slot on {day}")

    if not ctx.is_empty(class_name, day, period_id):
        return Verdict(False, "Class booked")

    if ctx.subject_count_on_day(class_name, subject, day) + pending >= ctx.limits.max_class_periods_per_day:
        return Verdict(False, "Subject max daily load")

    class_cap = ctx.class_daily_cap(class_name)
    if class_cap is not None and ctx.lessons_on_day(class_name, day) + pending >= class_cap:
        return Verdict(False, "Class max daily lessons")

    load = ctx.loads.get(teacher)
    taught = load.daily.get(day, 0) if load is not None else 0
    if taught + pending >= ctx.teacher_cap(teacher):
        return Verdict(False, "Teacher workload exceeded")

    occ = ctx.occupancy[(day, period_id)]
    if teacher in occ.teachers:
        return Verdict(False, "Teacher booked")

    rule = ctx.constraints.teacher_availability.get(teacher)
    if rule is not None and not rule.permits(day):
        return Verdict(False, f"Teacher unavailable on {day}")

    allowed = ctx.constraints.subject_restrictions.get(subject)
    if allowed is not None and day not in allowed:
        return Verdict(False, f"Subject restricted to {','.join(allowed)}")

    resource = ctx.resource_for(subject)
    if resource:
        claimant = occ.resources.get(resource)
        if claimant is not None and claimant != class_name:
            return Verdict(False, f"{resource} resource booked by {claimant}")

    return OK

# timetable/gaps.py
from .context import RunContext
from .model import ARRIVAL_CELL, BREAK_CELL, FREE_CELL, LUNCH_CELL


def fill_gaps(ctx: RunContext) -> int:
    """
    Give every still-empty cell a non-lesson entry after the lesson phases.

    Break and lunch go to the class's own break/lunch periods; any other gap
    becomes Free, except periods the global table marks as arrival. Only empty
    cells are written. Returns the number of cells filled.
    """
    filled = 0
    for class_name, by_day in ctx.grid.items():
        dom = ctx.domains.get(class_name)
        for day, row in by_day.items():
            if dom is not None:
                for pid, cell in ((dom.schedule.break_period, BREAK_CELL), (dom.schedule.lunch_period, LUNCH_CELL)):
                    if pid is not None and (day, pid) in ctx.occupancy and ctx.pin(class_name, day, pid, cell):
                        filled += 1
            lesson_slots = set(dom.schedule.lesson_slots) if dom is not None else set()
            for period in ctx.school.periods:
                if period.id in row:
                    continue
                arrival = period.is_arrival and period.id not in lesson_slots
                ctx.pin(class_name, day, period.id, ARRIVAL_CELL if arrival else FREE_CELL)
                filled += 1
    return filled

# timetable/report.py
from collections import OrderedDict
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from .model import DataIssue, Day, PeriodId
from .scheduler import GenerationResult


def timetable_to_dataframe(result: GenerationResult) -> pd.DataFrame:
    times = {p.id: p.time for p in result.periods}
    data = []
    for class_name, by_day in result.timetables.items():
        for day in result.days:
            row = by_day.get(day, {})
            for pid in sorted(row):
                cell = row[pid]
                data.append(
                    {
                        "Class": class_name,
                        "Day": day,
                        "Period": pid,
                        "Time": times.get(pid, ""),
                        "Kind": cell.kind,
                        "Subject": cell.subject or "",
                        "Teacher": cell.teacher or "",
                        "Group": cell.group or "",
                        "Label": cell.label(),
                    }
                )
    return pd.DataFrame(data, columns=["Class", "Day", "Period", "Time", "Kind", "Subject", "Teacher", "Group", "Label"])


def class_grid(result: GenerationResult, class_name: str) -> pd.DataFrame:
    """Day x period table of cell labels for one class."""
    df = timetable_to_dataframe(result)
    df = df[df["Class"] == class_name]
    grid = df.pivot(index="Day", columns="Period", values="Label")
    return grid.reindex(index=[d for d in result.days if d in grid.index])


def teacher_schedules(result: GenerationResult) -> Dict[str, Dict[Day, Dict[PeriodId, Dict[str, str]]]]:
    """
    Invert the class grids into one grid per teacher. A synchronized lesson
    appears once with all of its classes.
    """
    schedules: Dict[str, Dict[Day, Dict[PeriodId, Dict[str, str]]]] = {}
    for class_name, by_day in result.timetables.items():
        for day, row in by_day.items():
            for pid, cell in row.items():
                if not cell.is_lesson:
                    continue
                slot = schedules.setdefault(cell.teacher, {}).setdefault(day, {})
                if pid in slot:
                    slot[pid]["classes"] += f",{class_name}"
                else:
                    slot[pid] = {"subject": cell.subject, "classes": class_name}
    return schedules


def workload_dataframe(result: GenerationResult) -> pd.DataFrame:
    data = []
    for teacher, load in result.teacher_loads.items():
        rec = {
            "Teacher": teacher,
            "PartTime": teacher in result.part_time_teachers,
            "Required": load.required,
            "Assigned": load.assigned,
            "DailyCap": result.teacher_caps.get(teacher),
        }
        for day in result.days:
            rec[day] = load.daily.get(day, 0)
        data.append(rec)
    df = pd.DataFrame(data, columns=["Teacher", "PartTime", "Required", "Assigned", "DailyCap"] + list(result.days))
    return df.sort_values(["Required", "Teacher"], ascending=[False, True]).reset_index(drop=True)


def unresolved_dataframe(result: GenerationResult) -> pd.DataFrame:
    data = [
        {
            "Class": u.class_name,
            "Subject": u.subject,
            "Remaining": u.remaining,
            "Reason": u.reason,
            "Phase": u.phase,
        }
        for u in result.unresolved
    ]
    return pd.DataFrame(data, columns=["Class", "Subject", "Remaining", "Reason", "Phase"])


def summarize_unresolved(result: GenerationResult) -> List[str]:
    """One line per class/subject with the first reason and the total shortfall."""
    grouped: "OrderedDict[str, Dict]" = OrderedDict()
    for u in result.unresolved:
        key = f"{u.class_name} - {u.subject}"
        entry = grouped.setdefault(key, {"count": 0, "reason": u.reason})
        entry["count"] += u.remaining
    return [
        f"{key}: {entry['reason']} ({entry['count']} period{'s' if entry['count'] != 1 else ''})"
        for key, entry in grouped.items()
    ]


def format_workload(result: GenerationResult) -> List[str]:
    lines = []
    for rec in workload_dataframe(result).itertuples(index=False):
        daily = " ".join(f"{d[:1]}:{result.teacher_loads[rec.Teacher].daily.get(d, 0)}" for d in result.days)
        tag = " (part-time)" if rec.PartTime else ""
        lines.append(f"{(rec.Teacher + tag):<25}: {rec.Assigned}/{rec.Required} | {daily}")
    return lines


def export_outputs(result: GenerationResult, out_dir: Path, issues: Optional[List[DataIssue]] = None):
    out_dir.mkdir(parents=True, exist_ok=True)
    timetable_to_dataframe(result).to_csv(out_dir / "timetable.csv", index=False)
    unresolved_dataframe(result).to_csv(out_dir / "unresolved.csv", index=False)
    workload_dataframe(result).to_csv(out_dir / "workload.csv", index=False)
    if result.history:
        pd.DataFrame(result.history).to_csv(out_dir / "phases.csv", index=False)
    all_issues = list(issues or []) + list(result.issues)
    pd.DataFrame(
        [{"kind": i.kind, "message": i.message, "class": i.class_name, "subject": i.subject} for i in all_issues],
        columns=["kind", "message", "class", "subject"],
    ).to_csv(out_dir / "issues.csv", index=False)
    if result.validation is not None:
        report = result.validation
        rows = [{"ok": report.ok, "kind": "violation", "detail": v} for v in report.violations]
        rows += [{"ok": report.ok, "kind": "shortfall", "detail": s} for s in report.shortfalls]
        pd.DataFrame(rows or [{"ok": report.ok, "kind": "", "detail": ""}]).to_csv(out_dir / "validation.csv", index=False)

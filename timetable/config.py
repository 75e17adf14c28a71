"""
Solver configuration.

Policy toggles of the generator live here instead of in separate code paths.
``load_config`` reads them from YAML (JSON is accepted too, it is a YAML
subset) so that a run can be reproduced from a file and a seed.
"""
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Any

import yaml


DEFAULT_DIVISION_YEAR_RANGES: List[Tuple[Tuple[int, int], str]] = [
    ((1, 3), "lowerPrimary"),
    ((4, 6), "upperPrimary"),
    ((7, 9), "lowerSecondary"),
    ((10, 13), "upperSecondary"),
]


@dataclass
class SolverConfig:
    # Reproducibility (None = fresh entropy on every run)
    seed: Optional[int] = 42

    # Class structure
    division_year_ranges: List[Tuple[Tuple[int, int], str]] = field(
        default_factory=lambda: list(DEFAULT_DIVISION_YEAR_RANGES)
    )

    # Daily caps used when the school input does not carry workload limits
    max_subject_periods_per_day: int = 2
    max_teacher_periods_per_day: int = 6
    max_teacher_periods_per_day_exception: int = 8
    # class name or division -> max lessons per day
    class_daily_lesson_caps: Dict[str, int] = field(default_factory=dict)

    # Placement policy
    strict_double_singles_fallback: bool = True
    allow_split_doubles: bool = True
    shuffle_single_slots: bool = True
    shuffle_generic_subjects: bool = True
    max_attempts_per_requirement: int = 50

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SolverConfig":
        merged = asdict(cls())
        for k, v in data.items():
            if k in merged:
                merged[k] = v
        merged["division_year_ranges"] = [
            ((int(lo), int(hi)), str(name)) for (lo, hi), name in merged["division_year_ranges"]
        ]
        return cls(**merged)

    def __post_init__(self):
        if self.max_attempts_per_requirement < 1:
            raise ValueError("max_attempts_per_requirement must be at least 1")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    return yaml.safe_load(path.read_text(encoding="utf-8")) or {}


def load_config(path: str = "config.yaml") -> SolverConfig:
    data = _load_yaml(Path(path))
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping")
    return SolverConfig.from_dict(data)


def resolve_division_for_year(year: int, mapping: List[Tuple[Tuple[int, int], str]]) -> Optional[str]:
    """
    Return the division whose year range contains ``year``, or None.
    """
    for (start, end), division in mapping:
        if start <= year <= end:
            return division
    return None

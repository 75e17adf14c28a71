# timetable/worker.py
"""
Off-the-interactive-path handoff for a generation run.

The caller submits the complete input and gets a ``Future`` for the complete
result. At most one run is in flight; a new request while one is outstanding
is refused so the trigger can stay disabled until the result (or the error)
arrives.
"""
import logging
import threading
from concurrent.futures import Executor, Future, ProcessPoolExecutor, ThreadPoolExecutor
from typing import Optional

from .config import SolverConfig
from .model import Constraints, SchoolData
from .scheduler import GenerationResult, generate_timetable

logger = logging.getLogger(__name__)


class GenerationInProgress(RuntimeError):
    """A generation run is still outstanding."""


class GenerationWorker:
    def __init__(self, use_processes: bool = True):
        self._executor: Executor = ProcessPoolExecutor(max_workers=1) if use_processes else ThreadPoolExecutor(max_workers=1)
        self._lock = threading.Lock()
        self._pending: Optional[Future] = None

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._pending is not None and not self._pending.done()

    def submit(
        self,
        school: SchoolData,
        constraints: Constraints,
        cfg: Optional[SolverConfig] = None,
        seed: Optional[int] = None,
    ) -> "Future[GenerationResult]":
        with self._lock:
            if self._pending is not None and not self._pending.done():
                raise GenerationInProgress("A timetable is already being generated")
            logger.info("Worker: starting generation")
            self._pending = self._executor.submit(generate_timetable, school, constraints, cfg, seed)
            return self._pending

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "GenerationWorker":
        return self

    def __exit__(self, *exc):
        self.shutdown()

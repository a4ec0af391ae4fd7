"""
Per-user analysis sessions.

Rationale:
- The pipeline itself is stateless; a session only threads the current Dataset and
  the latest results between requests.
- Uploading a new file bumps the generation. An analysis that started on an older
  generation is discarded when it finishes instead of being stored.
"""

import logging
import threading
import uuid
from collections import OrderedDict
from typing import Optional

from .analyzer import AnalysisRun, run_analysis
from .config import MAX_SESSIONS
from .schemas import Dataset

logger = logging.getLogger(__name__)


class SupersededAnalysisError(RuntimeError):
    """The Dataset was replaced while the analysis was running."""


class AnalysisSession:
    def __init__(self, dataset: Dataset):
        self.id = uuid.uuid4().hex
        self._lock = threading.Lock()
        self._dataset = dataset
        self._generation = 1
        self._last_run: Optional[AnalysisRun] = None
        self._last_instructions = ""

    @property
    def dataset(self) -> Dataset:
        with self._lock:
            return self._dataset

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def last_run(self) -> Optional[AnalysisRun]:
        with self._lock:
            return self._last_run

    @property
    def last_instructions(self) -> str:
        with self._lock:
            return self._last_instructions

    def replace_dataset(self, dataset: Dataset) -> int:
        """New upload supersedes the old Dataset and forgets its results."""
        with self._lock:
            self._dataset = dataset
            self._generation += 1
            self._last_run = None
            self._last_instructions = ""
            logger.info(f"Session {self.id}: dataset replaced (generation {self._generation})")
            return self._generation

    def analyze(self, instructions: str) -> AnalysisRun:
        with self._lock:
            dataset = self._dataset
            generation = self._generation

        run = run_analysis(dataset, instructions)

        with self._lock:
            if generation != self._generation:
                logger.warning(
                    f"Session {self.id}: discarding analysis for generation {generation}, "
                    f"current is {self._generation}"
                )
                raise SupersededAnalysisError(
                    "The file was replaced while the analysis was running; run it again."
                )
            self._last_run = run
            self._last_instructions = instructions
        return run


class SessionStore:
    """
    In-memory session registry (single process).
    Holds at most `max_sessions`; creating one more evicts the least recently used.
    """

    def __init__(self, max_sessions: int = MAX_SESSIONS):
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, AnalysisSession]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def create(self, dataset: Dataset) -> AnalysisSession:
        session = AnalysisSession(dataset)
        with self._lock:
            self._sessions[session.id] = session
            while self.max_sessions and len(self._sessions) > self.max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.info(f"Session {evicted} evicted (limit {self.max_sessions})")
        return session

    def get(self, session_id: str) -> Optional[AnalysisSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._sessions.move_to_end(session_id)
            return session

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

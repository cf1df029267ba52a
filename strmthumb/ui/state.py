import threading
from collections import deque
from datetime import datetime
from typing import List, Optional, Tuple

from strmthumb.domain.models import BatchProgress


class UIState:
    """Thread-safe state for the terminal dashboard.

    Written by UIManager on the event loop, read by the rich Live refresh thread.
    """

    def __init__(self, activity_feed_max_items: int = 8):
        self._lock = threading.RLock()

        self.progress = BatchProgress()
        self.recent_messages: deque = deque(maxlen=activity_feed_max_items)
        self.failed_identifiers: List[str] = []

        self.ui_title = "strmthumb"
        self.config_lines: List[str] = []
        self.concurrency = 0
        self.processing_start_time: Optional[datetime] = None
        self.finished = False

    def update_progress(self, progress: BatchProgress) -> None:
        with self._lock:
            if self.processing_start_time is None:
                self.processing_start_time = datetime.now()
            self.progress = progress.model_copy()

    def add_message(self, message: str, level: str) -> None:
        with self._lock:
            self.recent_messages.appendleft((datetime.now(), level, message))

    def add_failed(self, identifier: str) -> None:
        with self._lock:
            if identifier not in self.failed_identifiers:
                self.failed_identifiers.append(identifier)

    def mark_finished(self, progress: BatchProgress, failed: List[str]) -> None:
        with self._lock:
            self.progress = progress.model_copy()
            self.failed_identifiers = list(failed)
            self.finished = True

    def snapshot(self) -> Tuple[BatchProgress, list, List[str], bool]:
        with self._lock:
            return (
                self.progress.model_copy(),
                list(self.recent_messages),
                list(self.failed_identifiers),
                self.finished,
            )

    @property
    def elapsed_seconds(self) -> float:
        with self._lock:
            if self.processing_start_time is None:
                return 0.0
            return (datetime.now() - self.processing_start_time).total_seconds()

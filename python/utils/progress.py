"""Push progress tracking with an optional tqdm bar"""

import threading
from typing import Optional

import tqdm


class ProgressReporter:
    """Counts completed pushes against a target that is fixed once listing ends.

    The counts are kept whether or not a bar is rendered.
    """

    def __init__(self, enabled: bool = True, desc: str = "Pushing"):
        self.enabled = enabled
        self.desc = desc
        self.total: Optional[int] = None
        self._completed = 0
        self._lock = threading.Lock()
        self._bar: Optional[tqdm.tqdm] = None

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    def start(self) -> None:
        """Render the bar; pushes completed before this call are shown as done"""
        with self._lock:
            if self.enabled and self._bar is None:
                self._bar = tqdm.tqdm(total=self.total, initial=self._completed, desc=self.desc, unit="image")

    def set_total(self, total: int) -> None:
        """Fix the target count (number of images enqueued)"""
        with self._lock:
            self.total = total
            if self._bar is not None:
                self._bar.total = total
                self._bar.refresh()

    def increment(self, n: int = 1) -> None:
        with self._lock:
            self._completed += n
            if self._bar is not None:
                self._bar.update(n)

    def close(self) -> None:
        with self._lock:
            if self._bar is not None:
                self._bar.close()
                self._bar = None

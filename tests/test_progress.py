"""Unit tests for utils/progress.py"""

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

_python_dir = Path(__file__).parent.parent / "python"
if str(_python_dir.absolute()) not in sys.path:
    sys.path.insert(0, str(_python_dir.absolute()))

from utils.progress import ProgressReporter


class TestProgressReporter:
    """Tests for ProgressReporter"""

    def test_counts_without_bar(self):
        """Test completed pushes are counted when the bar is disabled"""
        progress = ProgressReporter(enabled=False)

        with patch("utils.progress.tqdm.tqdm") as mock_tqdm:
            progress.start()
            progress.increment()
            progress.increment(2)
            progress.close()

        mock_tqdm.assert_not_called()
        assert progress.completed == 3

    def test_bar_starts_at_already_completed(self):
        """Test pushes finished before the bar is shown are rendered as done"""
        progress = ProgressReporter(desc="Pushing")
        progress.increment(2)
        progress.set_total(5)

        with patch("utils.progress.tqdm.tqdm") as mock_tqdm:
            progress.start()

        mock_tqdm.assert_called_once_with(total=5, initial=2, desc="Pushing", unit="image")

    def test_updates_and_closes_bar(self):
        progress = ProgressReporter()
        bar = MagicMock()

        with patch("utils.progress.tqdm.tqdm", return_value=bar):
            progress.start()
            progress.set_total(3)
            progress.increment()
            progress.close()

        assert bar.total == 3
        bar.refresh.assert_called_once()
        bar.update.assert_called_once_with(1)
        bar.close.assert_called_once()

    def test_start_is_idempotent(self):
        progress = ProgressReporter()

        with patch("utils.progress.tqdm.tqdm") as mock_tqdm:
            progress.start()
            progress.start()

        mock_tqdm.assert_called_once()

"""
Pytest configuration file.

Sets up the Python path so test files can import from the python/ directory,
and provides a fake container runtime client shared by the pipeline tests.
"""
import sys
import threading
from pathlib import Path

import pytest

# Add python directory to path for all tests
_python_dir = Path(__file__).parent.parent / 'python'
_python_dir_abs = str(_python_dir.absolute())
if _python_dir_abs not in sys.path:
    sys.path.insert(0, _python_dir_abs)


class FakeDockerClient:
    """In-memory stand-in for DockerClient that records every call in order"""

    def __init__(self, lines=None, push_results=None, tag_error=None):
        self.lines = list(lines or [])
        # destination image -> list of outcomes; an Exception is raised, anything else returned
        self.push_results = dict(push_results or {})
        self.tag_error = tag_error
        self.events = []
        self.tagged = []
        self.pushed = []
        self.listing_closed = False
        self._lock = threading.Lock()

    def list_images(self):
        try:
            for line in self.lines:
                yield line
        finally:
            self.listing_closed = True

    def tag_image(self, image_id, destination_image):
        with self._lock:
            self.events.append(("tag", destination_image))
        if self.tag_error is not None:
            raise self.tag_error
        with self._lock:
            self.tagged.append((image_id, destination_image))

    def push_image(self, destination_image):
        with self._lock:
            self.events.append(("push", destination_image))
            self.pushed.append(destination_image)
            outcomes = self.push_results.get(destination_image)
            outcome = outcomes.pop(0) if outcomes else "pushed"
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def runtime_version(self):
        return "24.0.0"


@pytest.fixture
def fake_docker_client():
    return FakeDockerClient

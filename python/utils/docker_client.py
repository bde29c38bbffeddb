"""
Container runtime client for local image operations.

This module wraps the three runtime subcommands the retag pipeline needs
(image listing, tagging, pushing) behind a small client. All registry traffic
goes through the runtime binary (docker by default, podman works as well).
"""

import logging
import subprocess
from typing import Iterator, List, Optional

from utils.error_utils import (
    create_listing_error,
    create_push_error,
    create_runtime_unavailable_error,
    create_tag_error,
)
from utils.image_records import LISTING_FORMAT


class DockerClient:
    """Standardized container runtime client for image operations"""

    def __init__(self, runtime_command: str = "docker"):
        self.runtime_command = runtime_command
        self.logger = logging.getLogger(self.__class__.__name__)

    def _build_command(self, args: List[str]) -> List[str]:
        """Build a complete runtime command"""
        return [self.runtime_command] + args

    def list_images(self) -> Iterator[str]:
        """Yield one `<id> <repository> <tag>` line per local image.

        Lines are streamed as the runtime prints them. The exit status is
        checked once the output ends.

        Raises:
            RuntimeCommandError: If the runtime cannot be started or exits non-zero
        """
        cmd = self._build_command(["image", "ls", "--format", LISTING_FORMAT])
        self.logger.debug(f"Listing images: {' '.join(cmd)}")

        try:
            proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
        except OSError as e:
            raise create_runtime_unavailable_error(cmd, e) from e

        with proc:
            for line in proc.stdout:
                yield line.rstrip("\r\n")
            stderr = proc.stderr.read()
            returncode = proc.wait()

        if returncode != 0:
            raise create_listing_error(cmd, returncode, stderr)

    def tag_image(self, image_id: str, destination_image: str) -> None:
        """Create destination_image as a new local reference to image_id

        Raises:
            RuntimeCommandError: If the runtime cannot be started or exits non-zero
        """
        cmd = self._build_command(["image", "tag", image_id, destination_image])

        try:
            subprocess.run(cmd, capture_output=True, text=True, check=True)
        except OSError as e:
            raise create_runtime_unavailable_error(cmd, e) from e
        except subprocess.CalledProcessError as e:
            output = "\n".join(part for part in (e.stdout, e.stderr) if part)
            raise create_tag_error(cmd, image_id, destination_image, e.returncode, output) from e

    def push_image(self, destination_image: str) -> str:
        """Push destination_image and return its combined stdout/stderr

        Raises:
            RuntimeCommandError: If the runtime cannot be started or exits
                non-zero; the error carries the combined output
        """
        cmd = self._build_command(["push", destination_image])

        try:
            result = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)
        except OSError as e:
            raise create_runtime_unavailable_error(cmd, e) from e

        if result.returncode != 0:
            self.logger.debug(f"Push of {destination_image} exited with {result.returncode}")
            raise create_push_error(cmd, destination_image, result.returncode, result.stdout)
        return result.stdout or ""

    def runtime_version(self) -> Optional[str]:
        """Return the runtime client version, or None if it cannot be determined"""
        cmd = self._build_command(["version", "--format", "{{.Client.Version}}"])
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True)
        except (OSError, subprocess.CalledProcessError) as e:
            self.logger.debug(f"Could not determine runtime version: {e}")
            return None
        return result.stdout.strip() or None

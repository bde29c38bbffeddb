#!/usr/bin/env python3
"""
Image listing records and the source -> destination rewrite rules.

Listing lines have the shape `<id> <repository> <tag>` (see LISTING_FORMAT).
A line is selected when it belongs to the source coordinate; the selected
record's repository and tag are then rewritten to the destination coordinate,
replacing only the first occurrence of each source value. Name filters apply
to the rewritten (destination) repository only.
"""

from dataclasses import dataclass
from typing import Optional

from utils.error_utils import create_record_format_error

# Go template understood by `docker image ls --format` / `podman image ls --format`
LISTING_FORMAT = "{{.ID}} {{.Repository}} {{.Tag}}"


@dataclass(frozen=True)
class ImageRecord:
    """One parsed line of the image listing"""
    id: str
    repository: str
    tag: str


@dataclass(frozen=True)
class Coordinate:
    """A (repository, version) pair identifying a family of image references"""
    repository: str
    version: str = "latest"

    def __str__(self) -> str:
        return f"{self.repository}:{self.version}"


@dataclass(frozen=True)
class NameFilter:
    """Include/exclude substrings checked against the destination repository"""
    include: Optional[str] = None
    exclude: Optional[str] = None

    def accepts(self, repository: str) -> bool:
        if self.include and self.include not in repository:
            return False
        if self.exclude and self.exclude in repository:
            return False
        return True


@dataclass(frozen=True)
class RewrittenReference:
    """Unit of work carried through tagging and pushing"""
    local_id: str
    destination_image: str


def parse_record(line: str) -> ImageRecord:
    """Split a listing line into an ImageRecord.

    Fields are separated by single spaces and taken verbatim.

    Raises:
        RecordFormatError: If the line does not have exactly three fields
    """
    parts = line.split(" ")
    if len(parts) != 3:
        raise create_record_format_error(line, len(parts))
    return ImageRecord(id=parts[0], repository=parts[1], tag=parts[2])


def is_selected(line: str, source: Coordinate) -> bool:
    """Check whether a raw listing line belongs to the source coordinate.

    The version must be a space-prefixed substring of the raw line, so
    "latest" does not match "notlatest" but does match "latest-rc"; the
    repository is a plain substring.
    """
    return f" {source.version}" in line and source.repository in line


def rewrite_record(record: ImageRecord, source: Coordinate, destination: Coordinate) -> RewrittenReference:
    """Map a source record onto the destination coordinate.

    Only the leftmost occurrence of the source repository (and version) is
    replaced, e.g. "src/src/app" with src -> dst becomes "dst/src/app".
    """
    repository = rewrite_repository(record.repository, source, destination)
    tag = record.tag.replace(source.version, destination.version, 1)
    return RewrittenReference(local_id=record.id, destination_image=f"{repository}:{tag}")


def rewrite_repository(repository: str, source: Coordinate, destination: Coordinate) -> str:
    return repository.replace(source.repository, destination.repository, 1)


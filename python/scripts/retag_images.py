#!/usr/bin/env python3
"""
Retag local Docker images to a new repository/version and push them.

Every local image whose listing line matches the source coordinate is tagged
under the destination coordinate and pushed with a pool of worker threads.
Tagging happens on the main thread in listing order; pushing is concurrent.

Workflow:
1. List local images (`docker image ls --format "{{.ID}} {{.Repository}} {{.Tag}}"`)
2. Select images of the source repository/version and rewrite them to the destination
3. Drop images rejected by the --filter / --exclude-filter name filters
4. Tag each selected image locally and queue it for pushing
5. Push queued images concurrently, retrying pushes the daemon reports as transient
6. Print a summary (and optionally save it as a JSON report)

Any failure other than a transient push failure stops the run.

Usage examples:
  # Retag myrepo/* :latest images as registry.example.com/myrepo/* :latest and push them
  python retag_images.py -s myrepo -d registry.example.com/myrepo

  # Promote v1 images to v2, only those whose destination name contains "api"
  python retag_images.py -s registry.local/app -v v1 -d registry.remote/app -V v2 -f api

  # Show what would be tagged and pushed without touching anything
  python retag_images.py -s myrepo -d registry.example.com/myrepo --dry-run
"""

import argparse
import sys
import threading
from contextlib import closing
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

# Add parent directory to path for imports
_parent_dir = Path(__file__).parent.parent.absolute()
if str(_parent_dir) not in sys.path:
    sys.path.insert(0, str(_parent_dir))

from tqdm.contrib.logging import logging_redirect_tqdm

from utils.config_manager import ConfigManager, ConfigValidationError, RetagConfig
from utils.docker_client import DockerClient
from utils.image_records import RewrittenReference, is_selected, parse_record, rewrite_record, rewrite_repository
from utils.logging_utils import get_logger, log_exception, setup_logging
from utils.progress import ProgressReporter
from utils.push_dispatcher import PushDispatcher
from utils.report_utils import save_json
from utils.retry_utils import retry_operation

logger = get_logger(__name__)


@dataclass
class RetagSummary:
    """Counters for one run"""

    listed: int = 0
    selected: int = 0
    filtered: int = 0
    tagged: int = 0
    enqueued: int = 0
    pushed: int = 0
    retries: int = 0
    dry_run: bool = False
    images: List[str] = field(default_factory=list)


class ImageRetagger:
    """Retags images from the source coordinate to the destination and pushes them."""

    def __init__(
        self,
        config: RetagConfig,
        docker_client: Optional[DockerClient] = None,
        progress: Optional[ProgressReporter] = None,
    ):
        self.config = config
        self.docker_client = docker_client or DockerClient(config.runtime_command)
        self.progress = progress or ProgressReporter(enabled=config.show_progress)
        self.summary = RetagSummary()
        self._lock = threading.Lock()
        self._stop: Optional[threading.Event] = None
        self.logger = get_logger(self.__class__.__name__)

    def process_line(self, line: str) -> Optional[RewrittenReference]:
        """Parse one listing line and return its destination reference if selected.

        Raises:
            RecordFormatError: If the line is not `<id> <repository> <tag>`
        """
        self.summary.listed += 1
        record = parse_record(line)

        source = self.config.source
        destination = self.config.destination
        if not is_selected(line, source):
            return None
        self.summary.selected += 1

        repository = rewrite_repository(record.repository, source, destination)
        if not self.config.name_filter.accepts(repository):
            self.logger.debug(f"Skipping {record.repository}:{record.tag}, {repository} rejected by name filter")
            self.summary.filtered += 1
            return None

        return rewrite_record(record, source, destination)

    def tag_image(self, reference: RewrittenReference) -> None:
        self.docker_client.tag_image(reference.local_id, reference.destination_image)
        self.summary.tagged += 1
        self.logger.info(f"- {reference.destination_image}")

    def push_image(self, reference: RewrittenReference) -> str:
        """Push one image, retrying while the daemon reports a transient failure

        Retries stop as soon as another image has failed the run.
        """
        return retry_operation(
            lambda: self.docker_client.push_image(reference.destination_image),
            settings=self.config.retry,
            operation_name=f"push {reference.destination_image}",
            on_retry=self._record_retry,
            stop=self._stop,
        )

    def _record_retry(self, retry_number: int, error: Exception) -> None:
        with self._lock:
            self.summary.retries += 1

    def _on_pushed(self, reference: RewrittenReference) -> None:
        with self._lock:
            self.summary.pushed += 1
        self.progress.increment()

    def run(self, dry_run: bool = False) -> RetagSummary:
        """Run the full pipeline

        Raises:
            ActionableError: On the first fatal failure (listing, parsing, tagging or pushing)
        """
        self.summary = RetagSummary(dry_run=dry_run)

        if dry_run:
            self._run_dry()
            return self.summary

        dispatcher: PushDispatcher[RewrittenReference] = PushDispatcher(
            self.push_image,
            workers=self.config.threads,
            capacity=self.config.queue_capacity,
            on_complete=self._on_pushed,
        )
        self._stop = dispatcher.stop_event
        dispatcher.start()

        self.logger.info("Found images to push")
        try:
            with closing(self.docker_client.list_images()) as lines:
                for line in lines:
                    reference = self.process_line(line)
                    if reference is None:
                        continue
                    self.tag_image(reference)
                    dispatcher.submit(reference)
                    self.summary.images.append(reference.destination_image)
        except Exception as e:
            dispatcher.abort(e)

        self.summary.enqueued = dispatcher.enqueued
        self.progress.set_total(dispatcher.enqueued)

        if dispatcher.failure is None:
            self.logger.info("Starting pushing images")
            self.progress.start()
        try:
            with logging_redirect_tqdm():
                dispatcher.join()
        finally:
            self.progress.close()

        return self.summary

    def _run_dry(self) -> None:
        with closing(self.docker_client.list_images()) as lines:
            for line in lines:
                reference = self.process_line(line)
                if reference is None:
                    continue
                self.logger.info(f"  Would tag {reference.local_id} as {reference.destination_image} and push it")
                self.summary.images.append(reference.destination_image)


def build_report(config: RetagConfig, summary: RetagSummary) -> dict:
    return {
        "summary": {
            "listed": summary.listed,
            "selected": summary.selected,
            "filtered": summary.filtered,
            "tagged": summary.tagged,
            "enqueued": summary.enqueued,
            "pushed": summary.pushed,
            "retries": summary.retries,
            "dry_run": summary.dry_run,
        },
        "images": summary.images,
        "metadata": {
            "source": str(config.source),
            "destination": str(config.destination),
            "include_filter": config.name_filter.include,
            "exclude_filter": config.name_filter.exclude,
            "runtime": config.runtime_command,
            "threads": config.threads,
            "timestamp": datetime.now().isoformat(),
        },
    }


def parse_arguments(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description="Change the repository of existing Docker images and push them",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Retag and push all myrepo/* :latest images
  python retag_images.py -s myrepo -d registry.example.com/myrepo

  # Promote v1 to v2 for images whose destination name contains "api" but not "beta"
  python retag_images.py -s registry.local/app -v v1 -d registry.remote/app -V v2 -f api -e beta

  # Dry run
  python retag_images.py -s myrepo -d registry.example.com/myrepo --dry-run
        """,
    )

    parser.add_argument("-s", "--source-repository", help="Source Docker image repository")
    parser.add_argument("-v", "--source-version", help="Source Docker image version (default: latest)")
    parser.add_argument("-d", "--dest-repository", help="Destination Docker repository")
    parser.add_argument("-V", "--dest-version", help="Destination Docker image version (default: latest)")

    parser.add_argument(
        "-f",
        "--filter",
        help="Filter Docker images by name; destination name must contain the provided filter",
    )
    parser.add_argument(
        "-e",
        "--exclude-filter",
        help="Exclude Docker images by name; destination name must not contain the provided filter",
    )

    parser.add_argument("-t", "--threads", type=int, help="Number of concurrent pushes (default: 4)")
    parser.add_argument("--runtime", help="Container runtime binary (default: docker)")
    parser.add_argument("--config", help="Path to config.yaml (default: CONFIG_FILE env var or ./config.yaml)")
    parser.add_argument("--output", help="Write a JSON run report to this path")
    parser.add_argument(
        "--timestamp-report",
        action="store_true",
        help="Insert a timestamp into the report filename (e.g. retag-2026-01-15-14-30-00.json)",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only show which images would be tagged and pushed",
    )
    parser.add_argument("--no-progress", action="store_true", help="Disable the progress bar")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--show-config", action="store_true", help="Print the effective configuration and exit")

    return parser.parse_args(argv)


def build_overrides(args) -> dict:
    """Map command-line flags onto the config.yaml layout"""
    return {
        "runtime": {"command": args.runtime},
        "source": {"repository": args.source_repository, "version": args.source_version},
        "destination": {"repository": args.dest_repository, "version": args.dest_version},
        "filters": {"include": args.filter, "exclude": args.exclude_filter},
        "push": {"threads": args.threads},
        "progress": {"enabled": False if args.no_progress else None},
        "report": {"output": args.output, "timestamp": True if args.timestamp_report else None},
    }


def main(argv: Optional[List[str]] = None):
    args = parse_arguments(argv)
    setup_logging(args.log_level)

    try:
        config_manager = ConfigManager(config_file=args.config, overrides=build_overrides(args))
        if args.show_config:
            config_manager.print_config()
            sys.exit(0)
        config = config_manager.get_retag_config()
    except ConfigValidationError as e:
        logger.error(str(e))
        sys.exit(1)

    dry_run = args.dry_run

    try:
        retagger = ImageRetagger(config)

        # Print mode banner
        logger.info("=" * 60)
        if dry_run:
            logger.info("   IMAGE RETAG - DRY RUN MODE")
            logger.info("   No images will be tagged or pushed.")
        else:
            logger.info("   IMAGE RETAG")
        logger.info("=" * 60)
        logger.info(f"Runtime:      {config.runtime_command} {retagger.docker_client.runtime_version() or ''}".rstrip())
        logger.info(f"Source:       {config.source}")
        logger.info(f"Destination:  {config.destination}")
        if config.name_filter.include:
            logger.info(f"Include:      {config.name_filter.include}")
        if config.name_filter.exclude:
            logger.info(f"Exclude:      {config.name_filter.exclude}")
        if not dry_run:
            logger.info(f"Push threads: {config.threads}")
        logger.info("")

        summary = retagger.run(dry_run=dry_run)

        # Print summary
        logger.info("")
        logger.info("=" * 60)
        mode = "DRY RUN " if dry_run else ""
        logger.info(f"   {mode}RETAG SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Images listed:   {summary.listed}")
        logger.info(f"Selected:        {summary.selected}")
        if summary.filtered:
            logger.info(f"Filtered out:    {summary.filtered}")
        if dry_run:
            logger.info(f"Would push:      {len(summary.images)}")
        else:
            logger.info(f"Tagged:          {summary.tagged}")
            logger.info(f"Pushed:          {summary.pushed}")
            if summary.retries:
                logger.info(f"Push retries:    {summary.retries}")

        if config.report_path:
            save_json(config.report_path, build_report(config, summary), timestamp=config.report_timestamp)

    except KeyboardInterrupt:
        logger.warning("\nRetag interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"\nRetag failed: {e}")
        log_exception(logger, "Error in retag", exc_info=e)
        sys.exit(1)


if __name__ == "__main__":
    main()

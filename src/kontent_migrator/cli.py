"""
Command-line interface for the Kontent.ai content-type migration tool.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import TYPE_CHECKING

from .config import DEFAULT_FALLBACK_LANGUAGES, MigrationSettings, configuration_status, load_config
from .exceptions import MigrationConfigError, MigrationError
from .kontent_client import KontentClient
from .mapping import build_field_mappings
from .models import MigrationItem
from .orchestrator import MigrationOrchestrator, MigrationRequest
from .publisher import BatchPublisher
from .relationships import RelationshipDiscoverer
from .utils import PassError, setup_logging

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import BatchResult
    from .orchestrator import MigrationOutcome

logger: logging.Logger = logging.getLogger(__name__)


def parse_arguments() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Migrate Kontent.ai content items from one content type to another")

    _ = parser.add_argument("source_type", nargs="?", help="Codename of the source content type")
    _ = parser.add_argument("target_type", nargs="?", help="Codename of the target content type")
    _ = parser.add_argument("items", nargs="*", help="Codenames of the items to migrate")

    _ = parser.add_argument("--language", "-l", default="en", help="Language codename to migrate (default: en)")
    _ = parser.add_argument(
        "--map",
        "-m",
        action="append",
        dest="field_map",
        help='Field mapping override (format: "source_field:target_field", empty target drops the field). '
        "Can be specified multiple times.",
    )
    _ = parser.add_argument(
        "--fallback-language",
        action="append",
        dest="fallback_languages",
        help="Language tried when an item has no variant in --language. Can be specified multiple times.",
    )
    _ = parser.add_argument(
        "--update-incoming-references",
        action="store_true",
        help="Rewrite references from other items so they point at the migrated items",
    )
    _ = parser.add_argument("--publish", action="store_true", help="Publish the resulting drafts after migration")
    _ = parser.add_argument("--batch-size", type=int, default=5, help="Items per publish batch, 1-50 (default: 5)")
    _ = parser.add_argument(
        "--publish-delay", type=float, default=2.0, help="Seconds to wait between publish batches (default: 2)"
    )
    _ = parser.add_argument("--management-pass-path", help="Path of the Management API key in the pass utility")
    _ = parser.add_argument("--preview-pass-path", help="Path of the Preview API key in the pass utility")
    _ = parser.add_argument("--status", action="store_true", help="Show which credentials are configured and exit")
    _ = parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return parser.parse_args()


def _print_status(status: dict[str, object]) -> None:
    print("Kontent.ai configuration")
    print(f"  Environment ID:     {status['environment_id'] or 'missing'}")
    print(f"  Management API key: {'set' if status['has_management_key'] else 'missing'}")
    print(f"  Preview API key:    {'set' if status['has_preview_key'] else 'missing'}")
    print(f"  Status:             {'OK' if status['is_valid'] else 'INCOMPLETE'}")


def _print_report(outcome: MigrationOutcome, batches: Sequence[BatchResult]) -> None:
    print("=" * 60)
    print(f"Migration {'SUCCEEDED' if outcome.success else 'FINISHED WITH ERRORS'}")
    for result in outcome.results:
        marker = "OK " if result.status == "success" else "ERR"
        print(f"  [{marker}] {result.source_item.codename}: {result.message}")
    print(f"Migrated items: {len(outcome.migrated_items_map)}")
    print(f"Items with rewritten references: {len(outcome.updated_reference_items)}")
    if outcome.skipped_references:
        print(f"Skipped references: {len(outcome.skipped_references)}")
    print(f"Drafts: {len(outcome.draft_items)}")
    if batches:
        published = sum(batch.published for batch in batches)
        failed = sum(batch.failed for batch in batches)
        print(f"Published: {published}, failed: {failed}")
        for batch in batches:
            for error in batch.errors:
                print(f"  - batch {batch.batch_number}: {error}")


def main() -> None:
    """Main entry point."""
    args = parse_arguments()

    verbose: bool = getattr(args, "verbose", False)
    setup_logging(verbose=verbose)

    if args.status:
        status = configuration_status()
        _print_status(status)
        sys.exit(0 if status["is_valid"] else 1)

    try:
        if not args.source_type or not args.target_type or not args.items:
            msg = "A source type, a target type and at least one item codename are required"
            raise MigrationConfigError(msg)

        settings = MigrationSettings(
            language=args.language,
            fallback_languages=tuple(args.fallback_languages or DEFAULT_FALLBACK_LANGUAGES),
            publish_batch_size=args.batch_size,
            publish_delay_seconds=args.publish_delay,
        )
        config = load_config(
            management_pass_path=args.management_pass_path,
            preview_pass_path=args.preview_pass_path,
        )
        client = KontentClient(config)

        source_type = client.fetch_type_schema(args.source_type)
        target_type = client.fetch_type_schema(args.target_type)
        mappings = build_field_mappings(source_type, target_type, args.field_map)
        for mapping in mappings:
            for warning in mapping.warnings:
                logger.warning(warning)

        items: list[MigrationItem] = []
        for codename in args.items:
            snapshot = client.fetch_item(codename, settings.language)
            if snapshot.type != source_type.codename:
                msg = f"{codename} is of type {snapshot.type}, not {source_type.codename}"
                raise MigrationConfigError(msg)
            items.append(MigrationItem(id=snapshot.id, name=snapshot.name, codename=snapshot.codename, type=snapshot.type))

        relationships = RelationshipDiscoverer(client, settings.language, settings.fallback_languages).discover(items)

        outcome = MigrationOrchestrator(client, client, settings).run(
            MigrationRequest(
                source_type=source_type,
                target_type=target_type,
                field_mappings=mappings,
                selected_items=items,
                relationships=relationships,
                language=settings.language,
                update_incoming_references=args.update_incoming_references,
            )
        )

        batches: list[BatchResult] = []
        if args.publish and outcome.draft_items:
            publisher = BatchPublisher(
                client,
                batch_size=settings.publish_batch_size,
                delay_seconds=settings.publish_delay_seconds,
            )
            batches = publisher.publish(outcome.draft_items)

        _print_report(outcome, batches)

        publish_failed = any(batch.failed for batch in batches)
        sys.exit(0 if outcome.success and not publish_failed else 1)

    except (MigrationError, PassError, ValueError):
        logger.exception("Migration failed")
        sys.exit(1)

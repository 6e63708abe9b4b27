"""Batch publishing of the drafts a migration run left behind."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from .config import MAX_BATCH_SIZE, MIN_BATCH_SIZE
from .exceptions import PublishError, RepositoryError
from .models import BatchResult

if TYPE_CHECKING:
    from .models import DraftItem
    from .protocols import ContentWriter

logger: logging.Logger = logging.getLogger(__name__)


class BatchPublisher:
    """Publishes draft items in fixed-size batches with a pause in between.

    The pause keeps webhook consumers of the repository from being flooded.
    Items published by this instance are remembered and never published twice.
    """

    _writer: ContentWriter
    _language: str | None
    _batch_size: int
    _delay_seconds: float
    _sleep: Callable[[float], None]
    _published: set[str]

    def __init__(
        self,
        writer: ContentWriter,
        language: str | None = None,
        *,
        batch_size: int = 5,
        delay_seconds: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the publisher.

        Args:
            writer: Repository write side
            language: Language to publish; None uses each draft's own language
            batch_size: Items per batch, between 1 and 50
            delay_seconds: Pause between two batches
            sleep: Sleep function, replaceable in tests

        Raises:
            ValueError: If batch_size is out of range
        """
        if not MIN_BATCH_SIZE <= batch_size <= MAX_BATCH_SIZE:
            msg = f"Batch size must be between {MIN_BATCH_SIZE} and {MAX_BATCH_SIZE}, got {batch_size}"
            raise ValueError(msg)
        self._writer = writer
        self._language = language
        self._batch_size = batch_size
        self._delay_seconds = delay_seconds
        self._sleep = sleep
        self._published = set()

    @property
    def published_ids(self) -> frozenset[str]:
        return frozenset(self._published)

    def publish(self, draft_items: Sequence[DraftItem]) -> list[BatchResult]:
        """Publish all drafts not yet published by this publisher.

        Per-item failures are counted in the batch result and never raised.
        """
        pending: list[DraftItem] = []
        seen: set[str] = set()
        for item in draft_items:
            if item.id in self._published or item.id in seen:
                continue
            seen.add(item.id)
            pending.append(item)

        batches = [pending[start : start + self._batch_size] for start in range(0, len(pending), self._batch_size)]
        logger.info(f"Publishing {len(pending)} items in {len(batches)} batches of up to {self._batch_size}")

        results: list[BatchResult] = []
        for number, batch in enumerate(batches, start=1):
            results.append(self._publish_batch(number, batch))
            if number < len(batches):
                self._sleep(self._delay_seconds)
        return results

    def _publish_batch(self, number: int, batch: Sequence[DraftItem]) -> BatchResult:
        result = BatchResult(batch_number=number)
        for item in batch:
            language = self._language or item.language
            try:
                self._writer.publish(item.id, language)
            except (PublishError, RepositoryError) as e:
                result.failed += 1
                result.errors.append(f"{item.name} ({item.codename}): {e}")
                logger.warning(f"Failed to publish {item.codename} ({language}): {e}")
                continue
            result.published += 1
            self._published.add(item.id)
            logger.debug(f"Published {item.codename} ({language})")

        logger.info(f"Batch {number}: {result.published} published, {result.failed} failed")
        return result

"""
Tests for batch publishing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import Mock

import pytest

from kontent_migrator.exceptions import TransientRepositoryError
from kontent_migrator.models import DraftItem
from kontent_migrator.publisher import BatchPublisher

if TYPE_CHECKING:
    from conftest import FakeRepository


def _drafts(repository: FakeRepository, count: int) -> list[DraftItem]:
    drafts = []
    for index in range(1, count + 1):
        item = repository.add_item(f"item-{index}", "tag", title=f"Item {index}")
        drafts.append(DraftItem(id=item.id, name=item.name, codename=item.codename, type="tag", language="en"))
    return drafts


@pytest.mark.unit
class TestBatchPublisher:
    def test_publishes_in_batches_with_delay_between(self, tag_repository: FakeRepository) -> None:
        sleep = Mock()
        publisher = BatchPublisher(tag_repository, batch_size=5, delay_seconds=2.0, sleep=sleep)

        results = publisher.publish(_drafts(tag_repository, 12))

        assert [(r.batch_number, r.published, r.failed) for r in results] == [(1, 5, 0), (2, 5, 0), (3, 2, 0)]
        # Pause only between batches, never after the last one
        assert sleep.call_count == 2
        sleep.assert_called_with(2.0)
        assert all("en" in tag_repository.items[f"item-{i}"].published for i in range(1, 13))

    def test_single_batch_does_not_sleep(self, tag_repository: FakeRepository) -> None:
        sleep = Mock()

        _ = BatchPublisher(tag_repository, sleep=sleep).publish(_drafts(tag_repository, 3))

        sleep.assert_not_called()

    def test_empty_input_produces_no_batches(self, tag_repository: FakeRepository) -> None:
        assert BatchPublisher(tag_repository, sleep=Mock()).publish([]) == []

    @pytest.mark.parametrize("batch_size", [0, 51, -1])
    def test_batch_size_out_of_range(self, tag_repository: FakeRepository, batch_size: int) -> None:
        with pytest.raises(ValueError, match="Batch size must be between 1 and 50"):
            _ = BatchPublisher(tag_repository, batch_size=batch_size)

    @pytest.mark.parametrize("batch_size", [1, 50])
    def test_batch_size_bounds_accepted(self, tag_repository: FakeRepository, batch_size: int) -> None:
        publisher = BatchPublisher(tag_repository, batch_size=batch_size, sleep=Mock())

        results = publisher.publish(_drafts(tag_repository, 2))

        assert sum(r.published for r in results) == 2

    def test_failures_are_counted_and_siblings_continue(self, tag_repository: FakeRepository) -> None:
        drafts = _drafts(tag_repository, 3)
        tag_repository.fail_publish.add("item-2")

        results = BatchPublisher(tag_repository, sleep=Mock()).publish(drafts)

        assert (results[0].published, results[0].failed) == (2, 1)
        assert len(results[0].errors) == 1
        assert results[0].errors[0].startswith("Item 2 (item-2): ")
        assert "en" in tag_repository.items["item-3"].published

    def test_repository_errors_are_counted(self) -> None:
        writer = Mock()
        writer.publish.side_effect = [TransientRepositoryError("rate limited", 429), None]
        drafts = [
            DraftItem(id="1", name="One", codename="one", type="tag", language="en"),
            DraftItem(id="2", name="Two", codename="two", type="tag", language="en"),
        ]

        results = BatchPublisher(writer, sleep=Mock()).publish(drafts)

        assert (results[0].published, results[0].failed) == (1, 1)

    def test_items_are_published_once(self, tag_repository: FakeRepository) -> None:
        drafts = _drafts(tag_repository, 2)
        publisher = BatchPublisher(tag_repository, sleep=Mock())

        _ = publisher.publish([*drafts, drafts[0]])
        second = publisher.publish(drafts)

        assert tag_repository.write_operations().count("publish") == 2
        assert second == []
        assert publisher.published_ids == {drafts[0].id, drafts[1].id}

    def test_failed_item_can_be_retried(self, tag_repository: FakeRepository) -> None:
        drafts = _drafts(tag_repository, 1)
        publisher = BatchPublisher(tag_repository, sleep=Mock())
        tag_repository.fail_publish.add("item-1")
        _ = publisher.publish(drafts)

        tag_repository.fail_publish.clear()
        results = publisher.publish(drafts)

        assert results[0].published == 1

    def test_language_override(self) -> None:
        writer = Mock()
        draft = DraftItem(id="1", name="One", codename="one", type="page", language="de")

        _ = BatchPublisher(writer, sleep=Mock()).publish([draft])
        _ = BatchPublisher(writer, "en", sleep=Mock()).publish([draft])

        assert [c.args for c in writer.publish.call_args_list] == [("1", "de"), ("1", "en")]

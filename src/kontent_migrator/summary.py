"""Plain-text summary of the items created or resolved in a migration run."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import CreatedItemInfo


def _describe(items: Sequence[CreatedItemInfo]) -> list[str]:
    lines: list[str] = []
    for index, item in enumerate(items, start=1):
        suffix = " (already existed)" if item.already_existed else ""
        lines.extend(
            [
                f'{index}. "{item.original_name}"{suffix}',
                f"   Original: [{item.original_type}] {item.original_codename}",
                f"   New:      [{item.new_type}] {item.new_codename}",
                f"   ID:       {item.new_id}",
            ]
        )
    return lines


def created_items_summary(items: Sequence[CreatedItemInfo]) -> str:
    """Summarize created items: main vs auto-migrated, new vs already existing."""
    if not items:
        return "No items were created during migration."

    main_items = [item for item in items if not item.was_auto_migrated]
    auto_items = [item for item in items if item.was_auto_migrated]
    new_count = sum(1 for item in items if not item.already_existed)

    lines = [
        f"Total items processed: {len(items)}",
        f"  Main items: {len(main_items)}",
        f"  Auto-migrated linked items: {len(auto_items)}",
        f"  New items created: {new_count}",
        f"  Items already existed (skipped): {len(items) - new_count}",
    ]
    if main_items:
        lines.extend(["", "Main items:", *_describe(main_items)])
    if auto_items:
        lines.extend(["", "Auto-migrated linked items:", *_describe(auto_items)])
    return "\n".join(lines)

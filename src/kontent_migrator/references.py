"""Rewriting of linked-items references inside a language variant.

Linked-items elements store item ids, not codenames, on the Management side.
A rewrite therefore resolves codenames to ids, locates the element by its
schema id in the variant's current element list, maps ids old -> new and
writes back only the elements that changed.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .exceptions import MigrationError, ReferenceResolutionError
from .models import ElementType

if TYPE_CHECKING:
    from .models import ContentTypeInfo, ManagedItem
    from .protocols import ContentReader, ContentWriter

logger: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReferenceRewrite:
    """Replace old_codename by new_codename in one linked-items field."""

    field_codename: str
    old_codename: str
    new_codename: str


@dataclass
class ReferenceUpdateResult:
    success: bool
    item_codename: str
    changed_fields: int = 0
    error: str | None = None
    # Rewrites skipped because their field or items could not be resolved
    failed: list[tuple[ReferenceRewrite, str]] = field(default_factory=list)


def _reference_id(reference: Any) -> str:  # noqa: ANN401
    if isinstance(reference, dict):
        return str(reference.get("id", ""))
    return str(reference)


class ReferenceUpdater:
    """Applies reference rewrites through the repository facade.

    Failures never raise: they come back as ReferenceUpdateResult(success=False)
    so one broken reference does not block its siblings.
    """

    _reader: ContentReader
    _writer: ContentWriter

    def __init__(self, reader: ContentReader, writer: ContentWriter) -> None:
        self._reader = reader
        self._writer = writer

    def update_reference(
        self,
        item_codename: str,
        field_codename: str,
        old_codename: str,
        new_codename: str,
        language: str,
        *,
        insert_if_missing: bool = False,
    ) -> ReferenceUpdateResult:
        """Point one linked-items field of an item at new_codename instead of old_codename.

        Args:
            item_codename: Item whose variant is modified
            field_codename: Linked-items element holding the reference
            old_codename: Currently referenced item
            new_codename: Item to reference instead
            language: Language variant to modify
            insert_if_missing: Append new_codename when old_codename is not
                referenced, creating the element if the variant lacks it
        """
        rewrite = ReferenceRewrite(field_codename, old_codename, new_codename)
        return self.update_references(item_codename, [rewrite], language, insert_if_missing=insert_if_missing)

    def update_references(
        self,
        item_codename: str,
        rewrites: Sequence[ReferenceRewrite],
        language: str,
        *,
        insert_if_missing: bool = False,
    ) -> ReferenceUpdateResult:
        """Apply several rewrites to one item with a single variant upsert.

        A rewrite whose field or items cannot be resolved is skipped and
        reported in `failed`; the remaining rewrites are still written.
        """
        for rewrite in rewrites:
            logger.info(
                f"Updating reference in {item_codename}.{rewrite.field_codename}: "
                f"{rewrite.old_codename} -> {rewrite.new_codename}"
            )
        failed: list[tuple[ReferenceRewrite, str]] = []
        try:
            changed = self._apply(item_codename, rewrites, language, failed, insert_if_missing=insert_if_missing)
        except MigrationError as e:
            logger.error(f"Failed to update references in {item_codename}: {e}")  # noqa: TRY400
            return ReferenceUpdateResult(success=False, item_codename=item_codename, error=str(e))

        if failed:
            return ReferenceUpdateResult(
                success=False,
                item_codename=item_codename,
                changed_fields=changed,
                error="; ".join(message for _, message in failed),
                failed=failed,
            )
        return ReferenceUpdateResult(success=True, item_codename=item_codename, changed_fields=changed)

    def _apply(
        self,
        item_codename: str,
        rewrites: Sequence[ReferenceRewrite],
        language: str,
        failed: list[tuple[ReferenceRewrite, str]],
        *,
        insert_if_missing: bool,
    ) -> int:
        item = self._resolve(item_codename)
        if item.type_id is None:
            msg = f"Content type of item {item_codename} is unknown"
            raise ReferenceResolutionError(msg)
        schema = self._reader.fetch_type_schema_by_id(item.type_id)

        variant_present = self._writer.variant_exists(item.id, language)
        current = self._writer.get_variant_elements(item.id, language) if variant_present else []
        values_by_element_id: dict[str, Any] = {
            element["element"]["id"]: element.get("value")
            for element in current
            if element.get("element", {}).get("id")
        }

        ids_cache: dict[str, str] = {}
        # element id -> referenced ids before the rewrite (None when the variant lacks the element)
        original: dict[str, list[str] | None] = {}
        updated: dict[str, list[str]] = {}
        for rewrite in rewrites:
            try:
                element_id = self._linked_element_id(schema, rewrite.field_codename)
                if element_id not in original:
                    original[element_id] = self._current_ids(
                        values_by_element_id.get(element_id),
                        rewrite,
                        item_codename,
                        language,
                        insert_if_missing=insert_if_missing,
                    )
                old_id = self._resolve_id(rewrite.old_codename, ids_cache)
                new_id = self._resolve_id(rewrite.new_codename, ids_cache)
            except ReferenceResolutionError as e:
                logger.error(  # noqa: TRY400
                    f"Skipping reference {rewrite.old_codename} -> {rewrite.new_codename} in {item_codename}: {e}"
                )
                failed.append((rewrite, str(e)))
                continue
            ids = updated.get(element_id, list(original[element_id] or []))
            updated[element_id] = self._rewrite_ids(ids, old_id, new_id, insert_if_missing=insert_if_missing)

        elements = [
            {"element": {"id": element_id}, "value": [{"id": ref_id} for ref_id in ids]}
            for element_id, ids in updated.items()
            if original[element_id] != ids
        ]
        if not elements:
            logger.debug(f"References in {item_codename} ({language}) already up to date")
            return 0

        if variant_present:
            self._writer.create_draft_from_published(item.id, language)
        self._writer.upsert_language_variant(item.id, language, elements)
        return len(elements)

    @staticmethod
    def _current_ids(
        value: Any,  # noqa: ANN401
        rewrite: ReferenceRewrite,
        item_codename: str,
        language: str,
        *,
        insert_if_missing: bool,
    ) -> list[str] | None:
        if value is None and not insert_if_missing:
            msg = f"Field {rewrite.field_codename} not found in {item_codename} ({language})"
            raise ReferenceResolutionError(msg)
        if value is not None and not isinstance(value, list):
            msg = f"Field {rewrite.field_codename} of {item_codename} does not hold item references"
            raise ReferenceResolutionError(msg)
        return None if value is None else [_reference_id(ref) for ref in value]

    @staticmethod
    def _rewrite_ids(ids: list[str], old_id: str, new_id: str, *, insert_if_missing: bool) -> list[str]:
        if old_id in ids:
            result: list[str] = []
            for ref_id in ids:
                candidate = new_id if ref_id == old_id else ref_id
                if candidate == new_id and new_id in result:
                    continue
                result.append(candidate)
            return result
        if insert_if_missing and new_id not in ids:
            return [*ids, new_id]
        return list(ids)

    def _resolve(self, codename: str) -> ManagedItem:
        item = self._writer.find_item(codename)
        if item is None:
            msg = f"Could not find item {codename}"
            raise ReferenceResolutionError(msg)
        return item

    def _resolve_id(self, codename: str, cache: dict[str, str]) -> str:
        if codename not in cache:
            cache[codename] = self._resolve(codename).id
        return cache[codename]

    @staticmethod
    def _linked_element_id(schema: ContentTypeInfo, field_codename: str) -> str:
        field_schema = schema.element(field_codename)
        if field_schema is None or field_schema.id is None:
            msg = f"Field {field_codename} not found in content type {schema.codename}"
            raise ReferenceResolutionError(msg)
        if field_schema.type != ElementType.MODULAR_CONTENT:
            msg = f"Field {field_codename} is not a linked-items field ({field_schema.type})"
            raise ReferenceResolutionError(msg)
        return field_schema.id

"""Discovery of outgoing and incoming item references.

Outgoing references come from a depth-1 fetch of the item itself. Incoming
references come from the repository's "used in" lookup, followed by a
re-fetch of every referencing item to find which linked-items field holds
the reference and in which language the referencing item exists.

Discovery is best effort: it covers the selected items and their direct
neighbours only, and a failure for one item is logged and skipped.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from .config import DEFAULT_FALLBACK_LANGUAGES
from .exceptions import ItemNotFoundError, MigrationError, SourceNotFoundError
from .models import (
    ElementType,
    IncomingRelationship,
    ItemRelationship,
    RelatedItem,
    RelationshipInfo,
)

if TYPE_CHECKING:
    from .models import ItemSnapshot, MigrationItem
    from .protocols import ContentReader

logger: logging.Logger = logging.getLogger(__name__)

UNKNOWN: str = "unknown"


class RelationshipDiscoverer:
    """Builds the relationship graph of a set of selected items."""

    _reader: ContentReader
    _language: str
    _languages: list[str]

    def __init__(
        self,
        reader: ContentReader,
        language: str,
        fallback_languages: Sequence[str] = DEFAULT_FALLBACK_LANGUAGES,
    ) -> None:
        self._reader = reader
        self._language = language
        self._languages = list(dict.fromkeys([language, *fallback_languages]))

    def discover(self, items: Sequence[MigrationItem]) -> list[ItemRelationship]:
        """Return one ItemRelationship per item, in input order.

        Items without any reference are included with empty lists.
        """
        relationships: list[ItemRelationship] = []
        for item in items:
            relationship = ItemRelationship(
                item_id=item.id, item_name=item.name, item_codename=item.codename, item_type=item.type
            )
            try:
                relationship.outgoing_relationships = self.outgoing(item)
            except MigrationError as e:
                logger.warning(f"Could not fetch outgoing references of {item.codename}: {e}")
            try:
                relationship.incoming_relationships = self.incoming(item)
            except MigrationError as e:
                logger.warning(f"Could not fetch incoming references of {item.codename}: {e}")

            logger.info(
                f"{item.codename}: {len(relationship.outgoing_relationships)} outgoing fields, "
                f"{len(relationship.incoming_relationships)} incoming references"
            )
            relationships.append(relationship)
        return relationships

    def outgoing(self, item: MigrationItem) -> list[RelationshipInfo]:
        """Return one RelationshipInfo per non-empty linked-items field of the item."""
        snapshot = self._fetch(item.codename, depth=1)
        outgoing: list[RelationshipInfo] = []
        for codename, element in snapshot.elements.items():
            if element.type != ElementType.MODULAR_CONTENT or not isinstance(element.value, list) or not element.value:
                continue
            related = [
                snapshot.linked_items.get(linked)
                or RelatedItem(id=UNKNOWN, name=linked, codename=linked, type=UNKNOWN)
                for linked in element.value
            ]
            outgoing.append(RelationshipInfo(field_name=codename, field_type=str(element.type), related_items=related))
        return outgoing

    def incoming(self, item: MigrationItem) -> list[IncomingRelationship]:
        """Return one IncomingRelationship per (referencing item, field) pair."""
        incoming: list[IncomingRelationship] = []
        for referrer in self._reader.fetch_referenced_by(item.codename):
            try:
                snapshot = self._fetch(referrer.codename)
            except MigrationError as e:
                logger.warning(f"Could not read {referrer.codename}, which references {item.codename}: {e}")
                continue

            fields = [
                field_codename
                for field_codename, codenames in snapshot.linked_codenames().items()
                if item.codename in codenames
            ]
            if not fields:
                logger.debug(f"{referrer.codename} lists {item.codename} as used but no linked field holds it")
            incoming.extend(
                IncomingRelationship(
                    from_item_id=referrer.id,
                    from_item_name=snapshot.name or referrer.name,
                    from_item_codename=referrer.codename,
                    from_item_type=snapshot.type or referrer.type,
                    field_name=field_codename,
                    language=snapshot.language,
                    needs_language_variant=snapshot.language != self._language,
                )
                for field_codename in fields
            )
        return incoming

    def _fetch(self, codename: str, *, depth: int = 0) -> ItemSnapshot:
        for language in self._languages:
            try:
                return self._reader.fetch_item(codename, language, depth=depth)
            except ItemNotFoundError:
                logger.debug(f"{codename} not found in {language}")
        msg = f"{codename} not found in any of: {', '.join(self._languages)}"
        raise SourceNotFoundError(msg)

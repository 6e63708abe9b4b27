"""Data models exchanged between the repository facade and the migration engine.

These models are the normalized, vendor-neutral view of content types, items
and references. The KontentClient shapes raw API payloads into them; the
Migrator, Discoverer and Orchestrator only ever see these dataclasses.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal


class ElementType(StrEnum):
    """Element (field) types of a content type schema."""

    TEXT = "text"
    RICH_TEXT = "rich_text"
    URL_SLUG = "url_slug"
    NUMBER = "number"
    DATE_TIME = "date_time"
    ASSET = "asset"
    MULTIPLE_CHOICE = "multiple_choice"
    TAXONOMY = "taxonomy"
    MODULAR_CONTENT = "modular_content"
    GUIDELINES = "guidelines"
    CUSTOM = "custom"
    SUBPAGES = "subpages"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> ElementType:
        """Map a vendor type string to an ElementType, UNKNOWN when unrecognized."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class FieldSchema:
    """One element definition of a content type."""

    codename: str
    name: str
    type: ElementType
    is_required: bool = False
    id: str | None = None  # Management API element id


@dataclass(frozen=True)
class ContentTypeInfo:
    """A content type with its ordered element definitions."""

    codename: str
    name: str
    elements: list[FieldSchema] = field(default_factory=list)
    id: str | None = None

    def element(self, codename: str) -> FieldSchema | None:
        for schema in self.elements:
            if schema.codename == codename:
                return schema
        return None


@dataclass
class FieldMapping:
    """Maps one source field to a target field; no target field means the field is dropped."""

    source_field: FieldSchema
    target_field: FieldSchema | None
    transformation_needed: bool = False
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class MigrationItem:
    """Lightweight reference to a source content item."""

    id: str
    name: str
    codename: str
    type: str


@dataclass(frozen=True)
class RelatedItem:
    """Summary of an item on the other end of a reference."""

    id: str
    name: str
    codename: str
    type: str


@dataclass(frozen=True)
class ManagedItem:
    """A content item as seen through the Management API."""

    id: str
    codename: str
    name: str
    type_id: str | None = None


@dataclass(frozen=True)
class ElementSnapshot:
    """Runtime value of one element of an item variant."""

    codename: str
    type: ElementType
    name: str = ""
    value: Any = None


@dataclass
class ItemSnapshot:
    """Full element data of one item in one language."""

    id: str
    codename: str
    name: str
    type: str
    language: str
    elements: dict[str, ElementSnapshot] = field(default_factory=dict)
    # Expansion payload: codename -> summary of items referenced at depth 1
    linked_items: dict[str, RelatedItem] = field(default_factory=dict)

    def linked_codenames(self) -> dict[str, list[str]]:
        """Return element codename -> referenced codenames for every linked-items element."""
        return {
            codename: list(element.value)
            for codename, element in self.elements.items()
            if element.type == ElementType.MODULAR_CONTENT and isinstance(element.value, list)
        }


@dataclass
class CreatedItemInfo:
    """An item created (or found already migrated) during one migration run."""

    original_codename: str
    original_name: str
    original_type: str
    new_codename: str
    new_name: str
    new_type: str
    new_id: str
    was_auto_migrated: bool  # True if pulled in transitively rather than selected
    already_existed: bool  # True if a previous run had already produced this item


@dataclass(frozen=True)
class RelationshipInfo:
    """Outgoing references held by one linked-items field."""

    field_name: str
    field_type: str
    related_items: list[RelatedItem] = field(default_factory=list)


@dataclass(frozen=True)
class IncomingRelationship:
    """A reference from another item pointing at the examined item."""

    from_item_id: str
    from_item_name: str
    from_item_codename: str
    from_item_type: str
    field_name: str  # Element codename holding the reference
    language: str  # Language the referencing item was found in
    needs_language_variant: bool = False


@dataclass
class ItemRelationship:
    """Outgoing and incoming references of one selected item."""

    item_id: str
    item_name: str
    item_codename: str
    item_type: str
    outgoing_relationships: list[RelationshipInfo] = field(default_factory=list)
    incoming_relationships: list[IncomingRelationship] = field(default_factory=list)


@dataclass
class ItemMigrationResult:
    """Result reported to the caller for one migrated item."""

    source_item: MigrationItem
    status: Literal["success", "error"]
    message: str
    new_item_id: str | None = None
    new_item_codename: str | None = None
    timestamp: dt.datetime = field(default_factory=lambda: dt.datetime.now(dt.UTC))
    created_items: list[CreatedItemInfo] = field(default_factory=list)


@dataclass(frozen=True)
class DraftItem:
    """An item left in draft by the migration and eligible for publishing."""

    id: str
    name: str
    codename: str
    type: str
    language: str
    was_auto_migrated: bool = False
    original_name: str = ""


@dataclass
class BatchResult:
    """Outcome of publishing one batch."""

    batch_number: int
    published: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

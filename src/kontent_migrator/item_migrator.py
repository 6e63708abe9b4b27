"""Migration of a single content item to the target content type.

Per item the migrator walks a small state machine:

1. Derive the deterministic target codename ``<codename>_migrated``
2. Check the target: an item with a variant in the migration language is
   ALREADY_MIGRATED and nothing is written
3. Create the item shell (or reuse the existing one without a variant)
4. Read the source item through the language fallback chain
5. Build the element set from mappings and defaults
6. Upsert the variant; linked-items values are written empty and filled in
   by the reference phases of the orchestrator
7. Register the item in the run's CreatedItemsRegistry, exactly once

A failure in any step fails that item only.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from .exceptions import ItemNotFoundError, MigrationError, RepositoryError, SourceNotFoundError
from .field_values import LinkedItemsValue
from .models import CreatedItemInfo
from .transformer import build_elements

if TYPE_CHECKING:
    from .config import MigrationSettings
    from .models import ContentTypeInfo, FieldMapping, ItemSnapshot, ManagedItem, MigrationItem
    from .protocols import ContentReader, ContentWriter

logger: logging.Logger = logging.getLogger(__name__)

MIGRATED_SUFFIX = "_migrated"


def migrated_codename(codename: str) -> str:
    """Return the deterministic codename of the migrated counterpart of an item."""
    return f"{codename}{MIGRATED_SUFFIX}"


class CreatedItemsRegistry:
    """Items created or resolved during one migration run, keyed by new item id.

    A fresh registry is created per run and passed explicitly; an id is
    registered at most once no matter how many references lead to it.
    """

    _items: dict[str, CreatedItemInfo]

    def __init__(self) -> None:
        self._items = {}

    def register(self, info: CreatedItemInfo) -> bool:
        """Add an entry; returns False if the item id is already registered."""
        if info.new_id in self._items:
            logger.debug(f"{info.new_codename} already registered in this run")
            return False
        self._items[info.new_id] = info
        return True

    def get(self, item_id: str) -> CreatedItemInfo | None:
        return self._items.get(item_id)

    @property
    def items(self) -> list[CreatedItemInfo]:
        return list(self._items.values())

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __iter__(self) -> Iterator[CreatedItemInfo]:
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)


class ItemMigrationStatus(StrEnum):
    SUCCESS = "success"
    ALREADY_MIGRATED = "already_migrated"
    FAILED = "failed"


@dataclass
class ItemMigrationOutcome:
    """Terminal state of one item migration."""

    item: MigrationItem
    status: ItemMigrationStatus
    new_item: ManagedItem | None = None
    created: CreatedItemInfo | None = None
    actual_source_language: str | None = None
    warnings: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status != ItemMigrationStatus.FAILED

    @property
    def new_codename(self) -> str | None:
        return self.new_item.codename if self.new_item else None


class ItemMigrator:
    """Migrates items of one source type to one target type in one language.

    The target schema is passed in once per run; the migrator keeps no state
    between items apart from the resolved default language.
    """

    _reader: ContentReader
    _writer: ContentWriter
    _source_type: ContentTypeInfo
    _target_type: ContentTypeInfo
    _mappings: Sequence[FieldMapping]
    _language: str
    _settings: MigrationSettings
    _default_language: str | None

    def __init__(
        self,
        reader: ContentReader,
        writer: ContentWriter,
        source_type: ContentTypeInfo,
        target_type: ContentTypeInfo,
        mappings: Sequence[FieldMapping],
        settings: MigrationSettings,
        *,
        language: str | None = None,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._source_type = source_type
        self._target_type = target_type
        self._mappings = mappings
        self._settings = settings
        self._language = language or settings.language
        self._default_language = settings.default_language

    @property
    def language(self) -> str:
        return self._language

    def migrate(
        self,
        item: MigrationItem,
        *,
        registry: CreatedItemsRegistry,
        was_auto_migrated: bool = False,
    ) -> ItemMigrationOutcome:
        """Migrate one item; never raises for item-level failures."""
        target_codename = migrated_codename(item.codename)
        logger.info(f"Migrating {item.codename} -> {target_codename} ({self._language})")

        try:
            existing = self._writer.find_item(target_codename)
            if existing is not None and self._writer.variant_exists(existing.id, self._language):
                logger.info(f"{target_codename} already has a {self._language} variant, skipping")
                info = self._created_info(item, existing, was_auto_migrated=was_auto_migrated, already_existed=True)
                _ = registry.register(info)
                return ItemMigrationOutcome(
                    item=item, status=ItemMigrationStatus.ALREADY_MIGRATED, new_item=existing, created=info
                )

            if existing is None:
                new_item = self._writer.create_item(item.name, self._target_type.codename, codename=target_codename)
                logger.info(f"Created item {new_item.codename} ({new_item.id})")
            else:
                new_item = existing
                logger.info(f"Reusing item {existing.codename} ({existing.id}) without a {self._language} variant")

            source = self.fetch_source(item.codename)
            built = build_elements(source, self._target_type, self._mappings)

            elements = [value.to_payload() for value in built.immediate()]
            elements.extend(LinkedItemsValue(value.element_codename, ()).to_payload() for value in built.deferred())
            self._writer.upsert_language_variant(new_item.id, self._language, elements)
            logger.debug(f"Wrote {len(elements)} elements to {new_item.codename}, {len(built.deferred())} deferred")
        except MigrationError as e:
            logger.error(f"Failed to migrate {item.codename}: {e}")  # noqa: TRY400
            return ItemMigrationOutcome(item=item, status=ItemMigrationStatus.FAILED, error=str(e))

        info = self._created_info(item, new_item, was_auto_migrated=was_auto_migrated, already_existed=False)
        _ = registry.register(info)
        return ItemMigrationOutcome(
            item=item,
            status=ItemMigrationStatus.SUCCESS,
            new_item=new_item,
            created=info,
            actual_source_language=source.language,
            warnings=built.warnings,
        )

    def fetch_source(self, codename: str, *, depth: int = 0) -> ItemSnapshot:
        """Read a source item, trying each language of the fallback chain.

        Order: migration language, repository default language, the
        configured fallback languages, then the Management API in the same
        order. The snapshot's language records which one succeeded.

        Raises:
            SourceNotFoundError: If no attempt finds the item
        """
        languages = self._fallback_chain()
        for language in languages:
            try:
                snapshot = self._reader.fetch_item(codename, language, depth=depth)
            except ItemNotFoundError:
                logger.debug(f"{codename} not found in {language}")
                continue
            if snapshot.language != self._language:
                logger.info(f"Using {snapshot.language} content of {codename}")
            return snapshot

        for language in languages:
            try:
                snapshot = self._writer.fetch_item_from_management(codename, language)
            except ItemNotFoundError:
                continue
            logger.info(f"Re-derived {codename} from the Management API ({language})")
            return snapshot

        msg = f"Source item {codename} not found in any of: {', '.join(languages)}"
        raise SourceNotFoundError(msg)

    def _fallback_chain(self) -> list[str]:
        chain = [self._language]
        default = self._resolve_default_language()
        if default:
            chain.append(default)
        chain.extend(self._settings.fallback_languages)
        return list(dict.fromkeys(chain))

    def _resolve_default_language(self) -> str | None:
        if self._default_language is None:
            try:
                self._default_language = self._writer.default_language()
            except RepositoryError as e:
                logger.warning(f"Could not determine the default language: {e}")
                return None
        return self._default_language

    def _created_info(
        self,
        item: MigrationItem,
        new_item: ManagedItem,
        *,
        was_auto_migrated: bool,
        already_existed: bool,
    ) -> CreatedItemInfo:
        return CreatedItemInfo(
            original_codename=item.codename,
            original_name=item.name,
            original_type=item.type or self._source_type.codename,
            new_codename=new_item.codename,
            new_name=new_item.name,
            new_type=self._target_type.codename,
            new_id=new_item.id,
            was_auto_migrated=was_auto_migrated,
            already_existed=already_existed,
        )

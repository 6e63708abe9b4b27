"""Protocols defining the contracts for reading from and writing to the content repository.

The migration engine never talks to Kontent.ai directly. It depends on two
logical interfaces:

1. ContentReader: Queries items, type schemas and the "used in" graph
2. ContentWriter: Creates items, upserts language variants, manages workflow

This separation allows:
- Keeping vendor request/response shaping inside KontentClient
- Testing the Migrator, Discoverer and Orchestrator against in-memory fakes
- Clear failure semantics: every operation raises ItemNotFoundError for absent
  items/variants/types and TransientRepositoryError for network or rate-limit
  failures. Implementations do not retry; retry and timeout belong to the
  underlying transport.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .models import ContentTypeInfo, ItemSnapshot, ManagedItem, RelatedItem


class ContentReader(Protocol):
    """Protocol for querying the content repository.

    Example implementations:
        - KontentClient: Delivery (preview) API for items and "used in",
          Management API for type schemas (the only source of is_required)
        - FakeRepository (tests): dictionaries of items and types
    """

    def fetch_item(self, codename: str, language: str, *, depth: int = 0) -> ItemSnapshot:
        """Return the full element data of one item in one language.

        The repository may answer with the item in a different language than
        requested (language fallback on its side). Callers check
        ItemSnapshot.language and apply their own fallback policy.

        Args:
            codename: Item codename
            language: Language codename to request
            depth: Linked-items expansion depth; at depth >= 1 the snapshot's
                linked_items holds summaries of referenced items

        Raises:
            ItemNotFoundError: If the item has no variant reachable in that language
        """
        ...

    def fetch_type_schema(self, codename: str) -> ContentTypeInfo:
        """Return the live schema of a content type by codename.

        Raises:
            ItemNotFoundError: If the type does not exist
        """
        ...

    def fetch_type_schema_by_id(self, type_id: str) -> ContentTypeInfo:
        """Return the live schema of a content type by id."""
        ...

    def fetch_referenced_by(self, codename: str) -> list[RelatedItem]:
        """Return every item, across all types and languages, that references the item.

        There is no global reference index, so this is expensive. Callers
        invoke it once per item, never once per field.
        """
        ...


class ContentWriter(Protocol):
    """Protocol for mutating the content repository.

    The Orchestrator and Migrator call methods in this order for one item:
    1. find_item() - Existence check for the deterministic migrated codename
    2. variant_exists() - Idempotency check for the migration language
    3. create_item() - Create the item shell if it does not exist
    4. upsert_language_variant() - Write field values
    5. create_draft_from_published() + upsert_language_variant() - Reference rewrites
    6. publish() - Move the variant to the published workflow step
    """

    def default_language(self) -> str:
        """Return the codename of the repository's default language."""
        ...

    def find_item(self, codename: str) -> ManagedItem | None:
        """Return the item with this codename, or None if it does not exist."""
        ...

    def fetch_item_from_management(self, codename: str, language: str) -> ItemSnapshot:
        """Re-derive an item snapshot from the write-side API.

        Used as the last step of the source-language fallback chain when the
        read side cannot see the item (e.g. it was never published to preview).

        Raises:
            ItemNotFoundError: If the item or its variant does not exist
        """
        ...

    def create_item(self, name: str, type_codename: str, codename: str | None = None) -> ManagedItem:
        """Create a content item shell.

        If codename is omitted the repository derives one from the name, so
        callers relying on deterministic codenames must always pass it.
        """
        ...

    def variant_exists(self, item_id: str, language: str) -> bool:
        """Return True if the item has a language variant in this language."""
        ...

    def get_variant_elements(self, item_id: str, language: str) -> list[dict[str, Any]]:
        """Return the raw element list of a variant, each element addressed by id.

        Raises:
            ItemNotFoundError: If the variant does not exist
        """
        ...

    def upsert_language_variant(self, item_id: str, language: str, elements: list[dict[str, Any]]) -> None:
        """Create or update a language variant.

        Partial element lists are allowed: elements not sent keep their value.
        """
        ...

    def create_draft_from_published(self, item_id: str, language: str) -> None:
        """Create a new draft version of a published variant.

        Implementations swallow the "already a draft" rejection, so callers can
        call this proactively before every edit.
        """
        ...

    def publish(self, item_id: str, language: str) -> None:
        """Move a variant to the published workflow step.

        Raises:
            PublishError: If the repository rejects the transition
        """
        ...


class ContentRepository(ContentReader, ContentWriter, Protocol):
    """Both halves of the repository facade, as implemented by KontentClient."""

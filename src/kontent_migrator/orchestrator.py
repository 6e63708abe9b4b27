"""Migration orchestrator that drives a complete content-type migration run.

The MigrationOrchestrator is the top-level state machine. Given the type
pair, the field mappings, the selected items and their relationship graph,
it migrates every item and then repairs references in three phases.

Migration Flow
--------------
Discovering
    Expand the selection: every incoming reference to a selected item whose
    referencing item is of the *source* type pulls that item into the
    working set as auto-migrated. Items of other types are never added.

Migrating
    Run the ItemMigrator over the working set, one item at a time, and
    build migrated_items_map (original codename -> migrated codename) from
    every SUCCESS and ALREADY_MIGRATED outcome.

Phase 1: Outgoing references
    For every migrated item, re-read the original and wire each reference
    of every mapped linked-items field into the migrated item:
        - referenced item already migrated  -> its migrated counterpart
        - referenced item of the source type not seen yet
                                            -> migrate it now (auto), enqueue it
        - anything else                     -> the original reference
    This is an explicit worklist; a visited set keyed by source item id
    guarantees each item is migrated at most once, also on reference cycles.

Phase 2: Incoming references from same-type items (optional)
    A reference from an item of the source type that was itself migrated
    is rewritten inside the referencing item's *migrated* counterpart.

Phase 3: Incoming references from external items (optional)
    A reference from an item of another type is rewritten inside the
    *original* referencing item, which is not migrated.

Every incoming reference is classified into exactly one of the phase-2,
phase-3 and skipped buckets; skipped references are reported as warnings.

Error Handling
--------------
Only pre-run validation raises (MigrationConfigError, CodenameCollisionError).
Every item migration and every reference update degrades to an error entry
in the run log and results; siblings proceed.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from .config import MigrationSettings
from .exceptions import CodenameCollisionError, MigrationConfigError, MigrationError
from .item_migrator import (
    CreatedItemsRegistry,
    ItemMigrationOutcome,
    ItemMigrationStatus,
    ItemMigrator,
    migrated_codename,
)
from .models import DraftItem, ElementType, ItemMigrationResult, MigrationItem
from .references import ReferenceRewrite, ReferenceUpdater
from .run_log import MigrationLog, ProgressTracker
from .summary import created_items_summary

if TYPE_CHECKING:
    from .models import (
        ContentTypeInfo,
        CreatedItemInfo,
        FieldMapping,
        IncomingRelationship,
        ItemRelationship,
        ItemSnapshot,
        ManagedItem,
    )
    from .protocols import ContentReader, ContentWriter
    from .run_log import LogCallback

logger: logging.Logger = logging.getLogger(__name__)


class MigrationPhase(StrEnum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    MIGRATING = "migrating"
    UPDATING_OUTGOING_REFS = "updating_outgoing_refs"
    UPDATING_INCOMING_SAME_TYPE = "updating_incoming_same_type"
    UPDATING_INCOMING_EXTERNAL = "updating_incoming_external"
    DONE = "done"
    FAILED = "failed"


class IncomingReferenceClass(StrEnum):
    SAME_TYPE_MIGRATED = "same_type_migrated"  # phase 2
    EXTERNAL = "external"  # phase 3
    SKIPPED_NOT_MIGRATED = "skipped_not_migrated"


@dataclass(frozen=True)
class MigrationRequest:
    """Everything the caller decides before a run starts."""

    source_type: ContentTypeInfo | None
    target_type: ContentTypeInfo | None
    field_mappings: Sequence[FieldMapping]
    selected_items: Sequence[MigrationItem]
    relationships: Sequence[ItemRelationship] = ()
    # None means MigrationSettings.language
    language: str | None = None
    update_incoming_references: bool = False


@dataclass(frozen=True)
class WorkItem:
    item: MigrationItem
    was_auto_migrated: bool = False


@dataclass
class MigrationOutcome:
    """Everything a run produced; nothing of it outlives the caller's reference."""

    results: list[ItemMigrationResult]
    draft_items: list[DraftItem]
    log: MigrationLog
    migrated_items_map: dict[str, str]
    updated_reference_items: set[str]
    created_items: list[CreatedItemInfo]
    skipped_references: list[IncomingRelationship] = field(default_factory=list)
    progress: float = 0.0

    @property
    def failed_results(self) -> list[ItemMigrationResult]:
        return [result for result in self.results if result.status == "error"]

    @property
    def success(self) -> bool:
        return not self.failed_results


def classify_incoming_reference(
    reference: IncomingRelationship,
    source_type_codename: str,
    migrated_items_map: dict[str, str],
) -> IncomingReferenceClass:
    """Put an incoming reference into exactly one processing bucket."""
    if reference.from_item_type != source_type_codename:
        return IncomingReferenceClass.EXTERNAL
    if reference.from_item_codename in migrated_items_map:
        return IncomingReferenceClass.SAME_TYPE_MIGRATED
    return IncomingReferenceClass.SKIPPED_NOT_MIGRATED


def expand_selection(
    selected_items: Sequence[MigrationItem],
    relationships: Sequence[ItemRelationship],
    source_type_codename: str,
) -> list[WorkItem]:
    """Return the working set: selected items plus same-type referencing items.

    The set is keyed by item id, so an item is listed once however many
    references point at it. Selected items keep their order; auto-migrated
    items follow in discovery order.
    """
    working: dict[str, WorkItem] = {item.id: WorkItem(item) for item in selected_items}
    selected_ids = set(working)
    for relationship in relationships:
        if relationship.item_id not in selected_ids:
            continue
        for reference in relationship.incoming_relationships:
            if reference.from_item_type != source_type_codename or reference.from_item_id in working:
                continue
            working[reference.from_item_id] = WorkItem(
                MigrationItem(
                    id=reference.from_item_id,
                    name=reference.from_item_name,
                    codename=reference.from_item_codename,
                    type=reference.from_item_type,
                ),
                was_auto_migrated=True,
            )
    return list(working.values())


def check_codename_collisions(items: Sequence[MigrationItem]) -> None:
    """Fail if two items would end up with the same migrated codename.

    Raises:
        CodenameCollisionError: Two items share a migrated codename, or an
            item's migrated codename is the codename of another item in the set
    """
    by_codename = {item.codename: item for item in items}
    targets: dict[str, MigrationItem] = {}
    for item in items:
        target = migrated_codename(item.codename)
        clash = targets.get(target)
        if clash is not None and clash.id != item.id:
            msg = f"{clash.codename} and {item.codename} would both be migrated to {target}"
            raise CodenameCollisionError(msg)
        other = by_codename.get(target)
        if other is not None and other.id != item.id:
            msg = f"Migrating {item.codename} would produce {target}, which is the codename of another selected item"
            raise CodenameCollisionError(msg)
        targets[target] = item


@dataclass
class _RunState:
    """Mutable state of one run, discarded when run() returns."""

    language: str
    source_type: ContentTypeInfo
    target_type: ContentTypeInfo
    log: MigrationLog
    progress: ProgressTracker
    registry: CreatedItemsRegistry
    migrator: ItemMigrator
    updater: ReferenceUpdater
    visited: set[str]
    results: list[ItemMigrationResult] = field(default_factory=list)
    migrated_items_map: dict[str, str] = field(default_factory=dict)
    migrated_items: dict[str, ManagedItem] = field(default_factory=dict)
    updated_reference_items: set[str] = field(default_factory=set)
    rewritten_drafts: dict[str, DraftItem] = field(default_factory=dict)
    skipped_references: list[IncomingRelationship] = field(default_factory=list)


class MigrationOrchestrator:
    """Runs migrations of items from one content type to another.

    Usage:
        client = KontentClient(load_config())
        orchestrator = MigrationOrchestrator(client, client, MigrationSettings(language="en"))
        outcome = orchestrator.run(request)

    The orchestrator is stateless between runs apart from its current phase;
    all run state is returned in MigrationOutcome.
    """

    _reader: ContentReader
    _writer: ContentWriter
    _settings: MigrationSettings
    _on_progress: Callable[[float], None] | None
    phase: MigrationPhase

    def __init__(
        self,
        reader: ContentReader,
        writer: ContentWriter,
        settings: MigrationSettings | None = None,
        *,
        on_progress: Callable[[float], None] | None = None,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._settings = settings or MigrationSettings()
        self._on_progress = on_progress
        self.phase = MigrationPhase.IDLE

    def run(self, request: MigrationRequest, on_log: LogCallback | None = None) -> MigrationOutcome:
        """Execute one migration run.

        Raises:
            MigrationConfigError: If the request is incomplete
            CodenameCollisionError: If two items would share a migrated codename
        """
        self.phase = MigrationPhase.IDLE
        try:
            source_type, target_type = self._validate(request)
            self._set_phase(MigrationPhase.DISCOVERING)
            work = expand_selection(request.selected_items, request.relationships, source_type.codename)
            check_codename_collisions([entry.item for entry in work])
        except MigrationConfigError:
            self.phase = MigrationPhase.FAILED
            raise

        language = request.language or self._settings.language
        log = MigrationLog(on_log)
        incoming_total = (
            sum(len(rel.incoming_relationships) for rel in request.relationships)
            if request.update_incoming_references
            else 0
        )
        state = _RunState(
            language=language,
            source_type=source_type,
            target_type=target_type,
            log=log,
            progress=ProgressTracker(len(work) + incoming_total, self._on_progress),
            registry=CreatedItemsRegistry(),
            migrator=ItemMigrator(
                self._reader,
                self._writer,
                source_type,
                target_type,
                request.field_mappings,
                self._settings,
                language=language,
            ),
            updater=ReferenceUpdater(self._reader, self._writer),
            visited={entry.item.id for entry in work},
        )

        auto_count = sum(1 for entry in work if entry.was_auto_migrated)
        log.info(
            f"Starting migration of {len(work)} items from {source_type.name} to {target_type.name} ({language})",
            f"{len(request.selected_items)} selected, {auto_count} auto-discovered" if auto_count else None,
        )

        self._set_phase(MigrationPhase.MIGRATING)
        for entry in work:
            self._migrate(state, entry.item, was_auto_migrated=entry.was_auto_migrated)

        self._set_phase(MigrationPhase.UPDATING_OUTGOING_REFS)
        if state.migrated_items_map:
            self._update_outgoing_references(state, request.field_mappings)

        if request.update_incoming_references:
            buckets = self._classify(state, request.relationships)
            self._set_phase(MigrationPhase.UPDATING_INCOMING_SAME_TYPE)
            self._update_same_type_references(state, buckets[IncomingReferenceClass.SAME_TYPE_MIGRATED], request)
            self._set_phase(MigrationPhase.UPDATING_INCOMING_EXTERNAL)
            self._update_external_references(state, buckets[IncomingReferenceClass.EXTERNAL])

        draft_items = self._draft_items(state)
        state.progress.finish()
        self._set_phase(MigrationPhase.DONE)

        failed = sum(1 for result in state.results if result.status == "error")
        log.info(created_items_summary(state.registry.items))
        if failed:
            log.error(f"Migration finished with {failed} failed items out of {len(state.results)}")
        else:
            log.success(f"Migration finished: {len(state.results)} items, {len(draft_items)} drafts to publish")

        return MigrationOutcome(
            results=state.results,
            draft_items=draft_items,
            log=log,
            migrated_items_map=dict(state.migrated_items_map),
            updated_reference_items=set(state.updated_reference_items),
            created_items=state.registry.items,
            skipped_references=state.skipped_references,
            progress=state.progress.percent,
        )

    def _set_phase(self, phase: MigrationPhase) -> None:
        logger.debug(f"Migration phase: {self.phase} -> {phase}")
        self.phase = phase

    @staticmethod
    def _validate(request: MigrationRequest) -> tuple[ContentTypeInfo, ContentTypeInfo]:
        if request.source_type is None or request.target_type is None:
            msg = "Both a source and a target content type are required"
            raise MigrationConfigError(msg)
        if not request.selected_items:
            msg = "No items selected for migration"
            raise MigrationConfigError(msg)
        return request.source_type, request.target_type

    # ---- Migrating ----

    def _migrate(self, state: _RunState, item: MigrationItem, *, was_auto_migrated: bool) -> ItemMigrationOutcome:
        state.log.info(f'Migrating "{item.name}" ({item.codename})' + (" [auto]" if was_auto_migrated else ""))
        outcome = state.migrator.migrate(item, registry=state.registry, was_auto_migrated=was_auto_migrated)
        state.results.append(self._result(state, outcome))

        if outcome.succeeded and outcome.new_item is not None:
            state.migrated_items_map[item.codename] = outcome.new_item.codename
            state.migrated_items[item.codename] = outcome.new_item
            for warning in outcome.warnings:
                state.log.warning(warning, item.codename)
            if outcome.status == ItemMigrationStatus.ALREADY_MIGRATED:
                state.log.info(f"{item.codename} was already migrated to {outcome.new_item.codename}")
            else:
                state.log.success(
                    f'Successfully migrated "{item.name}"',
                    f"{item.codename} -> {outcome.new_item.codename} ({outcome.new_item.id})",
                )
        else:
            state.log.error(f'Failed to migrate "{item.name}"', outcome.error)

        state.progress.advance()
        return outcome

    @staticmethod
    def _result(state: _RunState, outcome: ItemMigrationOutcome) -> ItemMigrationResult:
        item = outcome.item
        if not outcome.succeeded or outcome.new_item is None:
            return ItemMigrationResult(
                source_item=item, status="error", message=f'Failed to migrate "{item.name}": {outcome.error}'
            )
        if outcome.status == ItemMigrationStatus.ALREADY_MIGRATED:
            message = f'"{item.name}" was already migrated to {outcome.new_item.codename}'
        else:
            message = f'Successfully migrated "{item.name}" from {state.source_type.name} to {state.target_type.name}'
        return ItemMigrationResult(
            source_item=item,
            status="success",
            message=message,
            new_item_id=outcome.new_item.id,
            new_item_codename=outcome.new_item.codename,
            created_items=[outcome.created] if outcome.created else [],
        )

    # ---- Phase 1 ----

    def _linked_field_pairs(self, state: _RunState, mappings: Sequence[FieldMapping]) -> list[tuple[str, str]]:
        """Return (source field, target field) codenames of linked-items to linked-items mappings."""
        pairs: list[tuple[str, str]] = []
        for mapping in mappings:
            if mapping.target_field is None or mapping.source_field.type != ElementType.MODULAR_CONTENT:
                continue
            target_field = state.target_type.element(mapping.target_field.codename)
            if target_field is not None and target_field.type == ElementType.MODULAR_CONTENT:
                pairs.append((mapping.source_field.codename, target_field.codename))
        return pairs

    def _update_outgoing_references(self, state: _RunState, mappings: Sequence[FieldMapping]) -> None:
        pairs = self._linked_field_pairs(state, mappings)
        if not pairs:
            state.log.info("Phase 1: no linked-items fields mapped, skipping outgoing references")
            return

        state.log.info(
            f"Phase 1: updating outgoing references in {len(state.migrated_items_map)} migrated items",
            ", ".join(f"{old} -> {new}" for old, new in state.migrated_items_map.items()),
        )
        queue: deque[MigrationItem] = deque(
            result.source_item for result in state.results if result.status == "success"
        )
        while queue:
            item = queue.popleft()
            new_codename = state.migrated_items_map[item.codename]
            try:
                original = state.migrator.fetch_source(item.codename, depth=1)
            except MigrationError as e:
                state.log.error(f"Could not read {item.codename} to wire its references", str(e))
                continue

            rewrites: list[ReferenceRewrite] = []
            for source_field, target_field in pairs:
                element = original.elements.get(source_field)
                if element is None or not isinstance(element.value, list):
                    continue
                for referenced in element.value:
                    target = self._outgoing_target(state, original, referenced, queue)
                    rewrites.append(ReferenceRewrite(target_field, referenced, target))

            if not rewrites:
                continue
            result = state.updater.update_references(new_codename, rewrites, state.language, insert_if_missing=True)
            if not result.success and not result.failed:
                state.log.error(f"Failed to wire outgoing references in {new_codename}", result.error)
                continue
            for rewrite, error in result.failed:
                state.log.error(f"Failed to wire reference {rewrite.old_codename} in {new_codename}", error)
            wired = len(rewrites) - len(result.failed)
            if wired:
                state.log.success(f"Wired {wired} outgoing references in {new_codename}")
            if result.changed_fields:
                self._mark_rewritten_migrated(state, item.codename)

    def _outgoing_target(
        self, state: _RunState, original: ItemSnapshot, referenced: str, queue: deque[MigrationItem]
    ) -> str:
        """Return the codename a migrated item should reference instead of `referenced`."""
        if referenced in state.migrated_items_map:
            return state.migrated_items_map[referenced]

        linked = original.linked_items.get(referenced)
        if linked is None or linked.type != state.source_type.codename or linked.id in state.visited:
            return referenced

        state.visited.add(linked.id)
        item = MigrationItem(id=linked.id, name=linked.name, codename=linked.codename, type=linked.type)
        outcome = self._migrate(state, item, was_auto_migrated=True)
        if not outcome.succeeded or outcome.new_item is None:
            return referenced
        queue.append(item)
        return outcome.new_item.codename

    # ---- Phases 2 and 3 ----

    def _classify(
        self, state: _RunState, relationships: Sequence[ItemRelationship]
    ) -> dict[IncomingReferenceClass, list[tuple[ItemRelationship, IncomingRelationship]]]:
        buckets: dict[IncomingReferenceClass, list[tuple[ItemRelationship, IncomingRelationship]]] = {
            bucket: [] for bucket in IncomingReferenceClass
        }
        for relationship in relationships:
            for reference in relationship.incoming_relationships:
                bucket = classify_incoming_reference(reference, state.source_type.codename, state.migrated_items_map)
                buckets[bucket].append((relationship, reference))

        for relationship, reference in buckets[IncomingReferenceClass.SKIPPED_NOT_MIGRATED]:
            state.skipped_references.append(reference)
            state.log.warning(
                f"Skipping reference from {reference.from_item_codename} to {relationship.item_codename}",
                "Referencing item was not migrated, keeping original reference",
            )
            state.progress.advance()
        return buckets

    def _target_codename(self, state: _RunState, relationship: ItemRelationship) -> str | None:
        target = state.migrated_items_map.get(relationship.item_codename)
        if target is None:
            state.log.warning(
                f"Skipping references to {relationship.item_codename}", "The referenced item was not migrated"
            )
        return target

    def _update_same_type_references(
        self,
        state: _RunState,
        references: list[tuple[ItemRelationship, IncomingRelationship]],
        request: MigrationRequest,
    ) -> None:
        state.log.info(f"Phase 2: updating {len(references)} incoming references from migrated items")
        field_map = {
            mapping.source_field.codename: mapping.target_field.codename
            for mapping in request.field_mappings
            if mapping.target_field is not None
        }
        for relationship, reference in references:
            self._update_same_type_reference(state, relationship, reference, field_map)
            state.progress.advance()

    def _update_same_type_reference(
        self,
        state: _RunState,
        relationship: ItemRelationship,
        reference: IncomingRelationship,
        field_map: dict[str, str],
    ) -> None:
        target = self._target_codename(state, relationship)
        if target is None:
            return
        referrer = state.migrated_items_map[reference.from_item_codename]
        # The migrated referrer holds the reference in the mapped target field
        target_field = field_map.get(reference.field_name)
        if target_field is None:
            state.log.warning(
                f"Skipping reference in {referrer}", f"Field {reference.field_name} is not mapped to the target type"
            )
            return

        state.log.info(
            f"Updating reference in migrated item {referrer} [was: {reference.from_item_codename}]",
            f"Field: {target_field}, {relationship.item_codename} -> {target}",
        )
        result = state.updater.update_reference(referrer, target_field, relationship.item_codename, target, state.language)
        if not result.success:
            state.log.error(f"Failed to update reference in {referrer}", result.error)
            return
        state.updated_reference_items.add(reference.from_item_id)
        if result.changed_fields:
            self._mark_rewritten_migrated(state, reference.from_item_codename)
        state.log.success(f"Updated reference in {referrer}", f"now references {target}")

    def _update_external_references(
        self, state: _RunState, references: list[tuple[ItemRelationship, IncomingRelationship]]
    ) -> None:
        state.log.info(f"Phase 3: updating {len(references)} references in items of other types")
        for relationship, reference in references:
            target = self._target_codename(state, relationship)
            if target is not None:
                state.log.info(
                    f"Updating reference in external item {reference.from_item_name} ({reference.from_item_type})",
                    f"Field: {reference.field_name}, {relationship.item_codename} -> {target}",
                )
                # The reference lives in the variant the referencing item was found in
                result = state.updater.update_reference(
                    reference.from_item_codename,
                    reference.field_name,
                    relationship.item_codename,
                    target,
                    reference.language,
                )
                if result.success:
                    state.updated_reference_items.add(reference.from_item_id)
                    state.rewritten_drafts.setdefault(
                        reference.from_item_id,
                        DraftItem(
                            id=reference.from_item_id,
                            name=reference.from_item_name,
                            codename=reference.from_item_codename,
                            type=reference.from_item_type,
                            language=reference.language,
                            original_name=reference.from_item_name,
                        ),
                    )
                    state.log.success(
                        f"Updated external reference in {reference.from_item_name}", f"now references {target}"
                    )
                else:
                    state.log.error(f"Failed to update external reference in {reference.from_item_name}", result.error)
            state.progress.advance()

    # ---- Drafts ----

    @staticmethod
    def _mark_rewritten_migrated(state: _RunState, original_codename: str) -> None:
        """Record a migrated item modified after creation; needed when it already existed."""
        item = state.migrated_items[original_codename]
        info = state.registry.get(item.id)
        if info is None or not info.already_existed:
            return
        state.rewritten_drafts.setdefault(
            item.id,
            DraftItem(
                id=item.id,
                name=item.name,
                codename=item.codename,
                type=info.new_type,
                language=state.language,
                was_auto_migrated=info.was_auto_migrated,
                original_name=info.original_name,
            ),
        )

    @staticmethod
    def _draft_items(state: _RunState) -> list[DraftItem]:
        """Newly created items first, then items whose references were rewritten; deduplicated by id."""
        drafts: dict[str, DraftItem] = {}
        for info in state.registry.items:
            if info.already_existed:
                continue
            drafts.setdefault(
                info.new_id,
                DraftItem(
                    id=info.new_id,
                    name=info.new_name,
                    codename=info.new_codename,
                    type=info.new_type,
                    language=state.language,
                    was_auto_migrated=info.was_auto_migrated,
                    original_name=info.original_name,
                ),
            )
        for item_id, draft in state.rewritten_drafts.items():
            drafts.setdefault(item_id, draft)
        return list(drafts.values())

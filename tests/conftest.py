"""
Pytest configuration and fixtures.

This module configures pytest behavior for different test types:
- Integration tests: Fail on any warnings from the code under test
- Unit tests: Allow warnings

It also provides FakeRepository, an in-memory content repository that
implements both ContentReader and ContentWriter.
"""

from __future__ import annotations

import copy
import itertools
import logging
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from typing_extensions import override

import pytest

from kontent_migrator.exceptions import ItemNotFoundError, PublishError, RepositoryError
from kontent_migrator.models import (
    ContentTypeInfo,
    ElementSnapshot,
    ElementType,
    FieldSchema,
    ItemSnapshot,
    ManagedItem,
    MigrationItem,
    RelatedItem,
)

if TYPE_CHECKING:
    from collections.abc import Generator

# Store warning records during test execution
_integration_test_warnings: dict[str, list[logging.LogRecord]] = {}

# Integration tests run against a real environment; credentials come from load_config()
INTEGRATION_ENV_VARS: tuple[str, ...] = ("KONTENT_TEST_SOURCE_TYPE", "KONTENT_TEST_TARGET_TYPE", "KONTENT_TEST_ITEM")


@pytest.fixture(autouse=True)
def check_integration_test_env_vars(request: pytest.FixtureRequest) -> None:
    """Skip integration tests when the test environment is not configured."""
    if request.node.get_closest_marker("integration") is None:
        return

    missing = [name for name in INTEGRATION_ENV_VARS if not os.environ.get(name)]
    if missing:
        pytest.skip(f"Integration tests require environment variables: {', '.join(missing)}")


class IntegrationTestWarningHandler(logging.Handler):
    """Custom logging handler to capture warnings during integration tests."""

    test_nodeid: str

    def __init__(self, test_nodeid: str) -> None:
        super().__init__()
        self.test_nodeid = test_nodeid
        self.setLevel(logging.WARNING)

    @override
    def emit(self, record: logging.LogRecord) -> None:
        """Capture WARNING and above level logs."""
        if self.test_nodeid not in _integration_test_warnings:
            _integration_test_warnings[self.test_nodeid] = []
        _integration_test_warnings[self.test_nodeid].append(record)


@pytest.fixture(autouse=True)
def fail_on_log_warnings_for_integration_tests(
    request: pytest.FixtureRequest,
) -> Generator[None]:
    """
    Automatically fail integration tests if any WARNING level logs are emitted from the code under test.

    Warnings are acceptable when running the tool as a user, but in the test context
    we don't expect any warnings from the migrator code and treat them as test failures.
    """
    is_integration_test = request.node.get_closest_marker("integration") is not None

    if not is_integration_test:
        yield
        return

    test_nodeid = request.node.nodeid
    _integration_test_warnings[test_nodeid] = []

    handler = IntegrationTestWarningHandler(test_nodeid)
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)

    try:
        yield
    finally:
        root_logger.removeHandler(handler)


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(
    item: pytest.Item, call: pytest.CallInfo[None]
) -> Generator[None]:  # type: ignore[misc]
    """
    Hook to check for warnings after test execution and mark test as failed if warnings were detected.
    """
    outcome = yield
    report = outcome.get_result()

    if call.when == "call" and report.outcome == "passed":
        test_nodeid = item.nodeid
        warning_records = _integration_test_warnings.get(test_nodeid, [])

        if warning_records:
            warning_messages = [
                f"{record.levelname}: {record.getMessage()} (in {record.name}:{record.lineno})"
                for record in warning_records
            ]

            report.outcome = "failed"
            report.longrepr = f"Integration test failed: {len(warning_records)} warning(s) detected:\n" + "\n".join(
                f"  - {msg}" for msg in warning_messages
            )

        _integration_test_warnings.pop(test_nodeid, None)


@dataclass
class FakeItem:
    id: str
    codename: str
    name: str
    type: str
    # language -> element codename -> value; linked items are stored as codenames
    variants: dict[str, dict[str, Any]] = field(default_factory=dict)
    published: set[str] = field(default_factory=set)
    # False hides the item from the Delivery side (fetch_item), as for never-published content
    visible_in_preview: bool = True


class FakeRepository:
    """In-memory repository implementing ContentReader and ContentWriter.

    Every mutating call is appended to `writes` as (operation, item codename, ...).
    """

    def __init__(self, default_language: str = "en") -> None:
        self.types: dict[str, ContentTypeInfo] = {}
        self.items: dict[str, FakeItem] = {}
        self.writes: list[tuple[str, ...]] = []
        self.reads: list[tuple[str, ...]] = []
        self.fail_publish: set[str] = set()
        self.fail_upsert: set[str] = set()
        self._default_language = default_language
        self._ids = itertools.count(1)

    # ---- Scenario builders ----

    def add_type(self, codename: str, fields: list[tuple[str, ElementType] | tuple[str, ElementType, bool]]) -> ContentTypeInfo:
        elements = []
        for field_spec in fields:
            field_codename, element_type = field_spec[0], field_spec[1]
            is_required = field_spec[2] if len(field_spec) > 2 else False  # noqa: PLR2004
            elements.append(
                FieldSchema(
                    codename=field_codename,
                    name=field_codename.replace("_", " ").title(),
                    type=element_type,
                    is_required=is_required,
                    id=f"{codename}-{field_codename}",
                )
            )
        type_info = ContentTypeInfo(codename=codename, name=codename.title(), elements=elements, id=f"type-{codename}")
        self.types[codename] = type_info
        return type_info

    def add_item(
        self,
        codename: str,
        type_codename: str,
        *,
        name: str | None = None,
        language: str = "en",
        visible_in_preview: bool = True,
        **values: Any,  # noqa: ANN401
    ) -> MigrationItem:
        item = self.items.get(codename)
        if item is None:
            item = FakeItem(
                id=f"id-{codename}",
                codename=codename,
                name=name or codename.replace("-", " ").title(),
                type=type_codename,
                visible_in_preview=visible_in_preview,
            )
            self.items[codename] = item
        item.variants[language] = dict(values)
        return MigrationItem(id=item.id, name=item.name, codename=item.codename, type=item.type)

    def value(self, codename: str, field_codename: str, language: str = "en") -> Any:  # noqa: ANN401
        return self.items[codename].variants[language].get(field_codename)

    def write_operations(self) -> list[str]:
        return [write[0] for write in self.writes]

    # ---- Helpers ----

    def _by_id(self, item_id: str) -> FakeItem:
        for item in self.items.values():
            if item.id == item_id:
                return item
        msg = f"No item with id {item_id}"
        raise ItemNotFoundError(msg, status_code=404)

    def _snapshot(self, item: FakeItem, language: str, depth: int) -> ItemSnapshot:
        if language not in item.variants:
            msg = f"{item.codename} has no {language} variant"
            raise ItemNotFoundError(msg, status_code=404)
        schema = self.types[item.type]
        variant = item.variants[language]
        elements: dict[str, ElementSnapshot] = {}
        linked_items: dict[str, RelatedItem] = {}
        for element in schema.elements:
            value = copy.deepcopy(variant.get(element.codename))
            if element.type == ElementType.MODULAR_CONTENT:
                value = value or []
                if depth >= 1:
                    for linked_codename in value:
                        linked = self.items.get(linked_codename)
                        if linked is not None:
                            linked_items[linked_codename] = RelatedItem(
                                id=linked.id, name=linked.name, codename=linked.codename, type=linked.type
                            )
            elements[element.codename] = ElementSnapshot(
                codename=element.codename, type=element.type, name=element.name, value=value
            )
        return ItemSnapshot(
            id=item.id,
            codename=item.codename,
            name=item.name,
            type=item.type,
            language=language,
            elements=elements,
            linked_items=linked_items,
        )

    def _schema_element(self, item: FakeItem, reference: dict[str, str]) -> FieldSchema:
        for element in self.types[item.type].elements:
            if element.id == reference.get("id") or element.codename == reference.get("codename"):
                return element
        msg = f"Unknown element {reference} for type {item.type}"
        raise RepositoryError(msg, status_code=400)

    def _linked_codename(self, reference: dict[str, str] | str) -> str:
        if isinstance(reference, str):
            return reference
        if "codename" in reference:
            return reference["codename"]
        return self._by_id(reference["id"]).codename

    # ---- ContentReader ----

    def fetch_item(self, codename: str, language: str, *, depth: int = 0) -> ItemSnapshot:
        self.reads.append(("fetch_item", codename, language))
        item = self.items.get(codename)
        if item is None or not item.visible_in_preview:
            msg = f"Item {codename} not found"
            raise ItemNotFoundError(msg, status_code=404)
        return self._snapshot(item, language, depth)

    def fetch_type_schema(self, codename: str) -> ContentTypeInfo:
        if codename not in self.types:
            msg = f"Type {codename} not found"
            raise ItemNotFoundError(msg, status_code=404)
        return self.types[codename]

    def fetch_type_schema_by_id(self, type_id: str) -> ContentTypeInfo:
        for type_info in self.types.values():
            if type_info.id == type_id:
                return type_info
        msg = f"Type {type_id} not found"
        raise ItemNotFoundError(msg, status_code=404)

    def fetch_referenced_by(self, codename: str) -> list[RelatedItem]:
        self.reads.append(("fetch_referenced_by", codename))
        referencing: list[RelatedItem] = []
        for item in self.items.values():
            schema = self.types[item.type]
            linked_fields = [e.codename for e in schema.elements if e.type == ElementType.MODULAR_CONTENT]
            if any(codename in (variant.get(f) or []) for variant in item.variants.values() for f in linked_fields):
                referencing.append(RelatedItem(id=item.id, name=item.name, codename=item.codename, type=item.type))
        return referencing

    # ---- ContentWriter ----

    def default_language(self) -> str:
        return self._default_language

    def find_item(self, codename: str) -> ManagedItem | None:
        self.reads.append(("find_item", codename))
        item = self.items.get(codename)
        if item is None:
            return None
        return ManagedItem(id=item.id, codename=item.codename, name=item.name, type_id=self.types[item.type].id)

    def fetch_item_from_management(self, codename: str, language: str) -> ItemSnapshot:
        self.reads.append(("fetch_item_from_management", codename, language))
        item = self.items.get(codename)
        if item is None:
            msg = f"Item {codename} not found"
            raise ItemNotFoundError(msg, status_code=404)
        return self._snapshot(item, language, depth=1)

    def create_item(self, name: str, type_codename: str, codename: str | None = None) -> ManagedItem:
        codename = codename or name.lower().replace(" ", "_")
        if codename in self.items:
            msg = f"Codename {codename} already in use"
            raise RepositoryError(msg, status_code=409)
        item = FakeItem(id=f"new-{next(self._ids)}", codename=codename, name=name, type=type_codename)
        self.items[codename] = item
        self.writes.append(("create_item", codename))
        return ManagedItem(id=item.id, codename=item.codename, name=item.name, type_id=self.types[type_codename].id)

    def variant_exists(self, item_id: str, language: str) -> bool:
        return language in self._by_id(item_id).variants

    def get_variant_elements(self, item_id: str, language: str) -> list[dict[str, Any]]:
        item = self._by_id(item_id)
        if language not in item.variants:
            msg = f"{item.codename} has no {language} variant"
            raise ItemNotFoundError(msg, status_code=404)
        elements: list[dict[str, Any]] = []
        for element in self.types[item.type].elements:
            if element.codename not in item.variants[language]:
                continue
            value = copy.deepcopy(item.variants[language][element.codename])
            if element.type == ElementType.MODULAR_CONTENT:
                value = [{"id": self.items[c].id} for c in value or []]
            elements.append({"element": {"id": element.id}, "value": value})
        return elements

    def upsert_language_variant(self, item_id: str, language: str, elements: list[dict[str, Any]]) -> None:
        item = self._by_id(item_id)
        if item.codename in self.fail_upsert:
            msg = f"Upsert rejected for {item.codename}"
            raise RepositoryError(msg, status_code=400)
        variant = item.variants.setdefault(language, {})
        for element in elements:
            schema = self._schema_element(item, element["element"])
            value = element["value"]
            if schema.type == ElementType.MODULAR_CONTENT:
                value = [self._linked_codename(reference) for reference in value]
            variant[schema.codename] = value
        self.writes.append(("upsert_language_variant", item.codename, language))

    def create_draft_from_published(self, item_id: str, language: str) -> None:
        item = self._by_id(item_id)
        item.published.discard(language)
        self.writes.append(("create_draft_from_published", item.codename, language))

    def publish(self, item_id: str, language: str) -> None:
        item = self._by_id(item_id)
        if item.codename in self.fail_publish:
            msg = f"Workflow does not allow publishing {item.codename}"
            raise PublishError(msg)
        item.published.add(language)
        self.writes.append(("publish", item.codename, language))


@pytest.fixture
def fake_repository() -> FakeRepository:
    """Empty in-memory repository with default language "en"."""
    return FakeRepository()


@pytest.fixture
def tag_repository(fake_repository: FakeRepository) -> FakeRepository:
    """Repository with a "tag" type that links to other tags, and a "page" type linking to tags."""
    fake_repository.add_type(
        "tag",
        [("title", ElementType.TEXT, True), ("parent", ElementType.MODULAR_CONTENT)],
    )
    fake_repository.add_type(
        "category",
        [("title", ElementType.TEXT, True), ("parent", ElementType.MODULAR_CONTENT)],
    )
    fake_repository.add_type(
        "page",
        [("title", ElementType.TEXT, True), ("tags", ElementType.MODULAR_CONTENT)],
    )
    return fake_repository

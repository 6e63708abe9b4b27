"""
Integration tests against a real Kontent.ai environment

Credentials come from load_config() (KONTENT_ENVIRONMENT_ID,
KONTENT_MANAGEMENT_API_KEY, KONTENT_PREVIEW_API_KEY or pass).

Test source: items of KONTENT_TEST_SOURCE_TYPE (REQUIRED), KONTENT_TEST_ITEM (REQUIRED)
Test target: KONTENT_TEST_TARGET_TYPE (REQUIRED)

Test structure:
- Read-only tests: Verify API access and schema/item reading
- Migration test: Migrates KONTENT_TEST_ITEM; only runs with KONTENT_TEST_ALLOW_WRITES=1
  because it creates <item>_migrated in the environment. Re-running it is safe.
"""

import os

import pytest

from kontent_migrator import KontentClient, MigrationOrchestrator, MigrationRequest, build_field_mappings
from kontent_migrator.config import MigrationSettings, load_config
from kontent_migrator.models import ContentTypeInfo, MigrationItem
from kontent_migrator.relationships import RelationshipDiscoverer

LANGUAGE = os.environ.get("KONTENT_TEST_LANGUAGE", "en")


@pytest.fixture(scope="module")
def client() -> KontentClient:
    return KontentClient(load_config())


@pytest.fixture(scope="module")
def source_type(client: KontentClient) -> ContentTypeInfo:
    return client.fetch_type_schema(os.environ["KONTENT_TEST_SOURCE_TYPE"])


@pytest.fixture(scope="module")
def target_type(client: KontentClient) -> ContentTypeInfo:
    return client.fetch_type_schema(os.environ["KONTENT_TEST_TARGET_TYPE"])


@pytest.fixture(scope="module")
def test_item(client: KontentClient, source_type: ContentTypeInfo) -> MigrationItem:
    snapshot = client.fetch_item(os.environ["KONTENT_TEST_ITEM"], LANGUAGE)
    assert snapshot.type == source_type.codename
    return MigrationItem(id=snapshot.id, name=snapshot.name, codename=snapshot.codename, type=snapshot.type)


@pytest.mark.integration
class TestReadOnly:
    def test_default_language(self, client: KontentClient) -> None:
        assert client.default_language()

    def test_type_schemas(self, source_type: ContentTypeInfo, target_type: ContentTypeInfo) -> None:
        assert source_type.elements
        assert target_type.elements
        assert all(element.id for element in target_type.elements)

    def test_item_found_in_management_api(self, client: KontentClient, test_item: MigrationItem) -> None:
        managed = client.find_item(test_item.codename)

        assert managed is not None
        assert managed.id == test_item.id

    def test_relationships(self, client: KontentClient, test_item: MigrationItem) -> None:
        (relationship,) = RelationshipDiscoverer(client, LANGUAGE).discover([test_item])

        assert relationship.item_codename == test_item.codename


@pytest.mark.integration
class TestMigration:
    def test_migration_is_idempotent(
        self,
        client: KontentClient,
        source_type: ContentTypeInfo,
        target_type: ContentTypeInfo,
        test_item: MigrationItem,
    ) -> None:
        if os.environ.get("KONTENT_TEST_ALLOW_WRITES") != "1":
            pytest.skip("Set KONTENT_TEST_ALLOW_WRITES=1 to run tests that write to the environment")

        request = MigrationRequest(
            source_type=source_type,
            target_type=target_type,
            field_mappings=build_field_mappings(source_type, target_type),
            selected_items=[test_item],
            language=LANGUAGE,
        )
        orchestrator = MigrationOrchestrator(client, client, MigrationSettings(language=LANGUAGE))

        first = orchestrator.run(request)
        second = orchestrator.run(request)

        assert first.success, [result.message for result in first.failed_results]
        assert second.success
        assert all(info.already_existed for info in second.created_items)
        assert second.draft_items == []
        assert client.find_item(f"{test_item.codename}_migrated") is not None

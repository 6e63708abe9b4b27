"""Kontent.ai repository client.

KontentClient implements both ContentReader and ContentWriter. Items and the
"used in" graph are read through the Delivery preview API; type schemas,
languages and every mutation go through the Management API v2.

All vendor-specific request/response shaping lives here. Retries on 429/5xx
and request timeouts are configured on the underlying requests sessions; the
client methods themselves never retry.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Final

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .exceptions import ItemNotFoundError, PublishError, RepositoryError, TransientRepositoryError
from .models import (
    ContentTypeInfo,
    ElementSnapshot,
    ElementType,
    FieldSchema,
    ItemSnapshot,
    ManagedItem,
    RelatedItem,
)

if TYPE_CHECKING:
    from .config import KontentConfig

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_RETRY_STATUSES: Final[tuple[int, ...]] = (429, 500, 502, 503, 504)
# new-version is rejected with one of these when the variant is already a draft
_ALREADY_DRAFT_STATUSES: Final[frozenset[int]] = frozenset({400, 409})
_CONTINUATION_HEADER: Final[str] = "X-Continuation"


def _create_session(api_key: str, config: KontentConfig) -> requests.Session:
    """Create a requests session with authentication and retry logic."""
    session = requests.Session()
    session.headers["Authorization"] = f"Bearer {api_key}"
    session.headers["Content-Type"] = "application/json"

    retries = Retry(
        total=config.max_retries,
        backoff_factor=config.backoff_factor,
        status_forcelist=_RETRY_STATUSES,
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retries)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def _as_related_item(system: dict[str, Any]) -> RelatedItem:
    return RelatedItem(
        id=system.get("id", "unknown"),
        name=system.get("name", system.get("codename", "")),
        codename=system.get("codename", ""),
        type=system.get("type", "unknown"),
    )


def _as_type_info(data: dict[str, Any]) -> ContentTypeInfo:
    elements = [
        FieldSchema(
            codename=element.get("codename", ""),
            name=element.get("name", element.get("codename", "")),
            type=ElementType.parse(element.get("type")),
            is_required=bool(element.get("is_required", False)),
            id=element.get("id"),
        )
        for element in data.get("elements", [])
    ]
    return ContentTypeInfo(codename=data["codename"], name=data.get("name", data["codename"]), elements=elements, id=data.get("id"))


def _as_snapshot(data: dict[str, Any], language: str) -> ItemSnapshot:
    item = data["item"]
    system = item["system"]

    elements = {
        element_codename: ElementSnapshot(
            codename=element_codename,
            type=ElementType.parse(element.get("type")),
            name=element.get("name", ""),
            value=element.get("value"),
        )
        for element_codename, element in item.get("elements", {}).items()
    }
    linked_items = {
        linked_codename: _as_related_item(linked.get("system", {}))
        for linked_codename, linked in (data.get("modular_content") or {}).items()
    }

    return ItemSnapshot(
        id=system["id"],
        codename=system["codename"],
        name=system.get("name", system["codename"]),
        type=system.get("type", "unknown"),
        language=system.get("language", language),
        elements=elements,
        linked_items=linked_items,
    )


class KontentClient:
    """Repository facade for one Kontent.ai environment."""

    _config: KontentConfig
    _delivery: requests.Session
    _management: requests.Session
    _default_language: str | None

    def __init__(
        self,
        config: KontentConfig,
        *,
        delivery_session: requests.Session | None = None,
        management_session: requests.Session | None = None,
    ) -> None:
        self._config = config
        self._delivery = delivery_session or _create_session(config.preview_api_key, config)
        self._management = management_session or _create_session(config.management_api_key, config)
        self._default_language = None
        logger.debug(f"Initialized Kontent.ai client for environment {config.environment_id}")

    @property
    def _delivery_url(self) -> str:
        return f"{self._config.delivery_base_url.rstrip('/')}/{self._config.environment_id}"

    @property
    def _management_url(self) -> str:
        return f"{self._config.management_base_url.rstrip('/')}/projects/{self._config.environment_id}"

    def _request(self, session: requests.Session, method: str, url: str, **kwargs: Any) -> requests.Response:  # noqa: ANN401
        """Send one request and translate failures into repository exceptions."""
        try:
            response = session.request(method, url, timeout=self._config.timeout_seconds, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            msg = f"{method} {url} failed: {e}"
            raise TransientRepositoryError(msg) from e
        except requests.RequestException as e:
            msg = f"{method} {url} failed: {e}"
            raise RepositoryError(msg) from e

        status = response.status_code
        if status == 404:
            msg = f"Not found: {method} {url}"
            raise ItemNotFoundError(msg, status_code=status)
        if status in _RETRY_STATUSES:
            msg = f"{method} {url} failed with {status} after retries"
            raise TransientRepositoryError(msg, status_code=status)
        if status >= 400:
            msg = f"{method} {url} failed with {status}: {response.text}"
            raise RepositoryError(msg, status_code=status)
        return response

    def _deliver(self, path: str, **kwargs: Any) -> requests.Response:  # noqa: ANN401
        return self._request(self._delivery, "GET", f"{self._delivery_url}{path}", **kwargs)

    def _manage(self, method: str, path: str, **kwargs: Any) -> requests.Response:  # noqa: ANN401
        return self._request(self._management, method, f"{self._management_url}{path}", **kwargs)

    # ---- ContentReader ----

    def fetch_item(self, codename: str, language: str, *, depth: int = 0) -> ItemSnapshot:
        response = self._deliver(f"/items/{codename}", params={"language": language, "depth": depth})
        try:
            snapshot = _as_snapshot(response.json(), language)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            msg = f"Malformed item payload for {codename} ({language}): {e!r}"
            raise RepositoryError(msg) from e
        return self._with_asset_ids(snapshot)

    def _with_asset_ids(self, snapshot: ItemSnapshot) -> ItemSnapshot:
        """Replace Delivery asset objects by the asset references of the Management variant.

        Delivery returns assets as URLs with metadata but without asset ids,
        which is what a variant upsert needs.
        """
        asset_codenames = {
            element.codename
            for element in snapshot.elements.values()
            if element.type == ElementType.ASSET and element.value
        }
        if not asset_codenames:
            return snapshot

        schema = self.fetch_type_schema(snapshot.type)
        codename_by_id = {element.id: element.codename for element in schema.elements if element.id}
        elements = dict(snapshot.elements)
        for raw in self.get_variant_elements(snapshot.id, snapshot.language):
            element_codename = codename_by_id.get(raw.get("element", {}).get("id"))
            if element_codename in asset_codenames:
                elements[element_codename] = replace(elements[element_codename], value=raw.get("value") or [])
                asset_codenames.discard(element_codename)

        for element_codename in asset_codenames:
            logger.warning(f"No asset references for {snapshot.codename}.{element_codename} in the Management API")
            elements[element_codename] = replace(elements[element_codename], value=[])
        return replace(snapshot, elements=elements)

    def fetch_type_schema(self, codename: str) -> ContentTypeInfo:
        return _as_type_info(self._manage("GET", f"/types/codename/{codename}").json())

    def fetch_type_schema_by_id(self, type_id: str) -> ContentTypeInfo:
        return _as_type_info(self._manage("GET", f"/types/{type_id}").json())

    def fetch_referenced_by(self, codename: str) -> list[RelatedItem]:
        """Follow the "used in" feed, returning each referencing item once."""
        referencing: dict[str, RelatedItem] = {}
        headers: dict[str, str] = {"Accept": "application/json"}

        while True:
            response = self._deliver(f"/items/{codename}/used-in", headers=headers)
            for entry in response.json().get("items", []):
                related = _as_related_item(entry.get("system", {}))
                # The feed lists one entry per language variant
                referencing.setdefault(related.id, related)

            continuation = response.headers.get(_CONTINUATION_HEADER)
            if not continuation:
                break
            headers = {**headers, _CONTINUATION_HEADER: continuation}

        logger.debug(f"{codename} is used in {len(referencing)} items")
        return list(referencing.values())

    # ---- ContentWriter ----

    def default_language(self) -> str:
        if self._default_language is None:
            for language in self._manage("GET", "/languages").json().get("languages", []):
                if language.get("is_default"):
                    self._default_language = language["codename"]
                    break
            else:
                msg = "Environment has no default language"
                raise RepositoryError(msg)
        return self._default_language

    def find_item(self, codename: str) -> ManagedItem | None:
        try:
            data = self._manage("GET", f"/items/codename/{codename}").json()
        except ItemNotFoundError:
            return None
        return ManagedItem(id=data["id"], codename=data["codename"], name=data["name"], type_id=data.get("type", {}).get("id"))

    def _item_by_id(self, item_id: str) -> ManagedItem:
        data = self._manage("GET", f"/items/{item_id}").json()
        return ManagedItem(id=data["id"], codename=data["codename"], name=data["name"], type_id=data.get("type", {}).get("id"))

    def fetch_item_from_management(self, codename: str, language: str) -> ItemSnapshot:
        """Rebuild a codename-keyed snapshot from the Management API.

        Management variants address elements and linked items by id, so the
        type schema and every referenced item are looked up to restore codenames.
        """
        item = self.find_item(codename)
        if item is None or item.type_id is None:
            msg = f"Item {codename} not found in Management API"
            raise ItemNotFoundError(msg, status_code=404)

        schema = self.fetch_type_schema_by_id(item.type_id)
        schema_by_id = {element.id: element for element in schema.elements if element.id}
        type_codenames: dict[str, str] = {}

        elements: dict[str, ElementSnapshot] = {}
        linked_items: dict[str, RelatedItem] = {}
        for raw in self.get_variant_elements(item.id, language):
            element_schema = schema_by_id.get(raw.get("element", {}).get("id"))
            if element_schema is None:
                continue
            value = raw.get("value")
            if element_schema.type == ElementType.MODULAR_CONTENT and isinstance(value, list):
                codenames: list[str] = []
                for reference in value:
                    linked = self._item_by_id(reference["id"])
                    if linked.type_id and linked.type_id not in type_codenames:
                        type_codenames[linked.type_id] = self.fetch_type_schema_by_id(linked.type_id).codename
                    linked_items[linked.codename] = RelatedItem(
                        id=linked.id,
                        name=linked.name,
                        codename=linked.codename,
                        type=type_codenames.get(linked.type_id or "", "unknown"),
                    )
                    codenames.append(linked.codename)
                value = codenames
            elements[element_schema.codename] = ElementSnapshot(
                codename=element_schema.codename,
                type=element_schema.type,
                name=element_schema.name,
                value=value,
            )

        return ItemSnapshot(
            id=item.id,
            codename=item.codename,
            name=item.name,
            type=schema.codename,
            language=language,
            elements=elements,
            linked_items=linked_items,
        )

    def create_item(self, name: str, type_codename: str, codename: str | None = None) -> ManagedItem:
        payload: dict[str, Any] = {"name": name, "type": {"codename": type_codename}}
        if codename:
            payload["codename"] = codename
        data = self._manage("POST", "/items", json=payload).json()
        logger.debug(f"Created item {data['codename']} ({data['id']})")
        return ManagedItem(id=data["id"], codename=data["codename"], name=data["name"], type_id=data.get("type", {}).get("id"))

    def variant_exists(self, item_id: str, language: str) -> bool:
        try:
            _ = self._manage("GET", f"/items/{item_id}/variants/codename/{language}")
        except ItemNotFoundError:
            return False
        return True

    def get_variant_elements(self, item_id: str, language: str) -> list[dict[str, Any]]:
        data = self._manage("GET", f"/items/{item_id}/variants/codename/{language}").json()
        return data.get("elements") or []

    def upsert_language_variant(self, item_id: str, language: str, elements: list[dict[str, Any]]) -> None:
        _ = self._manage("PUT", f"/items/{item_id}/variants/codename/{language}", json={"elements": elements})
        logger.debug(f"Upserted {len(elements)} elements in {item_id} ({language})")

    def create_draft_from_published(self, item_id: str, language: str) -> None:
        try:
            _ = self._manage("PUT", f"/items/{item_id}/variants/codename/{language}/new-version")
        except (ItemNotFoundError, TransientRepositoryError):
            raise
        except RepositoryError as e:
            if e.status_code in _ALREADY_DRAFT_STATUSES:
                logger.debug(f"Variant {item_id} ({language}) is already a draft")
                return
            raise

    def publish(self, item_id: str, language: str) -> None:
        try:
            _ = self._manage("PUT", f"/items/{item_id}/variants/codename/{language}/publish")
        except (ItemNotFoundError, TransientRepositoryError):
            raise
        except RepositoryError as e:
            msg = f"Failed to publish {item_id} ({language}): {e}"
            raise PublishError(msg) from e

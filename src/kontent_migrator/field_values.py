"""Typed element values written to language variants.

FieldValue is a closed union: every value the transformer produces is one of
the dataclasses below, chosen by the target element type. Each knows how to
render itself as a Management API element payload.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .models import ElementType

TEXT_TYPES: frozenset[ElementType] = frozenset({ElementType.TEXT, ElementType.RICH_TEXT, ElementType.URL_SLUG})
REFERENCE_LIST_TYPES: frozenset[ElementType] = frozenset(
    {ElementType.ASSET, ElementType.MULTIPLE_CHOICE, ElementType.TAXONOMY}
)


def _element(codename: str) -> dict[str, str]:
    return {"codename": codename}


@dataclass(frozen=True)
class TextValue:
    """text, rich_text and url_slug values."""

    element_codename: str
    value: str
    element_type: ElementType = ElementType.TEXT

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"element": _element(self.element_codename), "value": self.value}
        if self.element_type == ElementType.URL_SLUG:
            # An explicit slug must be marked custom or the repository regenerates it
            payload["mode"] = "custom" if self.value else "autogenerated"
        return payload


@dataclass(frozen=True)
class NumberValue:
    element_codename: str
    value: int | float

    @property
    def element_type(self) -> ElementType:
        return ElementType.NUMBER

    def to_payload(self) -> dict[str, Any]:
        return {"element": _element(self.element_codename), "value": self.value}


@dataclass(frozen=True)
class DateTimeValue:
    element_codename: str
    value: str | None

    @property
    def element_type(self) -> ElementType:
        return ElementType.DATE_TIME

    def to_payload(self) -> dict[str, Any]:
        return {"element": _element(self.element_codename), "value": self.value}


@dataclass(frozen=True)
class ReferenceListValue:
    """asset, multiple_choice and taxonomy values: ordered references by id or codename."""

    element_codename: str
    value: tuple[dict[str, str], ...]
    element_type: ElementType = ElementType.TAXONOMY

    def to_payload(self) -> dict[str, Any]:
        return {"element": _element(self.element_codename), "value": [dict(ref) for ref in self.value]}


@dataclass(frozen=True)
class LinkedItemsValue:
    """modular_content values: ordered item references by codename."""

    element_codename: str
    codenames: tuple[str, ...]

    @property
    def element_type(self) -> ElementType:
        return ElementType.MODULAR_CONTENT

    def to_payload(self) -> dict[str, Any]:
        return {
            "element": _element(self.element_codename),
            "value": [{"codename": codename} for codename in self.codenames],
        }


FieldValue = TextValue | NumberValue | DateTimeValue | ReferenceListValue | LinkedItemsValue

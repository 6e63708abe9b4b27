"""Field transformation from source element values to target element values.

transform() and default_for() are pure: no I/O, same input, same output.
build_elements() combines them into the complete element set of a new
language variant.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .field_values import (
    REFERENCE_LIST_TYPES,
    TEXT_TYPES,
    DateTimeValue,
    FieldValue,
    LinkedItemsValue,
    NumberValue,
    ReferenceListValue,
    TextValue,
)
from .models import ElementType

if TYPE_CHECKING:
    from .models import ContentTypeInfo, ElementSnapshot, FieldMapping, FieldSchema, ItemSnapshot

logger: logging.Logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:  # noqa: ANN401
    return isinstance(value, int | float) and not isinstance(value, bool)


def _as_reference(entry: Any) -> dict[str, str] | None:  # noqa: ANN401
    """Normalize one asset/option/term entry to a reference by id or codename."""
    if isinstance(entry, str):
        return {"codename": entry}
    if isinstance(entry, Mapping):
        if entry.get("id"):
            return {"id": str(entry["id"])}
        if entry.get("codename"):
            return {"codename": str(entry["codename"])}
    return None


def _linked_codename(entry: Any) -> str | None:  # noqa: ANN401
    if isinstance(entry, str):
        return entry
    if isinstance(entry, Mapping) and entry.get("codename"):
        return str(entry["codename"])
    return None


def _is_sequence(value: Any) -> bool:  # noqa: ANN401
    return isinstance(value, Sequence) and not isinstance(value, str | bytes)


def transform(source_element: ElementSnapshot, target_field: FieldSchema) -> FieldValue | None:
    """Map a source element's runtime value to the shape the target field expects.

    Returns None for guidelines (never copied between types) and for target
    types that cannot be transformed; the caller drops the field.
    """
    codename = target_field.codename
    value = source_element.value
    target_type = target_field.type

    if target_type in TEXT_TYPES:
        if value is None:
            text = ""
        elif isinstance(value, str):
            text = value
        elif _is_number(value):
            text = str(value)
        else:
            logger.debug(f"Non-text value for {codename} replaced by empty string")
            text = ""
        return TextValue(codename, text, target_type)

    if target_type == ElementType.NUMBER:
        return NumberValue(codename, value if _is_number(value) else 0)

    if target_type == ElementType.DATE_TIME:
        return DateTimeValue(codename, value if isinstance(value, str) and value else None)

    if target_type in REFERENCE_LIST_TYPES:
        if not _is_sequence(value):
            return ReferenceListValue(codename, (), target_type)
        references = [_as_reference(entry) for entry in value]
        kept = tuple(ref for ref in references if ref is not None)
        if len(kept) != len(references):
            logger.warning(
                f"Dropped {len(references) - len(kept)} {target_type} entries without id or codename for {codename}"
            )
        return ReferenceListValue(codename, kept, target_type)

    if target_type == ElementType.MODULAR_CONTENT:
        if not _is_sequence(value):
            return LinkedItemsValue(codename, ())
        codenames = (_linked_codename(entry) for entry in value)
        return LinkedItemsValue(codename, tuple(c for c in codenames if c))

    if target_type == ElementType.GUIDELINES:
        return None

    logger.warning(f"Unsupported field type: {target_type}, skipping field {codename}")
    return None


def default_for(target_field: FieldSchema) -> FieldValue | None:
    """Return the empty value used for an unmapped required target field."""
    codename = target_field.codename
    target_type = target_field.type

    if target_type in TEXT_TYPES:
        return TextValue(codename, "", target_type)
    if target_type == ElementType.NUMBER:
        return NumberValue(codename, 0)
    if target_type == ElementType.DATE_TIME:
        return DateTimeValue(codename, None)
    if target_type in REFERENCE_LIST_TYPES:
        return ReferenceListValue(codename, (), target_type)
    if target_type == ElementType.MODULAR_CONTENT:
        return LinkedItemsValue(codename, ())
    if target_type == ElementType.GUIDELINES:
        return None

    logger.warning(f"No default value available for type: {target_type} ({codename})")
    return None


@dataclass
class BuiltElements:
    """Element set of a new language variant."""

    values: list[FieldValue] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def codenames(self) -> list[str]:
        return [value.element_codename for value in self.values]

    def immediate(self) -> list[FieldValue]:
        """Values written when the variant is created."""
        return [value for value in self.values if not isinstance(value, LinkedItemsValue)]

    def deferred(self) -> list[LinkedItemsValue]:
        """Linked-items values, wired later by the reference phases."""
        return [value for value in self.values if isinstance(value, LinkedItemsValue)]


def build_elements(
    source_item: ItemSnapshot,
    target_type: ContentTypeInfo,
    mappings: Sequence[FieldMapping],
) -> BuiltElements:
    """Build the element set for a target variant from mappings plus defaults.

    Mapped fields come first, in mapping order. Every required target field
    left unmapped (guidelines excluded) then gets its default, so the
    repository never receives a payload missing a required field.
    """
    built = BuiltElements()
    seen: set[str] = set()

    def warn(message: str) -> None:
        logger.warning(message)
        built.warnings.append(message)

    for mapping in mappings:
        if mapping.target_field is None:
            continue

        source_codename = mapping.source_field.codename
        target_codename = mapping.target_field.codename
        source_element = source_item.elements.get(source_codename)
        target_field = target_type.element(target_codename)

        if source_element is None or target_field is None:
            missing = "source element" if source_element is None else "target field"
            warn(f"Skipping mapping {source_codename} -> {target_codename}: {missing} not found")
            continue
        if target_codename in seen:
            warn(f"Skipping mapping {source_codename} -> {target_codename}: target field already mapped")
            continue

        value = transform(source_element, target_field)
        if value is None:
            if target_field.type != ElementType.GUIDELINES:
                built.warnings.append(f"Could not transform {source_codename} -> {target_codename} ({target_field.type})")
            continue

        built.values.append(value)
        seen.add(target_codename)

    for target_field in target_type.elements:
        if target_field.type == ElementType.GUIDELINES or target_field.codename in seen:
            continue
        if not target_field.is_required:
            continue
        default = default_for(target_field)
        if default is None:
            built.warnings.append(f"No default for required field {target_field.codename} ({target_field.type})")
            continue
        logger.debug(f"Adding default value for unmapped field: {target_field.codename} ({target_field.type})")
        built.values.append(default)
        seen.add(target_field.codename)

    return built

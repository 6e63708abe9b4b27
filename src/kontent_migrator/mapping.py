"""
Field mapping between a source and a target content type.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from .field_values import REFERENCE_LIST_TYPES, TEXT_TYPES
from .models import ElementType, FieldMapping

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import ContentTypeInfo, FieldSchema

logger: logging.Logger = logging.getLogger(__name__)


class FieldNameTranslator:
    """Handles field codename translation patterns.

    A pattern is "source:target". "*" in the source matches any run of
    characters and is substituted into the target. An empty target drops
    the field.
    """

    def __init__(self, patterns: Sequence[str] | None) -> None:
        self.patterns: list[tuple[str, str]] = []

        for pattern in patterns or []:
            if ":" not in pattern:
                msg = f"Invalid pattern format: {pattern}"
                raise ValueError(msg)
            source, target = pattern.split(":", 1)
            self.patterns.append((source, target))

    def translate(self, codename: str) -> str:
        """Translate a field codename using configured patterns."""
        for source_pattern, target_pattern in self.patterns:
            if "*" in source_pattern:
                regex_pattern = re.escape(source_pattern).replace(r"\*", "(.*)")
                match = re.match(f"^{regex_pattern}$", codename)
                if match:
                    return target_pattern.replace("*", match.group(1))
            elif source_pattern == codename:
                return target_pattern
        return codename


def _compatibility_warning(source: FieldSchema, target: FieldSchema) -> str | None:
    if source.type == target.type:
        return None
    if source.type in TEXT_TYPES and target.type in TEXT_TYPES:
        return None
    if source.type in REFERENCE_LIST_TYPES and target.type in REFERENCE_LIST_TYPES:
        return f"{source.type} references copied into {target.type}; unmatched entries are rejected by the repository"
    return f"Incompatible types {source.type} -> {target.type}; the target receives an empty value"


def build_field_mappings(
    source_type: ContentTypeInfo,
    target_type: ContentTypeInfo,
    overrides: Sequence[str] | None = None,
) -> list[FieldMapping]:
    """Map every source field to the target field of the same (or translated) codename.

    Guidelines fields are never mapped. A source field without a counterpart
    gets a mapping with no target, which drops it.
    """
    translator = FieldNameTranslator(overrides)
    mappings: list[FieldMapping] = []
    used_targets: set[str] = set()

    for source_field in source_type.elements:
        if source_field.type == ElementType.GUIDELINES:
            continue

        target_codename = translator.translate(source_field.codename)
        if not target_codename:
            mappings.append(FieldMapping(source_field=source_field, target_field=None))
            continue

        target_field = target_type.element(target_codename)
        if target_field is None or target_field.type == ElementType.GUIDELINES:
            warning = f"No field {target_codename} in {target_type.codename}; {source_field.codename} is dropped"
            logger.debug(warning)
            mappings.append(FieldMapping(source_field=source_field, target_field=None, warnings=[warning]))
            continue
        if target_codename in used_targets:
            warning = f"{target_codename} is already mapped; {source_field.codename} is dropped"
            logger.warning(warning)
            mappings.append(FieldMapping(source_field=source_field, target_field=None, warnings=[warning]))
            continue

        used_targets.add(target_codename)
        warning = _compatibility_warning(source_field, target_field)
        mappings.append(
            FieldMapping(
                source_field=source_field,
                target_field=target_field,
                transformation_needed=source_field.type != target_field.type,
                warnings=[warning] if warning else [],
            )
        )

    return mappings

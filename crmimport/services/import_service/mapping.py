"""Column mapping suggestion and validation."""

import logging
import re
from dataclasses import dataclass
from typing import Iterable

from crmimport.models.import_job import ImportType

from .constants import HEADER_ALIASES, FieldDefinition, get_field_catalog, get_required_fields
from .errors import BadMappingError

logger = logging.getLogger(__name__)

_WORD_SPLIT = re.compile(r"\s+|[-_]")


@dataclass(frozen=True)
class MappingEntry:
    """One submitted (source column -> target field) pair."""

    source_column: str
    target_field: str


@dataclass(frozen=True)
class SuggestedMapping:
    """A proposed pairing with its similarity score (1.0 = exact)."""

    source_column: str
    target_field: str
    confidence: float


def levenshtein_distance(s1: str, s2: str) -> int:
    """Edit distance between two strings."""
    if len(s1) < len(s2):
        s1, s2 = s2, s1
    previous = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1, start=1):
        current = [i]
        for j, c2 in enumerate(s2, start=1):
            current.append(
                min(
                    previous[j] + 1,  # deletion
                    current[j - 1] + 1,  # insertion
                    previous[j - 1] + (c1 != c2),  # substitution
                )
            )
        previous = current
    return previous[-1]


def calculate_similarity(column: str, label: str) -> float:
    """Score how closely a column header resembles a field label.

    Exact (case-insensitive) match scores 1.0 and containment 0.9; otherwise
    a 60/40 blend of word overlap and normalized edit distance.
    """
    s1 = column.strip().lower()
    s2 = label.strip().lower()
    if not s1 or not s2:
        return 0.0

    if s1 == s2:
        return 1.0

    if s1 in s2 or s2 in s1:
        return 0.9

    words1 = [w for w in _WORD_SPLIT.split(s1) if w]
    words2 = [w for w in _WORD_SPLIT.split(s2) if w]
    matching = [
        w1 for w1 in words1
        if any(w1 == w2 or w1 in w2 or w2 in w1 for w2 in words2)
    ]
    word_overlap = len(matching) / max(len(words1), len(words2), 1)

    max_length = max(len(s1), len(s2))
    normalized_distance = 1 - levenshtein_distance(s1, s2) / max_length

    return word_overlap * 0.6 + normalized_distance * 0.4


def suggest_field_mappings(
    columns: list[str],
    fields: list[FieldDefinition],
    aliases: dict[str, str] | None = None,
    min_confidence: float = 0.3,
) -> list[SuggestedMapping]:
    """Suggest column -> field pairings by header similarity.

    Candidates below ``min_confidence`` are dropped; the rest are assigned
    greedily from the highest score down so that no column and no field is
    used twice.

    Args:
        columns: Column headers from the uploaded file.
        fields: Field catalog to match against (by label).
        aliases: Optional lowercase header -> field key table; an alias hit
            scores 1.0.
        min_confidence: Minimum score for a pairing to be considered.

    Returns:
        Suggestions sorted by confidence, highest first.
    """
    aliases = aliases or {}
    candidates: list[tuple[float, int, str, str]] = []

    for position, column in enumerate(columns):
        alias_target = aliases.get(column.strip().lower())
        for field in fields:
            if field.key == alias_target:
                confidence = 1.0
            else:
                confidence = max(
                    calculate_similarity(column, field.label),
                    calculate_similarity(column, field.key),
                )
            if confidence >= min_confidence:
                candidates.append((confidence, position, column, field.key))

    # Highest confidence first; ties resolved by column order
    candidates.sort(key=lambda c: (-c[0], c[1]))

    used_columns: set[str] = set()
    used_fields: set[str] = set()
    suggestions: list[SuggestedMapping] = []
    for confidence, _, column, field_key in candidates:
        if column in used_columns or field_key in used_fields:
            continue
        suggestions.append(SuggestedMapping(column, field_key, round(confidence, 4)))
        used_columns.add(column)
        used_fields.add(field_key)

    return suggestions


def suggest_column_mapping(
    columns: list[str],
    import_type: ImportType,
    min_confidence: float = 0.3,
) -> list[SuggestedMapping]:
    """Suggest mappings for an import type using its catalog and aliases."""
    return suggest_field_mappings(
        columns,
        get_field_catalog(import_type),
        HEADER_ALIASES.get(import_type),
        min_confidence,
    )


def validate_mapping(
    headers: list[str],
    entries: Iterable[MappingEntry],
    import_type: ImportType,
) -> dict[str, str]:
    """Validate submitted mapping entries against the file's real headers.

    Args:
        headers: Header row re-read from the stored file.
        entries: Submitted (source column, target field) pairs.
        import_type: Import type whose catalog defines the valid targets.

    Returns:
        Dict of target field key -> source column.

    Raises:
        BadMappingError: If a column is unknown, a target is unknown or
            mapped twice, or a required field is missing.
    """
    catalog = get_field_catalog(import_type)
    known_fields = {field.key for field in catalog}
    known_headers = {header.strip() for header in headers}
    field_mapping: dict[str, str] = {}

    for entry in entries:
        source = entry.source_column.strip()
        if source not in known_headers:
            raise BadMappingError(
                f'Column "{entry.source_column}" does not exist in the uploaded file.'
            )

        if entry.target_field not in known_fields:
            raise BadMappingError(f'Unknown target field "{entry.target_field}".')

        if entry.target_field in field_mapping:
            raise BadMappingError(
                f'Field "{entry.target_field}" has been mapped more than once.'
            )

        field_mapping[entry.target_field] = source

    for field in get_required_fields(import_type):
        if field.key not in field_mapping:
            raise BadMappingError(
                f"{field.label} must be mapped in order to import {import_type.value}."
            )

    logger.debug("Validated mapping for %d fields", len(field_mapping))
    return field_mapping

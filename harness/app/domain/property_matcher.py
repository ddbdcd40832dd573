"""Order-independent comparison of sent and received message properties."""
from __future__ import annotations

from collections import Counter
from typing import Iterable, Mapping, Union

from harness.app.domain.models import PropertyComparisonResult

PropertySet = Union[Mapping[str, str], Iterable[tuple[str, str]]]


def _pairs(properties: PropertySet) -> list[tuple[str, str]]:
    if isinstance(properties, Mapping):
        return [(str(k), str(v)) for k, v in properties.items()]
    return [(str(k), str(v)) for k, v in properties]


def compare(expected: PropertySet, actual: PropertySet) -> PropertyComparisonResult:
    """Compare two property sets; report names that are missing, differ, or are unexpected."""
    expected_pairs = _pairs(expected)
    actual_pairs = _pairs(actual)

    expected_counts = Counter(expected_pairs)
    actual_counts = Counter(actual_pairs)

    mismatched = {name for name, _ in (expected_counts - actual_counts)}
    mismatched |= {name for name, _ in (actual_counts - expected_counts)}

    matched = len(expected_pairs) == len(actual_pairs) and not mismatched
    return PropertyComparisonResult(matched=matched, mismatched_names=tuple(sorted(mismatched)))


def matches(expected: PropertySet, actual: PropertySet) -> bool:
    return compare(expected, actual).matched

"""Replica metadata supplied by the test host and its resolution."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple

from ..common.errors import ReplicaConfigurationError

# Sentinel the host may pass for "no replica count declared".
UNDECLARED_REPLICAS = -1

_TRAILING_NUMBER = re.compile(r"(\d+)\s*$")


@dataclass(frozen=True)
class TestClassMetadata:
    """
    Replica settings read from the test class before deployment.

    `replicas` is the explicitly declared count, if any; `target_indices`
    are the 0-based pod indices test methods address.
    """

    __test__ = False

    replicas: Optional[int] = None
    target_indices: Tuple[int, ...] = field(default_factory=tuple)

    @classmethod
    def from_qualifiers(cls, replicas: Optional[int], qualifiers: Iterable[str]) -> "TestClassMetadata":
        return cls(replicas=replicas, target_indices=tuple(parse_target_index(q) for q in qualifiers))


def parse_target_index(qualifier: str) -> int:
    """
    Pod index from a target-container qualifier such as `"2"` or `"pod-2"`.

    Raises:
        ReplicaConfigurationError: If the qualifier carries no number
    """
    match = _TRAILING_NUMBER.search(str(qualifier))
    if match is None:
        raise ReplicaConfigurationError(f"No pod index in target container qualifier: {qualifier!r}")
    return int(match.group(1))


def resolve_replicas(explicit: Optional[int], target_indices: Iterable[int] = ()) -> int:
    """
    Number of replicas to deploy.

    An explicit count wins and every target index must be below it. Without
    one the count is the highest target index plus one, or 1.

    Raises:
        ReplicaConfigurationError: On a non-positive count, a negative index or an index >= the count
    """
    declared = explicit is not None and explicit != UNDECLARED_REPLICAS
    if declared and explicit <= 0:
        raise ReplicaConfigurationError(f"Non-positive replicas size: {explicit}")

    highest = 0
    for index in target_indices:
        if index < 0:
            raise ReplicaConfigurationError(f"Negative pod index: {index}")
        if declared and index >= explicit:
            raise ReplicaConfigurationError(
                f"Node / pod index bigger then replicas; {index} >= {explicit} !"
            )
        highest = max(highest, index)

    return explicit if declared else highest + 1

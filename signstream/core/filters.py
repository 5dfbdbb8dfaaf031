"""
Prediction filters narrowing classifier output to a final label.

A FilterUnit pairs labels with their probabilities. Filters are pure
`FilterUnit -> FilterUnit` transformations applied in order by a
FilterChain. Every filter rejects a unit whose two sequences differ in
length (FilterInvariantError) and passes an empty unit through unchanged.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from signstream.utils import constants as C
from signstream.utils.config import FilterSpec
from signstream.utils.failures import ConfigError, FilterInvariantError


@dataclass(frozen=True, eq=False)
class FilterUnit:
    """Parallel label / probability sequences. Inputs are stored as a tuple and a flat float64 array."""
    labels: Tuple[str, ...]
    probabilities: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, 'labels', tuple(self.labels))
        object.__setattr__(
            self, 'probabilities', np.asarray(self.probabilities, dtype=np.float64).reshape(-1)
        )

    @classmethod
    def of(cls, labels: Sequence[str], probabilities: Sequence[float]) -> "FilterUnit":
        return cls(tuple(labels), probabilities)

    @property
    def is_valid(self) -> bool:
        return len(self.labels) == len(self.probabilities)

    def __len__(self) -> int:
        return len(self.labels)

    def select(self, indices: Iterable[int]) -> "FilterUnit":
        indices = list(indices)
        return FilterUnit(
            tuple(self.labels[i] for i in indices),
            self.probabilities[np.asarray(indices, dtype=np.intp)],
        )


def argmax(values: Sequence[float]) -> int:
    """Index of the largest value; the first one wins on ties."""
    return int(np.argmax(np.asarray(values)))


class PredictionFilter(ABC):
    """Base class: validates the unit, short-circuits empty input."""

    def filter(self, unit: FilterUnit) -> FilterUnit:
        if not unit.is_valid:
            raise FilterInvariantError(
                f"Received {len(unit.labels)} label(s) and "
                f"{len(unit.probabilities)} probabilities."
            )
        if len(unit) == 0:
            return unit
        return self.apply(unit)

    @abstractmethod
    def apply(self, unit: FilterUnit) -> FilterUnit:
        ...

    def __call__(self, unit: FilterUnit) -> FilterUnit:
        return self.filter(unit)


class BestOfFilter(PredictionFilter):
    """Keeps only the most probable entry."""

    def apply(self, unit: FilterUnit) -> FilterUnit:
        return unit.select([argmax(unit.probabilities)])

    def __repr__(self):
        return "BestOfFilter()"


class ThresholdFilter(PredictionFilter):
    """Keeps entries with probability strictly above `threshold`."""

    def __init__(self, threshold: float):
        self.threshold = float(threshold)

    def apply(self, unit: FilterUnit) -> FilterUnit:
        return unit.select(np.flatnonzero(unit.probabilities > self.threshold))

    def __repr__(self):
        return f"ThresholdFilter({self.threshold})"


class FocusSublistFilter(PredictionFilter):
    """Keeps entries whose label belongs to `focus`."""

    def __init__(self, focus: Iterable[str]):
        self.focus = frozenset(focus)

    def apply(self, unit: FilterUnit) -> FilterUnit:
        return unit.select(i for i, label in enumerate(unit.labels) if label in self.focus)

    def __repr__(self):
        return f"FocusSublistFilter({sorted(self.focus)})"


class FilterChain:
    """Ordered filters plus the final dispatch rule."""

    def __init__(self, filters: Optional[Iterable[PredictionFilter]] = None):
        self.filters: List[PredictionFilter] = (
            list(filters) if filters is not None else [BestOfFilter()]
        )

    def append(self, prediction_filter: PredictionFilter) -> "FilterChain":
        self.filters.append(prediction_filter)
        return self

    def apply(self, unit: FilterUnit) -> FilterUnit:
        for prediction_filter in self.filters:
            unit = prediction_filter.filter(unit)
        return unit

    def decide(self, unit: FilterUnit) -> Optional[Tuple[str, float]]:
        """
        Run the chain and pick the label to dispatch.

        One remaining entry is returned as is, several resolve to the first
        maximum, none yields None.
        """
        result = self.apply(unit)
        if len(result) == 0:
            return None
        index = 0 if len(result) == 1 else argmax(result.probabilities)
        return result.labels[index], float(result.probabilities[index])

    def __len__(self) -> int:
        return len(self.filters)

    def __repr__(self):
        return f"FilterChain({self.filters!r})"


def build_filter(spec: FilterSpec) -> PredictionFilter:
    if spec.type == C.FILTER_BEST_OF:
        return BestOfFilter()
    if spec.type == C.FILTER_THRESHOLD:
        if spec.value is None:
            raise ConfigError("Threshold filter requires a 'value'")
        return ThresholdFilter(spec.value)
    if spec.type == C.FILTER_FOCUS:
        if not spec.value:
            raise ConfigError("Focus filter requires a list of labels as 'value'")
        if isinstance(spec.value, str):
            return FocusSublistFilter([spec.value])
        return FocusSublistFilter(spec.value)
    raise ConfigError(f"Unknown filter type: {spec.type}")


def build_filter_chain(specs: Iterable[FilterSpec]) -> FilterChain:
    """Build a chain from configured filter specs, in order."""
    return FilterChain(build_filter(spec) for spec in specs)

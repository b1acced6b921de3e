"""Label sets and the labelers that produce them."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from enum import Enum


class LabelingError(Exception):
    """Raised when labels cannot be generated."""


class Labeler(ABC):
    """Something that produces a set of node labels."""

    @abstractmethod
    def labels(self) -> "Labels":
        """Return the generated labels."""


class Labels(dict, Labeler):
    """A mapping of label names to values; it is its own labeler."""

    def labels(self) -> "Labels":
        return self


class Empty(Labeler):
    """A labeler that produces no labels."""

    def labels(self) -> Labels:
        return Labels()

    def __repr__(self) -> str:
        return "Empty()"


class LabelerList(list, Labeler):
    """A list of labelers acting as one; later labels overwrite earlier ones."""

    def labels(self) -> Labels:
        merged = Labels()
        for labeler in self:
            try:
                generated = labeler.labels()
            except Exception as err:
                raise LabelingError(f"error generating labels: {err}") from err
            if generated:
                merged.update(generated)
        return merged


def merge(*labelers: Labeler) -> LabelerList:
    """Combine several labelers into a single composite labeler."""
    return LabelerList(labelers)


class MigStrategy(str, Enum):
    """The supported MIG strategies."""

    NONE = "none"
    SINGLE = "single"
    MIXED = "mixed"

    def __str__(self) -> str:
        return self.value


def mig_strategy_labeler(strategy: str) -> Labeler:
    """Return a labeler for the MIG strategy label, empty for the none strategy."""
    value = strategy.value if isinstance(strategy, MigStrategy) else strategy
    if value == MigStrategy.NONE.value:
        return Empty()
    return Labels({"nvidia.com/mig.strategy": value})


def new_timestamp_labeler(no_timestamp: bool) -> Labeler:
    """Return a labeler for the current timestamp, or an empty one if disabled."""
    if no_timestamp:
        return Empty()
    return Labels({"nvidia.com/gfd.timestamp": str(int(time.time()))})
#!/usr/bin/env python3

"""
Value types and statistics containers used by the barcode decoder.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, NamedTuple, Optional, Sequence, Tuple

from .constants import DiscardReason, DistancePolicy, ResolutionType, SampleId


class BarcodeMatch(NamedTuple):
    """Best match of one sequenced barcode against the reference barcodes of one index.

    A match is never modified after the matcher builds it. When no reference barcode
    could be matched, ``matched_barcode`` is None and both distances are the length of
    the sequenced barcode.
    """
    index_number: int
    matched_barcode: Optional[str]
    mismatches: int
    mismatches_to_second_best: int
    number_of_ns: int

    @classmethod
    def unmatched(cls, index_number: int, length: int, number_of_ns: int = 0) -> 'BarcodeMatch':
        return cls(index_number, None, length, length, number_of_ns)

    @property
    def barcode(self) -> str:
        """Matched barcode, or the unknown string if there is none."""
        return SampleId.UNKNOWN if self.matched_barcode is None else self.matched_barcode

    def is_match(self) -> bool:
        return self.matched_barcode is not None

    def is_ambiguous(self) -> bool:
        """True if the second best barcode is as close as the best one."""
        # negative differences are not expected, but are ambiguous as well
        return self.mismatches_to_second_best - self.mismatches <= 0

    def is_assignable(self, threshold: int, policy: str = DistancePolicy.LEGACY) -> bool:
        """Check the distance between the best and the second best barcode.

        An exact match without Ns is always assignable. Otherwise the difference in
        mismatches with the second best barcode should be at least ``threshold``. With
        the strict policy, a difference of 0 is never accepted even if the threshold is 0.
        """
        if self.number_of_ns == 0 and self.mismatches == 0:
            return True
        if policy == DistancePolicy.STRICT:
            return self.mismatches_to_second_best - self.mismatches >= max(threshold, 1)
        return abs(self.mismatches_to_second_best - self.mismatches) >= threshold


@dataclass(frozen=True)
class DecoderParameters:
    """Thresholds applied by the decoder, one entry per index where relevant."""
    max_mismatches: Tuple[int, ...]
    min_distance: Tuple[int, ...]
    max_n: Optional[int] = None
    n_as_mismatch: bool = True
    distance_policy: str = DistancePolicy.LEGACY

    @classmethod
    def for_dictionary(cls, dictionary, max_mismatches: Sequence[int] = (0,),
                       min_distance: Sequence[int] = (1,), max_n: Optional[int] = None,
                       n_as_mismatch: bool = True,
                       distance_policy: str = DistancePolicy.LEGACY) -> 'DecoderParameters':
        """
        Build parameters for a dictionary, using the same value for every index when a
        single threshold is provided.

        Raises:
            ValueError: If a threshold list does not fit the number of indexes or a
                threshold is negative
        """
        n = dictionary.number_of_indices()
        if max_n is not None and max_n < 0:
            raise ValueError(f"Maximum number of Ns should be non-negative: {max_n}")
        if distance_policy not in (DistancePolicy.LEGACY, DistancePolicy.STRICT):
            raise ValueError(f"Unknown distance policy: {distance_policy}")
        return cls(
            max_mismatches=_per_index("maximum mismatches", max_mismatches, n),
            min_distance=_per_index("minimum distance", min_distance, n),
            max_n=max_n,
            n_as_mismatch=n_as_mismatch,
            distance_policy=distance_policy,
        )

    def effective_max_n(self) -> float:
        return float('inf') if self.max_n is None else self.max_n


def _per_index(name: str, values: Sequence[int], number_of_indices: int) -> Tuple[int, ...]:
    values = tuple(values)
    if not values:
        raise ValueError(f"No value provided for {name}")
    if any(v < 0 for v in values):
        raise ValueError(f"Negative value for {name}: {list(values)}")
    if len(values) == 1:
        return values * number_of_indices
    if len(values) != number_of_indices:
        raise ValueError(f"{name} specified {len(values)} times for {number_of_indices} barcodes")
    return values


class RunningMean:
    """Incremental mean, without storing the pushed values."""

    def __init__(self):
        self.count = 0
        self._mean = 0.0

    def push(self, value: float) -> None:
        self.count += 1
        self._mean += (value - self._mean) / self.count

    def mean(self) -> float:
        return self._mean if self.count else 0.0

    def copy(self) -> 'RunningMean':
        other = RunningMean()
        other.count = self.count
        other._mean = self._mean
        return other


@dataclass
class MatcherStat:
    """Number of reads assigned to a combined barcode."""
    barcode: str
    sample: str
    records: int = 0


@dataclass
class BarcodeStat:
    """Statistics for one reference barcode at one index."""
    sequence: str
    matched: int = 0
    mismatch_histogram: Counter = field(default_factory=Counter)
    n_mean: RunningMean = field(default_factory=RunningMean)

    def update(self, match: BarcodeMatch) -> None:
        self.matched += 1
        self.mismatch_histogram[match.mismatches] += 1
        self.n_mean.push(match.number_of_ns)

    @property
    def mean_mismatch(self) -> float:
        total = sum(self.mismatch_histogram.values())
        if total == 0:
            return 0.0
        return sum(mm * count for mm, count in self.mismatch_histogram.items()) / total

    @property
    def mean_n(self) -> float:
        return self.n_mean.mean()

    def copy(self) -> 'BarcodeStat':
        return BarcodeStat(self.sequence, self.matched, Counter(self.mismatch_histogram), self.n_mean.copy())


@dataclass
class DiscardCounts:
    """Barcodes discarded by each filter of the decoder."""
    no_match: int = 0
    by_n: int = 0
    by_mismatch: int = 0
    by_distance: int = 0

    def add(self, reason: DiscardReason) -> None:
        if reason == DiscardReason.NO_MATCH:
            self.no_match += 1
        elif reason == DiscardReason.TOO_MANY_NS:
            self.by_n += 1
        elif reason == DiscardReason.TOO_MANY_MISMATCHES:
            self.by_mismatch += 1
        else:
            self.by_distance += 1

    def as_dict(self) -> Dict[str, int]:
        return {
            DiscardReason.NO_MATCH.to_string(): self.no_match,
            DiscardReason.TOO_MANY_NS.to_string(): self.by_n,
            DiscardReason.TOO_MANY_MISMATCHES.to_string(): self.by_mismatch,
            DiscardReason.TOO_CLOSE_TO_SECOND.to_string(): self.by_distance,
        }


class WriteOperation(NamedTuple):
    sample_id: str
    seq_id: str
    combined_barcode: str
    sequence: str
    quality_sequence: Optional[str]
    resolution_type: ResolutionType

#!/usr/bin/env python3

"""
Best-match search of a sequenced barcode against the reference barcodes of one index.
"""

from typing import Iterable

from .constants import N_BASE
from .models import BarcodeMatch


def is_n_base(base: str) -> bool:
    return base == N_BASE or base == 'n'


def count_ns(sequence: str) -> int:
    """Number of ambiguous bases in the sequence."""
    return sum(1 for b in sequence if is_n_base(b))


def hamming_distance(test_sequence: str, target_sequence: str, n_as_mismatch: bool) -> int:
    """
    Count mismatches between a sequenced barcode and a reference barcode.

    Bases are compared case-insensitively. Positions where either base is an N are
    skipped, unless n_as_mismatch is set; then a position with an N is a mismatch
    whenever both characters are not identical.

    A test sequence shorter than the target counts each missing position as a mismatch.
    """
    distance = max(0, len(target_sequence) - len(test_sequence))
    for test, target in zip(test_sequence, target_sequence):
        if is_n_base(test) or is_n_base(target):
            if n_as_mismatch and test != target:
                distance += 1
        elif test.upper() != target.upper():
            distance += 1
    return distance


def best_barcode_match(index: int, barcode_to_match: str, barcode_set: Iterable[str],
                       n_as_mismatch: bool) -> BarcodeMatch:
    """
    Find the closest reference barcode and the distance to the second closest.

    Args:
        index: 0-based index number the barcodes belong to
        barcode_to_match: the sequenced barcode
        barcode_set: reference barcodes for this index, iterated in order (ties keep
            the first barcode found)
        n_as_mismatch: if True, Ns count as mismatches

    Returns:
        BarcodeMatch with the best barcode, or an unmatched BarcodeMatch
    """
    length = len(barcode_to_match)
    best = None
    mismatches = length
    second = length

    for b in barcode_set:
        # a longer sequenced barcode is matched on its prefix
        current = hamming_distance(barcode_to_match[:len(b)], b, n_as_mismatch)
        if current < mismatches:
            second = mismatches
            mismatches = current
            best = b
        elif current < second:
            second = current

    # every reference barcode is as far as it can be: the best one is just the shortest
    if best is None or (mismatches >= len(best) and second >= len(best)):
        return BarcodeMatch.unmatched(index, length, count_ns(barcode_to_match))
    return BarcodeMatch(index, best, mismatches, second, count_ns(barcode_to_match[:len(best)]))

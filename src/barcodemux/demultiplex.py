#!/usr/bin/env python3

"""
Core demultiplexing logic.

The BarcodeDecoder assigns the barcodes of one read to a sample of a BarcodeDictionary,
keeping the statistics needed for the QC report. It is not thread-safe: use one
decoder per worker and share only the dictionary.
"""

import logging
import re
from collections import Counter
from typing import Dict, List, Optional, Sequence, Tuple

from Bio.SeqRecord import SeqRecord

from .constants import (
    BARCODE_INDEX_DELIMITER, CASAVA_INDEX_DELIMITER, ILLUMINA_NAME_BARCODE_DELIMITER,
    READ_PAIR_SEPARATOR, DiscardReason, ResolutionType, SampleId
)
from .databases import BarcodeDictionary, SampleRecord
from .matching import best_barcode_match
from .models import (
    BarcodeMatch, BarcodeStat, DecoderParameters, DiscardCounts, MatcherStat, WriteOperation
)


class DecoderStateError(RuntimeError):
    """The decoder reached a state that its filters should make impossible."""
    pass


class BarcodeDecoder:
    """Decode sequenced barcodes into samples, tracking matching statistics."""

    def __init__(self, dictionary: BarcodeDictionary, parameters: DecoderParameters):
        """
        Raises:
            ValueError: If the per-index thresholds do not fit the dictionary
        """
        if dictionary is None:
            raise ValueError("null dictionary")
        n = dictionary.number_of_indices()
        if len(parameters.max_mismatches) != n:
            raise ValueError(f"{len(parameters.max_mismatches)} maximum mismatches for {n} barcodes")
        if len(parameters.min_distance) != n:
            raise ValueError(f"{len(parameters.min_distance)} minimum distances for {n} barcodes")
        if parameters.max_n is not None and parameters.max_n < 0:
            raise ValueError(f"Negative maximum number of Ns: {parameters.max_n}")

        self.dictionary = dictionary
        self.parameters = parameters
        self._max_n = parameters.effective_max_n()

        # sample ordinals carrying each barcode, by index
        self._samples_by_barcode: List[Dict[str, List[int]]] = []
        for i in range(n):
            positions: Dict[str, List[int]] = {}
            for ordinal, b in enumerate(dictionary.get_barcodes_from_index(i)):
                positions.setdefault(b, []).append(ordinal)
            self._samples_by_barcode.append(positions)

        self._init_stats()

    def _init_stats(self):
        d = self.dictionary
        # one slot per sample, the last one for the unknown reads
        self._records: List[MatcherStat] = [
            MatcherStat(d.get_combined_barcodes_for(i), d.get_sample(i).sample_name)
            for i in range(d.number_of_samples())
        ]
        self._records.append(MatcherStat(SampleId.UNKNOWN, SampleId.UNKNOWN))
        self._unknown_slot = len(self._records) - 1

        self._barcode_stats: List[Dict[str, BarcodeStat]] = []
        multiple = d.number_of_indices() > 1
        for i in range(d.number_of_indices()):
            self._barcode_stats.append({
                b: BarcodeStat(f"{b}_{i + 1}" if multiple else b)
                for b in d.get_set_barcodes_from_index(i)
            })
        self._discarded = DiscardCounts()

    def decode(self, barcodes: Sequence[str]) -> str:
        """
        Get the combined barcode of the sample the barcodes belong to.

        Args:
            barcodes: one sequenced barcode per index

        Returns:
            the combined barcode of the sample, or UNKNOWN

        Raises:
            ValueError: If the number of barcodes does not match the dictionary
        """
        return self.decode_with_resolution(barcodes)[0]

    def decode_sample(self, barcodes: Sequence[str]) -> SampleRecord:
        return self.dictionary.get_sample_for(self.decode(barcodes))

    def decode_with_resolution(self, barcodes: Sequence[str]) -> Tuple[str, ResolutionType]:
        if isinstance(barcodes, str):
            barcodes = [barcodes]
        if len(barcodes) != self.dictionary.number_of_indices():
            raise ValueError(f"Asking for matching {len(barcodes)} barcodes, but the dictionary "
                             f"contains {self.dictionary.number_of_indices()}")

        accepted = []
        for index, barcode in enumerate(barcodes):
            match = best_barcode_match(index, barcode, self.dictionary.get_set_barcodes_from_index(index),
                                       self.parameters.n_as_mismatch)
            if self._pass_filters_and_update_stats(match):
                accepted.append(match)

        if not accepted:
            ordinal, resolution = None, ResolutionType.UNKNOWN
        else:
            ordinal, resolution = self._sample_by_majority(accepted)

        slot = self._unknown_slot if ordinal is None else ordinal
        self._records[slot].records += 1
        return self._records[slot].barcode, resolution

    def _pass_filters_and_update_stats(self, match: BarcodeMatch) -> bool:
        """
        Update the barcode statistics for a matched barcode and check the filters.
        Only the first failing filter is recorded as discard reason.
        """
        if not match.is_match():
            self._discarded.add(DiscardReason.NO_MATCH)
            return False
        # statistics include matched barcodes failing the thresholds below
        self._barcode_stats[match.index_number][match.matched_barcode].update(match)

        if match.number_of_ns > self._max_n:
            self._discarded.add(DiscardReason.TOO_MANY_NS)
            return False
        if match.mismatches > self.parameters.max_mismatches[match.index_number]:
            self._discarded.add(DiscardReason.TOO_MANY_MISMATCHES)
            return False
        if not match.is_assignable(self.parameters.min_distance[match.index_number],
                                   self.parameters.distance_policy):
            self._discarded.add(DiscardReason.TOO_CLOSE_TO_SECOND)
            return False
        return True

    def _sample_by_majority(self, matches: List[BarcodeMatch]) -> Tuple[Optional[int], ResolutionType]:
        """
        Identify the sample for the accepted matches.

        A barcode unique within its index identifies the sample directly. Otherwise each
        match votes for every sample sharing its barcode, and the sample with most votes
        wins; ties are unknown.
        """
        votes = Counter()
        for match in matches:
            try:
                ordinals = self._samples_by_barcode[match.index_number][match.matched_barcode]
            except KeyError:
                raise DecoderStateError(f"Matched barcode {match.matched_barcode} is not in index "
                                        f"{match.index_number + 1} of the dictionary")
            if len(ordinals) == 1:
                return ordinals[0], ResolutionType.UNIQUE_BARCODE
            for ordinal in ordinals:
                votes[ordinal] += 1

        if not votes:
            raise DecoderStateError(f"No votes for {len(matches)} accepted barcodes")

        max_count = max(votes.values())
        best = [ordinal for ordinal, count in votes.items() if count == max_count]
        if len(best) != 1:
            return None, ResolutionType.UNKNOWN
        return best[0], ResolutionType.MAJORITY_VOTE

    def matcher_stats(self) -> List[MatcherStat]:
        """Reads assigned to each sample, in dictionary order, with UNKNOWN last."""
        return [MatcherStat(s.barcode, s.sample, s.records) for s in self._records]

    def barcode_stats(self) -> List[List[BarcodeStat]]:
        """Statistics for each distinct reference barcode, by index."""
        return [[s.copy() for s in index_stats.values()] for index_stats in self._barcode_stats]

    def discard_counts(self) -> DiscardCounts:
        return DiscardCounts(self._discarded.no_match, self._discarded.by_n,
                             self._discarded.by_mismatch, self._discarded.by_distance)

    def total_records(self) -> int:
        return sum(s.records for s in self._records)


CASAVA_COMMENT = re.compile(r'^[0-9]+:[YN]:[0-9]+:(.*)$')


def barcodes_from_read_name(name: str, description: Optional[str] = None,
                            delimiter: str = BARCODE_INDEX_DELIMITER) -> Optional[List[str]]:
    """
    Extract the barcodes encoded in a read header.

    Supports Casava 1.8+ comments ('@read 1:N:0:ACGT+TTGG') and the legacy
    format ('@read#ACGT-TTGG/1').

    Returns:
        the barcodes in index order, or None if the header has no barcode
    """
    combined = None
    if description:
        for field in description.split()[1:]:
            m = CASAVA_COMMENT.match(field)
            if m:
                combined = m.group(1)
                break
    if combined is None and ILLUMINA_NAME_BARCODE_DELIMITER in name:
        combined = name.split(ILLUMINA_NAME_BARCODE_DELIMITER, 1)[1]
        if READ_PAIR_SEPARATOR in combined:
            combined = combined.rsplit(READ_PAIR_SEPARATOR, 1)[0]

    # Casava writes the sample number instead of the sequence for some runs
    if not combined or combined.isdigit():
        return None
    return re.split('[' + re.escape(CASAVA_INDEX_DELIMITER + delimiter) + ']', combined)


def get_quality_string(seq: SeqRecord) -> Optional[str]:
    if "phred_quality" in seq.letter_annotations:
        return "".join(chr(q + 33) for q in seq.letter_annotations["phred_quality"])
    return None


def process_sequences(seq_records: List[SeqRecord], decoder: BarcodeDecoder,
                      delimiter: str = BARCODE_INDEX_DELIMITER) -> Tuple[List[WriteOperation], int, int]:
    """Decode a batch of sequences.

    Returns:
        write_ops: List of write operations to perform
        total_count: Number of sequences processed
        matched_count: Number of sequences assigned to a sample
    """
    write_ops = []
    total_count = 0
    matched_count = 0

    for seq in seq_records:
        total_count += 1
        barcodes = barcodes_from_read_name(seq.id, seq.description, delimiter)
        if barcodes is None:
            logging.debug(f"No barcode found in read {seq.id}")
            combined, resolution_type = SampleId.UNKNOWN, ResolutionType.MISSING_BARCODE
        else:
            try:
                combined, resolution_type = decoder.decode_with_resolution(barcodes)
            except ValueError as e:
                raise ValueError(f"Error decoding read {seq.id}: {e}")

        if resolution_type.is_match():
            matched_count += 1
        sample = decoder.dictionary.get_sample_for(combined)
        write_ops.append(WriteOperation(
            sample_id=sample.sample_id,
            seq_id=seq.id,
            combined_barcode=combined,
            sequence=str(seq.seq),
            quality_sequence=get_quality_string(seq),
            resolution_type=resolution_type
        ))

    return write_ops, total_count, matched_count

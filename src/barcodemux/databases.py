#!/usr/bin/env python3

"""
Barcode dictionary: the reference barcodes expected for each sample, and readers for
the barcode files describing them.
"""

import csv
import logging
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from .constants import BARCODE_INDEX_DELIMITER, SampleId


class SampleRecord(NamedTuple):
    sample_id: str
    sample_name: str
    library: str


UNKNOWN_SAMPLE = SampleRecord(SampleId.UNKNOWN, SampleId.UNKNOWN, SampleId.UNKNOWN)


def join_barcodes(barcodes: Sequence[str]) -> str:
    return BARCODE_INDEX_DELIMITER.join(barcodes)


class BarcodeDictionary:
    """
    Reference barcodes for every sample and index.

    Sample k has barcode ``get_barcodes_from_index(i)[k]`` at index i. The dictionary
    does not change after construction and can be shared between decoders.
    """

    def __init__(self, samples: Sequence[SampleRecord], barcodes: Sequence[Sequence[str]],
                 unknown_sample: Optional[SampleRecord] = None):
        """
        Args:
            samples: one record per sample
            barcodes: one list per index, each with one barcode per sample
            unknown_sample: record for reads that cannot be assigned

        Raises:
            ValueError: If the barcode lists do not match the samples
        """
        self._samples: Tuple[SampleRecord, ...] = tuple(samples)
        self._barcodes: Tuple[Tuple[str, ...], ...] = tuple(tuple(b) for b in barcodes)
        self._unknown = UNKNOWN_SAMPLE if unknown_sample is None else unknown_sample

        if not self._barcodes:
            raise ValueError("Barcode dictionary requires at least one index")
        for i, index_barcodes in enumerate(self._barcodes):
            if len(index_barcodes) != len(self._samples):
                raise ValueError(f"Index {i + 1} has {len(index_barcodes)} barcodes "
                                 f"for {len(self._samples)} samples")
        if self._unknown in self._samples:
            raise ValueError(f"Unknown sample is also a real sample: {self._unknown}")

        # lazily initialized caches, assigned once fully built
        self._barcode_sets: Optional[List[Tuple[str, ...]]] = None
        self._sample_by_barcode: Optional[Dict[str, SampleRecord]] = None

    def number_of_indices(self) -> int:
        return len(self._barcodes)

    def number_of_samples(self) -> int:
        return len(self._samples)

    def number_of_unique_samples(self) -> int:
        return len(set(self._samples))

    def get_sample_names(self) -> List[str]:
        return [s.sample_name for s in self._samples]

    def get_sample(self, sample_index: int) -> SampleRecord:
        return self._samples[self._check_sample(sample_index)]

    def get_unknown_sample(self) -> SampleRecord:
        return self._unknown

    def get_barcodes_for(self, sample_index: int) -> Tuple[str, ...]:
        sample_index = self._check_sample(sample_index)
        return tuple(b[sample_index] for b in self._barcodes)

    def get_combined_barcodes_for(self, sample_index: int) -> str:
        return join_barcodes(self.get_barcodes_for(sample_index))

    def get_barcodes_from_index(self, index: int) -> Tuple[str, ...]:
        return self._barcodes[self._check_index(index)]

    def get_set_barcodes_from_index(self, index: int) -> Tuple[str, ...]:
        """Distinct barcodes of an index, in the order of first appearance."""
        index = self._check_index(index)
        if self._barcode_sets is None:
            self._barcode_sets = [tuple(dict.fromkeys(b)) for b in self._barcodes]
        return self._barcode_sets[index]

    def is_barcode_unique_in_at(self, barcode: str, index: int) -> bool:
        return self.get_barcodes_from_index(index).count(barcode) == 1

    def get_sample_for(self, combined_barcode: str) -> SampleRecord:
        """Sample for a combined barcode; the unknown sample if there is none."""
        if self._sample_by_barcode is None:
            mapping: Dict[str, SampleRecord] = {}
            for i in range(self.number_of_samples()):
                # first sample wins for repeated combined barcodes
                mapping.setdefault(self.get_combined_barcodes_for(i), self._samples[i])
            # published only once complete
            self._sample_by_barcode = mapping
        return self._sample_by_barcode.get(combined_barcode, self._unknown)

    def _check_sample(self, sample_index: int) -> int:
        if not 0 <= sample_index < len(self._samples):
            raise IndexError(f"Sample index {sample_index} out of range [0, {len(self._samples)})")
        return sample_index

    def _check_index(self, index: int) -> int:
        if not 0 <= index < len(self._barcodes):
            raise IndexError(f"Index {index} out of range [0, {len(self._barcodes)})")
        return index

    def __repr__(self):
        return (f"BarcodeDictionary(samples={self.number_of_samples()}, "
                f"indices={self.number_of_indices()})")


# Column names compatible with Picard's ExtractIlluminaBarcodes barcode file
SAMPLE_NAME_COLUMN = "sample_name"
BARCODE_NAME_COLUMN = "barcode_name"
BARCODE_SEQUENCE_COLUMN = "barcode_sequence"
BARCODE_SEQUENCE_1_COLUMN = "barcode_sequence_1"
LIBRARY_NAME_COLUMN = "library_name"


def _choose_column(columns: Sequence[str], first: str, second: str, missing: List[str]) -> Optional[str]:
    if first in columns:
        if second in columns:
            logging.warning(f"Both '{first}' and '{second}' columns are present: using '{first}'")
        return first
    if second in columns:
        return second
    missing.append(f"'{first}' or '{second}'")
    return None


def _sample_record(run_id: Optional[str], sample_name: str, library: Optional[str],
                   barcodes: Sequence[str]) -> SampleRecord:
    sample_barcode = f"{sample_name}_{join_barcodes(barcodes)}"
    sample_id = sample_barcode if run_id is None else f"{run_id}_{sample_barcode}"
    return SampleRecord(sample_id, sample_name, library or sample_barcode)


def read_barcode_file(filename: str, run_id: Optional[str] = None) -> BarcodeDictionary:
    """
    Read a tab-separated barcode file with a header line.

    Required columns: 'sample_name' (or 'barcode_name') and 'barcode_sequence' (or
    'barcode_sequence_1'). Additional indexes are read from 'barcode_sequence_2',
    'barcode_sequence_3'... The 'library_name' column is optional.
    """
    with open(filename, 'r', newline='') as f:
        reader = csv.DictReader(f, delimiter='\t')
        if reader.fieldnames is None:
            raise ValueError(f"Empty barcode file: {filename}")
        columns = [c.strip() for c in reader.fieldnames]
        reader.fieldnames = columns

        missing = []
        sample_column = _choose_column(columns, SAMPLE_NAME_COLUMN, BARCODE_NAME_COLUMN, missing)
        first_barcode = _choose_column(columns, BARCODE_SEQUENCE_COLUMN, BARCODE_SEQUENCE_1_COLUMN, missing)
        if missing:
            raise ValueError(f"Missing required columns in barcode file {filename}: {', '.join(missing)}")

        sequence_columns = [first_barcode]
        while f"{BARCODE_SEQUENCE_COLUMN}_{len(sequence_columns) + 1}" in columns:
            sequence_columns.append(f"{BARCODE_SEQUENCE_COLUMN}_{len(sequence_columns) + 1}")
        logging.debug(f"Barcode columns: {sequence_columns}; sample column: {sample_column}")

        has_library = LIBRARY_NAME_COLUMN in columns
        samples = []
        barcodes = [[] for _ in sequence_columns]
        for row_num, row in enumerate(reader, start=1):
            try:
                seqs = [row[c].strip().upper() for c in sequence_columns]
                if not all(seqs):
                    raise ValueError("empty barcode")
                library = row[LIBRARY_NAME_COLUMN].strip() if has_library and row[LIBRARY_NAME_COLUMN] else None
                samples.append(_sample_record(run_id, row[sample_column].strip(), library, seqs))
            except (AttributeError, KeyError, ValueError) as e:
                raise ValueError(f"Error processing row {row_num}: {e}")
            for i, s in enumerate(seqs):
                barcodes[i].append(s)

    return _build_dictionary(filename, samples, barcodes)


def read_legacy_barcode_file(filename: str, run_id: Optional[str] = None) -> BarcodeDictionary:
    """
    Read a whitespace-delimited barcode file without header.
    Expected columns: sample, library, barcode1 [, barcode2...]
    """
    samples = []
    barcodes = None
    with open(filename, 'r') as f:
        for line_num, line in enumerate(f, start=1):
            fields = line.split()
            if not fields:
                continue
            if barcodes is None:
                if len(fields) < 3:
                    raise ValueError(f"Wrong barcode file format in line {line_num}: each line should "
                                     f"have sample and library columns followed by the barcodes")
                barcodes = [[] for _ in range(len(fields) - 2)]
                logging.debug(f"Detected {len(barcodes)} barcodes")
            if len(fields) - 2 != len(barcodes):
                raise ValueError(f"Wrong barcode file format in line {line_num}: expected "
                                 f"{len(barcodes)} barcodes but found {len(fields) - 2}")
            seqs = [s.upper() for s in fields[2:]]
            samples.append(_sample_record(run_id, fields[0], fields[1], seqs))
            for i, s in enumerate(seqs):
                barcodes[i].append(s)

    if barcodes is None:
        raise ValueError(f"Empty barcode file: {filename}")
    return _build_dictionary(filename, samples, barcodes)


def _build_dictionary(filename: str, samples: List[SampleRecord],
                      barcodes: List[List[str]]) -> BarcodeDictionary:
    if not samples:
        raise ValueError(f"No valid data found in the barcode file {filename}")

    dictionary = BarcodeDictionary(samples, barcodes)
    logging.info(f"Loaded {dictionary.number_of_samples()} samples with "
                 f"{dictionary.number_of_indices()} barcode indexes")
    if dictionary.number_of_unique_samples() < dictionary.number_of_samples():
        logging.warning(f"Barcode file {filename} contains "
                        f"{dictionary.number_of_samples() - dictionary.number_of_unique_samples()} "
                        f"duplicated sample records")
    for i in range(dictionary.number_of_indices()):
        if len(set(len(b) for b in dictionary.get_barcodes_from_index(i))) > 1:
            logging.warning(f"Barcodes for index {i + 1} have inconsistent lengths")
    return dictionary

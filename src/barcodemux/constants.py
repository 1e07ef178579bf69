#!/usr/bin/env python3

"""
Constants and enumerations shared across the barcodemux modules.
"""

from enum import Enum


# Ambiguous base call
N_BASE = "N"

# Delimiter between the barcodes of several indexes (e.g. ACGTACGT-TTGGCCAA)
BARCODE_INDEX_DELIMITER = "-"

# Delimiter used by Casava 1.8+ read names for dual indexes (e.g. 1:N:0:ACGT+TTGG)
CASAVA_INDEX_DELIMITER = "+"

# Delimiter between the read name and the barcode in legacy read names (e.g. read#ACGT/1)
ILLUMINA_NAME_BARCODE_DELIMITER = "#"

# Separator between the read name and the pair information in legacy read names
READ_PAIR_SEPARATOR = "/"


class SampleId:
    UNKNOWN = "UNKNOWN"


class DistancePolicy:
    """How the minimum distance to the second best barcode is enforced"""
    LEGACY = "legacy"  # Default: a threshold of 0 accepts ties
    STRICT = "strict"  # Ties with the second best are never assignable


class ResolutionType(Enum):
    """How a read was assigned to a sample."""
    UNIQUE_BARCODE = 1  # One accepted index barcode identifies a single sample
    MAJORITY_VOTE = 2  # Shared barcodes resolved by voting across indexes
    UNKNOWN = 3  # No sample could be identified
    MISSING_BARCODE = 4  # The read carries no barcode information at all

    def to_string(self) -> str:
        """Convert resolution type to lowercase string for reporting."""
        if self == ResolutionType.UNIQUE_BARCODE:
            return 'unique_barcode'
        elif self == ResolutionType.MAJORITY_VOTE:
            return 'majority_vote'
        elif self == ResolutionType.MISSING_BARCODE:
            return 'missing_barcode'
        else:
            return 'unknown'

    def is_match(self) -> bool:
        """Check if this represents a read assigned to a sample."""
        return self in [ResolutionType.UNIQUE_BARCODE, ResolutionType.MAJORITY_VOTE]

    def is_unknown(self) -> bool:
        """Check if this represents an unassigned read."""
        return not self.is_match()


class DiscardReason(Enum):
    """Why a barcode at one index was rejected."""
    NO_MATCH = 1
    TOO_MANY_NS = 2
    TOO_MANY_MISMATCHES = 3
    TOO_CLOSE_TO_SECOND = 4

    def to_string(self) -> str:
        """Convert discard reason to the label used in the metrics header."""
        if self == DiscardReason.NO_MATCH:
            return 'No match'
        elif self == DiscardReason.TOO_MANY_NS:
            return 'Discarded by N'
        elif self == DiscardReason.TOO_MANY_MISMATCHES:
            return 'Discarded by mismatch'
        else:
            return 'Discarded by distance'


# Output name for reads that could not be assigned to a sample
DISCARDED_OUTPUT = "discarded"

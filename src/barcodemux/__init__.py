"""Barcodemux: Barcode demultiplexing of sequencing reads."""

__version__ = "0.1.0"

# Re-export key functions and classes that might be useful for programmatic access
from .databases import (
    BarcodeDictionary,
    SampleRecord,
    read_barcode_file,
    read_legacy_barcode_file,
)
from .demultiplex import (
    BarcodeDecoder,
    DecoderStateError,
)
from .matching import best_barcode_match
from .models import (
    BarcodeMatch,
    DecoderParameters,
)

__all__ = [
    "BarcodeDictionary",
    "SampleRecord",
    "read_barcode_file",
    "read_legacy_barcode_file",
    "BarcodeDecoder",
    "DecoderStateError",
    "best_barcode_match",
    "BarcodeMatch",
    "DecoderParameters",
]

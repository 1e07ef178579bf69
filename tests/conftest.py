"""
Shared pytest fixtures for barcodemux tests.
"""

import pytest
import tempfile
from pathlib import Path

from barcodemux.databases import BarcodeDictionary, SampleRecord


def make_dictionary(barcodes_by_sample, names=None):
    """Build a dictionary from one tuple of barcodes per sample."""
    names = names or [f"sample{i + 1}" for i in range(len(barcodes_by_sample))]
    samples = [SampleRecord(f"{n}_{'-'.join(b)}", n, n) for n, b in zip(names, barcodes_by_sample)]
    barcodes = [list(index_barcodes) for index_barcodes in zip(*barcodes_by_sample)]
    return BarcodeDictionary(samples, barcodes)


@pytest.fixture(scope="session")
def package_root():
    """Return the root directory of the barcodemux package."""
    return Path(__file__).parent.parent


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that's cleaned up after the test."""
    with tempfile.TemporaryDirectory(prefix="barcodemux_test_") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def dictionary_factory():
    return make_dictionary


@pytest.fixture
def single_index_dictionary():
    """ACGT (sample1), TGCA (sample2) and AGCT (sample3) at a single index."""
    return make_dictionary([("ACGT",), ("TGCA",), ("AGCT",)])


@pytest.fixture
def dual_index_dictionary():
    """Dual-indexed dictionary where the first barcode is shared by two samples."""
    return make_dictionary([
        ("AAAAAA", "CCCCCC"),
        ("AAAAAA", "GGGGGG"),
        ("TTTTTT", "ACACAC"),
    ])


@pytest.fixture
def sample_barcode_file():
    """Provide a dual-index barcode file in tab-separated format."""
    return """sample_name\tlibrary_name\tbarcode_sequence_1\tbarcode_sequence_2
SampleA\tLib1\tACGTACGT\tTTGGCCAA
SampleB\tLib1\tTGCATGCA\tTTGGCCAA
SampleC\tLib2\tGGGGAAAA\tCCAATTGG
"""


@pytest.fixture
def sample_legacy_barcode_file():
    """Provide a dual-index barcode file in legacy whitespace-delimited format."""
    return """SampleA Lib1 ACGTACGT TTGGCCAA
SampleB Lib1 TGCATGCA TTGGCCAA
SampleC   Lib2\tGGGGAAAA CCAATTGG
"""


@pytest.fixture
def sample_sequence_fastq():
    """Provide FASTQ reads with Casava and legacy barcodes in their names."""
    return """@read1 1:N:0:ACGTACGT+TTGGCCAA
ACGTTGCAACGTTGCA
+
IIIIIIIIIIIIIIII
@read2 1:N:0:TGCATGCA+TTGGCCAA
ACGTTGCAACGTTGCA
+
IIIIIIIIIIIIIIII
@read3#GGGGAAAA-CCAATTGG/1
ACGTTGCAACGTTGCA
+
IIIIIIIIIIIIIIII
@read4 1:N:0:CCCCCCCC+AAAAAAAA
ACGTTGCAACGTTGCA
+
IIIIIIIIIIIIIIII
@read5
ACGTTGCAACGTTGCA
+
IIIIIIIIIIIIIIII
"""


# Markers for test organization
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )

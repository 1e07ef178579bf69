#!/usr/bin/env python3
"""
Integration tests for barcodemux using pytest.
Tests the complete command line pipeline on small generated files.
"""

import gzip
import json
import re
import subprocess
import sys

import pytest

from barcodemux.cli import detect_file_format, main


def run_barcodemux(*args):
    cmd = [sys.executable, "-m", "barcodemux.cli"] + [str(a) for a in args]
    return subprocess.run(cmd, capture_output=True, text=True)


class TestBarcodemuxIntegration:
    """Integration tests for the barcodemux pipeline."""

    @staticmethod
    def extract_match_rate(stderr_output):
        """Extract match rate from barcodemux stderr output."""
        match = re.search(r"match rate: ([\d.]+)%", stderr_output)
        assert match, f"Could not find match rate in output: {stderr_output}"
        return float(match.group(1))

    @pytest.fixture
    def test_files(self, temp_dir, sample_barcode_file, sample_legacy_barcode_file, sample_sequence_fastq):
        """Write the barcode and sequence fixtures to disk."""
        files = {
            'barcodes': temp_dir / "barcodes.tsv",
            'legacy_barcodes': temp_dir / "barcodes.txt",
            'sequences': temp_dir / "sequences.fastq",
            'output': temp_dir / "output",
        }
        files['barcodes'].write_text(sample_barcode_file)
        files['legacy_barcodes'].write_text(sample_legacy_barcode_file)
        files['sequences'].write_text(sample_sequence_fastq)
        return files

    @pytest.mark.integration
    def test_full_pipeline(self, test_files):
        """Demultiplex five reads into per-sample files."""
        output = test_files['output']
        result = run_barcodemux(test_files['barcodes'], test_files['sequences'],
                                "-F", "-O", output, "--metrics", output / "metrics.txt")
        assert result.returncode == 0, f"Barcodemux failed: {result.stderr}"
        # Check in stderr since logging goes there
        assert "Processed 5 sequences" in result.stderr
        assert self.extract_match_rate(result.stderr) == pytest.approx(60.0)

        for sample in ("SampleA_ACGTACGT-TTGGCCAA", "SampleB_TGCATGCA-TTGGCCAA", "SampleC_GGGGAAAA-CCAATTGG"):
            sample_file = output / f"sample_{sample}.fastq"
            assert sample_file.exists(), f"Missing output for {sample}"
            assert sample_file.read_text().count("\n") == 4

        # unassigned reads are dropped unless --keep-discarded is given
        assert sorted(p.name for p in output.glob("*.fastq")) == [
            "sample_SampleA_ACGTACGT-TTGGCCAA.fastq",
            "sample_SampleB_TGCATGCA-TTGGCCAA.fastq",
            "sample_SampleC_GGGGAAAA-CCAATTGG.fastq",
        ]

        metrics = (output / "metrics.txt").read_text()
        assert "Discarded by mismatch: 2" in metrics
        assert "Missing barcode: 1\tDecoded records: 4" in metrics
        assert "UNKNOWN\tUNKNOWN\t1\t0.250000" in metrics

    @pytest.mark.integration
    def test_keep_discarded(self, test_files):
        output = test_files['output']
        result = run_barcodemux(test_files['barcodes'], test_files['sequences'],
                                "-F", "-O", output, "--keep-discarded")
        assert result.returncode == 0, f"Barcodemux failed: {result.stderr}"
        assert "1 sequences without barcode" in result.stderr

        assert not (output / "sample_UNKNOWN.fastq").exists()
        discarded = (output / "sample_discarded.fastq").read_text()
        assert "@read4 BC:UNKNOWN unknown" in discarded
        assert "@read5 BC:UNKNOWN missing_barcode" in discarded
        assert discarded.count("\n") == 8

    @pytest.mark.integration
    def test_stdout_assignments(self, test_files):
        result = run_barcodemux(test_files['barcodes'], test_files['sequences'])
        assert result.returncode == 0, f"Barcodemux failed: {result.stderr}"
        lines = result.stdout.splitlines()
        assert len(lines) == 3
        assert lines[0] == "read1\tSampleA_ACGTACGT-TTGGCCAA\tACGTACGT-TTGGCCAA"
        assert lines[2] == "read3#GGGGAAAA-CCAATTGG/1\tSampleC_GGGGAAAA-CCAATTGG\tGGGGAAAA-CCAATTGG"

        result = run_barcodemux(test_files['barcodes'], test_files['sequences'], "--keep-discarded")
        assert result.returncode == 0, f"Barcodemux failed: {result.stderr}"
        lines = result.stdout.splitlines()
        assert lines[3] == "read4\tUNKNOWN\tUNKNOWN"
        assert lines[4] == "read5\tUNKNOWN\tUNKNOWN"

    @pytest.mark.integration
    @pytest.mark.parametrize("num_sequences,expected_match_rate", [
        (1, 100.0),
        (2, 100.0),
        (4, 75.0),
    ])
    def test_partial_sequences(self, test_files, num_sequences, expected_match_rate):
        """Test barcodemux with different numbers of sequences."""
        result = run_barcodemux(test_files['barcodes'], test_files['sequences'], "-n", num_sequences)
        assert result.returncode == 0, f"Barcodemux failed: {result.stderr}"
        assert f"Processed {num_sequences} sequences" in result.stderr
        assert self.extract_match_rate(result.stderr) == pytest.approx(expected_match_rate)

    @pytest.mark.integration
    def test_legacy_barcode_file_and_gzip(self, test_files, sample_sequence_fastq, temp_dir):
        gzipped = temp_dir / "sequences.fastq.gz"
        with gzip.open(gzipped, "wt") as f:
            f.write(sample_sequence_fastq)
        json_metrics = temp_dir / "metrics.json"

        result = run_barcodemux(test_files['legacy_barcodes'], gzipped, "--legacy-barcode-file",
                                "--run-name", "RUN1", "--json-metrics", json_metrics)
        assert result.returncode == 0, f"Barcodemux failed: {result.stderr}"
        assert "RUN1_SampleA_ACGTACGT-TTGGCCAA" in result.stdout

        with open(json_metrics) as f:
            metrics = json.load(f)
        assert metrics['total_records'] == 4
        assert metrics['missing_barcode'] == 1
        assert [s['records'] for s in metrics['samples']] == [1, 1, 1, 1]

    @pytest.mark.integration
    @pytest.mark.parametrize("options,expected_match_rate,discarded", [
        (["-m", "6"], 60.0, "0 by mismatch, 2 by distance"),
        (["-m", "6", "-d", "0"], 80.0, "0 by mismatch, 0 by distance"),
        (["-m", "6", "-d", "0", "--distance-policy", "strict"], 60.0, "0 by mismatch, 2 by distance"),
    ])
    def test_thresholds(self, test_files, options, expected_match_rate, discarded):
        # both barcodes of read4 are 6 mismatches away from two reference barcodes
        result = run_barcodemux(test_files['barcodes'], test_files['sequences'], *options)
        assert result.returncode == 0, f"Barcodemux failed: {result.stderr}"
        assert self.extract_match_rate(result.stderr) == pytest.approx(expected_match_rate)
        assert discarded in result.stderr


class TestBarcodemuxCommands:
    """Test the command line entry points."""

    @pytest.mark.unit
    def test_barcodemux_version(self):
        result = run_barcodemux("--version")
        assert result.returncode == 0
        assert "barcodemux version" in result.stdout

    @pytest.mark.unit
    def test_barcodemux_help(self):
        result = run_barcodemux("--help")
        assert result.returncode == 0
        assert "Demultiplex sequencing reads" in result.stdout
        assert "barcode_file" in result.stdout
        assert "sequence_file" in result.stdout

    @pytest.mark.unit
    def test_negative_threshold_rejected(self, temp_dir):
        result = run_barcodemux(temp_dir / "barcodes.tsv", temp_dir / "reads.fastq", "-m", "-1")
        assert result.returncode == 2
        assert "Maximum number of mismatches" in result.stderr

    @pytest.mark.unit
    def test_too_many_thresholds(self, temp_dir, sample_barcode_file, sample_sequence_fastq):
        barcodes = temp_dir / "barcodes.tsv"
        barcodes.write_text(sample_barcode_file)
        sequences = temp_dir / "reads.fastq"
        sequences.write_text(sample_sequence_fastq)
        assert main(["barcodemux", str(barcodes), str(sequences), "-m", "1", "1", "1"]) == 1

    @pytest.mark.unit
    def test_missing_barcode_file(self, temp_dir):
        assert main(["barcodemux", str(temp_dir / "missing.tsv"), str(temp_dir / "reads.fastq")]) == 1

    @pytest.mark.unit
    @pytest.mark.parametrize("name,content,expected", [
        ("reads.fastq", "", "fastq"),
        ("reads.FQ.gz", "", "fastq"),
        ("reads.fa.gz.gz", "", "fasta"),
        ("reads.fna", "", "fasta"),
        ("reads.txt", "@read1\nACGT\n+\nIIII\n", "fastq"),
        ("reads.txt", ">read1\nACGT\n", "fasta"),
    ])
    def test_detect_file_format(self, temp_dir, name, content, expected):
        path = temp_dir / name
        path.write_text(content)
        assert detect_file_format(str(path)) == expected

    @pytest.mark.unit
    def test_detect_gzipped_file_format_by_content(self, temp_dir, sample_sequence_fastq):
        path = temp_dir / "reads.gz"
        with gzip.open(path, "wt") as f:
            f.write(sample_sequence_fastq)
        assert detect_file_format(str(path)) == "fastq"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

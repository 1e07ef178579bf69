#!/usr/bin/env python3

"""
Command line interface: demultiplex a FASTQ/FASTA file by the barcodes in its read names.
"""

import argparse
import gzip
import itertools
import logging
import os
import sys
import timeit
from contextlib import nullcontext

from Bio import SeqIO
from tqdm import tqdm

from . import __version__
from .constants import BARCODE_INDEX_DELIMITER, DistancePolicy, ResolutionType
from .databases import read_barcode_file, read_legacy_barcode_file
from .demultiplex import BarcodeDecoder, process_sequences
from .models import DecoderParameters
from .output import OutputManager
from .report import write_metrics, write_metrics_json


def version():
    return f"barcodemux version {__version__}"


def parse_args(argv):
    parser = argparse.ArgumentParser(description="Barcodemux: Demultiplex sequencing reads by the sample barcodes in their read names.")

    parser.add_argument("barcode_file", help="Tab-separated barcode file (sample_name, barcode_sequence_1, barcode_sequence_2...)")
    parser.add_argument("sequence_file", help="Sequence file in Fasta or Fastq format, gzipped or plain text")

    parser.add_argument("-m", "--maximum-mismatches", type=int, nargs='+', default=[0], help="Maximum number of mismatches for a matched barcode. Provide one value per index for different thresholds (default: 0)")
    parser.add_argument("-d", "--minimum-distance", type=int, nargs='+', default=[1], help="Minimum difference in mismatches between the best and the second best barcode. Provide one value per index for different thresholds (default: 1)")
    parser.add_argument("--maximum-n", type=int, default=None, help="Maximum number of Ns allowed in a barcode (default: no limit)")
    parser.add_argument("--n-no-mismatch", action="store_true", help="Do not count Ns as mismatches")
    parser.add_argument("--distance-policy", choices=[DistancePolicy.LEGACY, DistancePolicy.STRICT], default=DistancePolicy.LEGACY, help="'legacy' accepts ties with the second best barcode if the minimum distance is 0, 'strict' never does (default: legacy)")
    parser.add_argument("--legacy-barcode-file", action="store_true", help="Barcode file is whitespace-delimited without header: sample, library, barcodes...")
    parser.add_argument("--run-name", default=None, help="Run name to prefix the sample identifiers")
    parser.add_argument("--barcode-delimiter", default=BARCODE_INDEX_DELIMITER, help=f"Delimiter between barcodes in read names (default: {BARCODE_INDEX_DELIMITER})")
    parser.add_argument("-n", "--num-seqs", type=int, default=-1, help="Number of sequences to read from file (default: all)")
    parser.add_argument("-F", "--output-to-files", action="store_true", help="Create individual sample files for sequences")
    parser.add_argument("--keep-discarded", action="store_true", help="Also output reads not assigned to any sample; with -F they are written to the 'discarded' file")
    parser.add_argument("-P", "--output-file-prefix", default="sample_", help="Prefix for individual files when using -F (default: sample_)")
    parser.add_argument("-O", "--output-dir", default=".", help="Directory for individual files when using -F (default: .)")
    parser.add_argument("--metrics", default=None, help="Write barcode metrics to this file")
    parser.add_argument("--json-metrics", default=None, help="Write barcode metrics as JSON to this file")
    parser.add_argument("-D", "--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("-v", "--version", action="version", version=version())

    args = parser.parse_args(argv[1:])

    if args.maximum_n is not None and args.maximum_n < 0:
        parser.error("Maximum number of Ns should be a positive integer.")
    if any(m < 0 for m in args.maximum_mismatches):
        parser.error("Maximum number of mismatches should be a positive integer.")
    if any(d < 0 for d in args.minimum_distance):
        parser.error("Minimum distance should be a positive integer.")

    return args


def detect_file_format(filename: str) -> str:
    """
    Detect file format from filename, handling compressed files.

    Returns:
        str: Detected format ('fastq' or 'fasta')
    """
    base_name = os.path.basename(filename)
    compression_exts = ['.gz', '.gzip']

    root, ext = os.path.splitext(base_name)
    while ext.lower() in compression_exts:
        base_name = root
        root, ext = os.path.splitext(base_name)

    if base_name.lower().endswith(('.fastq', '.fq')):
        return 'fastq'
    elif base_name.lower().endswith(('.fasta', '.fa', '.fna')):
        return 'fasta'

    opener = gzip.open if filename.endswith(('.gz', '.gzip')) else open
    with opener(filename, 'rt') as f:
        first_char = f.read(1)
    return 'fastq' if first_char == '@' else 'fasta'


def open_sequence_file(filename, args):
    """
    Open a sequence file, automatically detecting format and compression.
    Updates args.isfastq based on the format.
    """
    file_format = detect_file_format(filename)
    args.isfastq = file_format == 'fastq'

    if filename.endswith((".gz", ".gzip")):
        handle = gzip.open(filename, "rt")
        return SeqIO.parse(handle, file_format)
    else:
        return SeqIO.parse(filename, file_format)


def setup_decoder(args) -> BarcodeDecoder:
    if args.legacy_barcode_file:
        dictionary = read_legacy_barcode_file(args.barcode_file, args.run_name)
    else:
        dictionary = read_barcode_file(args.barcode_file, args.run_name)

    parameters = DecoderParameters.for_dictionary(
        dictionary,
        max_mismatches=args.maximum_mismatches,
        min_distance=args.minimum_distance,
        max_n=args.maximum_n,
        n_as_mismatch=not args.n_no_mismatch,
        distance_policy=args.distance_policy,
    )
    for i in range(dictionary.number_of_indices()):
        logging.info(f"Index {i + 1}: maximum mismatches {parameters.max_mismatches[i]}, "
                     f"minimum distance {parameters.min_distance[i]}")
    logging.info(f"Maximum Ns: {'no limit' if parameters.max_n is None else parameters.max_n}; "
                 f"Ns count as mismatches: {parameters.n_as_mismatch}")
    return BarcodeDecoder(dictionary, parameters)


def output_write_operation(write_op, output_manager, args):
    if write_op.resolution_type.is_unknown() and not args.keep_discarded:
        return
    if args.output_to_files:
        output_manager.write_sequence(write_op)
    else:
        print(f"{write_op.seq_id}\t{write_op.sample_id}\t{write_op.combined_barcode}")


def barcodemux(args):
    decoder = setup_decoder(args)
    seq_records = open_sequence_file(args.sequence_file, args)

    start_time = timeit.default_timer()
    sequence_block_size = 1000
    all_seqs = args.num_seqs < 0

    if args.output_to_files:
        output_context = OutputManager(args.output_dir, args.output_file_prefix, args.isfastq)
    else:
        output_context = nullcontext()

    with output_context as output_manager:
        total_processed = 0
        total_matched = 0
        total_missing = 0
        pbar = tqdm(desc="Processing sequences", unit="seq", disable=None)
        while all_seqs or total_processed < args.num_seqs:
            to_read = sequence_block_size if all_seqs else min(sequence_block_size, args.num_seqs - total_processed)
            seq_batch = list(itertools.islice(seq_records, to_read))
            if not seq_batch:
                break

            write_ops, batch_total, batch_matched = process_sequences(seq_batch, decoder, args.barcode_delimiter)
            for write_op in write_ops:
                if write_op.resolution_type == ResolutionType.MISSING_BARCODE:
                    total_missing += 1
                output_write_operation(write_op, output_manager, args)

            total_processed += batch_total
            total_matched += batch_matched
            pbar.update(batch_total)
            pbar.set_description(f"Processing sequences [Match rate: {total_matched / total_processed:.1%}]")
        pbar.close()

    match_rate = total_matched / total_processed if total_processed else 0.0
    logging.info(f"Processed {total_processed:,} sequences, match rate: {match_rate:.1%}")
    if total_missing:
        logging.info(f"{total_missing:,} sequences without barcode in the read name")
    discarded = decoder.discard_counts()
    logging.info(f"Discarded barcodes: {discarded.no_match} without match, {discarded.by_n} by N, "
                 f"{discarded.by_mismatch} by mismatch, {discarded.by_distance} by distance")

    if args.metrics:
        write_metrics(decoder, args.metrics, total_missing)
    if args.json_metrics:
        write_metrics_json(decoder, args.json_metrics, total_missing)

    elapsed = timeit.default_timer() - start_time
    logging.info(f"Elapsed time: {elapsed:.2f} seconds")
    return decoder


def main(argv=None):
    if argv is None:
        argv = sys.argv
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        barcodemux(args)
    except (ValueError, OSError) as e:
        logging.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))

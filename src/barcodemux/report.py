#!/usr/bin/env python3

"""
QC report for a decoding run: discard counts, reads per sample and per-barcode statistics.
"""

import csv
import json
import logging
from typing import Any, Dict

from .demultiplex import BarcodeDecoder


MATCHER_HEADER = ['BARCODE', 'SAMPLE', 'RECORDS', 'PCT_RECORDS']
BARCODE_HEADER = ['INDEX', 'SEQUENCE', 'MATCHED', 'MEAN_MISMATCH', 'MEAN_N', 'MISMATCH_HISTOGRAM']
MISSING_BARCODE_LABEL = 'Missing barcode'
DECODED_RECORDS_LABEL = 'Decoded records'


def _histogram_string(histogram) -> str:
    return ",".join(f"{mm}:{histogram[mm]}" for mm in sorted(histogram))


def metrics_as_dict(decoder: BarcodeDecoder, missing_barcode: int = 0) -> Dict[str, Any]:
    """JSON-serializable snapshot of the decoder statistics.

    Reads without barcode never reach the decoder: they are only reported in
    ``missing_barcode`` and are not part of ``total_records``.
    """
    barcodes = []
    for index, index_stats in enumerate(decoder.barcode_stats()):
        for s in index_stats:
            barcodes.append({
                'index': index + 1,
                'sequence': s.sequence,
                'matched': s.matched,
                'mean_mismatch': s.mean_mismatch,
                'mean_n': s.mean_n,
                'mismatch_histogram': {str(mm): count for mm, count in sorted(s.mismatch_histogram.items())},
            })
    return {
        'total_records': decoder.total_records(),
        'missing_barcode': missing_barcode,
        'discarded': decoder.discard_counts().as_dict(),
        'samples': [{'barcode': s.barcode, 'sample': s.sample, 'records': s.records}
                    for s in decoder.matcher_stats()],
        'barcodes': barcodes,
    }


def write_metrics(decoder: BarcodeDecoder, filename: str, missing_barcode: int = 0) -> None:
    """Write the statistics of the decoder as tab-separated tables.

    RECORDS and PCT_RECORDS cover the decoded reads only; reads without barcode are
    counted in the header.
    """
    total = decoder.total_records()
    header = decoder.discard_counts().as_dict()
    header[MISSING_BARCODE_LABEL] = missing_barcode
    header[DECODED_RECORDS_LABEL] = total
    with open(filename, 'w', newline='') as f:
        writer = csv.writer(f, delimiter='\t', lineterminator='\n')

        f.write("## HEADER\n")
        f.write("# " + "\t".join(f"{k}: {v}" for k, v in header.items()) + "\n\n")

        f.write("## METRICS\n")
        writer.writerow(MATCHER_HEADER)
        for s in decoder.matcher_stats():
            pct = s.records / total if total else 0.0
            writer.writerow([s.barcode, s.sample, s.records, f"{pct:.6f}"])
        f.write("\n")

        f.write("## BARCODES\n")
        writer.writerow(BARCODE_HEADER)
        for index, index_stats in enumerate(decoder.barcode_stats()):
            for s in index_stats:
                writer.writerow([index + 1, s.sequence, s.matched, f"{s.mean_mismatch:.6f}",
                                 f"{s.mean_n:.6f}", _histogram_string(s.mismatch_histogram)])

    logging.info(f"Wrote barcode metrics for {total:,} records to {filename}")


def write_metrics_json(decoder: BarcodeDecoder, filename: str, missing_barcode: int = 0) -> None:
    with open(filename, 'w') as f:
        json.dump(metrics_as_dict(decoder, missing_barcode), f, indent=2)

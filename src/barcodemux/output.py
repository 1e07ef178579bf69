#!/usr/bin/env python3

"""
Output of demultiplexed reads into one file per sample.
"""

import logging
import os
from collections import defaultdict

from cachetools import LRUCache

from .constants import DISCARDED_OUTPUT, SampleId
from .models import WriteOperation


class FileHandleCache(LRUCache):
    """LRU cache that flushes and closes file handles on eviction."""

    def __init__(self, maxsize, file_manager):
        super().__init__(maxsize)
        self.file_manager = file_manager

    def popitem(self):
        key, file_handle = super().popitem()
        self.file_manager.flush_buffer(key, file_handle)
        file_handle.close()
        return key, file_handle


class CachedFileManager:
    """Manages a pool of file handles with LRU caching and write buffering."""

    def __init__(self, max_open_files: int, buffer_size: int):
        self.max_open_files = max_open_files
        self.buffer_size = buffer_size
        self.file_cache = FileHandleCache(maxsize=max_open_files, file_manager=self)
        self.write_buffers = defaultdict(list)
        # files created in this run are reopened in append mode after eviction
        self.created = set()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close_all()

    def write(self, filename: str, data: str):
        """Write data to a file through the buffer system."""
        self.write_buffers[filename].append(data)

        if len(self.write_buffers[filename]) >= self.buffer_size:
            self.flush_buffer(filename)

    def flush_buffer(self, filename: str, file_handle=None):
        """Flush the buffer for a specific file to disk."""
        if not self.write_buffers[filename]:
            return

        buffer_data = ''.join(self.write_buffers[filename])
        self.write_buffers[filename].clear()

        f = file_handle if file_handle is not None else self._get_handle(filename)
        f.write(buffer_data)

    def _get_handle(self, filename: str):
        try:
            return self.file_cache[filename]
        except KeyError:
            mode = 'a' if filename in self.created else 'w'
            f = open(filename, mode)
            self.created.add(filename)
            self.file_cache[filename] = f
            return f

    def flush_all(self):
        for filename in list(self.write_buffers.keys()):
            self.flush_buffer(filename)

    def close_all(self):
        """Flush all buffers and close all files."""
        self.flush_all()
        for f in self.file_cache.values():
            f.close()
        self.file_cache.clear()


class OutputManager:
    """Writes each read to the file of the sample it was assigned to."""

    def __init__(self, output_dir: str, prefix: str, is_fastq: bool,
                 max_open_files: int = 200, buffer_size: int = 500):
        self.output_dir = output_dir
        self.prefix = prefix
        self.is_fastq = is_fastq
        self.file_manager = CachedFileManager(max_open_files, buffer_size)

    def __enter__(self):
        os.makedirs(self.output_dir, exist_ok=True)
        self.file_manager.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return self.file_manager.__exit__(exc_type, exc_val, exc_tb)

    def make_filename(self, sample_id: str) -> str:
        extension = '.fastq' if self.is_fastq else '.fasta'
        sample_id = sample_id or SampleId.UNKNOWN
        safe_id = "".join(c if c.isalnum() or c in "._-$#" else "_" for c in sample_id)
        return os.path.join(self.output_dir, f"{self.prefix}{safe_id}{extension}")

    def filename_for(self, write_op: WriteOperation) -> str:
        """Sample file for assigned reads, the discarded file for all the others."""
        if write_op.resolution_type.is_unknown():
            return self.make_filename(DISCARDED_OUTPUT)
        return self.make_filename(write_op.sample_id)

    def write_sequence(self, write_op: WriteOperation):
        filename = self.filename_for(write_op)
        header = f"{write_op.seq_id} BC:{write_op.combined_barcode} {write_op.resolution_type.to_string()}"

        output = ['@' if self.is_fastq else '>', header + "\n", write_op.sequence + "\n"]
        if self.is_fastq:
            if write_op.quality_sequence is None:
                logging.warning(f"No qualities for {write_op.seq_id}; writing default qualities")
                quality = "I" * len(write_op.sequence)
            else:
                quality = write_op.quality_sequence
            output.append("+\n")
            output.append(quality + "\n")

        self.file_manager.write(filename, ''.join(output))

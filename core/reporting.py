"""
Streaming reporters: each DurationSummary is written and flushed as soon as
its bucket completes, so partial results survive an interrupted sweep.
"""
import json
import logging
import os
import sys
from typing import Optional, TextIO

from .statistics import DurationSummary

log = logging.getLogger(__name__)

OUTPUT_FORMATS = ("text", "jsonl")


def format_text_line(summary: DurationSummary) -> str:
    """Human readable one-line bucket summary."""
    line = "iters: %4d, pause: %5d ms, avg decode time: %8.2f +/- %4.2f ms" % (
        summary.count, summary.idle_ms, summary.mean_ms, summary.stddev_ms)
    device = summary.device or {}
    if device.get("average_sm_clock_mhz") is not None:
        line += ", sm clock: %6.0f MHz" % device["average_sm_clock_mhz"]
    elif device.get("average_cpu_freq_mhz") is not None:
        line += ", cpu freq: %6.0f MHz" % device["average_cpu_freq_mhz"]
    return line


def format_json_line(summary: DurationSummary) -> str:
    """One JSON record per bucket."""
    return json.dumps(summary.to_dict(), default=str)


class SummaryReporter:
    """
    Writes bucket summaries to a stream in the chosen format and, optionally,
    appends JSON records to a file.
    """

    def __init__(self, output_format: str = "text", stream: Optional[TextIO] = None,
                 jsonl_path: Optional[str] = None):
        if output_format not in OUTPUT_FORMATS:
            raise ValueError(f"Unknown output format: {output_format}. Available formats: {list(OUTPUT_FORMATS)}")
        self.output_format = output_format
        self.stream = stream if stream is not None else sys.stdout
        self.jsonl_path = jsonl_path
        self._file = None
        self.reported = 0

    def _open_file(self):
        directory = os.path.dirname(self.jsonl_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._file = open(self.jsonl_path, 'a')
        log.info("Appending bucket records to: %s", self.jsonl_path)

    def report(self, summary: DurationSummary):
        if self.output_format == "jsonl":
            line = format_json_line(summary)
        else:
            line = format_text_line(summary)
        self.stream.write(line + "\n")
        self.stream.flush()

        if self.jsonl_path:
            if self._file is None:
                self._open_file()
            self._file.write(format_json_line(summary) + "\n")
            self._file.flush()

        self.reported += 1

    def close(self):
        if self._file and not self._file.closed:
            self._file.close()
        self._file = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

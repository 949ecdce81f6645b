"""
report_writer.py

Append-only graph statistics files for overlay experiments.

Three files per experiment label, all in `output_dir`:
- in_degree_<label>.txt               "<observation> <in_degree> <count>"
- clustering_coefficient_<label>.txt  "<observation> <coefficient>"
- shortest_path_<label>.txt           "<observation> <avg_path_length>"

Observation counters start at 1 and are kept per writer, so a new writer
truncates the files by default. Pass truncate=False to keep appending to
earlier runs; their observation numbers then restart at 1.
"""

import logging
import os
from typing import Dict

logger = logging.getLogger(__name__)


class ReportWriter:
    def __init__(self, output_dir: str = "graphStats", label: str = "shuffle",
                 truncate: bool = True):
        self.output_dir = output_dir
        self.label = label
        os.makedirs(output_dir, exist_ok=True)

        self.in_degree_path = os.path.join(output_dir, f"in_degree_{label}.txt")
        self.clustering_path = os.path.join(output_dir, f"clustering_coefficient_{label}.txt")
        self.shortest_path_path = os.path.join(output_dir, f"shortest_path_{label}.txt")

        self.in_degree_counter = 0
        self.clustering_counter = 0
        self.shortest_path_counter = 0

        if truncate:
            for path in self.paths():
                open(path, "w").close()
        logger.debug("Writing reports for %r to %s", label, output_dir)

    def paths(self):
        return [self.in_degree_path, self.clustering_path, self.shortest_path_path]

    def _append(self, path: str, text: str):
        with open(path, "a") as f:
            f.write(text)

    def write_in_degree(self, distribution: Dict[int, int]):
        """Write one line per in-degree value: how many nodes have it."""
        self.in_degree_counter += 1
        lines = [f"{self.in_degree_counter} {deg} {count}\n"
                 for deg, count in sorted(distribution.items())]
        self._append(self.in_degree_path, "".join(lines))

    def write_clustering_coefficient(self, coeff: float):
        self.clustering_counter += 1
        self._append(self.clustering_path, f"{self.clustering_counter} {coeff}\n")

    def write_shortest_path(self, length: float):
        self.shortest_path_counter += 1
        self._append(self.shortest_path_path, f"{self.shortest_path_counter} {length}\n")

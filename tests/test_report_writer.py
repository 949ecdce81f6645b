"""
Tests for graph statistics report files.
"""

import os

from report_writer import ReportWriter


def read_lines(path):
    with open(path) as f:
        return f.read().splitlines()


class TestReportWriter:

    def test_file_names(self, tmp_path):
        writer = ReportWriter(output_dir=str(tmp_path), label="star-50cache")

        assert writer.in_degree_path == os.path.join(str(tmp_path), "in_degree_star-50cache.txt")
        assert writer.clustering_path.endswith("clustering_coefficient_star-50cache.txt")
        assert writer.shortest_path_path.endswith("shortest_path_star-50cache.txt")

    def test_creates_output_dir(self, tmp_path):
        target = tmp_path / "nested" / "graphStats"

        ReportWriter(output_dir=str(target))

        assert target.is_dir()

    def test_counters_are_independent(self, tmp_path):
        writer = ReportWriter(output_dir=str(tmp_path))

        writer.write_clustering_coefficient(0.5)
        writer.write_clustering_coefficient(0.25)
        writer.write_shortest_path(3.0)

        assert read_lines(writer.clustering_path) == ["1 0.5", "2 0.25"]
        assert read_lines(writer.shortest_path_path) == ["1 3.0"]

    def test_in_degree_lines_sorted_by_degree(self, tmp_path):
        writer = ReportWriter(output_dir=str(tmp_path))

        writer.write_in_degree({3: 2, 0: 1, 1: 7})
        writer.write_in_degree({2: 10})

        assert read_lines(writer.in_degree_path) == ["1 0 1", "1 1 7", "1 3 2", "2 2 10"]

    def test_appends_across_writers_when_not_truncating(self, tmp_path):
        ReportWriter(output_dir=str(tmp_path)).write_shortest_path(2.0)
        ReportWriter(output_dir=str(tmp_path), truncate=False).write_shortest_path(4.0)

        path = os.path.join(str(tmp_path), "shortest_path_shuffle.txt")
        assert read_lines(path) == ["1 2.0", "1 4.0"]

    def test_new_writer_truncates_by_default(self, tmp_path):
        ReportWriter(output_dir=str(tmp_path)).write_shortest_path(2.0)

        writer = ReportWriter(output_dir=str(tmp_path))
        writer.write_shortest_path(4.0)

        assert read_lines(writer.shortest_path_path) == ["1 4.0"]

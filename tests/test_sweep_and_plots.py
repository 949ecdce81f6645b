"""
Tests for the parameter sweep helpers and plot scripts.
"""

import contextlib
import csv
import io

import pandas as pd
import pytest

import overlay_plots
import shuffle_sweep
from overlay_sim import ShuffleSimulation
from report_writer import ReportWriter


class TestSweep:

    def test_build_configs_skips_oversized_lengths(self):
        configs = shuffle_sweep.build_configs([5, 10], [3, 8], ["random"])

        assert configs == [(5, 3, "random"), (10, 3, "random"), (10, 8, "random")]

    def test_run_single_config(self):
        result = shuffle_sweep.run_single_config(6, 3, "random", num_nodes=20, n_cycles=5)

        assert result['cache_size'] == 6
        assert result['shuffle_length'] == 3
        for metric in shuffle_sweep.METRICS:
            assert metric in result
        assert 0.0 <= result['cache_fill_mean'] <= 1.0

    def test_run_multi_seed_matches_fieldnames(self):
        result = shuffle_sweep.run_multi_seed(6, 3, "star", num_seeds=2, num_nodes=15, n_cycles=3)

        assert set(result) == set(shuffle_sweep.fieldnames())
        assert result['num_seeds'] == 2
        assert result['components_std'] >= 0

    def test_load_completed(self, tmp_path):
        path = tmp_path / "results.csv"
        with open(path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=shuffle_sweep.fieldnames())
            writer.writeheader()
            writer.writerow({'cache_size': 10, 'shuffle_length': 3, 'topology': 'ring', 'num_seeds': 1})

        assert shuffle_sweep.load_completed(str(path)) == {(10, 3, 'ring')}


class TestPlots:

    @pytest.fixture
    def reports(self, tmp_path):
        writer = ReportWriter(output_dir=str(tmp_path), label="plot")
        sim = ShuffleSimulation(num_nodes=20, cache_size=5, shuffle_length=3,
                                topology="star", report_writer=writer)
        sim.run(n_cycles=4)
        return str(tmp_path)

    def test_load_reports(self, reports):
        in_degree, clustering, paths = overlay_plots.load_reports(reports, "plot")

        assert list(clustering["observation"]) == [1, 2, 3, 4]
        assert len(paths) == 4
        last = in_degree[in_degree["observation"] == 4]
        assert last["count"].sum() == 20

    def test_missing_reports(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            overlay_plots.load_reports(str(tmp_path), "nothing")

    def test_report_figures(self, reports, tmp_path):
        in_degree, clustering, paths = overlay_plots.load_reports(reports, "plot")
        out_a = tmp_path / "in_degree.png"
        out_b = tmp_path / "convergence.png"

        overlay_plots.plot_in_degree(in_degree, str(out_a))
        overlay_plots.plot_convergence(clustering, paths, str(out_b))

        assert out_a.exists()
        assert out_b.exists()

    def test_sweep_figure(self, tmp_path):
        csv_path = tmp_path / "sweep.csv"
        pd.DataFrame([
            {'cache_size': c, 'shuffle_length': l, 'topology': 'random',
             'clustering_mean': 0.1 / c, 'clustering_std': 0.001,
             'avg_path_length_mean': 3.0 - l / 10, 'avg_path_length_std': 0.01}
            for c in (10, 20) for l in (3, 5)
        ]).to_csv(csv_path, index=False)

        df = overlay_plots.load_sweep(str(csv_path))
        out = tmp_path / "sweep_random.png"
        overlay_plots.plot_sweep_by_cache(df, str(out), "random")
        overlay_plots.plot_sweep_by_cache(df, str(tmp_path / "none.png"), "ring")

        assert len(df) == 4
        assert out.exists()
        assert not (tmp_path / "none.png").exists()

    def test_main_with_label(self, reports, tmp_path):
        outdir = tmp_path / "figures"

        overlay_plots.main(["--reports", reports, "--label", "plot",
                            "--outdir", str(outdir), "--dpi", "50"])

        assert (outdir / "in_degree_plot.png").exists()
        assert (outdir / "convergence_plot.png").exists()


class TestSweepRobustness:

    def test_progress_line_with_missing_metrics(self):
        result = {'clustering_mean': None, 'avg_path_length_mean': None,
                  'components_mean': 1.0}

        line = shuffle_sweep.format_progress(result)

        assert line == "clustering=n/a, path=n/a, components=1.0"

    def test_zero_cycles_rejected(self, tmp_path):
        with pytest.raises(SystemExit):
            shuffle_sweep.main(["--quick", "--cycles", "0",
                                "--output", str(tmp_path / "out.csv")])

    def test_resume_from_missing_or_empty_file_writes_header(self, tmp_path):
        path = tmp_path / "results.csv"
        assert shuffle_sweep.resume_state(str(path)) == (set(), 'w')

        path.write_text("")
        assert shuffle_sweep.resume_state(str(path)) == (set(), 'w')

    def test_resume_from_headerless_file_starts_fresh(self, tmp_path):
        path = tmp_path / "results.csv"
        path.write_text("10,3,random,1\n")

        assert shuffle_sweep.resume_state(str(path)) == (set(), 'w')

    def test_stale_rows_do_not_count_as_completed(self, tmp_path, capsys):
        path = tmp_path / "results.csv"
        quick = shuffle_sweep.build_configs([10, 20], [3, 5], ['random', 'star'])
        with open(path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=shuffle_sweep.fieldnames())
            writer.writeheader()
            for cache_size, shuffle_length, topology in quick:
                writer.writerow({'cache_size': cache_size, 'shuffle_length': shuffle_length,
                                 'topology': topology, 'num_seeds': 1})
            writer.writerow({'cache_size': 99, 'shuffle_length': 3,
                             'topology': 'ring', 'num_seeds': 1})

        shuffle_sweep.main(["--quick", "--workers", "1", "--output", str(path)])

        out = capsys.readouterr().out
        assert f"Resuming: {len(quick)} configurations already completed" in out
        assert f"Completed 0/{len(quick)} configurations ({len(quick)} skipped)" in out


class TestReportRuns:

    def test_second_run_replaces_first(self, tmp_path):
        for cycles in (6, 3):
            writer = ReportWriter(output_dir=str(tmp_path), label="rerun")
            with contextlib.redirect_stdout(io.StringIO()):
                sim = ShuffleSimulation(num_nodes=15, cache_size=4, shuffle_length=2,
                                        report_writer=writer)
                sim.run(n_cycles=cycles)

        _, clustering, paths = overlay_plots.load_reports(str(tmp_path), "rerun")

        assert list(clustering["observation"]) == [1, 2, 3]
        assert list(paths["observation"]) == [1, 2, 3]

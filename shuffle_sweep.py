#!/usr/bin/env python3
"""
shuffle_sweep.py

Parameter sweep for the Basic Shuffle overlay.

Objectives:
1. Minimize clustering coefficient (random-graph-like mixing)
2. Minimize average shortest path
3. Keep the overlay connected with a balanced in-degree

Sweeps:
- cache_size
- shuffle_length (only values <= cache_size)
- bootstrap topology

Outputs:
- shuffle_results.csv: All configurations with metrics (mean/std over seeds)
"""

import concurrent.futures
import contextlib
import csv
import io
import itertools
import os
import traceback

import numpy as np

from overlay_sim import ShuffleSimulation

METRICS = [
    'clustering', 'avg_path_length', 'components', 'largest_component',
    'in_degree_std', 'in_degree_max', 'isolated_nodes',
    'rejection_rate', 'entries_discarded', 'cache_fill_mean',
]


def run_single_config(cache_size, shuffle_length, topology, num_nodes=1000,
                      n_cycles=100, seed=42):
    """
    Run single configuration with specified seed.
    Returns dict with metrics.
    """
    with contextlib.redirect_stdout(io.StringIO()):
        sim = ShuffleSimulation(
            num_nodes=num_nodes,
            cache_size=cache_size,
            shuffle_length=shuffle_length,
            topology=topology,
            seed=seed,
        )
        sim.run(n_cycles=n_cycles, verbose=False)

    stats = sim.get_stats()
    degrees = sim.get_degree_statistics()

    return {
        'cache_size': cache_size,
        'shuffle_length': shuffle_length,
        'topology': topology,
        'seed': seed,
        # Graph shape
        'clustering': stats['clustering'],
        'avg_path_length': stats['avg_path_length'],
        'components': stats['components'],
        'largest_component': stats['largest_component'],
        # Degree balance
        'in_degree_std': float(degrees['in_degree_std']),
        'in_degree_max': float(degrees['in_degree_max']),
        'isolated_nodes': degrees['isolated_nodes'],
        # Protocol behaviour
        'rejection_rate': stats['rejection_rate'],
        'entries_discarded': stats['entries_discarded'],
        'cache_fill_mean': stats['cache_fill_mean'],
    }


def run_multi_seed(cache_size, shuffle_length, topology, num_seeds=3,
                   num_nodes=1000, n_cycles=100):
    """
    Run configuration with multiple seeds and aggregate results.
    Returns dict with mean and std for each metric.
    """
    results = [
        run_single_config(cache_size, shuffle_length, topology,
                          num_nodes=num_nodes, n_cycles=n_cycles, seed=seed + 42)
        for seed in range(num_seeds)
    ]

    aggregated = {
        'cache_size': cache_size,
        'shuffle_length': shuffle_length,
        'topology': topology,
        'num_seeds': num_seeds,
    }
    for metric in METRICS:
        values = [r[metric] for r in results if r[metric] is not None]
        if values:
            aggregated[f'{metric}_mean'] = np.mean(values)
            aggregated[f'{metric}_std'] = np.std(values)
        else:
            aggregated[f'{metric}_mean'] = None
            aggregated[f'{metric}_std'] = None

    return aggregated


def run_config(cache_size, shuffle_length, topology, num_seeds, num_nodes, n_cycles):
    """
    Worker function to run a single config and return the result.
    """
    try:
        return run_multi_seed(cache_size, shuffle_length, topology, num_seeds=num_seeds,
                              num_nodes=num_nodes, n_cycles=n_cycles)
    except Exception as e:
        print(f"ERROR for cache={cache_size}, l={shuffle_length}, topology={topology}: {e}")
        traceback.print_exc()
        return None


def build_configs(cache_values, length_values, topologies):
    return [(c, l, t) for c, l, t in itertools.product(cache_values, length_values, topologies)
            if l <= c]


def fieldnames():
    metric_fields = []
    for m in METRICS:
        metric_fields.extend([f'{m}_mean', f'{m}_std'])
    return ['cache_size', 'shuffle_length', 'topology', 'num_seeds'] + metric_fields


def format_progress(result):
    """One-line summary of an aggregated result; missing metrics print as n/a."""
    def fmt(key, pattern):
        value = result.get(key)
        return 'n/a' if value is None else format(value, pattern)

    return (f"clustering={fmt('clustering_mean', '.4f')}, "
            f"path={fmt('avg_path_length_mean', '.2f')}, "
            f"components={fmt('components_mean', '.1f')}")


def load_completed(output_file):
    """Configurations already present in `output_file`, for resuming."""
    completed = set()
    with open(output_file, 'r', newline='') as f:
        reader = csv.DictReader(f)
        if reader.fieldnames != fieldnames():
            raise ValueError(f"unexpected header {reader.fieldnames}")
        for row in reader:
            completed.add((int(row['cache_size']), int(row['shuffle_length']), row['topology']))
    return completed


def resume_state(output_file):
    """
    (completed configurations, file mode) for `output_file`.

    Appends only to a file that already carries the expected header.
    """
    if not os.path.exists(output_file) or os.path.getsize(output_file) == 0:
        return set(), 'w'
    try:
        return load_completed(output_file), 'a'
    except (OSError, KeyError, ValueError) as e:
        print(f"[WARN] Could not read existing file {output_file}: {e}. Starting fresh.")
        return set(), 'w'


def main(argv=None):
    import argparse

    parser = argparse.ArgumentParser(description='Basic Shuffle parameter sweep')
    parser.add_argument('--quick', action='store_true',
                        help='Quick test with reduced parameter space')
    parser.add_argument('--seeds', type=int, default=3,
                        help='Number of random seeds per config (default: 3)')
    parser.add_argument('--nodes', type=int, default=1000,
                        help='Network size (default: 1000)')
    parser.add_argument('--cycles', type=int, default=100,
                        help='Shuffle cycles per run (default: 100)')
    parser.add_argument('--output', type=str, default='shuffle_results.csv',
                        help='Output CSV file (default: shuffle_results.csv)')
    parser.add_argument('--workers', type=int, default=3,
                        help='Number of parallel workers (default: 3)')

    args = parser.parse_args(argv)
    if args.cycles < 1:
        parser.error('--cycles must be at least 1')

    # Define parameter ranges
    if args.quick:
        cache_values = [10, 20]
        length_values = [3, 5]
        topologies = ['random', 'star']
    else:
        cache_values = [10, 20, 30, 50, 80]
        length_values = [2, 4, 6, 8, 12, 16]
        topologies = ['random', 'star', 'ring']

    configs = build_configs(cache_values, length_values, topologies)
    total_configs = len(configs)

    output_file = args.output
    completed_configs, file_mode = resume_state(output_file)

    pending = [c for c in configs if c not in completed_configs]
    workers = min(args.workers, len(pending)) if pending else 1

    print("=" * 70)
    print("BASIC SHUFFLE PARAMETER SWEEP")
    print("=" * 70)
    print(f"Parameters:")
    print(f"  cache_size:     {cache_values}")
    print(f"  shuffle_length: {length_values}")
    print(f"  topology:       {topologies}")
    print(f"\nTotal: {total_configs} configs × {args.seeds} seeds = {total_configs * args.seeds} runs")
    print(f"Network: {args.nodes} nodes, {args.cycles} cycles")
    print(f"Output: {output_file}")
    print(f"Workers: {workers}")
    if completed_configs:
        print(f"Resuming: {total_configs - len(pending)} configurations already completed")
    print("=" * 70)
    print()

    with open(output_file, file_mode, newline='') as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames())
        if file_mode == 'w':
            writer.writeheader()
            f.flush()

        done = 0

        with concurrent.futures.ProcessPoolExecutor(max_workers=workers) as executor:
            futures = {}
            for cache_size, shuffle_length, topology in pending:
                future = executor.submit(run_config, cache_size, shuffle_length, topology,
                                         args.seeds, args.nodes, args.cycles)
                futures[future] = (cache_size, shuffle_length, topology)

            for future in concurrent.futures.as_completed(futures):
                result = future.result()
                if result is None:
                    continue
                cache_size, shuffle_length, topology = futures[future]
                writer.writerow(result)
                f.flush()
                done += 1
                print(f"cache={cache_size:3d}, l={shuffle_length:2d}, topology={topology:<6}: "
                      + format_progress(result))

    # Summary
    print()
    print("=" * 70)
    print(f"Completed {done}/{total_configs} configurations ({total_configs - len(pending)} skipped)")
    print(f"Saved: {output_file}")
    print("=" * 70)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Plots for Basic Shuffle experiments.

From the per-cycle report files written by ReportWriter:
- In-degree distribution at the last observed cycle
- Clustering coefficient and average shortest path per cycle

From the sweep CSV written by shuffle_sweep.py:
- Final clustering / path length vs cache size, one line per shuffle length
"""

import os

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

# Default DPI (can be overridden by command line)
DPI = 300

LENGTH_COLORS = ["#2ecc71", "#3498db", "#f39c12", "#e74c3c", "#9b59b6", "#1abc9c"]


def get_length_color(i):
    if i < len(LENGTH_COLORS):
        return LENGTH_COLORS[i]
    return plt.cm.viridis((i % 10) / 10)


# ============================================================
# Load data
# ============================================================

def load_reports(output_dir, label):
    """
    Load the three report files for `label`.

    Returns (in_degree_df, clustering_df, path_df).
    """
    def read(name, columns):
        path = os.path.join(output_dir, f"{name}_{label}.txt")
        if not os.path.exists(path):
            raise FileNotFoundError(f"Report file not found: {path}")
        return pd.read_csv(path, sep=" ", header=None, names=columns)

    in_degree = read("in_degree", ["observation", "in_degree", "count"])
    clustering = read("clustering_coefficient", ["observation", "clustering"])
    paths = read("shortest_path", ["observation", "avg_path_length"])

    print(f"[INFO] Loaded {clustering['observation'].nunique()} observations for '{label}'")
    return in_degree, clustering, paths


def load_sweep(csv_path):
    """Load sweep results, dropping incomplete rows."""
    if not os.path.exists(csv_path):
        raise FileNotFoundError(f"Results file not found: {csv_path}")

    df = pd.read_csv(csv_path)
    df = df.replace([np.inf, -np.inf], np.nan).dropna(subset=["clustering_mean", "avg_path_length_mean"])
    df = df.drop_duplicates(subset=["cache_size", "shuffle_length", "topology"])

    print(f"[INFO] Loaded {len(df)} configurations from {csv_path}")
    print(f"       cache_size values: {sorted(df['cache_size'].unique())}")
    print(f"       shuffle_length values: {sorted(df['shuffle_length'].unique())}")
    print(f"       topologies: {sorted(df['topology'].unique())}")
    return df


# ============================================================
# Figures from report files
# ============================================================

def plot_in_degree(in_degree, outpath, observation=None):
    """Bar chart of the in-degree distribution at one observation (default: last)."""
    if in_degree.empty:
        print(f"[WARN] No in-degree data, skipping {outpath}")
        return
    observation = observation if observation is not None else in_degree["observation"].max()
    sub = in_degree[in_degree["observation"] == observation].sort_values("in_degree")

    fig, ax = plt.subplots(figsize=(8, 4.5))
    ax.bar(sub["in_degree"], sub["count"], color="#3498db", edgecolor="black", linewidth=0.5)
    ax.set_xlabel("In-degree")
    ax.set_ylabel("Number of nodes")
    ax.set_title(f"In-degree distribution (cycle {observation})")
    ax.grid(True, axis="y", alpha=0.3)

    fig.tight_layout()
    fig.savefig(outpath, dpi=DPI)
    plt.close(fig)
    print(f"[INFO] Saved {outpath}")


def plot_convergence(clustering, paths, outpath):
    """Clustering coefficient and average path length per cycle."""
    fig, axes = plt.subplots(2, 1, figsize=(8, 7), sharex=True)

    axes[0].plot(clustering["observation"], clustering["clustering"], "o-", lw=1.5,
                 markersize=3, color="#e74c3c")
    axes[0].set_ylabel("Clustering coefficient")
    axes[0].grid(True, alpha=0.3)

    axes[1].plot(paths["observation"], paths["avg_path_length"], "o-", lw=1.5,
                 markersize=3, color="#2ecc71")
    axes[1].set_ylabel("Average shortest path")
    axes[1].set_xlabel("Cycle")
    axes[1].grid(True, alpha=0.3)

    fig.tight_layout()
    fig.savefig(outpath, dpi=DPI)
    plt.close(fig)
    print(f"[INFO] Saved {outpath}")


# ============================================================
# Figures from sweep results
# ============================================================

def plot_sweep_by_cache(df, outpath, topology="random"):
    """Clustering and path length vs cache size, one line per shuffle length."""
    sub_topo = df[df["topology"] == topology]
    if sub_topo.empty:
        print(f"[WARN] No sweep data for topology={topology}, skipping {outpath}")
        return

    lengths = sorted(sub_topo["shuffle_length"].unique())
    fig, axes = plt.subplots(2, 1, figsize=(9, 8), sharex=True)

    for i, length in enumerate(lengths):
        sub = sub_topo[sub_topo["shuffle_length"] == length].sort_values("cache_size")
        color = get_length_color(i)
        label = f"l={length}"

        axes[0].errorbar(sub["cache_size"], sub["clustering_mean"], yerr=sub["clustering_std"],
                         fmt="o-", lw=1.5, color=color, label=label,
                         markersize=4, capsize=3, capthick=1)
        axes[1].errorbar(sub["cache_size"], sub["avg_path_length_mean"],
                         yerr=sub["avg_path_length_std"],
                         fmt="o-", lw=1.5, color=color, label=label,
                         markersize=4, capsize=3, capthick=1)

    axes[0].set_ylabel("Clustering coefficient")
    axes[0].set_title(f"Basic Shuffle ({topology} bootstrap)")
    axes[0].legend(loc="best", fontsize=9)
    axes[0].grid(True, alpha=0.3)
    axes[1].set_ylabel("Average shortest path")
    axes[1].set_xlabel("Cache size")
    axes[1].grid(True, alpha=0.3)

    fig.tight_layout()
    fig.savefig(outpath, dpi=DPI)
    plt.close(fig)
    print(f"[INFO] Saved {outpath}")


def main(argv=None):
    import argparse
    global DPI

    parser = argparse.ArgumentParser(description="Plot Basic Shuffle experiment results")
    parser.add_argument("--reports", type=str, default="graphStats",
                        help="Directory with report files (default: graphStats)")
    parser.add_argument("--label", type=str, default=None,
                        help="Report label to plot")
    parser.add_argument("--sweep", type=str, default=None,
                        help="Sweep CSV to plot")
    parser.add_argument("--outdir", type=str, default="figures",
                        help="Output directory (default: figures)")
    parser.add_argument("--dpi", type=int, default=DPI)
    args = parser.parse_args(argv)

    DPI = args.dpi
    os.makedirs(args.outdir, exist_ok=True)

    if args.label:
        in_degree, clustering, paths = load_reports(args.reports, args.label)
        plot_in_degree(in_degree, os.path.join(args.outdir, f"in_degree_{args.label}.png"))
        plot_convergence(clustering, paths, os.path.join(args.outdir, f"convergence_{args.label}.png"))

    if args.sweep:
        df = load_sweep(args.sweep)
        for topology in sorted(df["topology"].unique()):
            plot_sweep_by_cache(df, os.path.join(args.outdir, f"sweep_{topology}.png"), topology)

    if not args.label and not args.sweep:
        print("[WARN] Nothing to plot: pass --label and/or --sweep")


if __name__ == "__main__":
    main()

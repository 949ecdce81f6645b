#!/usr/bin/env python3
"""
overlay_sim.py

Cycle- and event-driven simulation of the Basic Shuffle overlay:
1. Integer ticks; a shuffle cycle starts every `cycle_ticks` ticks
2. Every node's on_tick() runs once per cycle, in a fresh random order
3. Messages are delivered after a uniform random delay of
   [min_delay, max_delay] ticks, in send order within a tick
4. Bootstrap topologies: random k-out, star (everyone knows node 0), ring
5. Graph observer at the end of every cycle: in-degree distribution,
   clustering coefficient, average shortest path, connected components
6. One shared random.Random(seed) for reproducible protocol runs; the
   observer samples from its own generator

The overlay graph has an edge u -> v whenever v is in u's cache.
"""

import logging
import random
import time
from collections import defaultdict

import networkx as nx
import numpy as np

from shuffle import BasicShuffle, MessageType, ShuffleConfigError, ShuffleMessage

logger = logging.getLogger(__name__)

TOPOLOGIES = ("random", "star", "ring")


class OverlayInvariantError(AssertionError):
    """A node cache violates the no-duplicate / capacity / no-self rules."""


class ShuffleSimulation:
    """
    Basic Shuffle simulator.

    Acts as both the scheduler (drives on_tick / on_message) and the
    transport (send) for every BasicShuffle node.
    """

    def __init__(
        self,
        # Network size
        num_nodes: int = 1000,

        # Protocol
        cache_size: int = 50,
        shuffle_length: int = 8,

        # Timing
        cycle_ticks: int = 10,          # Ticks between shuffle cycles
        min_delay: int = 1,             # Transport delay bounds (ticks)
        max_delay: int = 5,

        # Bootstrap
        topology: str = "random",
        bootstrap_degree: int = None,   # k for random k-out wiring

        # Observer
        path_samples: int = 50,         # BFS sources for shortest path estimate
        report_writer=None,

        seed: int = 42,
    ):
        if num_nodes < 2:
            raise ShuffleConfigError(f"num_nodes must be at least 2, got {num_nodes}")
        if topology not in TOPOLOGIES:
            raise ShuffleConfigError(f"unknown topology {topology!r}, expected one of {TOPOLOGIES}")
        if cycle_ticks <= 0:
            raise ShuffleConfigError(f"cycle_ticks must be positive, got {cycle_ticks}")
        if min_delay < 1 or max_delay < min_delay:
            raise ShuffleConfigError(f"invalid delay bounds [{min_delay}, {max_delay}]")

        self.num_nodes = int(num_nodes)
        self.cache_size = int(cache_size)
        self.shuffle_length = int(shuffle_length)
        self.cycle_ticks = int(cycle_ticks)
        self.min_delay = int(min_delay)
        self.max_delay = int(max_delay)
        self.topology = topology
        self.bootstrap_degree = min(
            bootstrap_degree or max(1, cache_size // 2), cache_size, num_nodes - 1)
        self.path_samples = path_samples
        self.report_writer = report_writer
        self.seed = seed

        self.rng = random.Random(seed)
        # Observer sampling must not perturb the protocol's random stream
        self.observer_rng = random.Random(seed)

        print(f"\n{'='*80}")
        print(f"BASIC SHUFFLE OVERLAY SIMULATION")
        print(f"{'='*80}")
        print(f"Network: {num_nodes} nodes, topology={topology}"
              + (f" (k={self.bootstrap_degree})" if topology == "random" else ""))
        print(f"Protocol: cache_size={cache_size}, shuffle_length={shuffle_length}")
        print(f"Timing: cycle every {cycle_ticks} ticks, delay {min_delay}-{max_delay} ticks")
        print(f"Seed: {seed}")
        print(f"{'='*80}\n")

        # Nodes share the simulation-wide random source
        self.nodes = {
            i: BasicShuffle(i, cache_size, shuffle_length, transport=self, rng=self.rng)
            for i in range(num_nodes)
        }
        self._bootstrap()

        # Event scheduling
        self.delivery_schedule = defaultdict(list)  # tick -> [(dest, message)]
        self.tick = 0
        self.cycle = 0

        # Metrics
        self.messages_sent = defaultdict(int)       # MessageType -> count
        self.drops_unknown = 0
        self.history = []                           # one observation per cycle

    # ------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------

    def _bootstrap(self):
        ids = list(self.nodes)
        if self.topology == "star":
            for i in ids[1:]:
                self.nodes[i].add_neighbor(ids[0])
        elif self.topology == "ring":
            for pos, i in enumerate(ids):
                self.nodes[i].add_neighbor(ids[(pos + 1) % len(ids)])
        else:
            for i in ids:
                others = [x for x in ids if x != i]
                for nbr in self.rng.sample(others, self.bootstrap_degree):
                    self.nodes[i].add_neighbor(nbr)

    # ------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------

    def send(self, sender, dest, message: ShuffleMessage):
        """Schedule `message` for delivery to `dest` after a random delay."""
        dt = self.rng.randint(self.min_delay, self.max_delay)
        self.delivery_schedule[self.tick + dt].append((dest, message))
        self.messages_sent[message.kind] += 1

    def process_delivery(self):
        """Deliver every message scheduled for the current tick."""
        items = self.delivery_schedule.pop(self.tick, [])
        for dest, message in items:
            node = self.nodes.get(dest)
            if node is None:
                self.drops_unknown += 1
                logger.warning("dropping %s for unknown node %r", message.kind.name, dest)
                continue
            node.on_message(message)

    # ------------------------------------------------------------
    # Scheduler
    # ------------------------------------------------------------

    def next_cycle(self):
        order = list(self.nodes)
        self.rng.shuffle(order)
        for nid in order:
            self.nodes[nid].on_tick()

    def step(self):
        """Execute one tick"""
        # 1. Deliveries due now
        self.process_delivery()

        # 2. Shuffle cycle (every cycle_ticks)
        if (self.tick % self.cycle_ticks) == 0:
            self.next_cycle()

        self.tick += 1

        # 3. Observer at the end of each cycle
        if (self.tick % self.cycle_ticks) == 0:
            self.cycle += 1
            self.observe()

    def run(self, n_cycles: int, verbose: bool = False, report_every: int = 10):
        """Run `n_cycles` full shuffle cycles."""
        if verbose:
            print(f"Running {n_cycles} cycles...")

        start_time = time.time()
        for _ in range(n_cycles * self.cycle_ticks):
            self.step()

            if verbose and self.tick % (self.cycle_ticks * report_every) == 0:
                obs = self.history[-1]
                print(f"  Cycle {obs['cycle']}: "
                      f"in-degree={obs['in_degree_mean']:.1f}±{obs['in_degree_std']:.1f}, "
                      f"clustering={obs['clustering']:.4f}, "
                      f"path={obs['avg_path_length']:.2f}, "
                      f"components={obs['components']}")

        elapsed = time.time() - start_time
        if verbose:
            print(f"Completed in {elapsed:.2f}s\n")
        return elapsed

    # ------------------------------------------------------------
    # Observer
    # ------------------------------------------------------------

    def build_graph(self) -> nx.DiGraph:
        graph = nx.DiGraph()
        graph.add_nodes_from(self.nodes)
        for nid, node in self.nodes.items():
            graph.add_edges_from((nid, nbr) for nbr in node.neighbors())
        return graph

    def in_degree_distribution(self, graph=None):
        """in_degree -> number of nodes with that in-degree"""
        graph = graph if graph is not None else self.build_graph()
        in_degrees = np.array([d for _, d in graph.in_degree()])
        values, counts = np.unique(in_degrees, return_counts=True)
        return {int(v): int(c) for v, c in zip(values, counts)}

    def average_path_length(self, undirected) -> float:
        """
        Average shortest path on the largest connected component, estimated
        from BFS trees rooted at up to `path_samples` random sources.
        """
        if undirected.number_of_nodes() == 0:
            return 0.0
        largest = max(nx.connected_components(undirected), key=len)
        if len(largest) < 2:
            return 0.0
        component = undirected.subgraph(largest)
        members = sorted(largest)
        sources = members if len(members) <= self.path_samples else \
            self.observer_rng.sample(members, self.path_samples)

        total = 0
        pairs = 0
        for src in sources:
            lengths = nx.single_source_shortest_path_length(component, src)
            total += sum(lengths.values())
            pairs += len(lengths) - 1
        return total / pairs if pairs else 0.0

    def observe(self):
        graph = self.build_graph()
        undirected = graph.to_undirected()

        in_degrees = np.array([d for _, d in graph.in_degree()])
        distribution = self.in_degree_distribution(graph)
        clustering = nx.average_clustering(undirected)
        path_length = self.average_path_length(undirected)
        components = list(nx.connected_components(undirected))

        obs = {
            'cycle': self.cycle,
            'in_degree_mean': float(np.mean(in_degrees)),
            'in_degree_std': float(np.std(in_degrees)),
            'in_degree_min': int(np.min(in_degrees)),
            'in_degree_max': int(np.max(in_degrees)),
            'clustering': float(clustering),
            'avg_path_length': float(path_length),
            'components': len(components),
            'largest_component': max(len(c) for c in components),
            'awaiting_reply': sum(1 for n in self.nodes.values() if n.awaiting_reply),
        }
        self.history.append(obs)

        if self.report_writer is not None:
            self.report_writer.write_in_degree(distribution)
            self.report_writer.write_clustering_coefficient(obs['clustering'])
            self.report_writer.write_shortest_path(obs['avg_path_length'])
        return obs

    def check_invariants(self):
        """Raise OverlayInvariantError if any cache is malformed."""
        for nid, node in self.nodes.items():
            peers = node.neighbors()
            if len(peers) > node.capacity:
                raise OverlayInvariantError(
                    f"node {nid}: {len(peers)} entries exceed capacity {node.capacity}")
            if len(set(peers)) != len(peers):
                raise OverlayInvariantError(f"node {nid}: duplicate entries {peers}")
            if nid in peers:
                raise OverlayInvariantError(f"node {nid}: cache contains itself")

    # ------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------

    def get_stats(self):
        nodes = list(self.nodes.values())
        cache_fill = [n.degree() / n.capacity for n in nodes]
        last = self.history[-1] if self.history else {}

        return {
            'cycles': self.cycle,
            'ticks': self.tick,
            'requests': self.messages_sent[MessageType.SHUFFLE_REQUEST],
            'replies': self.messages_sent[MessageType.SHUFFLE_REPLY],
            'rejections': self.messages_sent[MessageType.SHUFFLE_REJECTED],
            'rejection_rate': (self.messages_sent[MessageType.SHUFFLE_REJECTED]
                               / self.messages_sent[MessageType.SHUFFLE_REQUEST])
                              if self.messages_sent[MessageType.SHUFFLE_REQUEST] else 0.0,
            'entries_discarded': sum(n.entries_discarded for n in nodes),
            'drops_unknown': self.drops_unknown,
            'in_flight': sum(len(v) for v in self.delivery_schedule.values()),
            'awaiting_reply': sum(1 for n in nodes if n.awaiting_reply),
            'cache_fill_mean': float(np.mean(cache_fill)),
            'clustering': last.get('clustering'),
            'avg_path_length': last.get('avg_path_length'),
            'components': last.get('components'),
            'largest_component': last.get('largest_component'),
        }

    def get_degree_statistics(self):
        """In/out degree summary of the current overlay"""
        graph = self.build_graph()
        in_degrees = np.array([d for _, d in graph.in_degree()])
        out_degrees = np.array([d for _, d in graph.out_degree()])

        return {
            'in_degree_mean': np.mean(in_degrees),
            'in_degree_median': np.median(in_degrees),
            'in_degree_std': np.std(in_degrees),
            'in_degree_min': np.min(in_degrees),
            'in_degree_max': np.max(in_degrees),
            'in_degree_p10': np.percentile(in_degrees, 10),
            'in_degree_p90': np.percentile(in_degrees, 90),
            'out_degree_mean': np.mean(out_degrees),
            'isolated_nodes': int(np.sum(in_degrees == 0)),
        }

    def print_report(self):
        """Print comprehensive report"""
        stats = self.get_stats()
        degrees = self.get_degree_statistics()

        print("="*80)
        print("SIMULATION REPORT")
        print("="*80)

        print(f"\nProgress:")
        print(f"  Cycles: {stats['cycles']} ({stats['ticks']} ticks)")

        print(f"\nMessages:")
        print(f"  Requests: {stats['requests']:,}")
        print(f"  Replies: {stats['replies']:,}")
        print(f"  Rejections: {stats['rejections']:,} ({stats['rejection_rate']:.1%} of requests)")
        print(f"  Entries discarded (cache full): {stats['entries_discarded']:,}")
        print(f"  In flight: {stats['in_flight']}, awaiting reply: {stats['awaiting_reply']}")

        print(f"\nDegrees:")
        print(f"  Cache fill: {stats['cache_fill_mean']:.1%}")
        print(f"  In-degree: mean={degrees['in_degree_mean']:.1f}, "
              f"median={degrees['in_degree_median']:.0f}, std={degrees['in_degree_std']:.2f}, "
              f"range=[{degrees['in_degree_min']}, {degrees['in_degree_max']}]")
        print(f"  Isolated (in-degree 0): {degrees['isolated_nodes']}")

        if stats['clustering'] is not None:
            print(f"\nGraph:")
            print(f"  Clustering coefficient: {stats['clustering']:.4f}")
            print(f"  Average path length: {stats['avg_path_length']:.3f}")
            print(f"  Components: {stats['components']} (largest {stats['largest_component']}/{self.num_nodes})")

            if stats['components'] == 1:
                print(f"\n✓ Overlay connected")
            else:
                print(f"\n✗ Overlay partitioned")

        print("="*80)


if __name__ == "__main__":
    print("\n" + "="*80)
    print("BASIC SHUFFLE OVERLAY SIMULATION")
    print("="*80)

    # Test 1: Star bootstrap (everyone starts knowing node 0)
    print("\n1. Star bootstrap (1000 nodes, cache 50, l=8):")
    sim = ShuffleSimulation(
        num_nodes=1000,
        cache_size=50,
        shuffle_length=8,
        topology="star",
    )
    sim.run(n_cycles=100, verbose=True)
    sim.print_report()

    # Test 2: Random bootstrap, small cache
    print("\n2. Random bootstrap (1000 nodes, cache 20, l=5):")
    sim2 = ShuffleSimulation(
        num_nodes=1000,
        cache_size=20,
        shuffle_length=5,
        topology="random",
    )
    sim2.run(n_cycles=100, verbose=True)
    sim2.print_report()

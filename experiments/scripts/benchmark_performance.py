#!/usr/bin/env python3
"""
Performance benchmarking for the IAR log-density evaluators.

Builds square grid study regions of increasing size, encodes them once and
times repeated log-density evaluations, the way a sampler calls them on
every leapfrog step. Several chains are run concurrently against the same
shared encoding. Results are saved as CSV/JSON tables and a timing plot.

Usage:
    python benchmark_performance.py                       # Default grid sizes
    python benchmark_performance.py --sizes 10 20 40 80   # Grid side lengths
    python benchmark_performance.py --methods sparse pairwise
"""

import numpy as np
import pandas as pd
import json
import time
import argparse
import logging
from pathlib import Path
from typing import List
from dataclasses import dataclass, asdict
from joblib import Parallel, delayed
from tqdm import tqdm
import matplotlib.pyplot as plt
import seaborn as sns

# Add src directory to path
import sys
sys.path.append(str(Path(__file__).resolve().parents[2] / 'src'))

from spatial_iar.core import AdjacencyEncoder, GridLattice, SparseAdjacency
from spatial_iar.models import IARDensityEvaluator


@dataclass
class BenchmarkConfig:
    """Configuration for evaluator benchmarks."""
    # Grid side lengths; each grid has side**2 regions
    sizes: List[int] = None
    neighborhood: str = "rook"

    # Evaluation methods: 'sparse', 'pairwise', 'dense'
    methods: List[str] = None
    n_evals: int = 5000
    n_warmup: int = 100
    n_trials: int = 3
    n_chains: int = 4

    # The dense baseline is skipped above this many regions
    dense_max_regions: int = 2500
    random_seed: int = 42

    # Output settings
    output_dir: str = "results/benchmarks"
    save_plots: bool = True

    def __post_init__(self):
        """Set defaults if not provided."""
        if self.sizes is None:
            self.sizes = [10, 20, 40, 80]
        if self.methods is None:
            self.methods = ['sparse', 'pairwise', 'dense']


@dataclass
class EvaluationBenchmarkResult:
    """Results from one evaluator benchmark."""
    method: str
    n_regions: int
    n_edges: int
    n_chains: int
    encode_time: float
    time_per_eval_us: float
    time_std_us: float
    evals_per_second: float


def _dense_evaluator(adjacency: SparseAdjacency):
    """Reference evaluator using a dense precision matrix."""
    Q = adjacency.precision_structure().toarray()
    rank = adjacency.n_regions - adjacency.n_components

    def log_density(h: np.ndarray, tau: float) -> float:
        return 0.5 * rank * np.log(tau) - 0.5 * tau * float(h @ Q @ h)

    return log_density


def _run_chain(evaluate, states: np.ndarray, taus: np.ndarray) -> float:
    """Evaluate a sequence of states, returning elapsed seconds."""
    start = time.perf_counter()
    for h, tau in zip(states, taus):
        evaluate(h, tau)
    return time.perf_counter() - start


class EvaluatorBenchmark:
    """Main class for evaluator benchmarking."""

    def __init__(self, config: BenchmarkConfig):
        """Initialize benchmark runner."""
        self.config = config
        np.random.seed(config.random_seed)

        # Setup output directory
        self.output_dir = Path(config.output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        # Setup logging
        self.logger = self._setup_logging()

        self.encoder = AdjacencyEncoder()
        self.results: List[EvaluationBenchmarkResult] = []

    def _setup_logging(self) -> logging.Logger:
        """Setup logging configuration."""
        log_file = self.output_dir / "benchmark.log"
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            handlers=[
                logging.FileHandler(log_file),
                logging.StreamHandler(sys.stdout)
            ]
        )
        return logging.getLogger(__name__)

    def run_all_benchmarks(self):
        """Run complete benchmark suite."""
        self.logger.info("Starting evaluator benchmarks...")

        for side in tqdm(self.config.sizes, desc="Grid sizes"):
            lattice = GridLattice((side, side), neighborhood=self.config.neighborhood)

            encode_start = time.perf_counter()
            adjacency = self.encoder.encode(lattice.neighbor_relation())
            encode_time = time.perf_counter() - encode_start

            for method in self.config.methods:
                if method == 'dense' and adjacency.n_regions > self.config.dense_max_regions:
                    self.logger.info(f"Skipping dense baseline for N={adjacency.n_regions}")
                    continue
                result = self._benchmark_method(method, adjacency, encode_time)
                self.results.append(result)
                self.logger.info(
                    f"{method:>8s} N={result.n_regions:6d}: "
                    f"{result.time_per_eval_us:8.2f} us/eval"
                )

        self.save_results()
        if self.config.save_plots:
            self._plot_scaling()

        self.logger.info("Benchmarks completed successfully!")

    def _make_evaluator(self, method: str, adjacency: SparseAdjacency):
        if method == 'sparse':
            return IARDensityEvaluator(adjacency).log_density
        elif method == 'pairwise':
            return IARDensityEvaluator(adjacency).pairwise_log_density
        elif method == 'dense':
            return _dense_evaluator(adjacency)
        else:
            raise ValueError(f"Unknown method: {method}")

    def _benchmark_method(self, method: str, adjacency: SparseAdjacency,
                          encode_time: float) -> EvaluationBenchmarkResult:
        """Benchmark a single evaluation method across concurrent chains."""
        n = adjacency.n_regions
        n_chains = self.config.n_chains

        # One evaluator per chain; the encoding is shared
        evaluators = [self._make_evaluator(method, adjacency) for _ in range(n_chains)]
        states = [np.random.randn(self.config.n_evals, n) for _ in range(n_chains)]
        taus = [np.exp(np.random.randn(self.config.n_evals)) for _ in range(n_chains)]

        # Warmup
        for evaluate, chain_states, chain_taus in zip(evaluators, states, taus):
            _run_chain(evaluate, chain_states[:self.config.n_warmup],
                       chain_taus[:self.config.n_warmup])

        trial_times = []
        for _ in range(self.config.n_trials):
            elapsed = Parallel(n_jobs=n_chains, backend='threading')(
                delayed(_run_chain)(evaluate, chain_states, chain_taus)
                for evaluate, chain_states, chain_taus in zip(evaluators, states, taus)
            )
            trial_times.extend(t / self.config.n_evals for t in elapsed)

        per_eval = np.array(trial_times) * 1e6
        return EvaluationBenchmarkResult(
            method=method,
            n_regions=n,
            n_edges=adjacency.n_edges,
            n_chains=n_chains,
            encode_time=encode_time,
            time_per_eval_us=float(np.mean(per_eval)),
            time_std_us=float(np.std(per_eval)),
            evals_per_second=float(1e6 / np.mean(per_eval)),
        )

    def save_results(self):
        """Save benchmark results to files."""
        if self.results:
            df = pd.DataFrame([asdict(r) for r in self.results])
            df.to_csv(self.output_dir / 'evaluator_benchmarks.csv', index=False)

            with open(self.output_dir / 'evaluator_benchmarks.json', 'w') as f:
                json.dump([asdict(r) for r in self.results], f, indent=2)

        # Save configuration
        with open(self.output_dir / 'benchmark_config.json', 'w') as f:
            json.dump(asdict(self.config), f, indent=2)

        self.logger.info(f"Results saved to {self.output_dir}")

    def _plot_scaling(self):
        """Plot time per evaluation against number of regions."""
        if not self.results:
            return

        df = pd.DataFrame([asdict(r) for r in self.results])

        fig, ax = plt.subplots(figsize=(6, 4.5))
        sns.lineplot(data=df, x='n_regions', y='time_per_eval_us', hue='method',
                     marker='o', ax=ax)
        ax.set_xscale('log')
        ax.set_yscale('log')
        ax.set_xlabel('Number of regions N')
        ax.set_ylabel('Time per evaluation (us)')
        ax.set_title('IAR log-density evaluation cost')
        ax.grid(True, alpha=0.3)

        plt.tight_layout()
        plt.savefig(self.output_dir / 'evaluator_performance.pdf', dpi=300)
        plt.close(fig)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Benchmark IAR log-density evaluators'
    )

    parser.add_argument(
        '--sizes',
        nargs='+',
        type=int,
        help='Grid side lengths to benchmark'
    )
    parser.add_argument(
        '--neighborhood',
        choices=['rook', 'queen'],
        default='rook',
        help='Grid contiguity rule'
    )
    parser.add_argument(
        '--methods',
        nargs='+',
        choices=['sparse', 'pairwise', 'dense'],
        help='Evaluation methods to benchmark'
    )
    parser.add_argument(
        '--n-evals',
        type=int,
        default=5000,
        help='Evaluations per chain per trial'
    )
    parser.add_argument(
        '--n-trials',
        type=int,
        default=3,
        help='Number of trials for each benchmark'
    )
    parser.add_argument(
        '--n-chains',
        type=int,
        default=4,
        help='Number of concurrent chains sharing one encoding'
    )
    parser.add_argument(
        '--output-dir',
        type=str,
        default='results/benchmarks',
        help='Output directory for results'
    )
    parser.add_argument(
        '--no-plots',
        action='store_true',
        help='Disable plot generation'
    )

    args = parser.parse_args()

    config = BenchmarkConfig(
        sizes=args.sizes,
        neighborhood=args.neighborhood,
        methods=args.methods,
        n_evals=args.n_evals,
        n_trials=args.n_trials,
        n_chains=args.n_chains,
        output_dir=args.output_dir,
        save_plots=not args.no_plots
    )

    benchmark = EvaluatorBenchmark(config)
    benchmark.run_all_benchmarks()


if __name__ == "__main__":
    main()

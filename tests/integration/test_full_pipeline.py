"""
Integration tests for the full spatial IAR pipeline.

Tests cover end-to-end workflows from a neighbor relation through
encoding, storage, sampler data export and log-posterior evaluation, plus
a small run of the benchmark script.
"""

import importlib.util
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from spatial_iar.core import (
    AdjacencyEncoder, GridLattice, load_adjacency, save_adjacency, to_sampler_data,
)
from spatial_iar.models import (
    BYMParameters, BYMPoissonModel, IARDensityEvaluator, SparseCARDensityEvaluator,
)


class TestGridPipeline:
    """Test the complete workflow on a synthetic study region."""

    def test_encode_store_reload_evaluate(self, temp_dir, tolerance_config):
        # Step 1: Neighbor relation and encoding
        lattice = GridLattice((6, 7), neighborhood="queen")
        encoder = AdjacencyEncoder()
        adjacency = encoder.encode(lattice.neighbor_relation())
        assert int(adjacency.neighbor_count.sum()) == 2 * adjacency.n_edges

        # Step 2: Storage round trip
        path = save_adjacency(adjacency, temp_dir / "grid.npz")
        reloaded = load_adjacency(path)
        assert reloaded.links == adjacency.links

        # Step 3: Sampler data re-derives the same graph
        data = to_sampler_data(adjacency)
        rederived = encoder.from_node_arrays(data['N'], data['node1'], data['node2'],
                                             one_based=True)
        assert rederived.links == adjacency.links

        # Step 4: Every encoding gives the same density
        h = np.random.randn(adjacency.n_regions)
        values = [IARDensityEvaluator(a).log_density(h, 1.7)
                  for a in (adjacency, reloaded, rederived)]
        np.testing.assert_allclose(values, values[0], rtol=tolerance_config['rtol'])

    def test_car_and_iar_agree_on_quadratic_term(self):
        """At alpha close to 1 the CAR quadratic term matches the IAR one."""
        adjacency = AdjacencyEncoder().encode(GridLattice((5, 5)).neighbor_relation())
        iar = IARDensityEvaluator(adjacency)
        car = SparseCARDensityEvaluator(adjacency)
        h = np.random.randn(adjacency.n_regions)
        alpha = 1.0 - 1e-10

        log_det = np.log1p(-alpha * car.eigenvalues[:-1]).sum()
        car_quadratic = car.log_density(h, 1.0, alpha) - 0.5 * np.log1p(-alpha * car.eigenvalues[-1])
        car_quadratic -= 0.5 * log_det
        np.testing.assert_allclose(car_quadratic, -0.5 * iar.quadratic_form(h), rtol=1e-6)

    def test_bym_on_simulated_counts(self):
        """Simulate counts from the BYM model and evaluate the posterior."""
        lattice = GridLattice((8, 8))
        adjacency = AdjacencyEncoder().encode(lattice.neighbor_relation())
        n = adjacency.n_regions

        # Smooth spatial effect: a gradient across the grid, centered
        coords = np.array([lattice.site_to_coords(s) for s in range(n)], dtype=float)
        phi = 0.1 * (coords[:, 0] + coords[:, 1])
        phi -= phi.mean()
        theta = 0.05 * np.random.randn(n)
        x = np.random.randn(n)
        exposure = np.random.uniform(5.0, 20.0, n)
        y = np.random.poisson(exposure * np.exp(-0.3 + 0.4 * x + theta + phi))

        model = BYMPoissonModel(adjacency, y, exposure, covariates=x)
        truth = BYMParameters(beta0=-0.3, beta=np.array([0.4]), theta=theta, phi=phi,
                              tau_theta=400.0, tau_phi=5.0)
        rough = BYMParameters(beta0=-0.3, beta=np.array([0.4]), theta=theta,
                              phi=phi[np.random.permutation(n)],
                              tau_theta=400.0, tau_phi=5.0)

        terms_truth = model.log_posterior_terms(truth)
        terms_rough = model.log_posterior_terms(rough)

        assert np.isfinite(model.log_posterior(truth))
        # Scrambling a smooth surface lowers the spatial prior
        assert terms_truth['spatial'] > terms_rough['spatial']
        # Both surfaces are centered, so centering terms agree
        assert terms_truth['centering'] == pytest.approx(terms_rough['centering'])


@pytest.mark.slow
class TestBenchmarkScript:
    """Test the benchmark script on tiny grids."""

    def test_benchmark_run(self, temp_dir):
        script = Path(__file__).resolve().parents[2] / 'experiments' / 'scripts' / 'benchmark_performance.py'
        spec = importlib.util.spec_from_file_location("benchmark_performance", script)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)

        output_dir = temp_dir / "benchmarks"
        config = module.BenchmarkConfig(sizes=[3, 4], n_evals=20, n_warmup=5, n_trials=1,
                                        n_chains=2, output_dir=str(output_dir),
                                        save_plots=False)
        benchmark = module.EvaluatorBenchmark(config)
        benchmark.run_all_benchmarks()

        results = pd.read_csv(output_dir / 'evaluator_benchmarks.csv')
        assert set(results['method']) == {'sparse', 'pairwise', 'dense'}
        assert sorted(results['n_regions'].unique()) == [9, 16]
        assert (results['time_per_eval_us'] > 0).all()

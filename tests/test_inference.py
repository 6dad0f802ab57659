import unittest

import numpy as np

from src.sirtutorials.config import SIRParams
from src.sirtutorials.inference import (
    IncidenceData,
    compare_methods,
    expected_incidence,
    fit,
    generate_incidence_data,
    make_objective,
    negbin_nll,
    poisson_nll,
    profile_likelihood,
    sum_squares,
    unpack_theta,
)


def _noise_free(data):
    """Copy of ``data`` whose counts equal the model mean."""
    return IncidenceData(
        times=data.times,
        counts=data.expected.copy(),
        t0=data.t0,
        obs_dt=data.obs_dt,
        u0=data.u0,
        params=data.params,
        expected=data.expected,
    )


class TestData(unittest.TestCase):

    def test_generate_poisson(self):
        data = generate_incidence_data(rng=np.random.default_rng(1))
        self.assertEqual(data.counts.size, 40)
        np.testing.assert_allclose(data.times, np.arange(1, 41))
        self.assertEqual(data.counts.dtype, np.int64)
        self.assertAlmostEqual(data.t1, 40.0)
        self.assertAlmostEqual(data.N, 1000.0)
        truth = data.true_values()
        self.assertAlmostEqual(truth["i0"], 0.01)
        self.assertAlmostEqual(truth["beta"], 0.05)

    def test_expected_matches_model(self):
        data = generate_incidence_data(rng=np.random.default_rng(1))
        model = expected_incidence(data.params, data.u0, data)
        np.testing.assert_allclose(model, data.expected, rtol=1e-4, atol=1e-4)

    def test_generate_negbin(self):
        data = generate_incidence_data(rng=np.random.default_rng(2), obs_model="negbin", k=5.0)
        self.assertEqual(data.obs_model, "negbin")
        self.assertTrue(np.all(data.counts >= 0))

    def test_invalid_generation(self):
        with self.assertRaises(ValueError):
            generate_incidence_data(obs_model="gaussian")
        with self.assertRaises(ValueError):
            generate_incidence_data(obs_dt=0.25)
        with self.assertRaises(ValueError):
            generate_incidence_data(t1=0.5, obs_dt=1.0)


class TestTheta(unittest.TestCase):

    def test_unpack(self):
        params, u0 = unpack_theta([0.08, 0.02], ("beta", "i0"), SIRParams(), np.array([990.0, 10.0, 0.0]))
        self.assertEqual(params.beta, 0.08)
        self.assertEqual(params.gamma, 0.25)
        np.testing.assert_allclose(u0, [980.0, 20.0, 0.0])

    def test_unpack_errors(self):
        base = np.array([990.0, 10.0, 0.0])
        with self.assertRaises(ValueError):
            unpack_theta([1.0], ("delta",), SIRParams(), base)
        with self.assertRaises(ValueError):
            unpack_theta([1.0, 2.0], ("beta",), SIRParams(), base)


class TestLosses(unittest.TestCase):

    def test_losses_prefer_the_truth(self):
        y = np.array([3.0, 8.0, 15.0, 9.0])
        self.assertEqual(sum_squares(y, y), 0.0)
        self.assertLess(poisson_nll(y, y), poisson_nll(2 * y, y))
        self.assertLess(negbin_nll(y, y), negbin_nll(0.5 * y, y))

    def test_zero_expectation_stays_finite(self):
        y = np.array([0.0, 0.0])
        self.assertTrue(np.isfinite(poisson_nll(np.zeros(2), y)))

    def test_objective_rejects_infeasible_points(self):
        data = generate_incidence_data(rng=np.random.default_rng(3))
        objective = make_objective(data, ("beta", "i0"))
        self.assertEqual(objective(np.array([0.05, 1.5])), np.inf)
        self.assertLess(objective(np.array([0.05, 0.01])), objective(np.array([0.08, 0.01])))
        with self.assertRaises(ValueError):
            make_objective(data, ("beta",), loss="huber")


class TestFit(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.data = generate_incidence_data(rng=np.random.default_rng(1234))

    def test_nelder_mead_recovers_noise_free_parameters(self):
        data = _noise_free(self.data)
        res = fit(data, loss="sse", method="nelder-mead", n_starts=3, rng=np.random.default_rng(0))
        est = res.as_dict()
        self.assertAlmostEqual(est["beta"], 0.05, delta=0.001)
        self.assertAlmostEqual(est["i0"], 0.01, delta=0.0005)
        self.assertEqual(len(res.times), 3)
        self.assertGreater(res.n_evals, 0)

    def test_lbfgsb_on_poisson_data(self):
        res = fit(self.data, method="l-bfgs-b", n_starts=3, rng=np.random.default_rng(0))
        est = res.as_dict()
        self.assertAlmostEqual(est["beta"], 0.05, delta=0.0075)
        self.assertTrue(1e-4 <= est["i0"] <= 0.1)
        params, u0 = res.model(self.data)
        self.assertAlmostEqual(params.beta, est["beta"])
        self.assertAlmostEqual(u0.sum(), 1000.0)

    def test_differential_evolution_beats_the_truth(self):
        res = fit(self.data, method="differential-evolution", rng=np.random.default_rng(0), maxiter=40)
        truth_loss = make_objective(self.data, ("beta", "i0"))(np.array([0.05, 0.01]))
        self.assertLessEqual(res.loss, truth_loss + 1e-6)
        self.assertEqual(len(res.times), 1)

    def test_fit_with_fixed_parameter(self):
        res = fit(
            self.data, estimate=("beta",), fixed={"i0": 0.01},
            n_starts=2, rng=np.random.default_rng(0),
        )
        self.assertEqual(res.names, ("beta",))
        self.assertAlmostEqual(res.values[0], 0.05, delta=0.005)

    def test_invalid_fits(self):
        with self.assertRaises(ValueError):
            fit(self.data, method="bfgs")
        with self.assertRaises(ValueError):
            fit(self.data, estimate=())
        with self.assertRaises(ValueError):
            fit(self.data, estimate=("beta",), fixed={"beta": 0.05})
        with self.assertRaises(ValueError):
            fit(self.data, estimate=("beta",), bounds={"beta": (0.2, 0.1)})
        with self.assertRaises(ValueError):
            fit(self.data, n_starts=0)

    def test_invalid_fixed_parameters(self):
        with self.assertRaises(ValueError):
            fit(self.data, estimate=("beta",), fixed={"delta": 1.0}, n_starts=1)
        with self.assertRaises(ValueError):
            fit(self.data, estimate=("beta",), fixed={"i0": 2.0}, n_starts=1)
        with self.assertRaises(ValueError):
            fit(self.data, estimate=("beta",), fixed={"gamma": -0.1}, n_starts=1)
        with self.assertRaises(ValueError):
            make_objective(self.data, ("beta",), fixed={"delta": 1.0})

    def test_profile_likelihood(self):
        grid = [0.03, 0.04, 0.05, 0.06, 0.07]
        profile = profile_likelihood(self.data, "beta", grid, rng=np.random.default_rng(0))
        self.assertEqual(profile["loss"].shape, (5,))
        self.assertEqual(profile["refit"].shape, (5, 1))
        self.assertEqual(int(np.argmin(profile["loss"])), 2)
        with self.assertRaises(ValueError):
            profile_likelihood(self.data, "gamma", grid)

    def test_compare_methods(self):
        rows, results = compare_methods(
            self.data, methods=("nelder-mead",), n_starts=2, rng=np.random.default_rng(0)
        )
        self.assertEqual(len(rows), 1)
        row = rows[0]
        self.assertEqual(row["method"], "nelder-mead")
        for key in ("beta", "i0", "loss", "abs_err_beta", "rel_err_i0", "time_p50"):
            self.assertIn(key, row)
        self.assertIn("nelder-mead", results)


if __name__ == '__main__':
    unittest.main()

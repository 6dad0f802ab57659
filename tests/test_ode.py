import importlib.util
import unittest

import numpy as np

from src.sirtutorials.config import SIRParams
from src.sirtutorials.ode import (
    SIRSolution,
    final_size,
    peak_indices,
    simulate_ode,
    simulate_summer,
    sir_rhs,
    time_grid,
)


class TestRightHandSide(unittest.TestCase):

    def test_rates_at_default_state(self):
        du = sir_rhs(0.0, np.array([990.0, 10.0, 0.0, 0.0]), 0.05, 10.0, 0.25)
        np.testing.assert_allclose(du, [-4.95, 2.45, 2.5, 4.95])
        self.assertAlmostEqual(sum(du[:3]), 0.0)

    def test_empty_population(self):
        du = sir_rhs(0.0, np.zeros(4), 0.05, 10.0, 0.25)
        self.assertEqual(du, [0.0, 0.0, 0.0, 0.0])


class TestTimeGrid(unittest.TestCase):

    def test_grid_includes_end_point(self):
        grid = time_grid(0.0, 40.0, 0.1)
        self.assertEqual(grid.size, 401)
        self.assertAlmostEqual(grid[-1], 40.0)

    def test_invalid_grid(self):
        with self.assertRaises(ValueError):
            time_grid(0.0, 40.0, 0.0)
        with self.assertRaises(ValueError):
            time_grid(10.0, 10.0, 0.1)


class TestSimulateODE(unittest.TestCase):

    def setUp(self):
        self.solution = simulate_ode()

    def test_shape_and_conservation(self):
        sol = self.solution
        self.assertEqual(sol.t.size, 401)
        self.assertEqual(sol.to_array().shape, (401, 4))
        np.testing.assert_allclose(sol.S + sol.I + sol.R, 1000.0, rtol=1e-6)
        self.assertTrue(np.all(np.diff(sol.S) <= 1e-9))

    def test_cumulative_infections(self):
        sol = self.solution
        np.testing.assert_allclose(sol.C, 990.0 - sol.S, atol=1e-3)
        incidence = sol.incidence()
        self.assertEqual(incidence[0], 0.0)
        self.assertAlmostEqual(incidence.sum(), sol.C[-1])

    def test_peak_matches_closed_form(self):
        # I_max = S0 + I0 - N / R0 * (1 + ln(R0 * S0 / N))
        expected = 1000.0 - 500.0 * (1.0 + np.log(2.0 * 0.99))
        t_peak, i_peak = self.solution.peak()
        self.assertAlmostEqual(i_peak / expected, 1.0, delta=2e-3)
        self.assertTrue(10.0 < t_peak < 30.0)
        np.testing.assert_array_equal(peak_indices(self.solution.I), [np.argmax(self.solution.I)])

    def test_rows(self):
        rows = self.solution.as_rows()
        self.assertEqual(len(rows), 401)
        self.assertEqual(set(rows[0]), {"t", "S", "I", "R", "C"})
        self.assertEqual(rows[0]["I"], 10.0)

    def test_solver_methods_agree(self):
        other = simulate_ode(method="LSODA")
        np.testing.assert_allclose(other.I, self.solution.I, atol=1e-2)

    def test_long_run_reaches_final_size_relation(self):
        sol = simulate_ode(t1=400.0, dt=1.0)
        self.assertAlmostEqual(sol.final_size(), final_size(2.0, 0.99), places=4)

    def test_extinction_event_stops_integration(self):
        sol = simulate_ode(t1=300.0, dt=0.5, extinction_threshold=1.0)
        events = sol.events["extinction"]
        self.assertEqual(events.size, 1)
        self.assertLess(sol.t[-1], 300.0)
        self.assertLessEqual(sol.t[-1], events[0])
        self.assertGreaterEqual(sol.I[-1], 1.0 - 1e-6)

    def test_invalid_arguments(self):
        with self.assertRaises(ValueError):
            simulate_ode(dt=-0.1)
        with self.assertRaises(ValueError):
            simulate_ode(t0=5.0, t1=1.0)
        with self.assertRaises(ValueError):
            simulate_ode(extinction_threshold=0.0)

    def test_no_transmission(self):
        sol = simulate_ode(SIRParams(beta=0.0), t1=10.0, dt=1.0)
        np.testing.assert_allclose(sol.S, 990.0)
        np.testing.assert_allclose(sol.I, 10.0 * np.exp(-0.25 * sol.t), rtol=1e-5)


class TestFinalSize(unittest.TestCase):

    def test_below_threshold(self):
        self.assertEqual(final_size(0.5), 0.0)
        self.assertEqual(final_size(1.0), 0.0)

    def test_classic_value(self):
        z = final_size(2.0)
        self.assertAlmostEqual(z, 1.0 - np.exp(-2.0 * z), places=10)
        self.assertAlmostEqual(z, 0.7968, places=4)

    def test_initially_infected_only_recover(self):
        self.assertAlmostEqual(final_size(0.0, s0=0.99), 0.01)

    def test_very_large_r0(self):
        # gamma = 0 gives R0 = inf; everyone is eventually infected.
        self.assertEqual(final_size(np.inf, s0=0.99), 1.0)
        self.assertEqual(final_size(np.inf), 1.0)
        self.assertAlmostEqual(final_size(800.0, s0=0.99), 1.0, places=12)
        z = final_size(600.0, s0=0.99)
        self.assertAlmostEqual(z, 1.0, places=12)
        self.assertLessEqual(z, 1.0)

    def test_invalid(self):
        with self.assertRaises(ValueError):
            final_size(np.nan)
        with self.assertRaises(ValueError):
            final_size(-1.0)
        with self.assertRaises(ValueError):
            final_size(2.0, s0=0.0)


class TestPeakIndices(unittest.TestCase):

    def test_flat_and_short_series(self):
        self.assertEqual(peak_indices(np.ones(10)).size, 0)
        self.assertEqual(peak_indices(np.array([1.0, 2.0])).size, 0)

    def test_threshold_filters_small_peaks(self):
        series = np.array([0.0, 1.0, 0.0, 10.0, 0.0, 2.0, 0.0])
        np.testing.assert_array_equal(peak_indices(series, thres=0.5), [3])
        np.testing.assert_array_equal(peak_indices(series, thres=0.05), [1, 3, 5])


@unittest.skipUnless(importlib.util.find_spec("summer"), "summer is not installed")
class TestSummer(unittest.TestCase):

    def test_matches_solve_ivp(self):
        reference = simulate_summer(t1=40.0, dt=0.1)
        solution = simulate_ode(t1=40.0, dt=0.1)
        n = min(reference.t.size, solution.t.size)
        self.assertIsInstance(reference, SIRSolution)
        np.testing.assert_allclose(reference.I[:n], solution.I[:n], atol=1.0)
        np.testing.assert_allclose(reference.C[:n], solution.C[:n], atol=1.0)


if __name__ == '__main__':
    unittest.main()

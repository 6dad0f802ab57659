import unittest

import numpy as np

from src.sirtutorials.noise import apply_downsample, observe_negbin, observe_poisson


class TestObservationModels(unittest.TestCase):

    def test_poisson_counts(self):
        rng = np.random.default_rng(0)
        x = np.full(2000, 20.0)
        y = observe_poisson(x, rho=0.5, rng=rng)
        self.assertEqual(y.shape, x.shape)
        self.assertEqual(y.dtype, np.int64)
        self.assertAlmostEqual(y.mean(), 10.0, delta=0.5)

    def test_negative_values_are_clamped(self):
        y = observe_poisson(np.array([-1e-9, 0.0]), rng=np.random.default_rng(0))
        np.testing.assert_array_equal(y, [0, 0])
        y = observe_negbin(np.zeros(3), k=2.0, rng=np.random.default_rng(0))
        np.testing.assert_array_equal(y, [0, 0, 0])

    def test_negbin_is_overdispersed(self):
        rng = np.random.default_rng(1)
        y = observe_negbin(np.full(5000, 20.0), k=2.0, rng=rng)
        self.assertAlmostEqual(y.mean(), 20.0, delta=1.5)
        # Variance is mu + mu^2 / k = 220.
        self.assertGreater(y.var(), 100.0)

    def test_invalid_parameters(self):
        with self.assertRaises(ValueError):
            observe_poisson(np.ones(3), rho=0.0)
        with self.assertRaises(ValueError):
            observe_negbin(np.ones(3), k=0.0)
        with self.assertRaises(ValueError):
            observe_negbin(np.ones(3), rho=1.5)


class TestDownsample(unittest.TestCase):

    def test_downsample(self):
        x = np.arange(12).reshape(2, 6)
        np.testing.assert_array_equal(apply_downsample(x, 2), [[0, 2, 4], [6, 8, 10]])
        with self.assertRaises(ValueError):
            apply_downsample(x, 0)


if __name__ == '__main__':
    unittest.main()

"""
This file implements unit tests for the borrowing/default model and the bond
price iteration.
"""

import unittest
from copy import deepcopy

import numpy as np

from DefaultKit.core import ConfigurationError, ConvergenceError
from DefaultKit.DefaultModels.SovDefaultModel import (
    BondMarket,
    SovDefaultType,
    init_sov_default,
    solve_sov_default,
)

# A coarser version of the baseline for the slower checks
init_coarse = deepcopy(init_sov_default)
init_coarse["bCount"] = 60


class test_SovDefaultNoShocks(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.agent = SovDefaultType(**init_sov_default)
        cls.market = BondMarket(cls.agent)
        cls.market.solve()
        cls.solution = cls.market.solution

    def test_prices_bounded(self):
        q = self.solution.q
        self.assertTrue(np.all(q >= 0.0))
        self.assertTrue(np.all(q <= 1.0 / 1.1))
        # prices only take the values implied by repayment indicators
        possible = np.array([0.0, 0.2, 0.8, 1.0]) / 1.1
        self.assertTrue(np.all(np.min(np.abs(q[:, None] - possible[None, :]), axis=1) < 1e-12))

    def test_complementarity(self):
        sol = self.solution
        self.assertTrue(np.array_equal(sol.V, np.maximum(sol.Vrepay, sol.Vdefault[None, :])))
        self.assertTrue(np.all((sol.D == 0.0) | (sol.D == 1.0)))
        self.assertTrue(np.array_equal(sol.D == 1.0, sol.Vrepay >= sol.Vdefault[None, :]))

    def test_policy(self):
        sol = self.solution
        self.assertTrue(np.all((sol.Policy >= 0) & (sol.Policy < sol.bGrid.size)))
        defaults = sol.D == 0.0
        self.assertTrue(np.all(sol.Policy[defaults] == 0))
        self.assertTrue(np.array_equal(sol.Policy[~defaults], sol.jBest[~defaults]))

    def test_monotone_in_resources(self):
        Vrepay = self.solution.Vrepay
        # more debt means fewer resources
        self.assertTrue(np.all(np.diff(Vrepay, axis=0) <= 0.0))
        # more income means more resources, and income is i.i.d.
        self.assertTrue(np.all(Vrepay[:, 1] >= Vrepay[:, 0]))

    def test_baseline_scenario(self):
        sol = self.solution
        low, high = 0, 1
        # the richer state defaults less...
        self.assertTrue(np.all(sol.D[:, high] >= sol.D[:, low]))
        # ...and wherever the poorer state defaults, borrows weakly more
        low_defaults = sol.D[:, low] == 0.0
        self.assertTrue(np.any(low_defaults))
        self.assertTrue(np.all(sol.bPolicy[low_defaults, high] >= sol.bPolicy[low_defaults, low]))
        # savers always repay; nobody can repay the largest debt in the bad state
        self.assertTrue(np.all(sol.D[0, :] == 1.0))
        self.assertEqual(sol.D[-1, low], 0.0)
        self.assertEqual(self.market.distance, 0)

    def test_idempotent(self):
        agent = SovDefaultType(**init_sov_default)
        market = BondMarket(agent, q_init=self.solution.q)
        market.solve()
        self.assertEqual(market.completed_loops, 1)
        self.assertTrue(np.array_equal(market.solution.q, self.solution.q))

    def test_laffer_curve_is_not_the_criterion(self):
        sol = self.solution
        laffer = sol.laffer_curve()
        self.assertTrue(np.allclose(laffer, sol.q * sol.bGrid))
        # proceeds rise, then fall as default risk sets in
        self.assertTrue(np.any(np.diff(laffer) > 0.0))
        self.assertTrue(np.any(np.diff(laffer) < 0.0))

        # A schedule with the same Laffer peak but different prices is not converged
        peak = np.argmax(laffer)
        q_alt = np.array(sol.q)
        q_alt[0] *= 0.5
        self.assertEqual(np.argmax(q_alt * sol.bGrid), peak)
        distance = self.market.calc_distance(q_alt, sol.q)
        self.assertGreater(distance, 0)
        self.assertFalse(self.market.is_converged(distance))

    def test_diagnostics(self):
        sol = self.solution
        self.assertEqual(sol.find_laffer_peak(), sol.bGrid[np.argmax(sol.q * sol.bGrid)])
        threshold = sol.find_risky_threshold(1.1)
        self.assertIsNotNone(threshold)
        self.assertTrue(np.all(sol.q[sol.bGrid < threshold] >= 1.0 / 1.1 - 1e-12))
        self.assertTrue(np.array_equal(sol.Vautarky[7], sol.Vdefault))

        c = sol.cFunc()
        self.assertEqual(c.shape, sol.V.shape)
        self.assertTrue(np.all(c >= 0.0))
        defaults = sol.default_set()
        self.assertTrue(np.allclose(c[defaults], np.tile(sol.IncVals, (sol.bGrid.size, 1))[defaults]))

    def test_dataset(self):
        ds = self.solution.to_dataset()
        self.assertEqual(ds["V"].dims, ("bNow", "IncState"))
        self.assertEqual(ds["q"].dims, ("bNext",))
        self.assertEqual(ds["V"].shape, (150, 2))
        self.assertTrue(np.allclose(ds["IncState"].values, [0.2, 1.2]))
        self.assertTrue(np.array_equal(ds["bPolicy"].values, self.solution.bPolicy))

    def test_read_only(self):
        with self.assertRaises(ValueError):
            self.solution.V[0, 0] = 0.0
        with self.assertRaises(ValueError):
            self.solution.q[0] = 0.0
        with self.assertRaises(ValueError):
            self.solution.Policy[0, 0] = 3


class test_SovDefaultTasteShocks(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        params = deepcopy(init_sov_default)
        params["TasteShkScale"] = 1.0
        cls.agent = SovDefaultType(**params)
        cls.market = BondMarket(cls.agent)
        cls.market.solve()
        cls.solution = cls.market.solution

    def test_log_sum_identity(self):
        sol = self.solution
        alpha = 1.0
        Vref = np.euler_gamma / alpha + np.logaddexp(alpha * sol.Vrepay, alpha * sol.Vdefault[None, :]) / alpha
        self.assertTrue(np.allclose(sol.V, Vref, rtol=0.0, atol=1e-9))

    def test_bounds(self):
        sol = self.solution
        self.assertTrue(np.all((sol.D >= 0.0) & (sol.D <= 1.0)))
        self.assertTrue(np.all((sol.q >= 0.0) & (sol.q <= 1.0 / 1.1)))
        self.assertLess(self.market.distance, init_sov_default["PriceTol"])

    def test_policy(self):
        sol = self.solution
        likely_default = sol.D < 0.5
        self.assertTrue(np.all(sol.Policy[likely_default] == 0))
        self.assertTrue(np.array_equal(sol.Policy[~likely_default], sol.jBest[~likely_default]))

    def test_monotone_in_resources(self):
        self.assertTrue(np.all(np.diff(self.solution.Vrepay, axis=0) <= 0.0))


class test_LargeShockScale(unittest.TestCase):
    def test_approaches_no_shocks(self):
        hard = solve_sov_default(**init_coarse)
        params = deepcopy(init_coarse)
        params["TasteShkScale"] = 1e5
        soft = solve_sov_default(**params)

        self.assertGreaterEqual(np.mean(np.abs(soft.q - hard.q) < 1e-3), 0.95)
        self.assertGreaterEqual(np.mean(np.abs(soft.D - hard.D) < 1e-2), 0.95)
        self.assertGreaterEqual(np.mean(np.abs(soft.V - hard.V) < 1e-2), 0.95)
        self.assertGreaterEqual(np.mean(soft.Policy == hard.Policy), 0.9)


class test_MarkovIncome(unittest.TestCase):
    def test_iid_rows(self):
        params = deepcopy(init_coarse)
        params["TasteShkScale"] = 1.0
        iid = solve_sov_default(**params)
        params["MrkvArray"] = np.array([[0.2, 0.8], [0.2, 0.8]])
        mrkv = solve_sov_default(**params)
        self.assertTrue(np.allclose(mrkv.q, iid.q, atol=1e-3))
        self.assertTrue(np.allclose(mrkv.V, iid.V, atol=1e-3))
        self.assertTrue(np.allclose(mrkv.Vdefault, iid.Vdefault, atol=1e-10))

    def test_persistent(self):
        params = deepcopy(init_coarse)
        params["TasteShkScale"] = 1.0
        params["MrkvArray"] = np.array([[0.7, 0.3], [0.1, 0.9]])
        sol = solve_sov_default(**params)
        self.assertTrue(np.all((sol.q >= 0.0) & (sol.q <= 1.0 / 1.1)))
        self.assertTrue(np.all((sol.D >= 0.0) & (sol.D <= 1.0)))
        Vref = np.euler_gamma + np.logaddexp(sol.Vrepay, sol.Vdefault[None, :])
        self.assertTrue(np.allclose(sol.V, Vref, rtol=0.0, atol=1e-9))


class test_LogUtility(unittest.TestCase):
    def test_solve(self):
        params = deepcopy(init_coarse)
        params["CRRA"] = 1.0
        params["TasteShkScale"] = 1.0
        sol = solve_sov_default(**params)
        self.assertTrue(np.all(np.isfinite(sol.V)))
        Vref = np.euler_gamma + np.logaddexp(sol.Vrepay, sol.Vdefault[None, :])
        self.assertTrue(np.allclose(sol.V, Vref, rtol=0.0, atol=1e-9))
        self.assertTrue(np.allclose(sol.Vdefault, np.log([0.2, 1.2]) + 4.0 * np.dot([0.2, 0.8], np.log([0.2, 1.2]))))


class test_Errors(unittest.TestCase):
    def check_config(self, **changes):
        params = deepcopy(init_coarse)
        params.update(changes)
        agent = SovDefaultType(**params)
        with self.assertRaises(ConfigurationError):
            BondMarket(agent).solve()
        # nothing was solved
        self.assertFalse(hasattr(agent, "solution"))

    def test_configuration(self):
        self.check_config(bMin=2.0, bMax=-0.15)
        self.check_config(bMax=-0.15)
        self.check_config(bCount=1)
        self.check_config(IncPrbs=[0.3, 0.8])
        self.check_config(IncPrbs=[-0.2, 1.2])
        self.check_config(IncPrbs=[1.0])
        self.check_config(MrkvArray=np.array([[0.5, 0.6], [0.5, 0.5]]))
        self.check_config(TasteShkScale=0.0)
        self.check_config(TasteShkScale=-1.0)
        self.check_config(CRRA=0.0)
        self.check_config(DiscFac=1.0)
        self.check_config(Rfree=1.0)
        self.check_config(IncVals=[1.2, 0.2])
        self.check_config(DefCostFac=1.0)

    def test_bad_prices(self):
        agent = SovDefaultType(**init_coarse)
        with self.assertRaises(ConfigurationError):
            BondMarket(agent, q_init=np.ones(10)).solve()

    def test_value_nonconvergence(self):
        params = deepcopy(init_coarse)
        params["max_cycles"] = 3
        agent = SovDefaultType(**params)
        with self.assertRaises(ConvergenceError) as cm:
            BondMarket(agent).solve()
        self.assertEqual(cm.exception.loop, "value")
        self.assertEqual(cm.exception.iterations, 3)
        self.assertGreater(cm.exception.residual, init_coarse["tolerance"])

    def test_price_nonconvergence(self):
        agent = SovDefaultType(**init_coarse)
        market = BondMarket(agent, max_loops=1)
        with self.assertRaises(ConvergenceError) as cm:
            market.solve()
        self.assertEqual(cm.exception.loop, "price")
        self.assertEqual(cm.exception.iterations, 1)
        self.assertGreater(cm.exception.residual, 0)

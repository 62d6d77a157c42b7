"""
Classes to solve a borrowing model with the option to default, in the spirit
of Eaton and Gersovitz (1981) and Arellano (2008).  Each period a borrower with
income y (one of finitely many states following an i.i.d. or Markov process)
and debt b either repays, choosing next period's debt b' on a grid at the price
q(b'), or defaults and lives in autarky forever.  Lenders are risk neutral, so
q(b') is the probability of repayment next period discounted at the risk-free
rate.

The repay/default choice can be made exactly, or subject to extreme value taste
shocks of scale TasteShkScale on each alternative, which turns the repayment
decision into a smooth logit probability.
"""

from copy import deepcopy

import numpy as np
import xarray as xr

from DefaultKit.core import (
    AgentType,
    ComputationError,
    ConfigurationError,
    Market,
    _log,
)
from DefaultKit.discrete import calc_log_sum_choice_probs
from DefaultKit.metric import MetricObject, count_differences, distance_metric
from DefaultKit.numba_tools import bellman_sweep_nb
from DefaultKit.utilities import (
    calc_autarky_value,
    calc_stationary_dist,
    check_probabilities,
    make_borrowing_grid,
    make_iid_markov,
)

__all__ = [
    "DefaultSolution",
    "SovDefaultType",
    "BondMarket",
    "solve_one_cycle_SovDefault",
    "solve_sov_default",
    "init_sov_default",
]

# Baseline parameters: two i.i.d. income states
init_sov_default = {
    "CRRA": 2.0,  # Coefficient of relative risk aversion
    "DiscFac": 0.8,  # Intertemporal discount factor
    "Rfree": 1.1,  # Gross risk-free return of lenders
    "IncVals": [0.2, 1.2],  # Income in each state, increasing
    "IncPrbs": [0.2, 0.8],  # i.i.d. probability of each income state
    "MrkvArray": None,  # Transition matrix between income states; overrides IncPrbs
    "bMin": -0.15,  # Lowest borrowing level (negative is saving)
    "bMax": 2.0,  # Highest borrowing level
    "bCount": 150,  # Number of borrowing gridpoints
    "tolerance": 1e-5,  # Convergence criterion for the value function
    "PriceTol": 1e-5,  # Convergence criterion for bond prices with taste shocks
    "TasteShkScale": np.inf,  # Scale of repay/default taste shocks; inf means no shocks
    "LowVal": -1e12,  # Utility of non-positive consumption
    "DefCostFac": 0.0,  # Proportional income loss while in autarky
    "max_cycles": 5000,  # Cap on value function iterations
    "max_loops": 500,  # Cap on bond price iterations
}


class DefaultSolution(MetricObject):
    """
    The solution to the borrowing/default problem on the grid, for a given
    bond price schedule.  All arrays are indexed by (borrowing, income state)
    except Vdefault (income state) and q (next period's borrowing).

    Parameters
    ----------
    bGrid : np.array
        Borrowing levels.
    V : np.array
        Value of having the choice between repaying and defaulting.
    Vrepay : np.array
        Value of repaying and choosing next period's borrowing optimally.
    jBest : np.array
        Index of the optimal next period borrowing level when repaying.
    Vdefault : np.array
        Value of defaulting (permanent autarky) in each income state.
    D : np.array
        Repayment indicator (no taste shocks) or repayment probability.
    q : np.array
        Price of one unit of debt at each next period borrowing level.
    IncVals : np.array
        Income in each state.
    TasteShkScale : float
        Scale of the taste shocks that generated D; np.inf if none.
    DefCostFac : float
        Proportional income loss in autarky.
    Policy : np.array or None
        Chosen next period borrowing index, with defaulters reset to the lowest
        gridpoint.  Set once the value function has converged.
    """

    distance_criteria = ["V"]

    def __init__(
        self,
        bGrid,
        V,
        Vrepay,
        jBest,
        Vdefault,
        D,
        q,
        IncVals,
        TasteShkScale=np.inf,
        DefCostFac=0.0,
        Policy=None,
    ):
        self.bGrid = bGrid
        self.V = V
        self.Vrepay = Vrepay
        self.jBest = jBest
        self.Vdefault = Vdefault
        self.D = D
        self.q = q
        self.IncVals = IncVals
        self.TasteShkScale = TasteShkScale
        self.DefCostFac = DefCostFac
        self.Policy = Policy

    array_names = ["bGrid", "V", "Vrepay", "jBest", "Vdefault", "D", "q", "IncVals", "Policy"]

    def freeze(self):
        """
        Make every array of this solution read-only.
        """
        for name in self.array_names:
            arr = getattr(self, name)
            if isinstance(arr, np.ndarray):
                arr.flags.writeable = False
        return self

    def replace(self, **changes):
        """
        A frozen copy of this solution with some attributes swapped out.
        """
        attrs = {name: np.array(getattr(self, name)) for name in self.array_names if getattr(self, name) is not None}
        attrs.update(TasteShkScale=self.TasteShkScale, DefCostFac=self.DefCostFac)
        attrs.update(changes)
        return DefaultSolution(**attrs).freeze()

    @property
    def hard_choice(self):
        return bool(np.isinf(self.TasteShkScale))

    def default_set(self):
        """
        Boolean array, True at (borrowing, income state) pairs where defaulting
        is optimal (no taste shocks) or more likely than repaying (with shocks).
        """
        if self.hard_choice:
            return self.D == 0.0
        return self.D < 0.5

    @property
    def Vautarky(self):
        """
        Autarky value tiled over the borrowing grid, for comparison with V.
        """
        return np.tile(self.Vdefault, (self.bGrid.size, 1))

    @property
    def bPolicy(self):
        """
        Next period's borrowing level chosen at each state.
        """
        return self.bGrid[self.Policy]

    def laffer_curve(self):
        """
        Debt proceeds q(b') * b' at each next period borrowing level.  Not
        necessarily monotone, as default risk rises with b'.
        """
        return self.q * self.bGrid

    def find_laffer_peak(self):
        """
        The borrowing level that maximizes the proceeds q(b') * b'.
        """
        return self.bGrid[np.argmax(self.laffer_curve())]

    def find_risky_threshold(self, Rfree):
        """
        The lowest borrowing level whose price reflects some default risk,
        i.e. q(b') < 1 / Rfree.  None if debt is risk free everywhere.
        """
        risky = np.nonzero(self.q < 1.0 / Rfree)[0]
        if risky.size == 0:
            return None
        return self.bGrid[risky[0]]

    def cFunc(self):
        """
        Consumption at each (borrowing, income state) pair under the optimal
        discrete choice: income plus new debt proceeds minus old debt when
        repaying (never below zero), income net of the default cost in autarky.
        """
        bNow = self.bGrid[:, None]
        cRepay = self.IncVals[None, :] + self.q[self.Policy] * self.bGrid[self.Policy] - bNow
        cRepay = np.maximum(cRepay, 0.0)
        cAut = np.tile(self.IncVals * (1.0 - self.DefCostFac), (self.bGrid.size, 1))
        return np.where(self.default_set(), cAut, cRepay)

    def to_dataset(self):
        """
        The solution as an xarray Dataset labeled by current borrowing (bNow),
        next period's borrowing (bNext) and income (IncState).
        """
        dims = ("bNow", "IncState")
        data_vars = {
            "V": (dims, self.V),
            "Vrepay": (dims, self.Vrepay),
            "Vdefault": (("IncState",), self.Vdefault),
            "D": (dims, self.D),
            "q": (("bNext",), self.q),
        }
        if self.Policy is not None:
            data_vars["Policy"] = (dims, self.Policy)
            data_vars["bPolicy"] = (dims, self.bPolicy)
        return xr.Dataset(
            data_vars,
            coords={"bNow": self.bGrid, "bNext": self.bGrid, "IncState": self.IncVals},
            attrs={"TasteShkScale": self.TasteShkScale},
        )


def solve_one_cycle_SovDefault(
    solution_next,
    bGrid,
    IncVals,
    TranMatrix,
    q,
    Vdefault,
    CRRA,
    DiscFac,
    LowVal,
    TasteShkScale,
    DefCostFac,
):
    """
    Apply the Bellman operator of the default model once.

    Parameters
    ----------
    solution_next : DefaultSolution
        The previous iterate; only its value function V is used.
    bGrid : np.array
        Borrowing levels.
    IncVals : np.array
        Income in each state.
    TranMatrix : np.array
        TranMatrix[s, s'] is the probability of income state s' next period
        given state s now.
    q : np.array
        Bond price at each next period borrowing level.
    Vdefault : np.array
        Autarky value in each income state.
    CRRA : float
        Coefficient of relative risk aversion.
    DiscFac : float
        Intertemporal discount factor.
    LowVal : float
        Utility of non-positive consumption.
    TasteShkScale : float
        Scale of the repay/default taste shocks; np.inf for none.
    DefCostFac : float
        Proportional income loss in autarky.

    Returns
    -------
    solution_now : DefaultSolution
        The next iterate.
    """
    bCount = bGrid.size
    StateCount = IncVals.size

    # EV[j, s] = sum_s' TranMatrix[s, s'] * V[j, s']
    EV = np.dot(solution_next.V, TranMatrix.T)

    Vrepay = np.empty((bCount, StateCount))
    jBest = np.empty((bCount, StateCount), dtype=np.int64)
    bellman_sweep_nb(bGrid, IncVals, q, EV, CRRA, DiscFac, LowVal, Vrepay, jBest)

    V, D = calc_log_sum_choice_probs(Vrepay, Vdefault, TasteShkScale)

    return DefaultSolution(
        bGrid=bGrid,
        V=V,
        Vrepay=Vrepay,
        jBest=jBest,
        Vdefault=Vdefault,
        D=D,
        q=q,
        IncVals=IncVals,
        TasteShkScale=TasteShkScale,
        DefCostFac=DefCostFac,
    )


class SovDefaultType(AgentType):
    """
    A borrower who can default on its debt, taking the bond price schedule q as
    given.  Solving this type iterates the Bellman operator until the value
    function converges; the price schedule is found by BondMarket.

    Parameters
    ----------
    **kwds
        Any of the entries of init_sov_default, plus q (the price schedule;
        DiscFac at every gridpoint if not given).
    """

    time_inv = [
        "bGrid",
        "IncVals",
        "TranMatrix",
        "q",
        "Vdefault",
        "CRRA",
        "DiscFac",
        "LowVal",
        "TasteShkScale",
        "DefCostFac",
    ]

    def __init__(self, **kwds):
        params = deepcopy(init_sov_default)
        params["q"] = None
        params.update(kwds)
        super().__init__(**params)
        self.solve_one_period = solve_one_cycle_SovDefault

    def check_restrictions(self):
        """
        Check that the parameters describe a model that can be solved, raising
        ConfigurationError if not.
        """
        if not (np.isfinite(self.CRRA) and self.CRRA > 0.0):
            raise ConfigurationError("CRRA must be positive, got " + str(self.CRRA))
        if not 0.0 < self.DiscFac < 1.0:
            raise ConfigurationError("DiscFac must be in (0, 1), got " + str(self.DiscFac))
        if not (np.isfinite(self.Rfree) and self.Rfree > 1.0):
            raise ConfigurationError("Rfree must be above one, got " + str(self.Rfree))
        if np.isnan(self.TasteShkScale) or self.TasteShkScale <= 0.0:
            raise ConfigurationError(
                "TasteShkScale must be positive (or np.inf), got " + str(self.TasteShkScale)
            )
        if not np.isfinite(self.LowVal):
            raise ConfigurationError("LowVal must be finite, got " + str(self.LowVal))
        if not 0.0 <= self.DefCostFac < 1.0:
            raise ConfigurationError("DefCostFac must be in [0, 1), got " + str(self.DefCostFac))
        if not (self.tolerance > 0.0 and self.PriceTol > 0.0):
            raise ConfigurationError("tolerance and PriceTol must be positive")
        if self.max_cycles < 1 or self.max_loops < 1:
            raise ConfigurationError("max_cycles and max_loops must be at least one")

        IncVals = np.asarray(self.IncVals, dtype=float)
        if IncVals.ndim != 1 or IncVals.size < 1 or np.any(~np.isfinite(IncVals)):
            raise ConfigurationError("IncVals must be a non-empty vector of numbers")
        if np.any(np.diff(IncVals) <= 0.0):
            raise ConfigurationError("IncVals must be strictly increasing")

        StateCount = IncVals.size
        if self.MrkvArray is None:
            IncPrbs = np.asarray(self.IncPrbs, dtype=float)
            if IncPrbs.shape != (StateCount,):
                raise ConfigurationError("IncPrbs must have one entry per income state")
            check_probabilities(IncPrbs, "IncPrbs")
        else:
            MrkvArray = np.asarray(self.MrkvArray, dtype=float)
            if MrkvArray.shape != (StateCount, StateCount):
                raise ConfigurationError("MrkvArray must be square with one row per income state")
            check_probabilities(MrkvArray, "MrkvArray")

        make_borrowing_grid(self.bMin, self.bMax, self.bCount)

    def update_income_process(self):
        """
        Construct the transition matrix between income states (TranMatrix) and
        the distribution used to price bonds (IncDstn): the i.i.d. probabilities,
        or the stationary distribution of MrkvArray.
        """
        self.IncVals = np.array(self.IncVals, dtype=float)
        if self.MrkvArray is None:
            self.IncDstn = np.asarray(self.IncPrbs, dtype=float)
            self.TranMatrix = make_iid_markov(self.IncDstn)
        else:
            self.TranMatrix = np.asarray(self.MrkvArray, dtype=float)
            self.IncDstn = calc_stationary_dist(self.TranMatrix)

    def update_grid(self):
        self.bGrid = make_borrowing_grid(self.bMin, self.bMax, self.bCount)

    def update_autarky(self):
        """
        Compute the value of permanent autarky, which doesn't depend on debt or
        on the price schedule.
        """
        self.Vdefault = calc_autarky_value(
            self.IncVals,
            self.CRRA,
            self.DiscFac,
            self.LowVal,
            DefCostFac=self.DefCostFac,
            IncPrbs=self.IncDstn,
            MrkvArray=None if self.MrkvArray is None else self.TranMatrix,
        )

    def update_prices(self):
        """
        Use DiscFac at every gridpoint as the price schedule if none was given,
        and check the one given otherwise.
        """
        if self.q is None:
            self.q = np.full(self.bGrid.size, self.DiscFac)
        self.q = np.array(self.q, dtype=float)
        if self.q.shape != self.bGrid.shape:
            raise ConfigurationError(
                f"Price schedule has shape {self.q.shape}, grid has {self.bGrid.shape}"
            )
        if np.any(~np.isfinite(self.q)):
            raise ConfigurationError("Price schedule must be finite")

    def update_solution_terminal(self):
        """
        Initial guess for the value function: zero everywhere.
        """
        bCount = self.bGrid.size
        StateCount = self.IncVals.size
        self.solution_terminal = DefaultSolution(
            bGrid=self.bGrid,
            V=np.zeros((bCount, StateCount)),
            Vrepay=np.zeros((bCount, StateCount)),
            jBest=np.zeros((bCount, StateCount), dtype=np.int64),
            Vdefault=self.Vdefault,
            D=np.ones((bCount, StateCount)),
            q=self.q,
            IncVals=self.IncVals,
            TasteShkScale=self.TasteShkScale,
            DefCostFac=self.DefCostFac,
        )

    def pre_solve(self):
        self.check_restrictions()
        self.update_income_process()
        self.update_grid()
        self.update_autarky()
        self.update_prices()
        self.update_solution_terminal()

    def post_solve(self):
        """
        Fill in the borrowing policy (reset to the lowest gridpoint wherever the
        borrower defaults) and make the solution read-only.
        """
        solution = self.solution
        if not np.all(np.isfinite(solution.V)):
            raise ComputationError("Converged value function is not finite")
        Policy = np.array(solution.jBest)
        Policy[solution.default_set()] = 0
        solution.Policy = Policy
        self.solution = solution.freeze()


class BondMarket(Market):
    """
    Risk neutral lenders pricing the debt of a SovDefaultType.  Solving the
    market iterates on the price schedule q: given q, solve the borrower's
    problem; given the borrower's repayment decisions, compute the price that
    makes lenders break even; stop when q no longer changes.

    Without taste shocks the repayment decision is discrete, so the price
    schedule converges only when no entry changes at all.  With taste shocks,
    prices converge when the largest change falls below PriceTol.

    Parameters
    ----------
    agent : SovDefaultType
        The borrower.
    q_init : np.array or None
        Initial price schedule; DiscFac at every gridpoint if None.
    PriceTol : float or None
        Price tolerance; the agent's PriceTol if None.
    max_loops : int or None
        Cap on price iterations; the agent's max_loops if None.
    """

    def __init__(self, agent, q_init=None, PriceTol=None, max_loops=None):
        PriceTol = agent.PriceTol if PriceTol is None else PriceTol
        max_loops = agent.max_loops if max_loops is None else max_loops
        super().__init__(agent, tolerance=PriceTol, max_loops=max_loops)
        self.q_init = q_init

    @property
    def hard_choice(self):
        return bool(np.isinf(self.agent.TasteShkScale))

    def sow(self):
        self.agent.q = self.dynamics

    def update_dynamics(self):
        """
        Break-even price of debt at each next period borrowing level.
        """
        return calc_bond_prices(self.agent.solution.D, self.agent.IncDstn, self.agent.Rfree)

    def calc_distance(self, new_dynamics, old_dynamics):
        """
        Number of changed prices without taste shocks, largest price change
        with them.  Only the price schedule matters, never the debt proceeds
        q(b') * b'.
        """
        if self.hard_choice:
            return count_differences(new_dynamics, old_dynamics)
        return distance_metric(new_dynamics, old_dynamics)

    def is_converged(self, distance):
        if self.hard_choice:
            return distance == 0
        return distance < self.tolerance

    def solve(self, verbose=False):
        """
        Find the equilibrium price schedule.  Afterwards, the solution attribute
        holds the borrower's read-only solution at the final prices.
        """
        self.agent.check_restrictions()
        self.agent.update_grid()
        if self.q_init is None:
            self.dynamics = np.full(self.agent.bGrid.size, self.agent.DiscFac)
        else:
            self.dynamics = np.array(self.q_init, dtype=float)
        super().solve(verbose)
        _log.info(
            "Bond prices converged after %d loops", self.completed_loops
        )
        self.q = self.dynamics
        self.solution = self.agent.solution.replace(q=np.array(self.dynamics))
        self.q.flags.writeable = False


def calc_bond_prices(D, IncDstn, Rfree):
    """
    Price of one unit of debt at each next period borrowing level j:
    sum_s IncDstn[s] * D[j, s] / Rfree.
    """
    return np.dot(D, IncDstn) / Rfree


def solve_sov_default(verbose=False, **kwds):
    """
    Solve the default model for both the value function and the bond price
    schedule.

    Parameters
    ----------
    verbose : bool
        If True, value function iteration progress is printed to screen.
    **kwds
        Parameters; see init_sov_default.  q_init sets the initial price
        schedule.

    Returns
    -------
    solution : DefaultSolution
        The read-only equilibrium solution.
    """
    q_init = kwds.pop("q_init", None)
    agent = SovDefaultType(**kwds)
    market = BondMarket(agent, q_init=q_init)
    market.solve(verbose)
    return market.solution

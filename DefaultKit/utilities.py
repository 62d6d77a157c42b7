"""
General purpose tools for building the borrowing grid and working with the
discrete income process of default models.
"""

import numpy as np

from DefaultKit.core import ConfigurationError
from DefaultKit.rewards import CRRAutility_floor


def make_borrowing_grid(bMin, bMax, bCount):
    """
    Make an equispaced grid of borrowing levels.

    Parameters
    ----------
    bMin : float
        Lowest borrowing level (negative values are savings).
    bMax : float
        Highest borrowing level.
    bCount : int
        Number of gridpoints.

    Returns
    -------
    bGrid : np.array
        Strictly increasing borrowing levels spanning [bMin, bMax].
    """
    if not bMin < bMax:
        raise ConfigurationError(
            f"Borrowing grid needs bMin < bMax, got bMin={bMin}, bMax={bMax}"
        )
    if int(bCount) != bCount or bCount < 2:
        raise ConfigurationError(
            f"Borrowing grid needs an integer bCount >= 2, got {bCount}"
        )
    return np.linspace(bMin, bMax, int(bCount))


def check_probabilities(probs, name="IncPrbs", atol=1e-10):
    """
    Raise ConfigurationError unless probs is a vector (or each row of a matrix
    is) of non-negative numbers summing to one.
    """
    probs = np.asarray(probs, dtype=float)
    if np.any(~np.isfinite(probs)) or np.any(probs < 0.0):
        raise ConfigurationError(f"{name} has negative or non-finite entries: {probs}")
    sums = np.sum(probs, axis=-1)
    if not np.allclose(sums, 1.0, rtol=0.0, atol=atol):
        raise ConfigurationError(f"{name} must sum to one, sums are {sums}")
    return probs


def make_iid_markov(IncPrbs):
    """
    Represent an i.i.d. income process as a Markov transition matrix whose rows
    are all equal to IncPrbs.
    """
    IncPrbs = np.asarray(IncPrbs, dtype=float)
    return np.tile(IncPrbs, (IncPrbs.size, 1))


def calc_stationary_dist(MrkvArray):
    """
    Find the stationary distribution of a discrete Markov process.

    Parameters
    ----------
    MrkvArray : np.array
        Square transition matrix; MrkvArray[s, s'] is the probability of moving
        from state s to state s'.

    Returns
    -------
    dist : np.array
        Probabilities pi with pi @ MrkvArray == pi.
    """
    StateCount = MrkvArray.shape[0]
    # Stack (P' - I) pi = 0 with sum(pi) = 1 and solve in the least squares sense
    A = np.vstack((MrkvArray.T - np.eye(StateCount), np.ones((1, StateCount))))
    b = np.zeros(StateCount + 1)
    b[-1] = 1.0
    dist = np.linalg.lstsq(A, b, rcond=None)[0]
    dist = np.maximum(dist, 0.0)
    return dist / np.sum(dist)


def calc_autarky_value(IncVals, CRRA, DiscFac, LowVal, DefCostFac=0.0, IncPrbs=None, MrkvArray=None):
    """
    Value of permanent exclusion from borrowing in each income state.  While
    excluded, income is reduced by the proportional cost DefCostFac.

    With i.i.d. income (IncPrbs) this is the perpetuity
    u(y) + DiscFac / (1 - DiscFac) * E[u(y')].  With a Markov transition matrix
    it solves Vd = u(y) + DiscFac * MrkvArray @ Vd.

    Returns
    -------
    Vdefault : np.array
        Autarky value for each income state.
    """
    uAut = CRRAutility_floor(np.asarray(IncVals, dtype=float) * (1.0 - DefCostFac), CRRA, LowVal)
    if MrkvArray is None:
        return uAut + DiscFac / (1.0 - DiscFac) * np.dot(IncPrbs, uAut)
    StateCount = uAut.size
    return np.linalg.solve(np.eye(StateCount) - DiscFac * np.asarray(MrkvArray), uAut)

"""
Jitted kernels for the Bellman operator of default models.  These work on
plain arrays so that numba can compile them in nopython mode.
"""

import numpy as np
from numba import njit, prange


@njit(cache=True)
def CRRAutility_floor_nb(c, rho, lowval):
    """
    Scalar CRRA utility, equal to lowval wherever c <= 0.
    """
    if c <= 0.0:
        return lowval
    if rho == 1.0:
        return np.log(c)
    return c ** (1.0 - rho) / (1.0 - rho)


@njit(parallel=True, cache=True)
def bellman_sweep_nb(bGrid, IncVals, q, EV, CRRA, DiscFac, LowVal, Vrepay, jBest):
    """
    Maximize the value of repaying over next period's borrowing level for every
    (current borrowing, income state) pair, writing into Vrepay and jBest.

    Parameters
    ----------
    bGrid : np.array
        Borrowing levels, size bCount.
    IncVals : np.array
        Income in each state, size StateCount.
    q : np.array
        Price of one unit of debt at each next period borrowing level.
    EV : np.array
        Expected value EV[j, s] of entering next period with borrowing bGrid[j]
        from income state s this period.
    CRRA, DiscFac, LowVal : float
        Risk aversion, discount factor and utility of infeasible consumption.
    Vrepay : np.array
        Output, shape (bCount, StateCount): value of the best borrowing choice.
    jBest : np.array
        Output, shape (bCount, StateCount): index of the best borrowing choice.
        The first maximizer wins ties.
    """
    bCount = bGrid.size
    StateCount = IncVals.size
    # Each (i, s) cell is written by exactly one iteration
    for n in prange(bCount * StateCount):
        i = n // StateCount
        s = n % StateCount
        vBest = -np.inf
        jArg = 0
        for j in range(bCount):
            c = IncVals[s] + q[j] * bGrid[j] - bGrid[i]
            v = CRRAutility_floor_nb(c, CRRA, LowVal) + DiscFac * EV[j, s]
            if v > vBest:
                vBest = v
                jArg = j
        Vrepay[i, s] = vBest
        jBest[i, s] = jArg

import functools

import numpy as np


def utility_floor(func):
    """
    Wraps a utility function so that non-positive consumption is mapped to a
    (very negative) floor value instead of nan or -inf.  The floor is passed
    as the last positional argument or as the keyword `lowval`.
    """

    @functools.wraps(func)
    def wrapper(c, rho, lowval):
        if np.ndim(c) == 0:
            if c <= 0.0:
                return lowval
            return func(c, rho)
        c = np.asarray(c, dtype=float)
        out = np.full(c.shape, lowval, dtype=float)
        pos = c > 0.0
        out[pos] = func(c[pos], rho)
        return out

    return wrapper


# ==============================================================================
# ============== Define utility functions        ===============================
# ==============================================================================


def CRRAutility(c, rho):
    """
    Evaluates constant relative risk aversion (CRRA) utility of consumption c
    given risk aversion parameter rho.

    Parameters
    ----------
    c : float or array
        Consumption value
    rho : float
        Risk aversion

    Returns
    -------
    u : float or array
        Utility

    Tests
    -----
    Test a value which should pass:
    >>> c, CRRA = 1.0, 2.0    # Set two values at once with Python syntax
    >>> CRRAutility(c=c, rho=CRRA)
    -1.0
    """
    if rho == 1:
        return np.log(c)
    return c ** (1.0 - rho) / (1.0 - rho)


def CRRAutilityP(c, rho):
    """
    Evaluates constant relative risk aversion (CRRA) marginal utility of consumption
    c given risk aversion parameter rho.

    Parameters
    ----------
    c : float
        Consumption value
    rho : float
        Risk aversion

    Returns
    -------
    uP : float or array
        Marginal utility
    """
    if rho == 1:
        return 1 / c
    return c**-rho


@utility_floor
def CRRAutility_floor(c, rho):
    """
    CRRA utility of consumption c, equal to `lowval` wherever c <= 0.  Called
    as CRRAutility_floor(c, rho, lowval).

    >>> CRRAutility_floor(-0.5, 2.0, -1e12)
    -1000000000000.0
    """
    return CRRAutility(c, rho)

"""
Tools for binary repay/default choices, with or without extreme value taste
shocks.  With shocks of scale alpha on each alternative, the expected value of
the choice is the closed form log-sum of the two alternatives and the choice
probabilities are logit.  alpha = np.inf is the no-shock (hard max) limit.
"""

import numpy as np

from DefaultKit.core import ComputationError


def calc_log_sum_choice_probs(Vrepay, Vdefault, alpha):
    """
    Returns the value of having the choice between repaying and defaulting, and
    the probability of repaying, given the choice specific values. The choice is
    degenerate if alpha is infinite.

    Parameters
    ----------
    Vrepay : np.array
        Value of repaying (and choosing next period's borrowing optimally).
    Vdefault : np.array or float
        Value of defaulting; broadcast against Vrepay, so an array indexed by
        income state only can be passed for a (borrowing, income) array Vrepay.
    alpha : float
        Scale of the extreme value taste shocks; larger is less noisy.

    Returns
    -------
    V : np.array
        The integrated value function.
    D : np.array
        Probability of repaying. In the degenerate case this is 1.0 where
        repaying is (weakly) optimal and 0.0 where defaulting is.
    """
    Vrepay = np.asarray(Vrepay, dtype=float)
    Vdefault = np.asarray(Vdefault, dtype=float)
    if not (np.all(np.isfinite(Vrepay)) and np.all(np.isfinite(Vdefault))):
        raise ComputationError("Choice specific values must be finite.")

    if np.isinf(alpha):
        # Ties go to repayment
        repay = Vrepay >= Vdefault
        V = np.where(repay, Vrepay, Vdefault)
        D = repay.astype(float)
    else:
        # Subtract the larger alternative before exponentiating, or exp overflows
        aVrepay = alpha * Vrepay
        aVdefault = alpha * Vdefault
        aVmax = np.maximum(aVrepay, aVdefault)
        expRepay = np.exp(aVrepay - aVmax)
        expsum = expRepay + np.exp(aVdefault - aVmax)
        D = expRepay / expsum
        V = aVmax / alpha + np.euler_gamma / alpha + np.log(expsum) / alpha

    if not (np.all(np.isfinite(V)) and np.all(np.isfinite(D))):
        raise ComputationError(
            "Choice values produced a non-finite value or repayment probability."
        )
    return V, D


def calc_log_sum(Vrepay, Vdefault, alpha):
    """
    Returns the value of having the choice between repaying and defaulting.
    See calc_log_sum_choice_probs.
    """
    return calc_log_sum_choice_probs(Vrepay, Vdefault, alpha)[0]


def calc_choice_probs(Vrepay, Vdefault, alpha):
    """
    Returns the probability of repaying. See calc_log_sum_choice_probs.
    """
    return calc_log_sum_choice_probs(Vrepay, Vdefault, alpha)[1]

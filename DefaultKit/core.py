"""
High-level functions and classes for solving default models by nested fixed
point iteration.  An AgentType solves its infinite horizon problem by iterating
a one period Bellman operator until successive solutions stop changing; a Market
wraps that agent, endogenizing an input to its problem (here, the bond price
schedule) and re-solving it until the input itself stops changing.
"""

# Set logging and define basic functions
import logging
from copy import deepcopy
from time import time

import numpy as np

logging.basicConfig(format="%(message)s")
_log = logging.getLogger("DefaultKit")
_log.setLevel(logging.ERROR)


def disable_logging():
    _log.disabled = True


def enable_logging():
    _log.disabled = False


def warnings():
    _log.setLevel(logging.WARNING)


def quiet():
    _log.setLevel(logging.ERROR)


def verbose():
    _log.setLevel(logging.INFO)


def set_verbosity_level(level):
    _log.setLevel(level)


class ConfigurationError(ValueError):
    """
    Raised before any solution attempt when the parameters describe a model
    that can't be solved (bad grid, bad probabilities, bad preferences...).
    """


class ConvergenceError(RuntimeError):
    """
    Raised when a fixed point loop exhausts its iteration cap.

    Parameters
    ----------
    loop : str
        Which loop failed: "value" for the Bellman iteration, "price" for the
        bond price iteration.
    residual : float
        The last distance achieved between successive iterates.
    iterations : int
        The number of iterations completed before giving up.
    """

    def __init__(self, loop, residual, iterations):
        self.loop = loop
        self.residual = residual
        self.iterations = iterations
        super().__init__(
            f"{loop} iteration did not converge after {iterations} iterations "
            f"(last distance = {residual})"
        )


class ComputationError(ArithmeticError):
    """
    Raised when a solution step produces a non-finite number.  Not recoverable
    by iterating further.
    """


class Model:
    """
    A class with special handling of parameters assignment.
    """

    def __init__(self):
        if not hasattr(self, "parameters"):
            self.parameters = {}

    def assign_parameters(self, **kwds):
        """
        Assign an arbitrary number of attributes to this agent.

        Parameters
        ----------
        **kwds : keyword arguments
            Any number of keyword arguments of the form key=value.  Each value
            will be assigned to the attribute named in self.

        Returns
        -------
        none
        """
        self.parameters.update(kwds)
        for key in kwds:
            setattr(self, key, kwds[key])

    def get_parameter(self, name):
        """
        Returns a parameter of this model

        Parameters
        ----------
        name : string
            The name of the parameter to get

        Returns
        -------
        value :
            The value of the parameter
        """
        return self.parameters[name]

    def __str__(self):
        type_ = type(self)
        module = type_.__module__
        qualname = type_.__qualname__

        s = f"<{module}.{qualname} object at {hex(id(self))}.\n"
        s += "Parameters:"

        for p in self.parameters:
            s += f"\n{p}: {self.parameters[p]}"

        s += ">"
        return s

    def describe(self):
        return self.__str__()


class AgentType(Model):
    """
    A superclass for agents with an infinite horizon dynamic problem.  Each model
    should specify its own subclass of AgentType, defining solve_one_period and
    solution_terminal (the initial guess of the iteration), and overwriting
    pre_solve, post_solve and check_restrictions as needed.  The class attribute
    time_inv names the attributes passed by keyword to solve_one_period, along
    with solution_next.

    Parameters
    ----------
    solution_terminal : MetricObject
        An initial guess of the solution; the iteration starts from here.
    tolerance : float
        Maximum acceptable "distance" between successive solutions to the
        one period problem in order for the solution to be considered as having
        "converged".
    max_cycles : int
        Number of one period iterations after which the solver gives up and
        raises ConvergenceError.
    """

    time_inv = []

    def __init__(self, solution_terminal=None, tolerance=0.000001, max_cycles=5000, **kwds):
        super().__init__()

        self.solution_terminal = solution_terminal  # NOQA
        self.solve_one_period = None  # NOQA
        self.tolerance = tolerance  # NOQA
        self.max_cycles = max_cycles  # NOQA
        self.assign_parameters(tolerance=tolerance, max_cycles=max_cycles, **kwds)

    def solve(self, verbose=False):
        """
        Solve the model for this instance of an agent type by iterating the
        one period problem to a fixed point.

        Parameters
        ----------
        verbose : boolean
            If True, solution progress is printed to screen.

        Returns
        -------
        none
        """
        self.pre_solve()  # Do pre-solution stuff
        self.solution = solve_agent(self, verbose)  # Iterate to the fixed point
        self.post_solve()  # Do post-solution stuff

    def check_restrictions(self):
        """
        A method to check that various restrictions are met for the model class.
        """
        return

    def pre_solve(self):
        """
        A method that is run immediately before the model is solved, to check inputs
        and to prepare the initial guess.
        """
        self.check_restrictions()
        return None

    def post_solve(self):
        """
        A method that is run immediately after the model is solved, to finalize
        the solution in some way.  Does nothing here.
        """
        return None


def solve_agent(agent, verbose):
    """
    Solve the infinite horizon dynamic model for one agent type by successive
    approximation. This function iterates on the agent's one period problem
    until the distance between successive solutions falls below the agent's
    tolerance, or fails once agent.max_cycles iterations have been completed.

    Parameters
    ----------
    agent : AgentType
        The AgentType whose dynamic problem is to be solved.
    verbose : boolean
        If True, solution progress is printed to screen.

    Returns
    -------
    solution : MetricObject
        The converged solution to the one period problem.
    """
    # The one period inputs don't change across cycles
    solve_dict = {parameter: getattr(agent, parameter) for parameter in agent.time_inv}

    solution_last = deepcopy(agent.solution_terminal)
    completed_cycles = 0
    solution_distance = np.inf
    if verbose:
        t_last = time()

    while solution_distance >= agent.tolerance:
        if completed_cycles >= agent.max_cycles:
            _log.error(
                "Value iteration stopped after %d cycles, distance = %g",
                completed_cycles,
                solution_distance,
            )
            raise ConvergenceError("value", solution_distance, completed_cycles)

        solution_now = agent.solve_one_period(solution_next=solution_last, **solve_dict)
        solution_distance = solution_now.distance(solution_last)
        completed_cycles += 1

        # Add these attributes so users can query them to see if solution is ready
        agent.solution_distance = solution_distance
        agent.completed_cycles = completed_cycles
        _log.debug(
            "Cycle %d: solution distance = %g", completed_cycles, solution_distance
        )

        # Display progress if requested
        if verbose:
            t_now = time()
            print(
                "Finished cycle #"
                + str(completed_cycles)
                + " in "
                + str(t_now - t_last)
                + " seconds, solution distance = "
                + str(solution_distance)
            )
            t_last = t_now

        solution_last = solution_now

    return solution_last


class Market(Model):
    """
    A superclass to represent a market that clears by finding a fixed point in
    some object the agent takes as given.  Each loop solves the agent's problem
    given the current object, asks update_dynamics for a new version of it
    implied by the agent's solution, and compares the two with calc_distance.

    Parameters
    ----------
    agent : AgentType
        The agent whose problem depends on the market object.
    tolerance : float
        Minimum acceptable distance between successive market objects.
    max_loops : int
        Maximum number of times to try to find the market object before
        raising ConvergenceError.
    """

    def __init__(self, agent, tolerance=0.000001, max_loops=1000, **kwds):
        super().__init__()

        self.agent = agent
        self.dynamics = None
        self.tolerance = tolerance
        self.max_loops = max_loops
        self.assign_parameters(tolerance=tolerance, max_loops=max_loops, **kwds)

    def solve_agents(self, verbose=False):
        """
        Solves the agent's problem given the current market object.
        """
        self.agent.solve(verbose=verbose)

    def sow(self):
        """
        Distributes the current market object to the agent.  Does nothing here.
        """
        return None

    def update_dynamics(self):
        """
        Computes a new market object from the agent's solution.  Must be
        overwritten by subclasses.
        """
        raise NotImplementedError()

    def calc_distance(self, new_dynamics, old_dynamics):
        """
        Distance between successive market objects.
        """
        return new_dynamics.distance(old_dynamics)

    def is_converged(self, distance):
        return distance < self.tolerance

    def solve(self, verbose=False):
        """
        "Solves" the market by finding a market object such that when the agent
        takes it as given, its actions generate the same object.

        Parameters
        ----------
        verbose : boolean
            Passed on to the agent's solver.

        Returns
        -------
        None
        """
        completed_loops = 0
        distance = np.inf

        while True:  # Loop until the market object converges or we hit the loop cap
            if completed_loops >= self.max_loops:
                _log.error(
                    "Market stopped after %d loops, distance = %g",
                    completed_loops,
                    distance,
                )
                raise ConvergenceError("price", distance, completed_loops)

            self.sow()
            self.solve_agents(verbose)  # Solve the agent's problem
            old_dynamics = self.dynamics
            new_dynamics = self.update_dynamics()  # Find a new market object

            distance = self.calc_distance(new_dynamics, old_dynamics)
            completed_loops += 1
            self.dynamics = new_dynamics
            self.distance = distance
            self.completed_loops = completed_loops
            _log.info("Market loop %d: distance = %g", completed_loops, distance)

            if self.is_converged(distance):
                break

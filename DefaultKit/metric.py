import numpy as np


def distance_arrays(arr_a, arr_b):
    """
    If both inputs are array-like, return the maximum absolute difference b/w
    corresponding elements (if same shape). If they don't have the same shape,
    the iterates can't be compared and a large distance is returned.
    """
    if arr_a.shape != arr_b.shape:
        return 1000.0
    if arr_a.size == 0:
        return 0.0
    return float(np.max(np.abs(arr_a - arr_b)))


def distance_metric(thing_a, thing_b):
    """
    A sup-norm "distance" between two iterates of a fixed point problem.

    Parameters
    ----------
    thing_a : object
        A number, an array, or a MetricObject.
    thing_b : object
        Another object of the same kind.

    Returns
    -------
    distance : float
        The distance between thing_a and thing_b.
    """
    # If both inputs are numbers, return their difference
    if isinstance(thing_a, (int, float)) and isinstance(thing_b, (int, float)):
        return abs(thing_a - thing_b)

    if isinstance(thing_a, np.ndarray) and isinstance(thing_b, np.ndarray):
        return distance_arrays(thing_a, thing_b)

    if isinstance(thing_a, MetricObject) and isinstance(thing_a, type(thing_b)):
        return thing_a.distance(thing_b)

    # Failsafe: the inputs are very far apart
    return 1000.0


def count_differences(arr_a, arr_b):
    """
    Number of entries that differ between two arrays of the same shape.  This is
    the distance used when iterates are discrete and a fixed point is reached
    only when nothing changes at all.
    """
    if arr_a.shape != arr_b.shape:
        return max(arr_a.size, arr_b.size)
    return int(np.sum(arr_a != arr_b))


class MetricObject:
    """
    A superclass for iterates of the solvers in DefaultKit.  Subclasses name
    the attributes that determine convergence in distance_criteria.
    """

    distance_criteria = []  # This should be overwritten by subclasses.

    def distance(self, other):
        """
        A generic distance method, which requires the existence of an attribute
        called distance_criteria, giving a list of strings naming the attributes
        to be considered by the distance metric.

        Parameters
        ----------
        other : object
            Another object to compare this instance to.

        Returns
        -------
        (unnamed) : float
            The largest distance among the attributes in distance_criteria.
        """
        try:
            return max(
                distance_metric(getattr(self, attr_name), getattr(other, attr_name))
                for attr_name in self.distance_criteria
            )
        except (AttributeError, ValueError):
            return 1000.0

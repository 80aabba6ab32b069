"""
Utilities
=========

Miscellaneous utility functions.

.. autosummary::
   toList
   interpolate

Reference
-----------

.. autofunction:: toList
.. autofunction:: interpolate
"""
from collections.abc import Sequence
from typing import Iterable

import numpy as np

from scvx.typing import FloatArray, Matrix


def _iterate(val: object) -> Iterable:
    """
    A generator that iterates on the input, ``val``. If the input is a string,
    it is yielded without iterating.
    """
    if isinstance(val, str):
        yield val
    else:
        try:
            for item in val:  # type: ignore
                yield item
        except TypeError:
            yield val


def toList(val: object) -> list:
    """
    Convert an object to a list

    Args:
        val: the input

    Returns:
        a list containing the input

    Examples:
        >>> toList(1.23)
            [1.23]
        >>> toList(np.array([1,2,3]))
            [1, 2, 3]
    """
    return list(_iterate(val))


def interpolate(start: FloatArray, end: FloatArray, K: int) -> Matrix:
    """
    Linearly interpolate between two vectors

    Args:
        start: the first column
        end: the last column
        K: the number of columns

    Returns:
        an N-by-K matrix whose first column is ``start``, last column is ``end``,
        and intermediate columns are evenly spaced between the two

    Raises:
        ValueError: if ``start`` and ``end`` have different sizes or ``K < 2``
    """
    start_ = np.array(start, ndmin=1, dtype=float)
    end_ = np.array(end, ndmin=1, dtype=float)
    if not start_.shape == end_.shape:
        raise ValueError(
            f"start ({start_.shape}) and end ({end_.shape}) must have the same shape"
        )
    if K < 2:
        raise ValueError("K must be at least 2")

    alpha = np.linspace(0.0, 1.0, K)
    return np.outer(start_, 1.0 - alpha) + np.outer(end_, alpha)


def repr(cls: object, *attributes: str) -> str:
    """
    Simple repr method for a class with the format

      <ClassName:
        attr1: repr(attr1),
        attr2: repr(attr2),
        ...
      >

    Args:
        cls: the object
        attributes: the names of the attributes to include in the repr

    Returns:
        The repr
    """
    out = f"<{cls.__class__.__name__}:"
    for attr in attributes:
        out += "\n  {!s} = {!r},".format(attr, getattr(cls, attr))
    out += "\n>"
    return out

#!/usr/bin/env python3
"""First-order Markov model of untemplated insertions.

The nucleotides inserted at a junction are modeled by a first-nucleotide
bias vector (length 4) and a transition matrix ``markov[x, y]`` giving
p(next = y | previous = x). Both are indexed with ``constants.NUCLEOTIDES``.
"""

import numpy as np

from righor import util


def likelihood_markov(
    first_nt_bias: np.ndarray,
    markov_coefficients: np.ndarray,
    sequence: str,
) -> float:
    """Return the probability of ``sequence`` under the Markov chain.

    The empty sequence has likelihood 1.
    """
    if len(sequence) == 0:
        return 1.0
    indices = util.nucleotide_indices(sequence)
    likelihood = float(first_nt_bias[indices[0]])
    for prev, nxt in zip(indices[:-1], indices[1:]):
        likelihood *= markov_coefficients[prev, nxt]
    return float(likelihood)


def update_markov_probas(
    first_nt_bias: np.ndarray,
    markov_coefficients: np.ndarray,
    sequence: str,
    weight: float,
) -> None:
    """Add ``weight`` to the counts observed in ``sequence``, in place.

    The bias entry of the first nucleotide and every observed transition
    (prev, next) are incremented. No-op for the empty sequence.
    """
    if len(sequence) == 0:
        return
    indices = util.nucleotide_indices(sequence)
    first_nt_bias[indices[0]] += weight
    for prev, nxt in zip(indices[:-1], indices[1:]):
        markov_coefficients[prev, nxt] += weight

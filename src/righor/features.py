#!/usr/bin/env python3
"""Feature tables: the probability tables of one recombination scenario.

A feature table holds every conditional distribution needed to score a
recombination event (gene choice, deletions, insertion lengths and
insertion composition). The same container is used for two purposes by the
EM engine:

- normalized tables, used to compute likelihoods
- accumulators of expected event counts, which are not normalized

Each table class declares the axes every field is normalized over in
``NORMALIZATION_AXES``. Axis conventions follow IGoR: the event axes come
first and the conditioning gene is the last axis, e.g. ``delv[dv, v]``.
"""

import logging
from dataclasses import dataclass, fields
from typing import ClassVar, Dict, TypeVar

import numpy as np

from righor import constants
from righor.config import ModelDimensions
from righor.normalize import AxisSpec, normalize_distribution

LOGGER = logging.getLogger(__name__)

F = TypeVar("F", bound="Features")


@dataclass
class Features:
    """Base class for feature tables made of numpy arrays."""

    NORMALIZATION_AXES: ClassVar[Dict[str, AxisSpec]] = {}

    def normalize(self: F) -> F:
        """Return a new table where every distribution sums to one.

        The table itself is not modified. Distributions conditioned on a
        parent that received no weight become uniform.
        """
        return type(self)(
            **{
                f.name: normalize_distribution(
                    getattr(self, f.name), self.NORMALIZATION_AXES[f.name]
                )
                for f in fields(self)
            }
        )

    def zeros_like(self: F) -> F:
        """Return a table with the same shapes filled with zeros."""
        return type(self)(
            **{
                f.name: np.zeros_like(getattr(self, f.name))
                for f in fields(self)
            }
        )

    def copy(self: F) -> F:
        return type(self)(
            **{f.name: np.array(getattr(self, f.name)) for f in fields(self)}
        )

    def add(self: F, other: F) -> F:
        """Add ``other`` to this table in place and return self."""
        for f in fields(self):
            mine = getattr(self, f.name)
            theirs = getattr(other, f.name)
            if mine.shape != theirs.shape:
                raise ValueError(
                    f"Cannot add {f.name} of shape {theirs.shape} to "
                    f"{f.name} of shape {mine.shape}"
                )
            mine += theirs
        return self

    def scale(self: F, factor: float) -> F:
        """Multiply every table by ``factor`` in place and return self."""
        for f in fields(self):
            getattr(self, f.name)[...] *= factor
        return self

    def total_weight(self) -> float:
        """Total mass of the table, as seen by the gene-choice marginal."""
        return float(getattr(self, fields(self)[0].name).sum())


@dataclass
class FeaturesVDJ(Features):
    """Probability tables of a VDJ recombination scenario.

    Attributes:
        v: p(V), shape ``[v]``.
        delv: p(delV | V), shape ``[dv, v]``.
        dj: p(D, J), shape ``[d, j]``.
        delj: p(delJ | J), shape ``[dj, j]``.
        deld: p(delD3, delD5 | D), shape ``[dd3, dd5, d]``.
        insvd: p(number of VD insertions), shape ``[n]``.
        insdj: p(number of DJ insertions), shape ``[n]``.
        first_nt_bias_vd: p(first VD inserted nucleotide), shape ``[4]``.
        markov_coefficients_vd: VD transitions, shape ``[4, 4]``.
        first_nt_bias_dj: p(first DJ inserted nucleotide), shape ``[4]``.
        markov_coefficients_dj: DJ transitions, shape ``[4, 4]``.
    """

    v: np.ndarray
    delv: np.ndarray
    dj: np.ndarray
    delj: np.ndarray
    deld: np.ndarray
    insvd: np.ndarray
    insdj: np.ndarray
    first_nt_bias_vd: np.ndarray
    markov_coefficients_vd: np.ndarray
    first_nt_bias_dj: np.ndarray
    markov_coefficients_dj: np.ndarray

    NORMALIZATION_AXES: ClassVar[Dict[str, AxisSpec]] = {
        "v": None,
        "delv": 0,
        "dj": (0, 1),
        "delj": 0,
        "deld": (0, 1),
        "insvd": None,
        "insdj": None,
        "first_nt_bias_vd": None,
        "markov_coefficients_vd": 1,
        "first_nt_bias_dj": None,
        "markov_coefficients_dj": 1,
    }

    @classmethod
    def zeros(cls, dims: ModelDimensions) -> "FeaturesVDJ":
        """Return an all-zero table sized by ``dims``."""
        if dims.nb_d < 1:
            raise ValueError(
                f"A VDJ model needs at least one D gene; got {dims.nb_d}"
            )
        n_nt = constants.N_NUCLEOTIDES
        return cls(
            v=np.zeros(dims.nb_v),
            delv=np.zeros((dims.max_del_v + 1, dims.nb_v)),
            dj=np.zeros((dims.nb_d, dims.nb_j)),
            delj=np.zeros((dims.max_del_j + 1, dims.nb_j)),
            deld=np.zeros(
                (dims.max_del_d3 + 1, dims.max_del_d5 + 1, dims.nb_d)
            ),
            insvd=np.zeros(dims.max_ins + 1),
            insdj=np.zeros(dims.max_ins + 1),
            first_nt_bias_vd=np.zeros(n_nt),
            markov_coefficients_vd=np.zeros((n_nt, n_nt)),
            first_nt_bias_dj=np.zeros(n_nt),
            markov_coefficients_dj=np.zeros((n_nt, n_nt)),
        )


@dataclass
class FeaturesVJ(Features):
    """Probability tables of a VJ recombination scenario (no D gene).

    Attributes:
        v: p(V), shape ``[v]``.
        j: p(J | V), shape ``[j, v]``.
        delv: p(delV | V), shape ``[dv, v]``.
        delj: p(delJ | J), shape ``[dj, j]``.
        insvj: p(number of VJ insertions), shape ``[n]``.
        first_nt_bias_vj: p(first inserted nucleotide), shape ``[4]``.
        markov_coefficients_vj: transitions, shape ``[4, 4]``.
    """

    v: np.ndarray
    j: np.ndarray
    delv: np.ndarray
    delj: np.ndarray
    insvj: np.ndarray
    first_nt_bias_vj: np.ndarray
    markov_coefficients_vj: np.ndarray

    NORMALIZATION_AXES: ClassVar[Dict[str, AxisSpec]] = {
        "v": None,
        "j": 0,
        "delv": 0,
        "delj": 0,
        "insvj": None,
        "first_nt_bias_vj": None,
        "markov_coefficients_vj": 1,
    }

    @classmethod
    def zeros(cls, dims: ModelDimensions) -> "FeaturesVJ":
        """Return an all-zero table sized by ``dims`` (``nb_d`` is ignored)."""
        n_nt = constants.N_NUCLEOTIDES
        return cls(
            v=np.zeros(dims.nb_v),
            j=np.zeros((dims.nb_j, dims.nb_v)),
            delv=np.zeros((dims.max_del_v + 1, dims.nb_v)),
            delj=np.zeros((dims.max_del_j + 1, dims.nb_j)),
            insvj=np.zeros(dims.max_ins + 1),
            first_nt_bias_vj=np.zeros(n_nt),
            markov_coefficients_vj=np.zeros((n_nt, n_nt)),
        )

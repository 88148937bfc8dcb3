#!/usr/bin/env python3
"""Recombination model parameters.

``ModelVDJ`` and ``ModelVJ`` hold the probability tables of a generative
recombination model, named after their IGoR counterparts. They are the
input of the inference engine (an initial guess, usually uniform) and its
output (the trained tables, see ``Marginals.to_model``).

Reading and writing IGoR parameter files is handled elsewhere; models are
built here from arrays or from ``config.ModelDimensions``.
"""

import logging
from dataclasses import dataclass, field

import numpy as np

from righor import constants
from righor.config import ModelDimensions
from righor.features import FeaturesVDJ, FeaturesVJ

LOGGER = logging.getLogger(__name__)


def _uniform_bias() -> np.ndarray:
    return np.full(constants.N_NUCLEOTIDES, 1.0 / constants.N_NUCLEOTIDES)


def _uniform_markov() -> np.ndarray:
    n_nt = constants.N_NUCLEOTIDES
    return np.full((n_nt, n_nt), 1.0 / n_nt)


def _check_shape(name: str, array: np.ndarray, expected: tuple) -> None:
    if array.shape != expected:
        raise ValueError(
            f"{name} has shape {array.shape}; expected {expected}"
        )


@dataclass(frozen=True)
class ModelVDJ:
    """Probability tables of a VDJ model.

    Attributes:
        p_v: p(V), shape ``[v]``.
        p_dj: p(D, J), shape ``[d, j]``.
        p_del_v_given_v: p(delV | V), shape ``[dv, v]``.
        p_del_j_given_j: p(delJ | J), shape ``[dj, j]``.
        p_del_d3_del_d5: p(delD3, delD5 | D), shape ``[dd3, dd5, d]``.
        p_ins_vd: p(number of VD insertions), shape ``[n]``.
        p_ins_dj: p(number of DJ insertions), shape ``[n]``.
        first_nt_bias_ins_vd: first VD inserted nucleotide, shape ``[4]``.
        markov_coefficients_vd: VD transition matrix, shape ``[4, 4]``.
        first_nt_bias_ins_dj: first DJ inserted nucleotide, shape ``[4]``.
        markov_coefficients_dj: DJ transition matrix, shape ``[4, 4]``.

    The insertion composition tables default to uniform.
    """

    p_v: np.ndarray
    p_dj: np.ndarray
    p_del_v_given_v: np.ndarray
    p_del_j_given_j: np.ndarray
    p_del_d3_del_d5: np.ndarray
    p_ins_vd: np.ndarray
    p_ins_dj: np.ndarray
    first_nt_bias_ins_vd: np.ndarray = field(default_factory=_uniform_bias)
    markov_coefficients_vd: np.ndarray = field(default_factory=_uniform_markov)
    first_nt_bias_ins_dj: np.ndarray = field(default_factory=_uniform_bias)
    markov_coefficients_dj: np.ndarray = field(default_factory=_uniform_markov)

    def __post_init__(self) -> None:
        for name in self.__dataclass_fields__:
            object.__setattr__(
                self, name, np.asarray(getattr(self, name), dtype=np.float64)
            )

        if self.p_v.ndim != 1:
            raise ValueError(f"p_v must be 1D; got shape {self.p_v.shape}")
        nb_v = self.p_v.shape[0]
        if self.p_dj.ndim != 2:
            raise ValueError(f"p_dj must be 2D; got shape {self.p_dj.shape}")
        nb_d, nb_j = self.p_dj.shape
        if self.p_del_v_given_v.ndim != 2:
            raise ValueError("p_del_v_given_v must be 2D")
        if self.p_del_j_given_j.ndim != 2:
            raise ValueError("p_del_j_given_j must be 2D")
        if self.p_del_d3_del_d5.ndim != 3:
            raise ValueError("p_del_d3_del_d5 must be 3D")
        _check_shape(
            "p_del_v_given_v",
            self.p_del_v_given_v,
            (self.p_del_v_given_v.shape[0], nb_v),
        )
        _check_shape(
            "p_del_j_given_j",
            self.p_del_j_given_j,
            (self.p_del_j_given_j.shape[0], nb_j),
        )
        _check_shape(
            "p_del_d3_del_d5",
            self.p_del_d3_del_d5,
            self.p_del_d3_del_d5.shape[:2] + (nb_d,),
        )
        for name in ("p_ins_vd", "p_ins_dj"):
            if getattr(self, name).ndim != 1:
                raise ValueError(f"{name} must be 1D")
        n_nt = constants.N_NUCLEOTIDES
        for name in ("first_nt_bias_ins_vd", "first_nt_bias_ins_dj"):
            _check_shape(name, getattr(self, name), (n_nt,))
        for name in ("markov_coefficients_vd", "markov_coefficients_dj"):
            _check_shape(name, getattr(self, name), (n_nt, n_nt))

        LOGGER.debug(
            f"Initialized ModelVDJ with {nb_v} V, {nb_d} D and {nb_j} J genes"
        )

    @property
    def dimensions(self) -> ModelDimensions:
        nb_d, nb_j = self.p_dj.shape
        return ModelDimensions(
            nb_v=self.p_v.shape[0],
            nb_j=nb_j,
            nb_d=nb_d,
            max_del_v=self.p_del_v_given_v.shape[0] - 1,
            max_del_j=self.p_del_j_given_j.shape[0] - 1,
            max_del_d3=self.p_del_d3_del_d5.shape[0] - 1,
            max_del_d5=self.p_del_d3_del_d5.shape[1] - 1,
            max_ins=max(self.p_ins_vd.shape[0], self.p_ins_dj.shape[0]) - 1,
        )

    @classmethod
    def from_features(cls, features: FeaturesVDJ) -> "ModelVDJ":
        return cls(
            p_v=features.v.copy(),
            p_dj=features.dj.copy(),
            p_del_v_given_v=features.delv.copy(),
            p_del_j_given_j=features.delj.copy(),
            p_del_d3_del_d5=features.deld.copy(),
            p_ins_vd=features.insvd.copy(),
            p_ins_dj=features.insdj.copy(),
            first_nt_bias_ins_vd=features.first_nt_bias_vd.copy(),
            markov_coefficients_vd=features.markov_coefficients_vd.copy(),
            first_nt_bias_ins_dj=features.first_nt_bias_dj.copy(),
            markov_coefficients_dj=features.markov_coefficients_dj.copy(),
        )

    def to_features(self) -> FeaturesVDJ:
        return FeaturesVDJ(
            v=self.p_v.copy(),
            delv=self.p_del_v_given_v.copy(),
            dj=self.p_dj.copy(),
            delj=self.p_del_j_given_j.copy(),
            deld=self.p_del_d3_del_d5.copy(),
            insvd=self.p_ins_vd.copy(),
            insdj=self.p_ins_dj.copy(),
            first_nt_bias_vd=self.first_nt_bias_ins_vd.copy(),
            markov_coefficients_vd=self.markov_coefficients_vd.copy(),
            first_nt_bias_dj=self.first_nt_bias_ins_dj.copy(),
            markov_coefficients_dj=self.markov_coefficients_dj.copy(),
        )

    @classmethod
    def from_dimensions(cls, dims: ModelDimensions) -> "ModelVDJ":
        """Return a uniform model sized by ``dims``."""
        # all-zero tables normalize to uniform ones
        return cls.from_features(FeaturesVDJ.zeros(dims).normalize())

    def uniform(self) -> "ModelVDJ":
        """Return a model with the same shapes and uniform tables."""
        return self.from_features(self.to_features().zeros_like().normalize())


@dataclass(frozen=True)
class ModelVJ:
    """Probability tables of a VJ model.

    Attributes:
        p_v: p(V), shape ``[v]``.
        p_j_given_v: p(J | V), shape ``[j, v]``.
        p_del_v_given_v: p(delV | V), shape ``[dv, v]``.
        p_del_j_given_j: p(delJ | J), shape ``[dj, j]``.
        p_ins_vj: p(number of VJ insertions), shape ``[n]``.
        first_nt_bias_ins_vj: first inserted nucleotide, shape ``[4]``.
        markov_coefficients_vj: transition matrix, shape ``[4, 4]``.
    """

    p_v: np.ndarray
    p_j_given_v: np.ndarray
    p_del_v_given_v: np.ndarray
    p_del_j_given_j: np.ndarray
    p_ins_vj: np.ndarray
    first_nt_bias_ins_vj: np.ndarray = field(default_factory=_uniform_bias)
    markov_coefficients_vj: np.ndarray = field(default_factory=_uniform_markov)

    def __post_init__(self) -> None:
        for name in self.__dataclass_fields__:
            object.__setattr__(
                self, name, np.asarray(getattr(self, name), dtype=np.float64)
            )

        if self.p_v.ndim != 1:
            raise ValueError(f"p_v must be 1D; got shape {self.p_v.shape}")
        nb_v = self.p_v.shape[0]
        if self.p_j_given_v.ndim != 2:
            raise ValueError("p_j_given_v must be 2D")
        nb_j = self.p_j_given_v.shape[0]
        _check_shape("p_j_given_v", self.p_j_given_v, (nb_j, nb_v))
        if self.p_del_v_given_v.ndim != 2 or self.p_del_j_given_j.ndim != 2:
            raise ValueError("Deletion tables must be 2D")
        _check_shape(
            "p_del_v_given_v",
            self.p_del_v_given_v,
            (self.p_del_v_given_v.shape[0], nb_v),
        )
        _check_shape(
            "p_del_j_given_j",
            self.p_del_j_given_j,
            (self.p_del_j_given_j.shape[0], nb_j),
        )
        if self.p_ins_vj.ndim != 1:
            raise ValueError("p_ins_vj must be 1D")
        n_nt = constants.N_NUCLEOTIDES
        _check_shape("first_nt_bias_ins_vj", self.first_nt_bias_ins_vj, (n_nt,))
        _check_shape(
            "markov_coefficients_vj", self.markov_coefficients_vj, (n_nt, n_nt)
        )

        LOGGER.debug(f"Initialized ModelVJ with {nb_v} V and {nb_j} J genes")

    @property
    def dimensions(self) -> ModelDimensions:
        return ModelDimensions(
            nb_v=self.p_v.shape[0],
            nb_j=self.p_j_given_v.shape[0],
            max_del_v=self.p_del_v_given_v.shape[0] - 1,
            max_del_j=self.p_del_j_given_j.shape[0] - 1,
            max_ins=self.p_ins_vj.shape[0] - 1,
        )

    @classmethod
    def from_features(cls, features: FeaturesVJ) -> "ModelVJ":
        return cls(
            p_v=features.v.copy(),
            p_j_given_v=features.j.copy(),
            p_del_v_given_v=features.delv.copy(),
            p_del_j_given_j=features.delj.copy(),
            p_ins_vj=features.insvj.copy(),
            first_nt_bias_ins_vj=features.first_nt_bias_vj.copy(),
            markov_coefficients_vj=features.markov_coefficients_vj.copy(),
        )

    def to_features(self) -> FeaturesVJ:
        return FeaturesVJ(
            v=self.p_v.copy(),
            j=self.p_j_given_v.copy(),
            delv=self.p_del_v_given_v.copy(),
            delj=self.p_del_j_given_j.copy(),
            insvj=self.p_ins_vj.copy(),
            first_nt_bias_vj=self.first_nt_bias_ins_vj.copy(),
            markov_coefficients_vj=self.markov_coefficients_vj.copy(),
        )

    @classmethod
    def from_dimensions(cls, dims: ModelDimensions) -> "ModelVJ":
        """Return a uniform model sized by ``dims``."""
        return cls.from_features(FeaturesVJ.zeros(dims).normalize())

    def uniform(self) -> "ModelVJ":
        """Return a model with the same shapes and uniform tables."""
        return self.from_features(self.to_features().zeros_like().normalize())

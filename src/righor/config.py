#!/usr/bin/env python3
"""Configuration dataclasses for righor inference.

This module provides configuration dataclasses that consolidate the
parameters of a training run and the dimensions of a recombination model,
making it easier to pass configuration through the EM engine and the CLI.
"""

from dataclasses import dataclass

from righor import constants


@dataclass(frozen=True)
class InferenceParams:
    """Configuration for the expectation-maximization loop.

    Attributes:
        min_likelihood: Pruning threshold. Recombination scenarios whose
            partial likelihood falls below it are not explored further.
            0 disables pruning.
        nb_rounds_em: Number of EM rounds. 0 leaves the model unchanged.
        num_workers: Number of threads used for the maximization step.
        posterior_weights: If True, each sequence contributes its posterior
            event probabilities (scenario likelihoods divided by the
            sequence likelihood) instead of the raw scenario likelihoods.
    """

    min_likelihood: float = constants.DEFAULT_MIN_LIKELIHOOD
    nb_rounds_em: int = constants.DEFAULT_NB_ROUNDS_EM
    num_workers: int = constants.DEFAULT_NUM_WORKERS
    posterior_weights: bool = False

    def __post_init__(self) -> None:
        if self.min_likelihood < 0:
            raise ValueError(
                "min_likelihood must be non-negative; "
                f"got {self.min_likelihood}"
            )
        if self.nb_rounds_em < 0:
            raise ValueError(
                f"nb_rounds_em must be non-negative; got {self.nb_rounds_em}"
            )
        if self.num_workers < 1:
            raise ValueError(
                f"num_workers must be at least 1; got {self.num_workers}"
            )


@dataclass(frozen=True)
class ModelDimensions:
    """Sizes of the probability tables of a recombination model.

    Deletion and insertion maxima are inclusive, so a table for
    ``max_del_v = 3`` has four rows (0, 1, 2 and 3 deletions).

    Attributes:
        nb_v: Number of V genes.
        nb_j: Number of J genes.
        nb_d: Number of D genes (ignored for VJ models).
        max_del_v: Maximum number of deletions on the V 3' end.
        max_del_j: Maximum number of deletions on the J 5' end.
        max_del_d3: Maximum number of deletions on the D 3' end.
        max_del_d5: Maximum number of deletions on the D 5' end.
        max_ins: Maximum number of nucleotides inserted at a junction.
    """

    nb_v: int
    nb_j: int
    nb_d: int = 0
    max_del_v: int = constants.DEFAULT_MAX_DEL_V
    max_del_j: int = constants.DEFAULT_MAX_DEL_J
    max_del_d3: int = constants.DEFAULT_MAX_DEL_D
    max_del_d5: int = constants.DEFAULT_MAX_DEL_D
    max_ins: int = constants.DEFAULT_MAX_INS

    def __post_init__(self) -> None:
        for name in ("nb_v", "nb_j"):
            if getattr(self, name) < 1:
                raise ValueError(
                    f"{name} must be at least 1; got {getattr(self, name)}"
                )
        for name in (
            "nb_d",
            "max_del_v",
            "max_del_j",
            "max_del_d3",
            "max_del_d5",
            "max_ins",
        ):
            if getattr(self, name) < 0:
                raise ValueError(
                    f"{name} must be non-negative; got {getattr(self, name)}"
                )

#!/usr/bin/env python3
"""Expectation-maximization engine for recombination models.

The engine keeps two feature tables:

- ``marginals``: the current, normalized model. Every likelihood computed
  while enumerating recombination scenarios reads from it.
- ``dirty_marginals``: the expected event counts accumulated during a
  maximization step. It is not normalized.

One EM round enumerates the recombination scenarios compatible with every
aligned sequence, accumulates their likelihoods into ``dirty_marginals``
(maximization step), then replaces ``marginals`` by the normalized
accumulator (expectation step).

Scenarios are pruned as soon as a partial likelihood falls below
``InferenceParams.min_likelihood``. Every factor is a probability read from
the normalized tables, so a partial product bounds the likelihood of all
the scenarios sharing its prefix.

Key components:
- Marginals: EM loop shared by every recombination scenario
- MarginalsVDJ: scenario enumeration for VDJ sequences
- MarginalsVJ: scenario enumeration for VJ sequences (no D gene)
"""

import logging
import math
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Generic, List, Optional, Sequence, Tuple, TypeVar, Union

from righor.config import InferenceParams
from righor.features import Features, FeaturesVDJ, FeaturesVJ
from righor.markov import likelihood_markov, update_markov_probas
from righor.model import ModelVDJ, ModelVJ
from righor.sequence import DAlignment, SequenceVDJ, SequenceVJ, VJAlignment

LOGGER = logging.getLogger(__name__)

F = TypeVar("F", bound=Features)
S = TypeVar("S")


class Marginals(ABC, Generic[F, S]):
    """EM loop over a recombination scenario.

    Subclasses enumerate the scenarios of one aligned sequence
    (``update_marginals``) and record each of them (``dirty_update``).
    ``to_model`` reads the current tables back as a model.
    """

    def __init__(self, features: F) -> None:
        self.marginals: F = features.normalize()
        self.dirty_marginals: F = self.marginals.zeros_like()

    @abstractmethod
    def update_marginals(
        self,
        sequence: S,
        inference_params: InferenceParams,
        accumulator: Optional[F] = None,
    ) -> float:
        """Accumulate the scenarios of ``sequence``; return its likelihood."""

    @abstractmethod
    def dirty_update(self, *args, **kwargs) -> None:
        """Add the likelihood of one scenario to every event it uses."""

    @abstractmethod
    def to_model(self) -> Union[ModelVDJ, ModelVJ]:
        """Return the current tables as a model."""

    def _accumulate(
        self,
        sequences: Sequence[S],
        inference_params: InferenceParams,
        accumulator: F,
    ) -> Tuple[float, int]:
        """Accumulate ``sequences`` into ``accumulator``.

        Returns the summed log-likelihood of the sequences and the number of
        sequences that no scenario could explain.
        """
        log_likelihood = 0.0
        nb_unexplained = 0
        for sequence in sequences:
            if inference_params.posterior_weights:
                local = accumulator.zeros_like()
                likelihood = self.update_marginals(
                    sequence, inference_params, local
                )
                if likelihood > 0:
                    accumulator.add(local.scale(1.0 / likelihood))
            else:
                likelihood = self.update_marginals(
                    sequence, inference_params, accumulator
                )

            if likelihood > 0:
                log_likelihood += math.log(likelihood)
            else:
                nb_unexplained += 1
        return log_likelihood, nb_unexplained

    def maximization_step(
        self, sequences: Sequence[S], inference_params: InferenceParams
    ) -> float:
        """Accumulate the expected event counts of ``sequences``.

        ``dirty_marginals`` is reset before accumulating, so it only holds
        the counts of this step. With several workers, each thread fills its
        own partial table and the partial tables are summed at the end.

        Returns:
            The log-likelihood of the sequences that received a non-zero
            likelihood, or ``-inf`` when none of them did.
        """
        sequences = list(sequences)
        self.dirty_marginals = self.marginals.zeros_like()
        num_workers = min(inference_params.num_workers, max(len(sequences), 1))

        if num_workers == 1:
            log_likelihood, nb_unexplained = self._accumulate(
                sequences, inference_params, self.dirty_marginals
            )
        else:
            chunks = [sequences[i::num_workers] for i in range(num_workers)]
            partials = [self.marginals.zeros_like() for _ in chunks]
            LOGGER.debug(
                f"Running maximization step on {len(sequences)} sequences "
                f"with {num_workers} workers"
            )
            with ThreadPoolExecutor(max_workers=num_workers) as executor:
                futures = [
                    executor.submit(
                        self._accumulate, chunk, inference_params, partial
                    )
                    for chunk, partial in zip(chunks, partials)
                ]
                results = [future.result() for future in futures]
            for partial in partials:
                self.dirty_marginals.add(partial)
            log_likelihood = sum(r[0] for r in results)
            nb_unexplained = sum(r[1] for r in results)

        if sequences and nb_unexplained == len(sequences):
            LOGGER.warning(
                f"None of the {len(sequences)} sequences has a scenario above "
                f"min_likelihood={inference_params.min_likelihood}"
            )
            return -math.inf
        if nb_unexplained:
            LOGGER.info(
                f"{nb_unexplained} of {len(sequences)} sequences have no "
                f"scenario above min_likelihood="
                f"{inference_params.min_likelihood}"
            )
        return log_likelihood

    def expectation_step(self) -> None:
        """Replace the current model by the normalized accumulator."""
        self.marginals = self.dirty_marginals.normalize()

    def expectation_maximization(
        self,
        sequences: Sequence[S],
        inference_params: InferenceParams,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[float]:
        """Run ``inference_params.nb_rounds_em`` rounds of EM.

        Args:
            sequences: Aligned sequences of the training corpus.
            inference_params: Pruning threshold, number of rounds and
                number of workers.
            cancel_event: If set between two rounds, training stops after
                the round in progress.

        Returns:
            Log-likelihood of the corpus computed during each round.

        Raises:
            NormalizationError: If the accumulated tables cannot be
                normalized. The current model is left as it was before the
                failing round.
        """
        sequences = list(sequences)
        log_likelihoods = []
        for round_idx in range(inference_params.nb_rounds_em):
            if cancel_event is not None and cancel_event.is_set():
                LOGGER.warning(
                    f"EM cancelled after {round_idx} of "
                    f"{inference_params.nb_rounds_em} rounds"
                )
                break
            log_likelihood = self.maximization_step(sequences, inference_params)
            self.expectation_step()
            log_likelihoods.append(log_likelihood)
            LOGGER.info(
                f"EM round {round_idx + 1}/{inference_params.nb_rounds_em}: "
                f"log-likelihood={log_likelihood:.6g}"
            )
        return log_likelihoods


class MarginalsVDJ(Marginals[FeaturesVDJ, SequenceVDJ]):
    """EM engine for VDJ recombination (heavy chains, TRB, TRD)."""

    def __init__(self, model: ModelVDJ) -> None:
        super().__init__(model.to_features())
        LOGGER.info(
            f"Initialized VDJ marginals (V={self.marginals.v.shape[0]}, "
            f"D/J={self.marginals.dj.shape})"
        )

    def to_model(self) -> ModelVDJ:
        """Return the current tables as a model."""
        return ModelVDJ.from_features(self.marginals)

    def likelihood_v(self, vi: int) -> float:
        return self.marginals.v[vi]

    def likelihood_delv(self, dv: int, vi: int) -> float:
        return self.marginals.delv[dv, vi]

    def likelihood_dj(self, di: int, ji: int) -> float:
        return self.marginals.dj[di, ji]

    def likelihood_delj(self, dj: int, ji: int) -> float:
        return self.marginals.delj[dj, ji]

    def likelihood_deld(self, dd3: int, dd5: int, di: int) -> float:
        return self.marginals.deld[dd3, dd5, di]

    def likelihood_nb_ins_vd(self, seq_vd: str) -> float:
        if len(seq_vd) >= self.marginals.insvd.shape[0]:
            return 0.0
        return self.marginals.insvd[len(seq_vd)]

    def likelihood_nb_ins_dj(self, seq_dj: str) -> float:
        if len(seq_dj) >= self.marginals.insdj.shape[0]:
            return 0.0
        return self.marginals.insdj[len(seq_dj)]

    def likelihood_ins_vd(self, seq_vd: str) -> float:
        return likelihood_markov(
            self.marginals.first_nt_bias_vd,
            self.marginals.markov_coefficients_vd,
            seq_vd,
        )

    def likelihood_ins_dj(self, seq_dj: str) -> float:
        return likelihood_markov(
            self.marginals.first_nt_bias_dj,
            self.marginals.markov_coefficients_dj,
            seq_dj,
        )

    def dirty_update(
        self,
        v: int,
        d: int,
        j: int,
        delv: int,
        delj: int,
        deld3: int,
        deld5: int,
        insvd: str,
        insdj: str,
        likelihood: float,
        accumulator: Optional[FeaturesVDJ] = None,
    ) -> None:
        """Add ``likelihood`` to every event of one scenario.

        ``accumulator`` defaults to ``dirty_marginals``.
        """
        acc = self.dirty_marginals if accumulator is None else accumulator
        acc.v[v] += likelihood
        acc.dj[d, j] += likelihood
        acc.delv[delv, v] += likelihood
        acc.delj[delj, j] += likelihood
        acc.deld[deld3, deld5, d] += likelihood
        acc.insvd[len(insvd)] += likelihood
        acc.insdj[len(insdj)] += likelihood
        update_markov_probas(
            acc.first_nt_bias_vd, acc.markov_coefficients_vd, insvd, likelihood
        )
        update_markov_probas(
            acc.first_nt_bias_dj, acc.markov_coefficients_dj, insdj, likelihood
        )

    def update_marginals(
        self,
        sequence: SequenceVDJ,
        inference_params: InferenceParams,
        accumulator: Optional[FeaturesVDJ] = None,
    ) -> float:
        """Enumerate the scenarios of ``sequence`` and accumulate them.

        Loops over V x delV x J x D x delJ x delD3 x delD5. The product of
        the gene and V/J deletion factors is checked against the threshold
        before the D deletion loops, the D deletion factor before deriving
        the insertions, and the insertion length factors before computing
        the insertion composition.

        Returns:
            The summed likelihood of the accumulated scenarios.
        """
        min_likelihood = inference_params.min_likelihood
        nb_delv = self.marginals.delv.shape[0]
        nb_delj = self.marginals.delj.shape[0]
        nb_deld3, nb_deld5 = self.marginals.deld.shape[:2]

        total = 0.0
        for v in sequence.v_genes:
            l_v = self.likelihood_v(v.index)
            for delv in range(nb_delv):
                l_v_delv = l_v * self.likelihood_delv(delv, v.index)
                for j in sequence.j_genes:
                    for d in sequence.d_genes:
                        l_dj = self.likelihood_dj(d.index, j.index)
                        for delj in range(nb_delj):
                            l_genes = (
                                l_v_delv
                                * l_dj
                                * self.likelihood_delj(delj, j.index)
                            )
                            if l_genes < min_likelihood:
                                continue
                            total += self._update_deletions_d(
                                sequence,
                                v,
                                delv,
                                d,
                                j,
                                delj,
                                l_genes,
                                nb_deld3,
                                nb_deld5,
                                min_likelihood,
                                accumulator,
                            )
        LOGGER.debug(
            f"Sequence of length {len(sequence.sequence)} has likelihood "
            f"{total}"
        )
        return total

    def _update_deletions_d(
        self,
        sequence: SequenceVDJ,
        v: VJAlignment,
        delv: int,
        d: DAlignment,
        j: VJAlignment,
        delj: int,
        l_genes: float,
        nb_deld3: int,
        nb_deld5: int,
        min_likelihood: float,
        accumulator: Optional[FeaturesVDJ],
    ) -> float:
        """Innermost loops over the D deletions of one scenario prefix."""
        total = 0.0
        for deld3 in range(nb_deld3):
            for deld5 in range(nb_deld5):
                l_total = l_genes * self.likelihood_deld(deld3, deld5, d.index)
                if l_total < min_likelihood:
                    continue

                insertions = sequence.get_insertions_vd_dj(
                    v, delv, d, deld3, deld5, j, delj
                )
                if insertions is None:
                    continue
                insvd, insdj = insertions

                l_total *= self.likelihood_nb_ins_vd(insvd)
                l_total *= self.likelihood_nb_ins_dj(insdj)
                if l_total < min_likelihood or l_total == 0:
                    continue

                l_total *= self.likelihood_ins_vd(insvd)
                l_total *= self.likelihood_ins_dj(insdj)
                if l_total == 0:
                    continue

                self.dirty_update(
                    v.index,
                    d.index,
                    j.index,
                    delv,
                    delj,
                    deld3,
                    deld5,
                    insvd,
                    insdj,
                    l_total,
                    accumulator,
                )
                total += l_total
        return total


class MarginalsVJ(Marginals[FeaturesVJ, SequenceVJ]):
    """EM engine for VJ recombination (light chains, TRA, TRG)."""

    def __init__(self, model: ModelVJ) -> None:
        super().__init__(model.to_features())
        LOGGER.info(
            f"Initialized VJ marginals (V={self.marginals.v.shape[0]}, "
            f"J={self.marginals.j.shape[0]})"
        )

    def to_model(self) -> ModelVJ:
        """Return the current tables as a model."""
        return ModelVJ.from_features(self.marginals)

    def likelihood_v(self, vi: int) -> float:
        return self.marginals.v[vi]

    def likelihood_j(self, ji: int, vi: int) -> float:
        return self.marginals.j[ji, vi]

    def likelihood_delv(self, dv: int, vi: int) -> float:
        return self.marginals.delv[dv, vi]

    def likelihood_delj(self, dj: int, ji: int) -> float:
        return self.marginals.delj[dj, ji]

    def likelihood_nb_ins_vj(self, seq_vj: str) -> float:
        if len(seq_vj) >= self.marginals.insvj.shape[0]:
            return 0.0
        return self.marginals.insvj[len(seq_vj)]

    def likelihood_ins_vj(self, seq_vj: str) -> float:
        return likelihood_markov(
            self.marginals.first_nt_bias_vj,
            self.marginals.markov_coefficients_vj,
            seq_vj,
        )

    def dirty_update(
        self,
        v: int,
        j: int,
        delv: int,
        delj: int,
        insvj: str,
        likelihood: float,
        accumulator: Optional[FeaturesVJ] = None,
    ) -> None:
        acc = self.dirty_marginals if accumulator is None else accumulator
        acc.v[v] += likelihood
        acc.j[j, v] += likelihood
        acc.delv[delv, v] += likelihood
        acc.delj[delj, j] += likelihood
        acc.insvj[len(insvj)] += likelihood
        update_markov_probas(
            acc.first_nt_bias_vj, acc.markov_coefficients_vj, insvj, likelihood
        )

    def update_marginals(
        self,
        sequence: SequenceVJ,
        inference_params: InferenceParams,
        accumulator: Optional[FeaturesVJ] = None,
    ) -> float:
        """Enumerate the V x delV x J x delJ scenarios of ``sequence``."""
        min_likelihood = inference_params.min_likelihood
        nb_delv = self.marginals.delv.shape[0]
        nb_delj = self.marginals.delj.shape[0]

        total = 0.0
        for v in sequence.v_genes:
            l_v = self.likelihood_v(v.index)
            for delv in range(nb_delv):
                l_v_delv = l_v * self.likelihood_delv(delv, v.index)
                for j in sequence.j_genes:
                    l_vj = l_v_delv * self.likelihood_j(j.index, v.index)
                    for delj in range(nb_delj):
                        l_total = l_vj * self.likelihood_delj(delj, j.index)
                        if l_total < min_likelihood:
                            continue

                        insvj = sequence.get_insertions_vj(v, delv, j, delj)
                        if insvj is None:
                            continue

                        l_total *= self.likelihood_nb_ins_vj(insvj)
                        if l_total < min_likelihood or l_total == 0:
                            continue

                        l_total *= self.likelihood_ins_vj(insvj)
                        if l_total == 0:
                            continue

                        self.dirty_update(
                            v.index,
                            j.index,
                            delv,
                            delj,
                            insvj,
                            l_total,
                            accumulator,
                        )
                        total += l_total
        return total

import logging
import math
import threading

import numpy as np
import pytest
from conftest import make_vdj_sequence, make_vj_sequence

from righor import features as features_module
from righor.config import InferenceParams, ModelDimensions
from righor.marginals import Marginals, MarginalsVDJ, MarginalsVJ
from righor.model import ModelVDJ, ModelVJ
from righor.normalize import NormalizationError
from righor.sequence import SequenceVDJ, VJAlignment

NO_PRUNING = InferenceParams(min_likelihood=0.0, nb_rounds_em=1)

# Uniform flexible model on the toy sequence: every scenario has gene and
# deletion factors 1/576 and composition factor (1/4) ** nb_inserted.
FLEXIBLE_TOY_LIKELIHOOD = 625 / 147456


def test_constructor_normalizes_model():
    model = ModelVDJ(
        p_v=[3.0, 1.0],
        p_dj=[[2.0, 2.0]],
        p_del_v_given_v=[[1.0, 0.0]],
        p_del_j_given_j=[[5.0, 5.0]],
        p_del_d3_del_d5=[[[4.0]]],
        p_ins_vd=[2.0],
        p_ins_dj=[7.0],
    )
    engine = MarginalsVDJ(model)
    np.testing.assert_allclose(engine.marginals.v, [0.75, 0.25])
    np.testing.assert_allclose(engine.marginals.delv, [[1.0, 1.0]])
    np.testing.assert_allclose(engine.marginals.dj, [[0.5, 0.5]])
    assert not engine.dirty_marginals.v.any()


def test_likelihood_of_flexible_toy(flexible_vdj_model, vdj_sequence):
    engine = MarginalsVDJ(flexible_vdj_model)
    likelihood = engine.update_marginals(vdj_sequence, NO_PRUNING)
    assert likelihood == pytest.approx(FLEXIBLE_TOY_LIKELIHOOD)


def test_insertion_likelihoods(flexible_vdj_model):
    engine = MarginalsVDJ(flexible_vdj_model)
    assert engine.likelihood_nb_ins_vd("AC") == pytest.approx(1 / 3)
    # longer than the insertion table
    assert engine.likelihood_nb_ins_dj("ACG") == 0.0
    assert engine.likelihood_ins_vd("") == 1.0
    assert engine.likelihood_ins_dj("ACG") == pytest.approx(1 / 64)


def test_dirty_marginals_are_consistent(flexible_vdj_model, vdj_sequence):
    engine = MarginalsVDJ(flexible_vdj_model)
    engine.maximization_step([vdj_sequence], NO_PRUNING)
    dirty = engine.dirty_marginals

    expected = FLEXIBLE_TOY_LIKELIHOOD
    for table in (dirty.v, dirty.dj, dirty.delv, dirty.delj, dirty.deld):
        assert table.sum() == pytest.approx(expected)
    assert dirty.insvd.sum() == pytest.approx(expected)
    assert dirty.insdj.sum() == pytest.approx(expected)
    assert dirty.first_nt_bias_vd.sum() == pytest.approx(dirty.insvd[1:].sum())
    assert dirty.markov_coefficients_vd.sum() == pytest.approx(dirty.insvd[2])
    # the only two-nucleotide VD insertion is "AC"
    assert dirty.markov_coefficients_vd[0, 1] == pytest.approx(dirty.insvd[2])


def test_one_round_on_flexible_toy(flexible_vdj_model, vdj_sequence):
    engine = MarginalsVDJ(flexible_vdj_model)
    log_likelihoods = engine.expectation_maximization(
        [vdj_sequence], NO_PRUNING
    )

    assert log_likelihoods == [
        pytest.approx(math.log(FLEXIBLE_TOY_LIKELIHOOD))
    ]
    trained = engine.marginals
    np.testing.assert_allclose(trained.v, [1.0, 0.0])
    np.testing.assert_allclose(trained.delv[:, 0], [0.8, 0.2])
    # V gene 1 was never used
    np.testing.assert_allclose(trained.delv[:, 1], [0.5, 0.5])
    np.testing.assert_allclose(trained.insvd, [16 / 25, 8 / 25, 1 / 25])
    np.testing.assert_allclose(trained.insdj, [16 / 25, 8 / 25, 1 / 25])
    np.testing.assert_allclose(trained.deld.sum(axis=(0, 1)), [1.0])


def test_one_round_on_rigid_toy(rigid_vdj_model, vdj_sequence):
    engine = MarginalsVDJ(rigid_vdj_model)
    engine.expectation_maximization([vdj_sequence], NO_PRUNING)

    trained = engine.marginals
    np.testing.assert_allclose(trained.v, [1.0, 0.0])
    np.testing.assert_allclose(trained.dj, [[1.0, 0.0]])
    np.testing.assert_allclose(trained.delv, [[1.0, 1.0]])
    np.testing.assert_allclose(trained.delj, [[1.0, 1.0]])
    np.testing.assert_allclose(trained.first_nt_bias_vd, [0.25] * 4)
    np.testing.assert_allclose(trained.markov_coefficients_dj, 0.25)


def test_pruning_only_removes_likelihood(flexible_vdj_model, vdj_sequence):
    totals = []
    for threshold in (0.0, 1e-6, 1e-4, 1e-3, 1e-2):
        engine = MarginalsVDJ(flexible_vdj_model)
        params = InferenceParams(min_likelihood=threshold, nb_rounds_em=1)
        totals.append(engine.update_marginals(vdj_sequence, params))

    assert totals[0] == pytest.approx(FLEXIBLE_TOY_LIKELIHOOD)
    assert all(a >= b for a, b in zip(totals, totals[1:]))
    # every scenario is above 1/576 before the composition factor
    assert totals[3] == pytest.approx(FLEXIBLE_TOY_LIKELIHOOD)
    assert totals[-1] == 0.0


def test_fully_pruned_sequence_gives_uniform_model(
    flexible_vdj_model, vdj_sequence, caplog
):
    engine = MarginalsVDJ(flexible_vdj_model)
    params = InferenceParams(min_likelihood=1e-2, nb_rounds_em=1)
    with caplog.at_level(logging.WARNING, logger="righor.marginals"):
        log_likelihoods = engine.expectation_maximization(
            [vdj_sequence], params
        )

    assert log_likelihoods == [-math.inf]
    assert "None of the 1 sequences has a scenario" in caplog.text
    assert not engine.dirty_marginals.v.any()
    np.testing.assert_allclose(engine.marginals.v, [0.5, 0.5])


def test_inconsistent_geometry_contributes_nothing(rigid_vdj_model):
    toy = make_vdj_sequence()
    # J starts inside the D gene
    sequence = SequenceVDJ(
        sequence=toy.sequence,
        v_genes=toy.v_genes,
        d_genes=toy.d_genes,
        j_genes=[VJAlignment(index=0, start_seq=5, end_seq=10)],
    )
    engine = MarginalsVDJ(rigid_vdj_model)
    assert engine.update_marginals(sequence, NO_PRUNING) == 0.0
    assert not engine.dirty_marginals.v.any()


def test_zero_rounds_keeps_model(flexible_vdj_model, vdj_sequence):
    engine = MarginalsVDJ(flexible_vdj_model)
    before = engine.marginals.copy()
    params = InferenceParams(min_likelihood=0.0, nb_rounds_em=0)

    assert engine.expectation_maximization([vdj_sequence], params) == []
    np.testing.assert_array_equal(engine.marginals.v, before.v)
    np.testing.assert_array_equal(engine.marginals.insdj, before.insdj)


def test_dirty_marginals_reset_between_steps(flexible_vdj_model, vdj_sequence):
    engine = MarginalsVDJ(flexible_vdj_model)
    engine.maximization_step([vdj_sequence], NO_PRUNING)
    first = engine.dirty_marginals.total_weight()
    engine.maximization_step([vdj_sequence], NO_PRUNING)
    assert engine.dirty_marginals.total_weight() == pytest.approx(first)


def test_posterior_weights_sum_to_one(flexible_vdj_model, vdj_sequence):
    engine = MarginalsVDJ(flexible_vdj_model)
    params = InferenceParams(
        min_likelihood=0.0, nb_rounds_em=1, posterior_weights=True
    )
    engine.maximization_step([vdj_sequence, vdj_sequence], params)
    assert engine.dirty_marginals.total_weight() == pytest.approx(2.0)
    assert engine.dirty_marginals.insvd.sum() == pytest.approx(2.0)


def test_threaded_run_matches_sequential(flexible_vdj_model):
    sequences = [
        make_vdj_sequence(v_index=0, j_index=0),
        make_vdj_sequence(v_index=1, j_index=1),
        make_vdj_sequence(v_index=0, j_index=1),
        make_vdj_sequence(v_index=1, j_index=0),
        make_vdj_sequence(v_index=0, j_index=0),
    ]
    sequential = MarginalsVDJ(flexible_vdj_model)
    threaded = MarginalsVDJ(flexible_vdj_model)
    params = InferenceParams(min_likelihood=0.0, nb_rounds_em=2)

    expected = sequential.expectation_maximization(sequences, params)
    observed = threaded.expectation_maximization(
        sequences,
        InferenceParams(min_likelihood=0.0, nb_rounds_em=2, num_workers=3),
    )

    np.testing.assert_allclose(observed, expected)
    for name in ("v", "dj", "delv", "delj", "deld", "insvd", "insdj"):
        np.testing.assert_allclose(
            getattr(threaded.marginals, name),
            getattr(sequential.marginals, name),
        )


def test_normalization_failure_keeps_model(
    flexible_vdj_model, vdj_sequence, monkeypatch
):
    engine = MarginalsVDJ(flexible_vdj_model)
    before = engine.marginals

    def failing_normalize(array, axis=None):
        raise NormalizationError("boom")

    monkeypatch.setattr(
        features_module, "normalize_distribution", failing_normalize
    )
    with pytest.raises(NormalizationError):
        engine.expectation_maximization([vdj_sequence], NO_PRUNING)
    assert engine.marginals is before


def test_cancelled_training_stops(flexible_vdj_model, vdj_sequence):
    engine = MarginalsVDJ(flexible_vdj_model)
    cancel_event = threading.Event()
    cancel_event.set()
    params = InferenceParams(min_likelihood=0.0, nb_rounds_em=3)

    assert (
        engine.expectation_maximization(
            [vdj_sequence], params, cancel_event=cancel_event
        )
        == []
    )


def test_to_model_round_trip(flexible_vdj_model, vdj_sequence):
    engine = MarginalsVDJ(flexible_vdj_model)
    engine.expectation_maximization([vdj_sequence], NO_PRUNING)
    trained = engine.to_model()

    assert trained.dimensions == flexible_vdj_model.dimensions
    np.testing.assert_allclose(trained.p_v, engine.marginals.v)
    reloaded = MarginalsVDJ(trained)
    np.testing.assert_allclose(reloaded.marginals.insvd, engine.marginals.insvd)


def test_vj_one_round(rigid_vj_model, vj_sequence):
    engine = MarginalsVJ(rigid_vj_model)
    likelihood = engine.update_marginals(vj_sequence, NO_PRUNING)
    # p(V) * p(J | V), everything else is certain
    assert likelihood == pytest.approx(0.25)

    engine.expectation_maximization([vj_sequence], NO_PRUNING)
    trained = engine.marginals
    np.testing.assert_allclose(trained.v, [1.0, 0.0])
    np.testing.assert_allclose(trained.j[:, 0], [1.0, 0.0])
    np.testing.assert_allclose(trained.j[:, 1], [0.5, 0.5])
    assert engine.to_model().p_j_given_v.shape == (2, 2)


def test_vj_insertions_are_scored():
    dims = ModelDimensions(nb_v=1, nb_j=1, max_del_v=1, max_del_j=0, max_ins=1)
    engine = MarginalsVJ(ModelVJ.from_dimensions(dims))
    sequence = make_vj_sequence()
    # delV = 0 gives no insertion, delV = 1 inserts the last V nucleotide
    likelihood = engine.update_marginals(sequence, NO_PRUNING)
    assert likelihood == pytest.approx(0.25 + 0.25 * 0.25)

    engine.expectation_step()
    np.testing.assert_allclose(engine.marginals.insvj, [0.8, 0.2])
    np.testing.assert_allclose(engine.marginals.first_nt_bias_vj, [1, 0, 0, 0])


def test_partially_pruned_corpus_keeps_finite_log_likelihood(
    flexible_vdj_model, vdj_sequence
):
    unexplained = SequenceVDJ(
        sequence=vdj_sequence.sequence,
        v_genes=vdj_sequence.v_genes,
        d_genes=vdj_sequence.d_genes,
        j_genes=[VJAlignment(index=0, start_seq=2, end_seq=10)],
    )
    engine = MarginalsVDJ(flexible_vdj_model)
    log_likelihood = engine.maximization_step(
        [vdj_sequence, unexplained], NO_PRUNING
    )
    assert log_likelihood == pytest.approx(math.log(FLEXIBLE_TOY_LIKELIHOOD))


def test_base_engine_is_abstract(flexible_vdj_model):
    with pytest.raises(TypeError):
        Marginals(flexible_vdj_model.to_features())


def test_engine_must_enumerate_scenarios(flexible_vdj_model):
    class PartialMarginals(Marginals):
        def to_model(self):
            return ModelVDJ.from_features(self.marginals)

    with pytest.raises(TypeError):
        PartialMarginals(flexible_vdj_model.to_features())

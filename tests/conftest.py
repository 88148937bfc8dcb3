"""Shared test fixtures and builders for righor tests."""

import pytest

from righor.config import ModelDimensions
from righor.model import ModelVDJ, ModelVJ
from righor.sequence import DAlignment, SequenceVDJ, SequenceVJ, VJAlignment

# V gene on [0, 4), D gene on [4, 6), J gene on [6, 10)
TOY_VDJ_SEQUENCE = "AAAACCGGGG"
# V gene on [0, 4), J gene on [4, 8)
TOY_VJ_SEQUENCE = "AAAAGGGG"


def make_vdj_sequence(
    v_index: int = 0, d_index: int = 0, j_index: int = 0
) -> SequenceVDJ:
    """Build the toy VDJ sequence with a single V, D and J alignment."""
    return SequenceVDJ(
        sequence=TOY_VDJ_SEQUENCE,
        v_genes=[VJAlignment(index=v_index, start_seq=0, end_seq=4)],
        d_genes=[
            DAlignment(
                index=d_index,
                len_d=2,
                pos=4,
                errors_left=[0, 0, 0],
                errors_right=[0, 0, 0],
            )
        ],
        j_genes=[VJAlignment(index=j_index, start_seq=6, end_seq=10)],
    )


def make_vj_sequence(v_index: int = 0, j_index: int = 0) -> SequenceVJ:
    """Build the toy VJ sequence with a single V and J alignment."""
    return SequenceVJ(
        sequence=TOY_VJ_SEQUENCE,
        v_genes=[VJAlignment(index=v_index, start_seq=0, end_seq=4)],
        j_genes=[VJAlignment(index=j_index, start_seq=4, end_seq=8)],
    )


@pytest.fixture
def rigid_vdj_dims() -> ModelDimensions:
    """2 V / 1 D / 2 J genes, no deletion and no insertion allowed."""
    return ModelDimensions(
        nb_v=2,
        nb_j=2,
        nb_d=1,
        max_del_v=0,
        max_del_j=0,
        max_del_d3=0,
        max_del_d5=0,
        max_ins=0,
    )


@pytest.fixture
def flexible_vdj_dims() -> ModelDimensions:
    """2 V / 1 D / 2 J genes, up to one deletion and two insertions."""
    return ModelDimensions(
        nb_v=2,
        nb_j=2,
        nb_d=1,
        max_del_v=1,
        max_del_j=1,
        max_del_d3=1,
        max_del_d5=1,
        max_ins=2,
    )


@pytest.fixture
def rigid_vdj_model(rigid_vdj_dims) -> ModelVDJ:
    return ModelVDJ.from_dimensions(rigid_vdj_dims)


@pytest.fixture
def flexible_vdj_model(flexible_vdj_dims) -> ModelVDJ:
    return ModelVDJ.from_dimensions(flexible_vdj_dims)


@pytest.fixture
def rigid_vj_model() -> ModelVJ:
    return ModelVJ.from_dimensions(
        ModelDimensions(nb_v=2, nb_j=2, max_del_v=0, max_del_j=0, max_ins=0)
    )


@pytest.fixture
def vdj_sequence() -> SequenceVDJ:
    return make_vdj_sequence()


@pytest.fixture
def vj_sequence() -> SequenceVJ:
    return make_vj_sequence()

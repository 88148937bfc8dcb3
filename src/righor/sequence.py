#!/usr/bin/env python3
r"""Aligned sequences consumed by the inference engine.

An aligned sequence is a DNA read together with the candidate placements of
V, D and J genes produced by the aligner. Coordinates are 0-based and
end-exclusive.

V/J alignment example::

    gene (V):  ATACGATCATTGACAATCTGGAGATACGTA
                            ||||||\|||||\|\\\
    sequence:               CAATCTAGAGATTCCAATCTAGAGATTCA
    start_gene -------------^ 13
    end_gene   ------------------------------^ 30
    start_seq               0
    end_seq                 -----------------^ 17

``errors[u]`` is the number of mismatches left once ``u`` nucleotides are
deleted (from the 3' end of a V gene or the 5' end of a J gene).

D alignment: ``pos`` is the first position of the D gene (palindromic
insertions included) in the sequence and ``len_d`` its length.
``errors_left[u]`` / ``errors_right[u]`` count the mismatches left after
deleting ``u`` nucleotides on the 5' / 3' side.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from righor import util

LOGGER = logging.getLogger(__name__)


def _errors_after(errors: List[int], deletion: int) -> int:
    # the last count holds for every longer deletion
    if deletion >= len(errors):
        return errors[-1] if errors else 0
    return errors[deletion]


@dataclass(frozen=True)
class VJAlignment:
    """Placement of a V or J gene on a sequence."""

    index: int
    start_seq: int
    end_seq: int
    start_gene: int = 0
    end_gene: int = 0
    errors: List[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.start_seq < 0 or self.end_seq < self.start_seq:
            raise ValueError(
                f"Invalid alignment bounds [{self.start_seq}, {self.end_seq}) "
                f"for gene {self.index}"
            )

    def nb_errors(self, deletion: int) -> int:
        """Number of mismatches left after ``deletion`` deletions."""
        return _errors_after(self.errors, deletion)


@dataclass(frozen=True)
class DAlignment:
    """Placement of a D gene on a sequence."""

    index: int
    len_d: int
    pos: int
    errors_left: List[int] = field(default_factory=list)
    errors_right: List[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.pos < 0 or self.len_d < 0:
            raise ValueError(
                f"Invalid D alignment (pos={self.pos}, len_d={self.len_d}) "
                f"for gene {self.index}"
            )

    def nb_errors(self, deld3: int, deld5: int) -> int:
        return _errors_after(self.errors_left, deld5) + _errors_after(
            self.errors_right, deld3
        )

    def __len__(self) -> int:
        return self.len_d

    def is_empty(self) -> bool:
        return self.len_d == 0


def _check_within(sequence: str, alignments: List, end_of) -> None:
    for aln in alignments:
        end = end_of(aln)
        if end > len(sequence):
            raise ValueError(
                f"Alignment of gene {aln.index} ends at {end}, beyond the "
                f"sequence length {len(sequence)}"
            )


@dataclass(frozen=True)
class SequenceVDJ:
    """A sequence with its candidate V, D and J alignments."""

    sequence: str
    v_genes: List[VJAlignment] = field(default_factory=list)
    d_genes: List[DAlignment] = field(default_factory=list)
    j_genes: List[VJAlignment] = field(default_factory=list)

    def __post_init__(self) -> None:
        util.nucleotide_indices(self.sequence)
        _check_within(self.sequence, self.v_genes, lambda a: a.end_seq)
        _check_within(self.sequence, self.j_genes, lambda a: a.end_seq)
        _check_within(self.sequence, self.d_genes, lambda a: a.pos + a.len_d)

    def get_insertions_vd_dj(
        self,
        v: VJAlignment,
        delv: int,
        d: DAlignment,
        deld3: int,
        deld5: int,
        j: VJAlignment,
        delj: int,
    ) -> Optional[Tuple[str, str]]:
        """Return the nucleotides inserted at the V-D and D-J junctions.

        Returns ``None`` when the deletions are inconsistent with the
        sequence: a segment deleted past its aligned region, a D gene
        deleted past its length, or segments overlapping each other.
        """
        end_v = v.end_seq - delv
        start_d = d.pos + deld5
        end_d = d.pos + d.len_d - deld3
        start_j = j.start_seq + delj

        if end_v < v.start_seq or start_j > j.end_seq:
            return None
        if start_d > end_d:
            return None
        if end_v > start_d or end_d > start_j:
            return None
        return self.sequence[end_v:start_d], self.sequence[end_d:start_j]


@dataclass(frozen=True)
class SequenceVJ:
    """A sequence with its candidate V and J alignments."""

    sequence: str
    v_genes: List[VJAlignment] = field(default_factory=list)
    j_genes: List[VJAlignment] = field(default_factory=list)

    def __post_init__(self) -> None:
        util.nucleotide_indices(self.sequence)
        _check_within(self.sequence, self.v_genes, lambda a: a.end_seq)
        _check_within(self.sequence, self.j_genes, lambda a: a.end_seq)

    def get_insertions_vj(
        self,
        v: VJAlignment,
        delv: int,
        j: VJAlignment,
        delj: int,
    ) -> Optional[str]:
        """Return the nucleotides inserted at the V-J junction, or ``None``."""
        end_v = v.end_seq - delv
        start_j = j.start_seq + delj
        if end_v < v.start_seq or start_j > j.end_seq or end_v > start_j:
            return None
        return self.sequence[end_v:start_j]

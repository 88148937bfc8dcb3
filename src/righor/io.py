#!/usr/bin/env python3
"""Reading aligned sequence corpora.

The aligner writes its output as a JSON document::

    {
      "kind": "VDJ",
      "sequences": [
        {
          "sequence": "CAGT...",
          "v_genes": [{"index": 0, "start_seq": 0, "end_seq": 40,
                       "start_gene": 250, "end_gene": 290, "errors": [1, 1, 0]}],
          "d_genes": [{"index": 2, "len_d": 12, "pos": 44,
                       "errors_left": [...], "errors_right": [...]}],
          "j_genes": [{"index": 1, "start_seq": 60, "end_seq": 90}]
        }
      ]
    }

``kind`` is ``VDJ`` or ``VJ``; ``d_genes`` is only read for VDJ corpora.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

from righor import constants
from righor.sequence import DAlignment, SequenceVDJ, SequenceVJ, VJAlignment

LOGGER = logging.getLogger(__name__)

AlignedSequence = Union[SequenceVDJ, SequenceVJ]


def _parse_record(
    record: Dict[str, Any], kind: constants.SequenceKind
) -> AlignedSequence:
    v_genes = [VJAlignment(**aln) for aln in record.get("v_genes", [])]
    j_genes = [VJAlignment(**aln) for aln in record.get("j_genes", [])]
    if kind == constants.SequenceKind.VDJ:
        d_genes = [DAlignment(**aln) for aln in record.get("d_genes", [])]
        return SequenceVDJ(
            sequence=record["sequence"],
            v_genes=v_genes,
            d_genes=d_genes,
            j_genes=j_genes,
        )
    return SequenceVJ(
        sequence=record["sequence"], v_genes=v_genes, j_genes=j_genes
    )


def parse_aligned_sequences(
    data: Dict[str, Any],
) -> Tuple[constants.SequenceKind, List[AlignedSequence]]:
    """Build aligned sequences from a decoded JSON document.

    Returns:
        The corpus kind and the list of sequences.

    Raises:
        ValueError: If the document or one of its records is malformed.
    """
    try:
        kind = constants.SequenceKind(data.get("kind", "VDJ"))
    except ValueError as e:
        raise ValueError(
            f"Unknown corpus kind {data.get('kind')!r}; expected one of "
            f"{[k.value for k in constants.SequenceKind]}"
        ) from e
    records = data.get("sequences")
    if not isinstance(records, list):
        raise ValueError("Corpus must contain a 'sequences' list")

    sequences = []
    for idx, record in enumerate(records):
        try:
            sequences.append(_parse_record(record, kind))
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed sequence record {idx}: {e}") from e
    LOGGER.info(f"Parsed {len(sequences)} {kind.value} aligned sequences")
    return kind, sequences


def read_aligned_sequences(
    path: Union[str, Path],
) -> Tuple[constants.SequenceKind, List[AlignedSequence]]:
    """Read an aligned corpus written by the aligner."""
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"{path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object")
    LOGGER.info(f"Read aligned corpus from {path}")
    return parse_aligned_sequences(data)

#!/usr/bin/env python3
"""Constants and default values for righor.

This module defines constants used throughout the righor package including:
- The nucleotide alphabet used by the insertion Markov chains
- Default inference parameters
- Sequence kinds understood by the corpus reader
"""

from enum import Enum
from typing import Dict

# Nucleotide alphabet, in the order used to index bias vectors and
# transition matrices
NUCLEOTIDES = "ACGT"
NT_TO_INDEX: Dict[str, int] = {nt: idx for idx, nt in enumerate(NUCLEOTIDES)}
N_NUCLEOTIDES = len(NUCLEOTIDES)

# Default inference parameters
DEFAULT_MIN_LIKELIHOOD = 1e-60
DEFAULT_NB_ROUNDS_EM = 5
DEFAULT_NUM_WORKERS = 1

# Default model dimensions used by the CLI when building a uniform model
DEFAULT_MAX_DEL_V = 20
DEFAULT_MAX_DEL_J = 20
DEFAULT_MAX_DEL_D = 20
DEFAULT_MAX_INS = 40


class SequenceKind(str, Enum):
    """Recombination scenario of an aligned corpus."""

    VDJ = "VDJ"
    VJ = "VJ"

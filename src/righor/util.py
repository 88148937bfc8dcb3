#!/usr/bin/env python3
"""Utility functions for righor.

This module provides helper functions for:
- Configuring logging
- Converting nucleotide strings to alphabet indices
"""

import logging
from typing import List

from righor import constants

LOGGER = logging.getLogger(__name__)


def configure_logging(verbose: bool) -> None:
    """Configure logging level based on verbosity flag.

    Args:
        verbose: If True, set logging level to INFO. Otherwise, set to WARNING.
    """
    level = logging.INFO if verbose else logging.WARNING
    logging.basicConfig(level=level, force=True)


def nucleotide_indices(sequence: str) -> List[int]:
    """Return the alphabet index of every nucleotide in ``sequence``.

    Args:
        sequence: DNA string over ``constants.NUCLEOTIDES``. Lowercase
            letters are accepted.

    Returns:
        List of integer indices (A=0, C=1, G=2, T=3).

    Raises:
        ValueError: If the sequence contains a character outside the
            nucleotide alphabet.
    """
    indices = []
    for position, nt in enumerate(sequence.upper()):
        idx = constants.NT_TO_INDEX.get(nt)
        if idx is None:
            raise ValueError(
                f"Invalid nucleotide '{nt}' at position {position} "
                f"in sequence '{sequence}'"
            )
        indices.append(idx)
    return indices

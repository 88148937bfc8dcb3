#!/usr/bin/env python3
"""Command-line interface for righor model inference.

This module provides the CLI entry point for training a V(D)J recombination
model on a corpus of aligned sequences. It orchestrates:

1. Read the aligned corpus (JSON written by the aligner)
2. Drop sequences without any V or J candidate
3. Build a uniform model sized from the corpus and the CLI options
4. Run expectation-maximization
5. Report the per-round log-likelihood and the trained insertion lengths

Usage:
    righor -i aligned.json -r 5 -m 1e-60
    righor -i aligned_tra.json --max-ins 30 -w 4 -v
"""

import logging
from typing import List, Optional

import click
import numpy as np

from righor import config, constants, io, marginals, model, util

LOGGER = logging.getLogger(__name__)


def _nb_genes(
    alignments: List[List], override: Optional[int], name: str
) -> int:
    """Number of genes: the CLI value, or one past the largest index seen."""
    indices = [aln.index for alns in alignments for aln in alns]
    if override is not None:
        if indices and max(indices) >= override:
            raise click.ClickException(
                f"--nb-{name.lower()} is {override} but the corpus uses "
                f"{name} gene index {max(indices)}"
            )
        return override
    if not indices:
        raise click.ClickException(
            f"No {name} alignment in the corpus; pass --nb-{name.lower()}"
        )
    return max(indices) + 1


def _format_distribution(distribution: np.ndarray) -> str:
    return " ".join(f"{p:.4f}" for p in distribution)


@click.command(
    context_settings={"help_option_names": ["-h", "--help"]},
    help=(
        "Infer a V(D)J recombination model from aligned immune receptor "
        "sequences by expectation-maximization, starting from a uniform "
        "model."
    ),
)
@click.option(
    "-i",
    "--input",
    "input_file",
    required=True,
    type=click.Path(exists=True, dir_okay=False, readable=True, path_type=str),
    help="Aligned sequence corpus (JSON).",
)
@click.option(
    "-r",
    "--rounds",
    "nb_rounds_em",
    type=int,
    default=constants.DEFAULT_NB_ROUNDS_EM,
    show_default=True,
    help="Number of EM rounds.",
)
@click.option(
    "-m",
    "--min-likelihood",
    "min_likelihood",
    type=float,
    default=constants.DEFAULT_MIN_LIKELIHOOD,
    show_default=True,
    help="Pruning threshold on scenario likelihoods (0 disables pruning).",
)
@click.option(
    "-w",
    "--workers",
    "num_workers",
    type=int,
    default=constants.DEFAULT_NUM_WORKERS,
    show_default=True,
    help="Number of threads used for the maximization step.",
)
@click.option(
    "--posterior-weights",
    is_flag=True,
    help="Weight each sequence by its posterior instead of its likelihood.",
)
@click.option(
    "--nb-v",
    "nb_v",
    type=int,
    default=None,
    help="Number of V genes (default: inferred from the corpus).",
)
@click.option(
    "--nb-d",
    "nb_d",
    type=int,
    default=None,
    help="Number of D genes (default: inferred from the corpus).",
)
@click.option(
    "--nb-j",
    "nb_j",
    type=int,
    default=None,
    help="Number of J genes (default: inferred from the corpus).",
)
@click.option(
    "--max-del-v",
    type=int,
    default=constants.DEFAULT_MAX_DEL_V,
    show_default=True,
    help="Maximum number of V 3' deletions.",
)
@click.option(
    "--max-del-j",
    type=int,
    default=constants.DEFAULT_MAX_DEL_J,
    show_default=True,
    help="Maximum number of J 5' deletions.",
)
@click.option(
    "--max-del-d3",
    type=int,
    default=constants.DEFAULT_MAX_DEL_D,
    show_default=True,
    help="Maximum number of D 3' deletions (VDJ only).",
)
@click.option(
    "--max-del-d5",
    type=int,
    default=constants.DEFAULT_MAX_DEL_D,
    show_default=True,
    help="Maximum number of D 5' deletions (VDJ only).",
)
@click.option(
    "--max-ins",
    type=int,
    default=constants.DEFAULT_MAX_INS,
    show_default=True,
    help="Maximum number of nucleotides inserted at a junction.",
)
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    help="Enable verbose logging.",
)
def main(
    input_file: str,
    nb_rounds_em: int,
    min_likelihood: float,
    num_workers: int,
    posterior_weights: bool,
    nb_v: Optional[int],
    nb_d: Optional[int],
    nb_j: Optional[int],
    max_del_v: int,
    max_del_j: int,
    max_del_d3: int,
    max_del_d5: int,
    max_ins: int,
    verbose: bool,
) -> None:
    """Run the command-line workflow for model inference."""
    util.configure_logging(verbose)

    try:
        params = config.InferenceParams(
            min_likelihood=min_likelihood,
            nb_rounds_em=nb_rounds_em,
            num_workers=num_workers,
            posterior_weights=posterior_weights,
        )
        kind, sequences = io.read_aligned_sequences(input_file)
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    n_read = len(sequences)
    sequences = [s for s in sequences if s.v_genes and s.j_genes]
    if len(sequences) < n_read:
        LOGGER.info(
            f"Dropped {n_read - len(sequences)} sequences without V or J "
            f"alignment"
        )
    if not sequences:
        raise click.ClickException(
            f"No sequence of {input_file} has both a V and a J alignment"
        )

    is_vdj = kind == constants.SequenceKind.VDJ
    try:
        dims = config.ModelDimensions(
            nb_v=_nb_genes([s.v_genes for s in sequences], nb_v, "V"),
            nb_j=_nb_genes([s.j_genes for s in sequences], nb_j, "J"),
            nb_d=(
                _nb_genes([s.d_genes for s in sequences], nb_d, "D")
                if is_vdj
                else 0
            ),
            max_del_v=max_del_v,
            max_del_j=max_del_j,
            max_del_d3=max_del_d3,
            max_del_d5=max_del_d5,
            max_ins=max_ins,
        )
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    LOGGER.info(f"Training a {kind.value} model with dimensions {dims}")

    if is_vdj:
        engine = marginals.MarginalsVDJ(model.ModelVDJ.from_dimensions(dims))
    else:
        engine = marginals.MarginalsVJ(model.ModelVJ.from_dimensions(dims))

    try:
        log_likelihoods = engine.expectation_maximization(sequences, params)
    except ValueError as e:
        raise click.ClickException(f"Inference failed: {e}") from e

    click.echo(
        f"Trained {kind.value} model on {len(sequences)} sequences "
        f"({len(log_likelihoods)} rounds)"
    )
    for round_idx, log_likelihood in enumerate(log_likelihoods, start=1):
        click.echo(f"round {round_idx}: log-likelihood {log_likelihood:.6g}")
    trained = engine.marginals
    click.echo(f"p(V): {_format_distribution(trained.v)}")
    if is_vdj:
        click.echo(f"p(ins VD): {_format_distribution(trained.insvd)}")
        click.echo(f"p(ins DJ): {_format_distribution(trained.insdj)}")
    else:
        click.echo(f"p(ins VJ): {_format_distribution(trained.insvj)}")
    LOGGER.info("Finished inference")


if __name__ == "__main__":
    main()

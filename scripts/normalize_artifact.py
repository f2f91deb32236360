#!/usr/bin/python3
from pathlib import Path

import click

from migrator.artifacts import normalize_artifact


@click.command()
@click.option(
    "--artifact",
    help="Filepath to migration artifact file",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=True,
)
def cli(artifact):
    """Normalize migration artifact file"""
    normalize_artifact(artifact)

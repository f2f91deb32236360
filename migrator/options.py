from pathlib import Path

import click

from migrator.constants import DEFAULT_CONFIRMATION_TIMEOUT
from migrator.types import REGISTRY_ADDRESS, STEP_ID

config_option = click.option(
    "--config",
    "-c",
    "config_filepath",
    help="Filepath of the migration config YAML",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=True,
)

from_step_option = click.option(
    "--from-step",
    "-f",
    help="Force a re-run starting at this step id",
    type=STEP_ID,
    required=False,
    default=None,
)

timeout_option = click.option(
    "--timeout",
    "-t",
    help="Seconds to wait for each transaction confirmation",
    type=click.FloatRange(min=0, min_open=True),
    default=DEFAULT_CONFIRMATION_TIMEOUT,
    show_default=True,
)

registry_address_option = click.option(
    "--registry-address",
    "-r",
    help="Address of the Migrations bookkeeping contract; overrides the config file",
    type=REGISTRY_ADDRESS,
    required=False,
    default=None,
)

autosign_option = click.option(
    "--autosign",
    help="Sign transactions and skip confirmations without prompting",
    is_flag=True,
    default=False,
)

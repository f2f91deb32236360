#!/usr/bin/python3
import signal

import click
from ape.cli import ConnectedProviderCommand, account_option, network_option

from migrator.constants import EXIT_CANCELLED, EXIT_FAILED, EXIT_INDETERMINATE
from migrator.deployer import Migrator
from migrator.exceptions import IndeterminateStepError, MigrationCancelled, MigrationError
from migrator.options import (
    autosign_option,
    config_option,
    from_step_option,
    registry_address_option,
    timeout_option,
)


def _cancel_between_steps(migrator: Migrator):
    def handler(signum, frame):
        print("\n(!) Cancellation requested; waiting for the current step to finish...")
        migrator.runner.cancel()
        # a second interrupt is not intercepted
        signal.signal(signal.SIGINT, signal.default_int_handler)

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


@click.command(cls=ConnectedProviderCommand)
@network_option(required=True)
@account_option()
@config_option
@from_step_option
@timeout_option
@registry_address_option
@autosign_option
def cli(network, account, config_filepath, from_step, timeout, registry_address, autosign):
    """Run the pending migration steps against the selected network."""
    migrator = Migrator.from_yaml(
        filepath=config_filepath,
        account=account,
        autosign=autosign,
        timeout=timeout,
        registry_address=registry_address,
    )
    _cancel_between_steps(migrator)

    try:
        context = migrator.run(start_step=from_step)
    except IndeterminateStepError as e:
        print(f"\n(!) {e}")
        migrator.save_progress(e)
        raise click.exceptions.Exit(EXIT_INDETERMINATE)
    except MigrationCancelled as e:
        print(f"\n(!) {e}")
        migrator.save_progress(e)
        raise click.exceptions.Exit(EXIT_CANCELLED)
    except MigrationError as e:
        print(f"\n(!) {e}")
        migrator.save_progress(e)
        raise click.exceptions.Exit(EXIT_FAILED)

    migrator.finalize(context)


if __name__ == "__main__":
    cli()

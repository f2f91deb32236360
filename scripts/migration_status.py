#!/usr/bin/python3
import click
from ape.cli import ConnectedProviderCommand, account_option, network_option

from migrator.deployer import Migrator, print_deployments
from migrator.options import config_option, registry_address_option


@click.command(cls=ConnectedProviderCommand)
@network_option(required=True)
@account_option()
@config_option
@registry_address_option
def cli(network, account, config_filepath, registry_address):
    """Show the last completed and the pending migration steps."""
    migrator = Migrator.from_yaml(
        filepath=config_filepath,
        account=account,
        autosign=True,
        registry_address=registry_address,
        deploy_registry=False,
    )
    runner = migrator.runner
    last_completed = migrator.registry.last_completed(migrator.config.network)

    print()
    print("Migration Status")
    print("================")
    print(f"\tLast completed step : {last_completed or 'none'}")
    pending = runner.pending_steps()
    if not pending:
        print("\tPending steps       : none")
    for step in pending:
        print(f"\tPending             : {step.id} ({step.name})")

    print_deployments(runner.seed_context(before_step=runner.first_pending_step_id()))


if __name__ == "__main__":
    cli()

import typing
from pathlib import Path

from ape import networks
from ape.api import AccountAPI
from ape.cli.choices import select_account

from migrator.adapter import ApeNetworkAdapter
from migrator.artifacts import (
    ArtifactAddressLookup,
    artifact_from_context,
    artifact_from_halted_run,
)
from migrator.config import MigrationConfig, load_config, validate_chain_id
from migrator.confirm import _confirm_pending_steps, _continue
from migrator.constants import DEFAULT_CONFIRMATION_TIMEOUT, MIGRATIONS_CONTRACT_NAME
from migrator.context import DeploymentContext
from migrator.exceptions import ConfigurationError, MigrationError
from migrator.registry import OnChainMigrationRegistry
from migrator.runner import StepRunner
from migrator.step import load_steps
from migrator.utils import is_local_network


class Migrator:
    """
    Represents an ape account plus a migration config, the steps it points
    to and the bookkeeping contract that records their completion.
    """

    def __init__(
        self,
        config: MigrationConfig,
        account: typing.Optional[AccountAPI] = None,
        autosign: bool = False,
        timeout: float = DEFAULT_CONFIRMATION_TIMEOUT,
        registry_address: typing.Optional[str] = None,
        deploy_registry: bool = True,
    ):
        if account is None:
            account = select_account()
        if autosign:
            print("WARNING: Autosign is enabled. Transactions will be signed automatically.")
        account.set_autosign(autosign)

        self.config = config
        self.account = account
        self.autosign = autosign

        provider_network = networks.provider.network
        validate_chain_id(config, chain_id=provider_network.chain_id, local=is_local_network())

        self.steps = load_steps(
            config.migrations_dir, timeout=timeout, constants=config.constants
        )
        self.adapter = ApeNetworkAdapter(network=config.network, account=account)
        self.registry = self._get_registry(
            registry_address or config.registry_address, deploy=deploy_registry
        )
        self.runner = StepRunner(
            network=config.network,
            steps=self.steps,
            adapter=self.adapter,
            registry=self.registry,
            lookup=ArtifactAddressLookup(config.artifact_filepath),
        )
        self._print_migration_info()

    @classmethod
    def from_yaml(cls, filepath: Path, *args, **kwargs) -> "Migrator":
        config = load_config(filepath)
        return cls(config, *args, **kwargs)

    def _get_registry(
        self, address: typing.Optional[str], deploy: bool
    ) -> OnChainMigrationRegistry:
        if address:
            return OnChainMigrationRegistry.at(
                network=self.config.network, address=address, account=self.account
            )
        if not deploy:
            raise ConfigurationError(
                f"No {MIGRATIONS_CONTRACT_NAME} contract configured for {self.config.network}."
            )

        print(f"\n(i) No {MIGRATIONS_CONTRACT_NAME} contract configured for {self.config.network}")
        if not self.autosign:
            _continue()
        registry = OnChainMigrationRegistry.deploy(network=self.config.network, account=self.account)
        print(f"(i) Set registry.address to {registry.address} in {self.config.path}")
        return registry

    def run(self, start_step: typing.Optional[int] = None) -> DeploymentContext:
        if not self.autosign:
            pending = self.runner.pending_steps(start_step=start_step)
            _confirm_pending_steps(pending, self.config.network, forced=start_step is not None)
        return self.runner.run(start_step=start_step)

    def finalize(self, context: DeploymentContext) -> Path:
        """Writes the run's deployments to the artifact file and prints them."""
        print_deployments(context)
        return artifact_from_context(context, filepath=self.config.artifact_filepath)

    def save_progress(
        self, error: typing.Optional[MigrationError] = None
    ) -> typing.Optional[Path]:
        """Writes what a halted run deployed, so that the next run can resume."""
        context = self.runner.context
        if context is None:
            # halted before any step ran
            return None
        print_deployments(context)
        return artifact_from_halted_run(
            context, filepath=self.config.artifact_filepath, error=error
        )

    def _print_migration_info(self):
        print(
            f"Account: {self.account.address}",
            f"Config: {self.config.path}",
            f"Migrations: {self.config.migrations_dir} ({len(self.steps)} steps)",
            f"Registry: {self.registry.address}",
            f"Artifact: {self.config.artifact_filepath}",
            f"Network: {self.config.network}",
            f"Chain ID: {networks.provider.network.chain_id}",
            sep="\n",
        )


def print_deployments(context: DeploymentContext) -> None:
    if not len(context):
        print(f"\nNo deployments on {context.network}")
        return
    width = max(len(name) for name in context.names()) + 1
    print(f"\nDeployments on {context.network}")
    for deployment in context.deployments():
        print(f"\t{deployment.name + ':':<{width}} {deployment.address}")

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, NamedTuple, Optional

from ape import chain
from ape.api import AccountAPI, ReceiptAPI
from ape.contracts import ContractInstance
from ape.exceptions import ApeException
from ape.logging import logger
from eth_utils import to_checksum_address

from migrator.constants import MIGRATIONS_CONTRACT_NAME, NO_COMPLETED_STEP
from migrator.exceptions import ConfigurationError, RegistryWriteError
from migrator.utils import get_contract_container

StepId = int


class MigrationRecord(NamedTuple):
    """Completion of a single migration step on a network."""

    step_id: StepId
    network: str
    completed_at: datetime
    applied_by: Optional[str] = None


class MigrationRegistry(ABC):
    """
    Durable record of the last completed migration step for one network.

    Reads must reflect every successful write made before them, and
    recording an already recorded step must not write anything twice.
    """

    def __init__(self, network: str):
        self.network = network
        self._records: List[MigrationRecord] = list()

    def _check_network(self, network: str) -> None:
        if network != self.network:
            raise ConfigurationError(
                f"Migration registry for {self.network} cannot be used for network {network}."
            )

    @abstractmethod
    def last_completed(self, network: str) -> Optional[StepId]:
        """Returns the id of the last completed step, or None when nothing ran yet."""
        raise NotImplementedError

    @abstractmethod
    def _write(self, step_id: StepId) -> MigrationRecord:
        raise NotImplementedError

    def record_completion(self, network: str, step_id: StepId) -> MigrationRecord:
        self._check_network(network)
        last_completed = self.last_completed(network) or NO_COMPLETED_STEP
        if step_id <= last_completed:
            # already recorded; retries must not write again
            return self._existing_record(step_id)

        record = self._write(step_id)
        self._records.append(record)
        return record

    def _existing_record(self, step_id: StepId) -> MigrationRecord:
        for record in self._records:
            if record.step_id == step_id:
                return record
        # recorded by an earlier process
        return MigrationRecord(
            step_id=step_id, network=self.network, completed_at=datetime.now(timezone.utc)
        )

    def records(self, network: str) -> List[MigrationRecord]:
        """Returns the records written through this registry, in write order."""
        self._check_network(network)
        return list(self._records)


class InMemoryMigrationRegistry(MigrationRegistry):
    """Keeps completion state in process memory; for local networks and tests."""

    def __init__(self, network: str, last_completed: Optional[StepId] = None):
        super().__init__(network=network)
        self._last_completed = last_completed or NO_COMPLETED_STEP

    def last_completed(self, network: str) -> Optional[StepId]:
        self._check_network(network)
        return self._last_completed or None

    def _write(self, step_id: StepId) -> MigrationRecord:
        self._last_completed = step_id
        return MigrationRecord(
            step_id=step_id, network=self.network, completed_at=datetime.now(timezone.utc)
        )


class OnChainMigrationRegistry(MigrationRegistry):
    """
    Completion state kept in a ``Migrations`` bookkeeping contract on the
    target network itself.

    The contract exposes ``last_completed_migration()`` and
    ``setCompleted(uint256)``; zero means that no step has completed.
    """

    def __init__(
        self,
        network: str,
        contract: ContractInstance,
        account: AccountAPI,
        required_confirmations: int = 0,
    ):
        super().__init__(network=network)
        self.contract = contract
        self.account = account
        self.required_confirmations = required_confirmations

    @classmethod
    def at(cls, network: str, address: str, account: AccountAPI, **kwargs) -> "OnChainMigrationRegistry":
        container = get_contract_container(MIGRATIONS_CONTRACT_NAME)
        contract = container.at(to_checksum_address(address))
        return cls(network=network, contract=contract, account=account, **kwargs)

    @classmethod
    def deploy(cls, network: str, account: AccountAPI, **kwargs) -> "OnChainMigrationRegistry":
        container = get_contract_container(MIGRATIONS_CONTRACT_NAME)
        contract = account.deploy(container)
        logger.success(f"{MIGRATIONS_CONTRACT_NAME} bookkeeping contract deployed at {contract.address}")
        return cls(network=network, contract=contract, account=account, **kwargs)

    @property
    def address(self) -> str:
        return self.contract.address

    def last_completed(self, network: str) -> Optional[StepId]:
        self._check_network(network)
        return int(self.contract.last_completed_migration()) or None

    def _write(self, step_id: StepId) -> MigrationRecord:
        try:
            receipt = self.contract.setCompleted(
                step_id,
                sender=self.account,
                required_confirmations=self.required_confirmations,
            )
        except ApeException as e:
            raise RegistryWriteError(network=self.network, step_id=step_id, reason=str(e)) from e

        if receipt.failed:
            raise RegistryWriteError(
                network=self.network, step_id=step_id, reason=f"transaction {receipt.txn_hash} failed"
            )

        try:
            recorded = self.last_completed(self.network)
        except ApeException as e:
            raise RegistryWriteError(
                network=self.network, step_id=step_id, reason=f"cannot read back: {e}"
            ) from e
        if recorded != step_id:
            raise RegistryWriteError(
                network=self.network,
                step_id=step_id,
                reason=f"read back {recorded} after writing {step_id}",
            )

        logger.info(f"Recorded step {step_id} as complete on {self.network}")
        return MigrationRecord(
            step_id=step_id,
            network=self.network,
            completed_at=self._completed_at(receipt),
            applied_by=receipt.sender,
        )

    @staticmethod
    def _completed_at(receipt: ReceiptAPI) -> datetime:
        block = chain.blocks[receipt.block_number]
        return datetime.fromtimestamp(block.timestamp, tz=timezone.utc)

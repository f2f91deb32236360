import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, NamedTuple, Optional, Sequence, Union

from ape import networks
from ape.api import AccountAPI
from ape.contracts import ContractContainer
from ape.exceptions import (
    NetworkError,
    ProviderError,
    TransactionError,
    TransactionNotFoundError,
    VirtualMachineError,
)
from ape.logging import logger
from eth_utils import to_checksum_address

from migrator.constants import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_INTERVAL
from migrator.exceptions import (
    ConfirmationTimeoutError,
    PermanentDeployError,
    SubmittedDeployError,
    TransientDeployError,
)
from migrator.utils import get_contract_container, to_transaction_id, validate_constructor_args

Artifact = Union[str, ContractContainer]


class DeployResult(NamedTuple):
    address: str
    transaction_id: str


class Confirmation(Enum):
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed-out"
    REVERTED = "reverted"


class NetworkAdapter(ABC):
    """Narrow interface to a ledger network used by migration steps."""

    network: str

    @abstractmethod
    def deploy(self, artifact: Artifact, constructor_args: Sequence[Any] = ()) -> DeployResult:
        """Submits a deployment transaction and returns its address and transaction id."""
        raise NotImplementedError

    @abstractmethod
    def wait_for_confirmation(
        self, transaction_id: str, timeout: Optional[float] = None
    ) -> Confirmation:
        """Blocks until the transaction reaches a terminal outcome or the timeout expires."""
        raise NotImplementedError

    def deploy_and_confirm(
        self,
        artifact: Artifact,
        constructor_args: Sequence[Any] = (),
        timeout: Optional[float] = None,
        name: Optional[str] = None,
    ) -> DeployResult:
        """
        Deploys and waits for confirmation; ``name`` is the logical name the
        deployment will be bound to, used in reports.
        """
        result = self.deploy(artifact, constructor_args)
        outcome = self.wait_for_confirmation(result.transaction_id, timeout)
        if outcome is Confirmation.REVERTED:
            raise PermanentDeployError(
                f"Deployment of {name or _artifact_name(artifact)} reverted "
                f"(transaction {result.transaction_id})"
            )
        if outcome is Confirmation.TIMED_OUT:
            raise ConfirmationTimeoutError(transaction_id=result.transaction_id, timeout=timeout)
        return result


def _artifact_name(artifact: Artifact) -> str:
    if isinstance(artifact, str):
        return artifact
    return artifact.contract_type.name


class ApeNetworkAdapter(NetworkAdapter):
    """
    Deploys compiled project contracts through the connected ape provider.

    Transient submission failures are retried up to ``max_retries`` times,
    but only while the account nonce shows that nothing was broadcast;
    otherwise a retry could leave an orphaned duplicate program behind.
    """

    def __init__(
        self,
        network: str,
        account: AccountAPI,
        required_confirmations: int = 0,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
    ):
        self.network = network
        self.account = account
        self.required_confirmations = required_confirmations
        self.max_retries = max_retries
        self.retry_interval = retry_interval

    def deploy(self, artifact: Artifact, constructor_args: Sequence[Any] = ()) -> DeployResult:
        container = artifact
        if isinstance(artifact, str):
            container = get_contract_container(artifact)
        contract_name = container.contract_type.name
        validate_constructor_args(container, constructor_args)

        attempt = 0
        while True:
            attempt += 1
            nonce = self.account.nonce
            try:
                return self._submit(container, constructor_args)
            except VirtualMachineError as e:
                raise PermanentDeployError(f"Deployment of {contract_name} reverted: {e}") from e
            except (ProviderError, NetworkError, TransactionError) as e:
                if self._broadcast_since(nonce):
                    raise SubmittedDeployError(
                        f"Deployment of {contract_name} failed after {attempt} attempt(s) "
                        f"(transaction may have been broadcast): {e}"
                    ) from e
                if attempt > self.max_retries:
                    raise TransientDeployError(
                        f"Deployment of {contract_name} failed after {attempt} attempt(s): {e}"
                    ) from e
                logger.warning(
                    f"Deployment of {contract_name} failed ({e}); "
                    f"retrying in {self.retry_interval}s ({attempt}/{self.max_retries})"
                )
                time.sleep(self.retry_interval)

    def _submit(self, container: ContractContainer, constructor_args: Sequence[Any]) -> DeployResult:
        txn = container(*constructor_args, sender=self.account, required_confirmations=0)
        receipt = self.account.call(txn)
        if receipt.failed or not receipt.contract_address:
            raise PermanentDeployError(
                f"Deployment of {container.contract_type.name} did not create a contract "
                f"(transaction {to_transaction_id(receipt.txn_hash)})"
            )
        address = to_checksum_address(receipt.contract_address)
        transaction_id = to_transaction_id(receipt.txn_hash)
        logger.info(f"{container.contract_type.name} submitted at {address} ({transaction_id})")
        return DeployResult(address=address, transaction_id=transaction_id)

    def _broadcast_since(self, nonce: int) -> bool:
        try:
            return self.account.nonce > nonce
        except (ProviderError, NetworkError):
            # unknown; assume the worst
            return True

    def wait_for_confirmation(
        self, transaction_id: str, timeout: Optional[float] = None
    ) -> Confirmation:
        provider = networks.provider
        try:
            receipt = provider.get_receipt(
                transaction_id,
                required_confirmations=self.required_confirmations,
                timeout=timeout,
            )
        except TransactionNotFoundError:
            return Confirmation.TIMED_OUT
        except VirtualMachineError:
            return Confirmation.REVERTED

        if receipt.failed:
            return Confirmation.REVERTED
        return Confirmation.CONFIRMED

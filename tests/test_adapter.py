from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from ape.exceptions import ContractLogicError, ProviderError, TransactionNotFoundError

from conftest import RecordingAdapter
from migrator import adapter as adapter_module
from migrator.adapter import ApeNetworkAdapter, Confirmation, DeployResult
from migrator.exceptions import (
    ConfigurationError,
    ConfirmationTimeoutError,
    IndeterminateStepError,
    PermanentDeployError,
    SubmittedDeployError,
    TransientDeployError,
)
from migrator.registry import InMemoryMigrationRegistry
from migrator.runner import StepRunner
from migrator.step import FunctionStep

NETWORK = "ethereum:sepolia"
CONTRACT_ADDRESS = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
TX_HASH = "0x" + "ab" * 32


def make_container(name="WalletFactory", inputs=()):
    container = MagicMock()
    container.contract_type.name = name
    container.constructor.abi.inputs = [SimpleNamespace(name=n, type=t) for n, t in inputs]
    return container


def make_receipt(failed=False, contract_address=CONTRACT_ADDRESS):
    return SimpleNamespace(failed=failed, contract_address=contract_address, txn_hash=TX_HASH)


class FakeAccount:
    def __init__(self, outcomes):
        self.nonce = 0
        self.outcomes = list(outcomes)
        self.calls = 0

    def call(self, txn):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if callable(outcome):
            return outcome(self)
        if isinstance(outcome, Exception):
            raise outcome
        self.nonce += 1
        return outcome


def ape_adapter(account, **kwargs):
    kwargs.setdefault("retry_interval", 0)
    return ApeNetworkAdapter(network=NETWORK, account=account, **kwargs)


def test_deploy_and_confirm():
    adapter = RecordingAdapter(network=NETWORK)
    result = adapter.deploy_and_confirm("Wallet", timeout=3)
    assert isinstance(result, DeployResult)
    assert adapter.deploy_calls == [("Wallet", ())]


def test_deploy_and_confirm_reverted():
    adapter = RecordingAdapter(network=NETWORK)
    adapter.outcomes["WalletImplementation"] = Confirmation.REVERTED
    with pytest.raises(PermanentDeployError, match="Wallet reverted"):
        adapter.deploy_and_confirm("WalletImplementation", name="Wallet")


def test_deploy_and_confirm_timed_out():
    adapter = RecordingAdapter(network=NETWORK)
    adapter.outcomes["Wallet"] = Confirmation.TIMED_OUT
    with pytest.raises(ConfirmationTimeoutError) as error:
        adapter.deploy_and_confirm("Wallet", timeout=3)
    assert error.value.timeout == 3
    assert not error.value.permanent


def test_ape_deploy():
    account = FakeAccount([make_receipt()])
    container = make_container(inputs=[("_implementation", "address")])

    result = ape_adapter(account).deploy(container, [CONTRACT_ADDRESS])

    assert result.address == "0x5FbDB2315678afecb367f032d93F642f64180aa3"
    assert result.transaction_id == TX_HASH
    container.assert_called_once_with(
        CONTRACT_ADDRESS, sender=account, required_confirmations=0
    )


def test_ape_deploy_validates_constructor_args():
    account = FakeAccount([make_receipt()])
    container = make_container(inputs=[("_implementation", "address")])
    adapter = ape_adapter(account)

    with pytest.raises(ConfigurationError):
        adapter.deploy(container, [])
    with pytest.raises(ConfigurationError):
        adapter.deploy(container, ["not an address"])
    assert account.calls == 0


def test_ape_deploy_reverted():
    account = FakeAccount([ContractLogicError("execution reverted")])
    with pytest.raises(PermanentDeployError):
        ape_adapter(account).deploy(make_container())
    assert account.calls == 1


def test_ape_deploy_without_contract_address():
    account = FakeAccount([make_receipt(contract_address=None)])
    with pytest.raises(PermanentDeployError):
        ape_adapter(account).deploy(make_container())


def test_ape_deploy_retries_unsent_transactions():
    account = FakeAccount([ProviderError("connection reset"), make_receipt()])
    result = ape_adapter(account, max_retries=2).deploy(make_container())
    assert result.transaction_id == TX_HASH
    assert account.calls == 2


def test_ape_deploy_retries_are_bounded():
    account = FakeAccount([ProviderError("down")] * 3)
    with pytest.raises(TransientDeployError):
        ape_adapter(account, max_retries=2).deploy(make_container())
    assert account.calls == 3


def test_ape_deploy_never_retries_broadcast_transactions():
    def broadcast_then_fail(account):
        account.nonce += 1
        raise ProviderError("timeout waiting for receipt")

    account = FakeAccount([broadcast_then_fail, make_receipt()])
    with pytest.raises(SubmittedDeployError, match="broadcast"):
        ape_adapter(account, max_retries=2).deploy(make_container())
    assert account.calls == 1


def test_broadcast_failure_halts_the_run_as_indeterminate():
    def broadcast_then_fail(account):
        account.nonce += 1
        raise ProviderError("timeout waiting for receipt")

    def wallet(migration):
        migration.deploy("Wallet", make_container("WalletImplementation"))

    registry = InMemoryMigrationRegistry(network=NETWORK)
    runner = StepRunner(
        NETWORK,
        [FunctionStep(id=1, name="wallet", function=wallet)],
        adapter=ape_adapter(FakeAccount([broadcast_then_fail])),
        registry=registry,
    )

    with pytest.raises(IndeterminateStepError) as error:
        runner.run()

    assert isinstance(error.value.cause, SubmittedDeployError)
    assert registry.last_completed(NETWORK) is None


@pytest.fixture
def provider(monkeypatch):
    fake_networks = MagicMock()
    monkeypatch.setattr(adapter_module, "networks", fake_networks)
    return fake_networks.provider


def test_ape_wait_for_confirmation(provider):
    provider.get_receipt.return_value = SimpleNamespace(failed=False)
    adapter = ape_adapter(FakeAccount([]), required_confirmations=2)

    assert adapter.wait_for_confirmation(TX_HASH, timeout=30) is Confirmation.CONFIRMED
    provider.get_receipt.assert_called_once_with(TX_HASH, required_confirmations=2, timeout=30)


def test_ape_wait_for_confirmation_reverted(provider):
    provider.get_receipt.return_value = SimpleNamespace(failed=True)
    adapter = ape_adapter(FakeAccount([]))
    assert adapter.wait_for_confirmation(TX_HASH) is Confirmation.REVERTED


def test_ape_wait_for_confirmation_timed_out(provider):
    provider.get_receipt.side_effect = TransactionNotFoundError(transaction_hash=TX_HASH)
    adapter = ape_adapter(FakeAccount([]))
    assert adapter.wait_for_confirmation(TX_HASH, timeout=1) is Confirmation.TIMED_OUT

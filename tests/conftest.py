import pytest

from migrator.adapter import Confirmation, DeployResult, NetworkAdapter
from migrator.registry import InMemoryMigrationRegistry
from migrator.step import FunctionStep

NETWORK = "ethereum:local:test"


class RecordingAdapter(NetworkAdapter):
    """Deploys nothing; hands out sequential addresses and logs every call."""

    def __init__(self, network, events=None):
        self.network = network
        self.events = events if events is not None else list()
        self.deploy_calls = list()
        self.failures = dict()
        self.outcomes = dict()
        self._artifacts = dict()

    def deploy(self, artifact, constructor_args=()):
        self.deploy_calls.append((artifact, tuple(constructor_args)))
        self.events.append(("deploy", artifact))
        if artifact in self.failures:
            raise self.failures[artifact]
        n = len(self.deploy_calls)
        result = DeployResult(address=f"0x{n:040x}", transaction_id=f"0x{n:064x}")
        self._artifacts[result.transaction_id] = artifact
        return result

    def wait_for_confirmation(self, transaction_id, timeout=None):
        artifact = self._artifacts[transaction_id]
        return self.outcomes.get(artifact, Confirmation.CONFIRMED)


class RecordingRegistry(InMemoryMigrationRegistry):
    def __init__(self, network, events=None, last_completed=None):
        super().__init__(network=network, last_completed=last_completed)
        self.events = events if events is not None else list()
        self.failures = dict()
        self.writes = list()

    def _write(self, step_id):
        self.writes.append(step_id)
        if step_id in self.failures:
            raise self.failures[step_id]
        self.events.append(("record", step_id))
        return super()._write(step_id)


def address(n):
    return f"0x{n:040x}"


# Fixtures
@pytest.fixture
def network():
    return NETWORK


@pytest.fixture
def events():
    return list()


@pytest.fixture
def adapter(network, events):
    return RecordingAdapter(network=network, events=events)


@pytest.fixture
def registry(network, events):
    return RecordingRegistry(network=network, events=events)


@pytest.fixture
def deploy_step():
    """
    Builds a step deploying one program named ``name``, whose constructor gets
    the addresses of the ``requires`` names, in order.
    """

    def _deploy_step(step_id, name, artifact=None, requires=()):
        def migrate(migration):
            args = [migration.address_of(dependency) for dependency in requires]
            migration.deploy(name, artifact or name, *args)

        return FunctionStep(id=step_id, name=name, function=migrate)

    return _deploy_step


@pytest.fixture
def five_steps(deploy_step):
    return [
        deploy_step(1, "Token"),
        deploy_step(2, "Staking", requires=["Token"]),
        deploy_step(3, "Coordinator", requires=["Staking"]),
        deploy_step(4, "AllowList", requires=["Coordinator"]),
        deploy_step(5, "Subscription", requires=["Coordinator", "Token"]),
    ]

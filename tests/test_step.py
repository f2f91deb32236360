import textwrap

import pytest

from conftest import RecordingAdapter, address
from migrator.context import DeploymentContext
from migrator.exceptions import ConfigurationError, DuplicateBindingError, UnresolvedDependencyError
from migrator.step import FunctionStep, Migration, load_steps, validate_steps


def _noop(migration):
    pass


def steps_with_ids(*ids):
    return [FunctionStep(id=step_id, name=f"step{n}", function=_noop) for n, step_id in enumerate(ids)]


def write_step(directory, filename, body):
    filepath = directory / filename
    filepath.write_text(textwrap.dedent(body))
    return filepath


def test_validate_contiguous_steps():
    steps = steps_with_ids(1, 2, 3)
    assert validate_steps(steps) == steps


@pytest.mark.parametrize(
    "ids,reason",
    [
        ((1, 3), "gap"),
        ((1, 2, 2), "duplicate"),
        ((1, 2, 1), "non-monotonic"),
        ((2, 3), "gap"),
    ],
)
def test_validate_malformed_steps(ids, reason):
    with pytest.raises(ConfigurationError, match=reason):
        validate_steps(steps_with_ids(*ids))


def test_validate_no_steps():
    with pytest.raises(ConfigurationError):
        validate_steps([])


def test_validate_non_integer_id():
    step = FunctionStep(id="1", name="token", function=_noop)
    with pytest.raises(ConfigurationError):
        validate_steps([step])


def test_load_steps(tmp_path):
    write_step(
        tmp_path,
        "2_factory.py",
        """
        def migrate(migration):
            migration.deploy("Factory", "WalletFactory", migration.address_of("Wallet"))
        """,
    )
    write_step(
        tmp_path,
        "1_wallet.py",
        """
        def migrate(migration):
            migration.deploy("Wallet", "WalletImplementation")
        """,
    )
    (tmp_path / "README.md").write_text("not a step")
    write_step(tmp_path, "helpers.py", "VALUE = 1\n")

    steps = load_steps(tmp_path, timeout=10, constants={"OWNER": address(9)})

    assert [(s.id, s.name) for s in steps] == [(1, "wallet"), (2, "factory")]
    assert all(s.timeout == 10 for s in steps)

    network = "ethereum:local:test"
    adapter = RecordingAdapter(network=network)
    context = DeploymentContext(network=network)
    for step in steps:
        for deployment in step.execute(context, adapter):
            context.bind(deployment, step_id=step.id)

    assert adapter.deploy_calls == [
        ("WalletImplementation", ()),
        ("WalletFactory", (address(1),)),
    ]


def test_load_steps_with_gap(tmp_path):
    write_step(tmp_path, "1_wallet.py", "def migrate(migration):\n    pass\n")
    write_step(tmp_path, "3_factory.py", "def migrate(migration):\n    pass\n")
    with pytest.raises(ConfigurationError):
        load_steps(tmp_path)


def test_load_steps_with_duplicate_ids(tmp_path):
    write_step(tmp_path, "1_wallet.py", "def migrate(migration):\n    pass\n")
    write_step(tmp_path, "1_factory.py", "def migrate(migration):\n    pass\n")
    with pytest.raises(ConfigurationError):
        load_steps(tmp_path)


def test_load_step_without_entrypoint(tmp_path):
    write_step(tmp_path, "1_wallet.py", "def deploy(migration):\n    pass\n")
    with pytest.raises(ConfigurationError, match="migrate"):
        load_steps(tmp_path)


def test_load_steps_missing_directory(tmp_path):
    with pytest.raises(ConfigurationError):
        load_steps(tmp_path / "nope")


class TestMigration:
    network = "ethereum:local:test"

    @pytest.fixture
    def migration(self):
        context = DeploymentContext(network=self.network)
        return Migration(
            context=context,
            adapter=RecordingAdapter(network=self.network),
            timeout=5,
            constants={"OWNER": address(7)},
        )

    def test_deploy_defaults_artifact_to_name(self, migration):
        token = migration.deploy("Token")
        assert migration.adapter.deploy_calls == [("Token", ())]
        assert token.name == "Token"
        assert token.network == self.network
        assert migration.deployments == [token]

    def test_resolve_within_the_same_step(self, migration):
        wallet = migration.deploy("Wallet", "WalletImplementation")
        assert migration.resolve("Wallet") == wallet
        # bound by the runner only once the step returns
        assert "Wallet" not in migration.context

    def test_resolve_unknown(self, migration):
        with pytest.raises(UnresolvedDependencyError):
            migration.address_of("Wallet")

    def test_duplicate_name_fails_before_deploying(self, migration):
        migration.deploy("Wallet")
        with pytest.raises(DuplicateBindingError):
            migration.deploy("Wallet", "WalletV2")
        assert len(migration.adapter.deploy_calls) == 1

    def test_constants(self, migration):
        assert migration.constants.OWNER == address(7)

    @pytest.mark.parametrize("name", ["owner-address", "class", "1st", "_private"])
    def test_constant_names_must_be_identifiers(self, name):
        context = DeploymentContext(network=self.network)
        with pytest.raises(ConfigurationError, match=name):
            Migration(
                context=context,
                adapter=RecordingAdapter(network=self.network),
                constants={name: address(7)},
            )

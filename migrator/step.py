import importlib.util
import re
from abc import ABC, abstractmethod
from collections import namedtuple
from keyword import iskeyword
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from migrator.adapter import Artifact, NetworkAdapter
from migrator.constants import STEP_ENTRYPOINT, STEP_FILENAME_PATTERN
from migrator.context import Deployment, DeploymentContext
from migrator.exceptions import ConfigurationError, DuplicateBindingError


class MigrationStep(ABC):
    """
    An ordered unit of deployment work.

    Subclasses set ``id`` and ``name`` and implement ``execute``, which
    returns the deployments it produced; the runner binds them into the
    context and records the step as complete.
    """

    id: int
    name: str

    @abstractmethod
    def execute(self, context: DeploymentContext, adapter: NetworkAdapter) -> List[Deployment]:
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}(id={self.id}, name={self.name!r})"


def validate_constant_names(constants: Dict[str, Any]) -> None:
    """Constants become attributes of ``migration.constants``."""
    for name in constants:
        valid = isinstance(name, str) and name.isidentifier() and not iskeyword(name)
        if not valid or name.startswith("_"):
            raise ConfigurationError(
                f"Constant name '{name}' is not a valid identifier; "
                "use letters, digits and underscores, not starting with a digit or underscore."
            )


class Migration:
    """
    What a step function sees while it runs:

        def migrate(migration):
            wallet = migration.deploy("Wallet", "WalletImplementation")
            migration.deploy("Factory", "WalletFactory", wallet.address)
    """

    def __init__(
        self,
        context: DeploymentContext,
        adapter: NetworkAdapter,
        timeout: Optional[float] = None,
        constants: Optional[Dict[str, Any]] = None,
    ):
        self.context = context
        self.adapter = adapter
        self.timeout = timeout
        self.deployments: List[Deployment] = list()

        # expose constants as attributes (e.g., migration.constants.OWNER)
        constants = constants or dict()
        validate_constant_names(constants)
        _Constants = namedtuple("_Constants", list(constants))
        self.constants = _Constants(**constants)

    @property
    def network(self) -> str:
        return self.context.network

    def resolve(self, name: str) -> Deployment:
        """Resolves a deployment made by this step or any earlier one."""
        for deployment in self.deployments:
            if deployment.name == name:
                return deployment
        return self.context.resolve(name)

    def address_of(self, name: str) -> str:
        return self.resolve(name).address

    def deploy(self, name: str, artifact: Optional[Artifact] = None, *args) -> Deployment:
        """
        Deploys ``artifact`` (defaults to ``name``) with constructor ``args`` and
        waits for confirmation.
        """
        if name in self.context or any(d.name == name for d in self.deployments):
            # fail before spending anything on-chain
            raise DuplicateBindingError(name=name, network=self.network)
        artifact = artifact or name
        result = self.adapter.deploy_and_confirm(
            artifact, constructor_args=args, timeout=self.timeout, name=name
        )
        deployment = Deployment(
            name=name,
            address=result.address,
            transaction_id=result.transaction_id,
            network=self.network,
        )
        self.deployments.append(deployment)
        return deployment


StepFunction = Callable[[Migration], Any]


class FunctionStep(MigrationStep):
    """Adapts a plain ``migrate(migration)`` function to a migration step."""

    def __init__(
        self,
        id: int,
        name: str,
        function: StepFunction,
        timeout: Optional[float] = None,
        constants: Optional[Dict[str, Any]] = None,
    ):
        self.id = id
        self.name = name
        self.function = function
        self.timeout = timeout
        self.constants = constants or dict()

    def execute(self, context: DeploymentContext, adapter: NetworkAdapter) -> List[Deployment]:
        migration = Migration(
            context=context, adapter=adapter, timeout=self.timeout, constants=self.constants
        )
        self.function(migration)
        return migration.deployments


def validate_steps(steps: Sequence[MigrationStep]) -> List[MigrationStep]:
    """
    Checks that step ids start at 1 and are contiguous and strictly increasing,
    in the order given.
    """
    if not steps:
        raise ConfigurationError("No migration steps found.")

    for position, step in enumerate(steps, start=1):
        step_id = getattr(step, "id", None)
        if not isinstance(step_id, int) or isinstance(step_id, bool):
            raise ConfigurationError(f"Step {step!r} has a non-integer id.")
        if step_id != position:
            previous = steps[position - 2].id if position > 1 else None
            if step_id == previous:
                reason = "duplicate"
            elif previous is not None and step_id < previous:
                reason = "non-monotonic"
            else:
                reason = "gap in"
            raise ConfigurationError(
                f"Step '{step.name}' has id {step_id} but {position} was expected ({reason} step ids)."
            )
    return list(steps)


def _load_module(filepath: Path):
    spec = importlib.util.spec_from_file_location(f"migration_step_{filepath.stem}", filepath)
    if spec is None or spec.loader is None:
        raise ConfigurationError(f"Cannot load migration file {filepath}.")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def load_steps(
    directory: Path,
    timeout: Optional[float] = None,
    constants: Optional[Dict[str, Any]] = None,
) -> List[MigrationStep]:
    """Loads and validates ``<id>_<name>.py`` step files from a migrations directory."""
    directory = Path(directory)
    if not directory.is_dir():
        raise ConfigurationError(f"Migrations directory not found at {directory}.")

    pattern = re.compile(STEP_FILENAME_PATTERN)
    steps = list()
    for filepath in directory.glob("*.py"):
        match = pattern.match(filepath.name)
        if not match:
            continue
        module = _load_module(filepath)
        function = getattr(module, STEP_ENTRYPOINT, None)
        if not callable(function):
            raise ConfigurationError(f"{filepath.name} does not define {STEP_ENTRYPOINT}(migration).")
        step = FunctionStep(
            id=int(match.group("id")),
            name=match.group("name"),
            function=function,
            timeout=timeout,
            constants=constants,
        )
        steps.append(step)

    steps.sort(key=lambda s: s.id)
    return validate_steps(steps)

import threading
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple

from ape.logging import logger

from migrator.adapter import Artifact, Confirmation, DeployResult, NetworkAdapter, _artifact_name
from migrator.constants import NO_COMPLETED_STEP
from migrator.context import Deployment, DeploymentContext
from migrator.exceptions import (
    ConfigurationError,
    IndeterminateStepError,
    MigrationCancelled,
    MigrationError,
    StepFailedError,
    SubmittedDeployError,
)
from migrator.registry import MigrationRecord, MigrationRegistry
from migrator.step import MigrationStep, validate_steps


class RunState(Enum):
    IDLE = "idle"
    LOADING = "loading"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


class _StepAdapter(NetworkAdapter):
    """
    Keeps track of every transaction a single step submitted, under the name
    the step binds it to. ``unconfirmed`` holds the names of deployments whose
    transaction may have been broadcast without the adapter returning an id.
    """

    def __init__(self, adapter: NetworkAdapter):
        self._adapter = adapter
        self._name: Optional[str] = None
        self.network = adapter.network
        self.submitted: List[Tuple[str, DeployResult]] = list()
        self.unconfirmed: List[str] = list()

    def deploy(self, artifact: Artifact, constructor_args: Sequence[Any] = ()) -> DeployResult:
        name = self._name or _artifact_name(artifact)
        try:
            result = self._adapter.deploy(artifact, constructor_args)
        except SubmittedDeployError:
            self.unconfirmed.append(name)
            raise
        self.submitted.append((name, result))
        return result

    def deploy_and_confirm(
        self,
        artifact: Artifact,
        constructor_args: Sequence[Any] = (),
        timeout: Optional[float] = None,
        name: Optional[str] = None,
    ) -> DeployResult:
        self._name = name
        try:
            return super().deploy_and_confirm(artifact, constructor_args, timeout, name=name)
        finally:
            self._name = None

    @property
    def touched_network(self) -> bool:
        return bool(self.submitted or self.unconfirmed)

    def wait_for_confirmation(
        self, transaction_id: str, timeout: Optional[float] = None
    ) -> Confirmation:
        outcome = self._adapter.wait_for_confirmation(transaction_id, timeout)
        if outcome is Confirmation.REVERTED:
            # reverted deployments leave nothing behind
            self.submitted = [
                (name, result)
                for name, result in self.submitted
                if result.transaction_id != transaction_id
            ]
        return outcome

    def deployments(self) -> List[Deployment]:
        return [
            Deployment(
                name=name,
                address=result.address,
                transaction_id=result.transaction_id,
                network=self.network,
            )
            for name, result in self.submitted
        ]


class StepRunner:
    """
    Runs the pending migration steps of one network, strictly in order.

    The next step never starts before the previous one is recorded as complete
    in the registry. Any failure halts the run; nothing is retried or rolled back.
    Steps that may have left unrecorded deployments on-chain are reported with
    ``IndeterminateStepError``, all other failures with ``StepFailedError``.

    ``lookup`` is optional; when given, its ``lookup(network, before_step)`` must
    return the artifact entries of previously completed steps, which seed the
    deployment context of the run.

    The context of the latest run stays available as ``context``, also when
    the run halts, so that the deployments of completed steps can be saved.
    """

    def __init__(
        self,
        network: str,
        steps: Sequence[MigrationStep],
        adapter: NetworkAdapter,
        registry: MigrationRegistry,
        lookup=None,
    ):
        self.network = network
        self.steps = list(steps)
        self.adapter = adapter
        self.registry = registry
        self.lookup = lookup

        self.state = RunState.IDLE
        self.current_step: Optional[MigrationStep] = None
        self.context: Optional[DeploymentContext] = None
        self.applied: List[MigrationRecord] = list()
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Requests cancellation; honoured before the next step starts."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def first_pending_step_id(self, start_step: Optional[int] = None) -> int:
        steps = validate_steps(self.steps)
        last_completed = self.registry.last_completed(self.network) or NO_COMPLETED_STEP
        highest = steps[-1].id
        if last_completed > highest:
            raise ConfigurationError(
                f"{self.network} has completed step {last_completed} but only "
                f"{highest} steps are known."
            )
        if start_step is None:
            return last_completed + 1
        if not 1 <= start_step <= last_completed + 1:
            raise ConfigurationError(
                f"Cannot start at step {start_step} on {self.network}; "
                f"last completed step is {last_completed or 'none'}."
            )
        return start_step

    def pending_steps(self, start_step: Optional[int] = None) -> List[MigrationStep]:
        first = self.first_pending_step_id(start_step=start_step)
        return [step for step in validate_steps(self.steps) if step.id >= first]

    def run(self, start_step: Optional[int] = None) -> DeploymentContext:
        """
        Runs every pending step and returns the resulting deployment context.
        ``start_step`` forces a re-run from that step id.
        """
        if self.state in (RunState.LOADING, RunState.EXECUTING):
            raise MigrationError(f"A migration is already running on {self.network}.")

        self.state = RunState.LOADING
        self.applied = list()
        self.context = None
        try:
            pending = self.pending_steps(start_step=start_step)
            first = pending[0].id if pending else self.steps[-1].id + 1
            context = self.seed_context(before_step=first)
            self.context = context
        except Exception:
            self.state = RunState.ABORTED
            raise

        if not pending:
            logger.info(f"No pending migration steps on {self.network}.")

        for step in pending:
            if self._cancelled.is_set():
                self.state = RunState.CANCELLED
                self.current_step = None
                logger.warning(f"Migration on {self.network} cancelled before step {step.id}.")
                raise MigrationCancelled(network=self.network, next_step_id=step.id)

            self.state = RunState.EXECUTING
            self.current_step = step
            self._run_step(step, context)

        self.state = RunState.SUCCEEDED
        self.current_step = None
        return context

    def seed_context(self, before_step: int) -> DeploymentContext:
        context = DeploymentContext(network=self.network)
        if self.lookup is None:
            return context
        for entry in self.lookup.lookup(self.network, before_step=before_step):
            context.bind(entry.to_deployment(), step_id=entry.step)
        return context

    def _run_step(self, step: MigrationStep, context: DeploymentContext) -> None:
        logger.info(f"Running step {step.id} ({step.name}) on {self.network}")
        step_adapter = _StepAdapter(self.adapter)

        deployments = list()
        try:
            deployments = list(step.execute(context, step_adapter) or [])
            for deployment in deployments:
                context.bind(deployment, step_id=step.id)
        except Exception as e:
            self.state = RunState.ABORTED
            if step_adapter.touched_network:
                logger.error(f"Step {step.id} failed after submitting transactions: {e}")
                raise IndeterminateStepError(
                    step_id=step.id,
                    step_name=step.name,
                    network=self.network,
                    cause=e,
                    deployments=deployments or step_adapter.deployments(),
                ) from e
            logger.error(f"Step {step.id} failed: {e}")
            raise StepFailedError(
                step_id=step.id, step_name=step.name, network=self.network, cause=e
            ) from e

        try:
            record = self.registry.record_completion(self.network, step.id)
        except Exception as e:
            self.state = RunState.ABORTED
            logger.error(f"Step {step.id} deployed but its completion was not recorded: {e}")
            raise IndeterminateStepError(
                step_id=step.id,
                step_name=step.name,
                network=self.network,
                cause=e,
                deployments=deployments,
            ) from e

        self.applied.append(record)
        logger.success(f"Step {step.id} ({step.name}) complete on {self.network}")

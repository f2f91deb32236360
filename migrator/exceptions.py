from typing import List, Optional


class MigrationError(Exception):
    """Base class for all migration errors."""


class ConfigurationError(MigrationError, ValueError):
    """Raised when steps or deployment configuration are malformed."""


class UnresolvedDependencyError(MigrationError, KeyError):
    """Raised when a step resolves a name that has not been bound yet."""

    def __init__(self, name: str, network: str):
        self.name = name
        self.network = network
        super().__init__(f"'{name}' is not deployed on {network} (yet)")

    def __str__(self):
        return self.args[0]


class DuplicateBindingError(MigrationError):
    """Raised when a step attempts to rebind an existing name."""

    def __init__(self, name: str, network: str):
        self.name = name
        self.network = network
        super().__init__(f"'{name}' is already bound on {network}")


class DeployError(MigrationError):
    """Raised by a network adapter when a deployment fails."""

    permanent = True


class TransientDeployError(DeployError):
    """Network unreachable, underpriced transaction, etc."""

    permanent = False


class SubmittedDeployError(TransientDeployError):
    """The deployment failed after its transaction may have been broadcast."""


class PermanentDeployError(DeployError):
    """Execution reverted or the transaction was rejected for good."""


class ConfirmationTimeoutError(DeployError):
    """A transaction was submitted but not confirmed within the timeout."""

    permanent = False

    def __init__(self, transaction_id: str, timeout: Optional[float]):
        self.transaction_id = transaction_id
        self.timeout = timeout
        super().__init__(f"Transaction {transaction_id} not confirmed after {timeout}s")


class RegistryWriteError(MigrationError):
    """Raised when a completion record could not be written or confirmed."""

    def __init__(self, network: str, step_id: int, reason: str):
        self.network = network
        self.step_id = step_id
        super().__init__(f"Could not record completion of step {step_id} on {network}: {reason}")


class StepFailedError(MigrationError):
    """A step failed cleanly; nothing was recorded for it."""

    def __init__(self, step_id: int, step_name: str, network: str, cause: Exception):
        self.step_id = step_id
        self.step_name = step_name
        self.network = network
        self.cause = cause
        super().__init__(self._message())

    def _message(self) -> str:
        return (
            f"Step {self.step_id} ({self.step_name}) failed on {self.network}: "
            f"{type(self.cause).__name__}: {self.cause}"
        )


class IndeterminateStepError(StepFailedError):
    """
    The step may have deployed programs that are not recorded as complete.
    Manual reconciliation is required before resuming.
    """

    def __init__(
        self,
        step_id: int,
        step_name: str,
        network: str,
        cause: Exception,
        deployments: Optional[List] = None,
    ):
        self.deployments = list(deployments or [])
        super().__init__(step_id, step_name, network, cause)

    def _message(self) -> str:
        message = (
            f"Step {self.step_id} ({self.step_name}) is INDETERMINATE on {self.network}: "
            f"{type(self.cause).__name__}: {self.cause}. "
            "Reconcile the network state manually before resuming."
        )
        if self.deployments:
            addresses = ", ".join(f"{d.name}={d.address}" for d in self.deployments)
            message += f" Known deployments: {addresses}"
        return message


class MigrationCancelled(MigrationError):
    """Raised when a run is cancelled between two steps."""

    def __init__(self, network: str, next_step_id: int):
        self.network = network
        self.next_step_id = next_step_id
        super().__init__(f"Migration on {network} cancelled before step {next_step_id}")

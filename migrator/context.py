from collections import OrderedDict
from typing import Iterable, List, NamedTuple, Optional

from migrator.exceptions import (
    ConfigurationError,
    DuplicateBindingError,
    UnresolvedDependencyError,
)

Network = str
DeploymentName = str


class Deployment(NamedTuple):
    """A single program deployed by a migration step."""

    name: DeploymentName
    address: str
    transaction_id: str
    network: Network


class DeploymentContext:
    """
    Name to deployment bindings for one network and one run.

    A context is created by the runner and threaded through every step;
    it is never shared between networks or runs.
    """

    def __init__(self, network: Network):
        self.network = network
        self._deployments = OrderedDict()
        self._steps = dict()

    @classmethod
    def from_deployments(
        cls, network: Network, deployments: Iterable[Deployment]
    ) -> "DeploymentContext":
        context = cls(network=network)
        for deployment in deployments:
            context.bind(deployment)
        return context

    def bind(
        self,
        name_or_deployment,
        deployment: Optional[Deployment] = None,
        step_id: Optional[int] = None,
    ) -> Deployment:
        """
        Binds a deployment under its logical name, or under an explicit one:

            context.bind(deployment)
            context.bind("Wallet", deployment)
        """
        if deployment is None:
            deployment = name_or_deployment
            name = deployment.name
        else:
            name = name_or_deployment
            if deployment.name != name:
                deployment = deployment._replace(name=name)

        if deployment.network != self.network:
            raise ConfigurationError(
                f"Cannot bind '{name}' from network {deployment.network} "
                f"into a context for {self.network}"
            )
        if name in self._deployments:
            raise DuplicateBindingError(name=name, network=self.network)

        self._deployments[name] = deployment
        self._steps[name] = step_id
        return deployment

    def resolve(self, name: DeploymentName) -> Deployment:
        try:
            return self._deployments[name]
        except KeyError:
            raise UnresolvedDependencyError(name=name, network=self.network) from None

    def address_of(self, name: DeploymentName) -> str:
        return self.resolve(name).address

    def step_of(self, name: DeploymentName) -> Optional[int]:
        """Returns the id of the step that produced a binding, when known."""
        self.resolve(name)
        return self._steps.get(name)

    def names(self) -> List[DeploymentName]:
        return list(self._deployments)

    def deployments(self) -> List[Deployment]:
        return list(self._deployments.values())

    def __contains__(self, name) -> bool:
        return name in self._deployments

    def __len__(self) -> int:
        return len(self._deployments)

    def __iter__(self):
        return iter(self.deployments())

    def __repr__(self):
        return f"DeploymentContext(network={self.network!r}, names={self.names()})"

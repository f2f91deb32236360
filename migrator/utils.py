import json
from pathlib import Path
from typing import Any, Sequence, Union

import yaml
from ape import networks, project
from ape.contracts import ContractContainer
from web3 import Web3

from migrator.constants import LOCAL_NETWORK_NAMES
from migrator.exceptions import ConfigurationError

w3 = Web3()


def _load_yaml(filepath: Path) -> dict:
    """Loads a YAML file."""
    with open(filepath, "r") as file:
        return yaml.safe_load(file)


def _load_json(filepath: Path) -> dict:
    """Loads a JSON file."""
    with open(filepath, "r") as file:
        return json.load(file)


def is_local_network() -> bool:
    return networks.provider.network.name in LOCAL_NETWORK_NAMES


def _get_dependency_contract_container(contract: str) -> ContractContainer:
    for dependency_name, dependency_versions in project.dependencies.items():
        if len(dependency_versions) > 1:
            raise ValueError(f"Ambiguous {dependency_name} dependency for {contract}")
        try:
            dependency_api = list(dependency_versions.values())[0]
            contract_container = getattr(dependency_api, contract)
            return contract_container
        except AttributeError:
            continue
    raise ValueError(f"No contract found with name '{contract}'.")


def get_contract_container(contract: str) -> ContractContainer:
    try:
        contract_container = getattr(project, contract)
    except AttributeError:
        # not in root project; check dependencies
        contract_container = _get_dependency_contract_container(contract)

    return contract_container


def validate_constructor_args(container: ContractContainer, args: Sequence[Any]) -> None:
    """Validates constructor arguments against the constructor ABI before submission."""
    contract_name = container.contract_type.name
    abi_inputs = container.constructor.abi.inputs
    if len(args) != len(abi_inputs):
        raise ConfigurationError(
            f"Constructor arguments length mismatch - "
            f"{contract_name} ABI requires {len(abi_inputs)}, got {len(args)}."
        )

    for position, (abi_input, value) in enumerate(zip(abi_inputs, args)):
        if not w3.is_encodable(abi_input.type, value):
            raise ConfigurationError(
                f"{contract_name} constructor argument '{abi_input.name}' at position {position} "
                f"has a value '{value}' whose type does not match expected ABI type "
                f"'{abi_input.type}'"
            )


def to_transaction_id(txn_hash: Union[str, bytes]) -> str:
    if isinstance(txn_hash, (bytes, bytearray)):
        return w3.to_hex(txn_hash)
    return str(txn_hash)

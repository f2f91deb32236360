from pathlib import Path
from typing import Any, Dict, NamedTuple, Optional

from eth_typing import ChecksumAddress
from eth_utils import is_address, to_checksum_address

from migrator.constants import ARTIFACTS_DIR, MIGRATIONS_DIR
from migrator.exceptions import ConfigurationError
from migrator.step import validate_constant_names
from migrator.utils import _load_yaml


class MigrationConfig(NamedTuple):
    path: Path
    network: str
    chain_id: int
    migrations_dir: Path
    artifact_filepath: Path
    registry_address: Optional[ChecksumAddress] = None
    constants: Optional[Dict[str, Any]] = None


def _relative_to(base: Path, value: Any, default: Path) -> Path:
    if not value:
        return default
    path = Path(value)
    if not path.is_absolute():
        path = base / path
    return path


def get_artifact_filepath(config: Dict, base: Path) -> Path:
    """Returns the filepath of the artifact file."""
    artifact_config = config.get("artifacts") or {}
    artifact_dir = _relative_to(base, artifact_config.get("dir"), ARTIFACTS_DIR)
    filename = artifact_config.get("filename")
    if not filename:
        raise ConfigurationError("artifacts filename is not set in config file.")
    return artifact_dir / filename


def parse_config(config: Dict, path: Path) -> MigrationConfig:
    if not isinstance(config, dict):
        raise ConfigurationError(f"Malformed migration config at {path}.")

    deployment = config.get("deployment")
    if not deployment:
        raise ConfigurationError("deployment is not set in config file.")

    network = deployment.get("network")
    if not network:
        raise ConfigurationError("network is not set in config file.")

    chain_id = deployment.get("chain_id")
    if chain_id is None:
        raise ConfigurationError("chain_id is not set in config file.")
    try:
        chain_id = int(chain_id)
    except (TypeError, ValueError):
        raise ConfigurationError(f"chain_id '{chain_id}' is not an integer.")

    base = path.parent
    migrations_config = config.get("migrations") or {}
    migrations_dir = _relative_to(base, migrations_config.get("dir"), MIGRATIONS_DIR)

    registry_address = (config.get("registry") or {}).get("address")
    if registry_address is not None:
        if not is_address(registry_address):
            raise ConfigurationError(f"Invalid registry address '{registry_address}'.")
        registry_address = to_checksum_address(registry_address)

    constants = config.get("constants") or {}
    if not isinstance(constants, dict):
        raise ConfigurationError("constants must be a mapping.")
    validate_constant_names(constants)

    return MigrationConfig(
        path=path,
        network=network,
        chain_id=chain_id,
        migrations_dir=migrations_dir,
        artifact_filepath=get_artifact_filepath(config, base=base),
        registry_address=registry_address,
        constants=constants,
    )


def load_config(filepath: Path) -> MigrationConfig:
    """Loads and validates a migration config YAML file."""
    filepath = Path(filepath)
    if not filepath.exists():
        raise ConfigurationError(f"No migration config found at {filepath}.")
    return parse_config(_load_yaml(filepath), path=filepath)


def validate_chain_id(config: MigrationConfig, chain_id: int, local: bool) -> None:
    """Checks that the config targets the chain of the connected provider."""
    if config.chain_id != chain_id and not local:
        raise ConfigurationError(
            f"chain_id in config file ({config.chain_id}) does not match "
            f"chain_id of current network ({chain_id})."
        )

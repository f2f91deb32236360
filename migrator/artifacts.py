import json
import shutil
from collections import defaultdict
from pathlib import Path
from typing import List, NamedTuple, Optional, Sequence

from migrator.constants import STANDARD_ARTIFACT_JSON_FORMAT
from migrator.context import Deployment, DeploymentContext
from migrator.exceptions import IndeterminateStepError, MigrationError
from migrator.utils import _load_json


class ArtifactEntry(NamedTuple):
    """Represents a single deployment in a migration artifact file."""

    network: str
    name: str
    address: str
    tx_hash: str
    step: Optional[int] = None
    indeterminate: bool = False

    def to_deployment(self) -> Deployment:
        return Deployment(
            name=self.name,
            address=self.address,
            transaction_id=self.tx_hash,
            network=self.network,
        )


def entries_from_context(context: DeploymentContext) -> List[ArtifactEntry]:
    entries = list()
    for deployment in context.deployments():
        entry = ArtifactEntry(
            network=deployment.network,
            name=deployment.name,
            address=deployment.address,
            tx_hash=deployment.transaction_id,
            step=context.step_of(deployment.name),
        )
        entries.append(entry)
    return entries


def read_artifact(filepath: Path) -> List[ArtifactEntry]:
    data = _load_json(filepath)
    entries = list()
    for network, deployments in data.items():
        for name, artifact in deployments.items():
            entry = ArtifactEntry(
                network=network,
                name=name,
                address=artifact["address"],
                tx_hash=artifact["tx_hash"],
                step=artifact.get("step"),
                indeterminate=artifact.get("indeterminate", False),
            )
            entries.append(entry)
    return entries


def write_artifact(entries: List[ArtifactEntry], filepath: Path) -> Path:
    """
    Writes deployment entries to a migration artifact file.

    Networks present in ``entries`` replace their previous section in an
    existing file; other networks are kept as they are.
    """
    # Sort entries to enforce common order
    entries = sorted(entries, key=lambda entry: (entry.network, entry.name))

    data = defaultdict(dict)
    for entry in entries:
        data[entry.network][entry.name] = {
            "address": entry.address,
            "tx_hash": entry.tx_hash,
            "step": entry.step,
        }
        if entry.indeterminate:
            data[entry.network][entry.name]["indeterminate"] = True

    # Create the parent directory if it does not exist
    filepath.parent.mkdir(parents=True, exist_ok=True)

    if filepath.exists():
        existing_data = _load_json(filepath)
        existing_data.update(data)
        data = existing_data

    data = {network: data[network] for network in sorted(data)}
    with open(filepath, "w") as file:
        json.dump(data, file, **STANDARD_ARTIFACT_JSON_FORMAT)

    return filepath


def update_artifact(entries: Sequence[ArtifactEntry], filepath: Path) -> Path:
    """
    Like ``write_artifact``, but entries already in the file are kept unless
    ``entries`` holds one with the same network and name.
    """
    if filepath.exists():
        networks = {entry.network for entry in entries}
        replaced = {(entry.network, entry.name) for entry in entries}
        kept = [
            entry
            for entry in read_artifact(filepath)
            if entry.network in networks and (entry.network, entry.name) not in replaced
        ]
        entries = kept + list(entries)
    return write_artifact(entries=list(entries), filepath=filepath)


def artifact_from_halted_run(
    context: DeploymentContext, filepath: Path, error: Optional[MigrationError] = None
) -> Path:
    """
    Saves the deployments of a run that halted, so that a later run can
    resume from them.

    Deployments of an indeterminate step are written with ``indeterminate``
    set; address lookups skip them until a later run of that step replaces them.
    """
    unconfirmed = list()
    step_id = None
    if isinstance(error, IndeterminateStepError):
        step_id = error.step_id
        # names bound by earlier steps keep their entry
        unconfirmed = [d for d in error.deployments if context.step_of(d.name) in (None, step_id)]
    unconfirmed_names = {d.name for d in unconfirmed}

    entries = [e for e in entries_from_context(context) if e.name not in unconfirmed_names]
    for deployment in unconfirmed:
        entry = ArtifactEntry(
            network=deployment.network,
            name=deployment.name,
            address=deployment.address,
            tx_hash=deployment.transaction_id,
            step=step_id,
            indeterminate=True,
        )
        entries.append(entry)

    if not entries:
        print(f"No deployments on {context.network}; artifact not written.")
        return filepath
    filepath = update_artifact(entries=entries, filepath=filepath)
    print(f"(i) Progress of the halted migration written to {filepath}")
    if unconfirmed:
        names = ", ".join(sorted(unconfirmed_names))
        print(f"(!) Marked as indeterminate in the artifact: {names}")
    return filepath


def artifact_from_context(context: DeploymentContext, filepath: Path) -> Path:
    """Writes every deployment known to a run's context to the artifact file."""
    entries = entries_from_context(context)
    if not entries:
        print(f"No deployments on {context.network}; artifact not written.")
        return filepath
    filepath = write_artifact(entries=entries, filepath=filepath)
    print(f"(i) Deployment artifact written to {filepath}!")
    return filepath


class ArtifactAddressLookup:
    """Recovers addresses deployed by earlier runs from their artifact file."""

    def __init__(self, filepath: Path):
        self.filepath = Path(filepath)

    def lookup(self, network: str, before_step: Optional[int] = None) -> List[ArtifactEntry]:
        if not self.filepath.exists():
            return list()
        entries = list()
        for entry in read_artifact(self.filepath):
            if entry.network != network or entry.indeterminate:
                continue
            if before_step is not None and entry.step is not None and entry.step >= before_step:
                continue
            entries.append(entry)
        return entries


def normalize_artifact(filepath: Path):
    """Normalizes a potentially non-standard artifact file."""
    try:
        entries = read_artifact(filepath=filepath)
    except Exception:
        print(f"Error when reading artifact at {filepath}.")
        raise

    try:
        temp_filepath = filepath.with_suffix(".temp.json")
        write_artifact(entries=entries, filepath=temp_filepath)
        shutil.copy(temp_filepath, filepath)
        temp_filepath.unlink()
        print(f"Successfully normalized artifact at {filepath}.")
    except Exception:
        print(f"Error when normalizing artifact at {filepath}.")
        raise

import sys
from typing import Sequence

from migrator.step import MigrationStep


def _abort() -> None:
    print("Aborting migration!")
    sys.exit(-1)


def _continue() -> None:
    """Asks the user to continue."""
    answer = input("Continue Y/N? ")
    if answer.lower().strip() == "n":
        _abort()


def _confirm_pending_steps(steps: Sequence[MigrationStep], network: str, forced: bool) -> None:
    """Asks the user to confirm the steps about to run."""
    if not steps:
        print(f"\n(i) No pending migration steps on {network}")
        return

    print(f"\nPending migration steps on {network}")
    for step in steps:
        print(f"\t{step.id}: {step.name}")
    if forced:
        print("(!) Forced re-run: completed steps above will deploy again")
    _continue()

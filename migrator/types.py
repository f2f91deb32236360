import click
from eth_utils import is_address, to_checksum_address


class StepId(click.ParamType):
    """A migration step id; ids start at 1."""

    name = "step_id"

    def convert(self, value, param, ctx):
        if isinstance(value, int):
            step_id = value
        else:
            try:
                step_id = int(value)
            except ValueError:
                self.fail(f"{value} is not a valid step id", param, ctx)
        if step_id < 1:
            self.fail(f"{value} is not a valid step id; step ids start at 1", param, ctx)
        return step_id


class RegistryAddress(click.ParamType):
    """Address of a deployed Migrations bookkeeping contract."""

    name = "registry_address"

    def convert(self, value, param, ctx):
        if not is_address(value):
            self.fail(f"{value} is not a valid registry address", param, ctx)
        return to_checksum_address(value)


STEP_ID = StepId()
REGISTRY_ADDRESS = RegistryAddress()

# provisioner/errors.py
"""
Error types raised while acquiring or releasing runner capacity.

Only InsufficientCapacity is absorbed inside the acquisition loop (it moves
on to the next strategy). Everything else aborts the run and is handled at
the CLI entry point, which tears down before exiting non-zero.
"""


class ProvisioningError(Exception):
    """Base exception for the provisioner."""


class ConfigError(ProvisioningError):
    """Required configuration is missing or malformed."""


class InsufficientCapacity(ProvisioningError):
    """The provider has no capacity for the requested market/size right now."""


class InvalidStrategy(ProvisioningError):
    """Unknown spot instance strategy name."""


class PricingUnavailable(ProvisioningError):
    """No price quote came back for an instance size."""


class NoCapacityAvailable(ProvisioningError):
    """Every strategy in the attempt list ran out of capacity."""


class RunnerRegistrationTimeout(ProvisioningError):
    """The instance is up but no runner with the job label came online in time."""


class TeardownPartialFailure(ProvisioningError):
    """Some runner registrations could not be removed."""


class ProviderError(ProvisioningError):
    """Any other failure from the compute provider."""


class RunnerServiceError(ProvisioningError):
    """Failure talking to the runner registration service."""

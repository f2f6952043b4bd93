"""Project-specific exception types."""

from __future__ import annotations


class FleetError(RuntimeError):
    """Base error for domain-level pvefleet failures."""


class ConfigurationError(FleetError):
    """Raised when required configuration (credentials, inputs) is missing."""


class AuthenticationError(FleetError):
    """Raised when the hypervisor rejects a ticket request."""


class HypervisorRequestError(FleetError):
    """Raised on transport-level failures (DNS, refused connection, timeout)."""


class HypervisorAPIError(FleetError):
    """Raised when a hypervisor call returns a non-2xx status."""

    def __init__(self, what: str, status_code: int, body: str = ''):
        self.what = what
        self.status_code = status_code
        self.body = body
        super().__init__(f'{what}: {status_code} {body}'.strip())


class UnexpectedResponseError(FleetError):
    """Raised when a hypervisor payload does not have the expected shape."""


class VMNotFoundError(FleetError):
    def __init__(self, vm_name: str, available: list[str]):
        self.vm_name = vm_name
        self.available = list(available)
        super().__init__(
            f'VM "{vm_name}" not found. Available: {", ".join(self.available)}'
        )


class TaskFailedError(FleetError):
    def __init__(self, what: str, exit_status: str):
        self.what = what
        self.exit_status = exit_status
        super().__init__(f'{what} failed: {exit_status}')


class TaskTimeoutError(FleetError):
    """Raised when a hypervisor task does not reach a terminal state in time."""


class GuestIPTimeoutError(FleetError):
    """Raised when the guest agent never reports an IPv4 address in time."""

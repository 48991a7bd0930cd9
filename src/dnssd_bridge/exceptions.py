"""
Error taxonomy for the DNS-SD bridge.
"""
from enum import Enum


class ErrorCode(str, Enum):
    INVALID_ARGUMENT = "invalid_argument"
    INCORRECT_STATE = "incorrect_state"
    OUT_OF_MEMORY = "out_of_memory"
    BACKEND_FAULT = "backend_fault"
    UNSUPPORTED = "unsupported"
    UNKNOWN_RESOURCE_ID = "unknown_resource_id"


class DnssdError(Exception):
    """Base class for all bridge errors."""
    code: ErrorCode

    def __str__(self) -> str:
        message = super().__str__()
        return f"[{self.code.value}] {message}" if message else self.code.value


class InvalidArgumentError(DnssdError):
    """Raised for malformed or oversized inputs, unparseable wire types, bad ports or addresses."""
    code = ErrorCode.INVALID_ARGUMENT


class IncorrectStateError(DnssdError):
    """Raised when the backend or the result dispatcher capability is not bound."""
    code = ErrorCode.INCORRECT_STATE


class OutOfMemoryError(DnssdError):
    """Raised when a session or a TXT buffer cannot be allocated."""
    code = ErrorCode.OUT_OF_MEMORY


class BackendFaultError(DnssdError):
    """Raised when the discovery backend reports an error across the call boundary."""
    code = ErrorCode.BACKEND_FAULT

    def __init__(self, operation: str, message: str = ""):
        super().__init__(message or f"Backend raised during {operation}")
        self.operation = operation


class UnsupportedError(DnssdError):
    """Raised by operations this bridge deliberately does not provide."""
    code = ErrorCode.UNSUPPORTED


class UnknownResourceIdError(DnssdError):
    """Delivered when a resolve completes without an address or port."""
    code = ErrorCode.UNKNOWN_RESOURCE_ID

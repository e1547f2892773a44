"""Exception hierarchy for the invocation pipeline.

Every exception carries a short ``code`` so the engine can turn it into an
anomaly without inspecting messages.
"""

from __future__ import annotations


class InvokerError(Exception):
    """Base class for all pipeline errors."""

    code = "invoker_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class UnknownOperation(InvokerError, KeyError):
    """Raised when an operation name is not part of the service descriptor."""

    code = "unknown_operation"

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class UnknownShape(InvokerError):
    code = "unknown_shape"

    def __init__(self, shape_name: str) -> None:
        super().__init__(f"Unknown shape: {shape_name}")
        self.shape_name = shape_name


class MarshallingError(InvokerError):
    """Raised when a parameter map cannot be turned into a request."""

    code = "marshalling_error"

    def __init__(self, message: str, path: str | None = None, code: str | None = None) -> None:
        super().__init__(message, code)
        self.path = path


class MissingRequiredParameter(MarshallingError):
    code = "missing_required_parameter"

    def __init__(self, path: str) -> None:
        super().__init__(f"Missing required parameter: {path}", path=path)


class UnknownParameter(MarshallingError):
    code = "unknown_parameter"

    def __init__(self, path: str, valid: list[str]) -> None:
        super().__init__(
            f"Unknown parameter '{path}'. Valid parameters: {', '.join(valid) or '(none)'}",
            path=path,
        )
        self.valid = valid


class InvalidParameterValue(MarshallingError):
    code = "invalid_parameter_value"


class ValidationFailed(MarshallingError):
    """Raised when request validation against the input schema fails."""

    code = "validation_failed"

    def __init__(self, message: str, details: dict[str, object]) -> None:
        super().__init__(message)
        self.details = details


class UnmarshallingError(InvokerError):
    code = "unmarshalling_error"


class NoKnownEndpoint(InvokerError):
    code = "no_known_endpoint"


class SigningError(InvokerError):
    code = "signing_error"


class CredentialsError(InvokerError):
    code = "credentials_error"


class TransportError(InvokerError):
    """Raised by transports for connection, DNS, timeout and reset failures.

    ``category`` is the anomaly category the failure maps to
    (``unavailable`` or ``interrupted``).
    """

    code = "transport_error"

    def __init__(self, message: str, category: str = "unavailable") -> None:
        super().__init__(message)
        self.category = category

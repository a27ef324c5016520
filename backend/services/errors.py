"""Error types for the custody client and the provisioning workflow."""


class VaultServiceError(Exception):
    """Base exception for custody and provisioning errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "message": self.message, **self.details}


class ConfigurationError(VaultServiceError):
    """Signing key or API key missing or malformed."""

    def __init__(self, message: str, setting: str | None = None):
        details = {}
        if setting:
            details["setting"] = setting
        super().__init__(message, details)


class ValidationError(VaultServiceError):
    """Unsupported asset type / blockchain / token standard selection."""

    def __init__(self, message: str, field: str | None = None, value: str | None = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = value
        super().__init__(message, details)


class CustodyApiError(VaultServiceError):
    """A custody API call failed (non-2xx status or transport failure)."""

    def __init__(
        self,
        message: str,
        method: str,
        endpoint: str,
        status_code: int | None = None,
        response_body=None,
        original_message: str | None = None,
    ):
        self.method = method
        self.endpoint = endpoint
        self.status_code = status_code
        self.response_body = response_body
        self.original_message = original_message or message
        details = {"method": method, "endpoint": endpoint}
        if status_code is not None:
            details["status_code"] = status_code
        if response_body is not None:
            details["response_body"] = response_body
        if original_message:
            details["original_message"] = original_message
        super().__init__(message, details)


class AuthenticationFailure(CustodyApiError):
    """The provider rejected the signed token (401/403)."""


class TransportError(CustodyApiError):
    """Network failure or timeout talking to the provider."""


class ProvisioningStepFailure(VaultServiceError):
    """A fatal provisioning step failed; carries the step name and the cause."""

    def __init__(self, step: str, cause: Exception | str):
        self.step = step
        self.cause = cause
        details = {"step": step}
        if isinstance(cause, VaultServiceError):
            details.update(cause.details)
        message = f"Provisioning failed at step '{step}': {getattr(cause, 'message', cause)}"
        super().__init__(message, details)

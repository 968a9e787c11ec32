"""Application errors for the cars gateway app."""


class ConfigLoadError(Exception):
    """Raised when the application config is missing or invalid."""


class MalformedPayloadError(Exception):
    """Raised when a ledger result is not valid JSON."""


class InvalidArgument(ValueError):
    """Raised when a request field cannot be encoded as a contract argument."""

    def __init__(self, field: str, value: str, message: str):
        super().__init__(f"{field}: {message}: {value!r}")
        self.field = field
        self.value = value

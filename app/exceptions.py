"""ADLENS: Domain exceptions raised outside the pure engines."""


class AdlensError(Exception):
    """Base exception for ADLENS orchestration errors."""

    pass


class ClientNotFoundError(AdlensError):
    """Raised when a client record does not exist."""

    def __init__(self, client_id: str):
        self.client_id = client_id
        super().__init__(f"Client not found: {client_id}")


class EngineConfigError(AdlensError):
    """Raised when an engine config override cannot be applied."""

    def __init__(self, client_id: str, errors: list[dict]):
        self.client_id = client_id
        self.errors = errors
        super().__init__(
            f"Invalid engine config for {client_id}: "
            f"{errors[0] if errors else 'N/A'}"
        )


class InsufficientDataError(AdlensError):
    """Raised when a run has no input rows to work with."""

    def __init__(self, client_id: str, what: str):
        self.client_id = client_id
        self.what = what
        super().__init__(f"No {what} found for client {client_id}")

"""Error taxonomy shared by the bootstrap, the storage API and the client backends.

"Not found" is never an exception here: it surfaces as ``None`` / ``False``
from the client backends and as a bare 404 from the HTTP API.
"""


class ConfigurationError(Exception):
    """Nothing to serve, or a configuration value that cannot be used."""


class ValidationError(Exception):
    """A document that must be well-formed is not (bad JSON, missing uuid)."""

    def __init__(self, file_name: str, detail: str):
        self.file_name = file_name
        self.detail = detail
        super().__init__(f'Environment file "{file_name}" {detail}')


class StorageError(Exception):
    """Any failure of a client persistence backend."""


class TransportError(StorageError):
    """Non-success answer (or no answer) from the storage API."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)

class CorpusError(Exception):
    """Base class for fatal collection errors."""

    def __init__(self, message, identifier=None):
        super().__init__(message)
        self.message = message
        self.identifier = identifier

    def __str__(self):
        if self.identifier is None:
            return self.message
        return f"{self.message} (id {self.identifier})"


class StructuralMismatch(CorpusError):
    """Raised when a fetched page no longer has the expected shape."""


class FetchFailure(CorpusError):
    """Raised when a fetch that cannot be skipped keeps failing."""

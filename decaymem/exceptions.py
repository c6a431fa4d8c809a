"""
Exception types shared across the memory engine.
"""


class MemoryValidationError(ValueError):
    """Invalid input surfaced immediately to the caller; never retried."""
    pass


class InvalidArgumentError(MemoryValidationError):
    """Custom exception for out-of-range numeric arguments."""
    pass


class SizeMismatchError(MemoryValidationError):
    """Custom exception for batch inputs whose lengths differ."""
    pass


class InvalidNamespaceError(MemoryValidationError):
    """Custom exception for blank or missing namespace segments."""
    pass


class MissingVariableError(MemoryValidationError):
    """Raised when a namespace template references a variable that was not supplied."""

    def __init__(self, variable: str):
        super().__init__(f'Missing required variable: {variable}')
        self.variable = variable


class MemoryStoreError(Exception):
    """Custom exception for metadata/vector backend failures."""
    pass


class ExtractionError(Exception):
    """Custom exception for extractor collaborator failures."""
    pass

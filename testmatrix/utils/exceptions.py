"""Custom exceptions for the site test matrix."""


class TestMatrixError(Exception):
    """Base exception for the test matrix."""
    pass


class ValidationError(TestMatrixError):
    """Malformed or missing input, raised before any store access."""

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field


class NotFoundError(TestMatrixError):
    """Referenced site, template or status entry does not exist."""

    def __init__(self, message: str, resource: str = None, identifier: str = None):
        super().__init__(message)
        self.resource = resource
        self.identifier = identifier


class ConflictError(TestMatrixError):
    """Duplicate template, or a store changed since it was read."""
    pass


class StoreError(TestMatrixError):
    """Underlying read/write failure."""

    def __init__(self, message: str, file_path: str = None):
        super().__init__(message)
        self.file_path = file_path


class ConfigurationError(TestMatrixError):
    """Configuration error."""
    pass

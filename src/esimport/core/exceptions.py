"""
Exceptions raised by the import pipeline.
"""


class EsImportError(Exception):
    """Base exception for esimport errors."""
    pass


class RequirementError(EsImportError):
    """Raised when a required executable is missing from the system path."""
    pass


class ConfigurationError(EsImportError):
    """Raised when the configuration is missing, unreadable or invalid."""
    pass


class CommandError(EsImportError):
    """Raised when an external command or HTTP call fails."""
    pass


class ContainerError(CommandError):
    """Raised when the container runtime reports a failure."""
    pass


class ElasticsearchError(CommandError):
    """Raised when Elasticsearch rejects a request."""

    def __init__(self, message: str, status=None, body=None):
        super().__init__(message)
        self.status = status
        self.body = body


class BulkImportError(ElasticsearchError):
    """Raised when a bulk request reports failed items."""

    def __init__(self, message: str, failed: int = 0, body=None):
        super().__init__(message, body=body)
        self.failed = failed


class PayloadError(EsImportError):
    """Raised when the bulk payload cannot be generated."""
    pass


class DatasetError(CommandError):
    """Raised when the dataset cannot be downloaded or written."""
    pass

# meeting_pipeline/core/errors.py
from __future__ import annotations


class PipelineError(Exception):
    """Base class for errors raised by the job pipeline."""


class TransientInfrastructureError(PipelineError):
    """Network, timeout or storage failure. Retried by the job scheduler."""


class ConfigurationError(PipelineError):
    """A required credential or endpoint is missing for the selected backend."""


class StorageError(TransientInfrastructureError):
    """Object storage call failed."""


class ProviderError(PipelineError):
    """Transcription backend failed to produce segments."""


class ProviderUnavailableError(ProviderError, TransientInfrastructureError):
    """Backend unreachable, timed out, or returned a non-success status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderConfigurationError(ProviderError, ConfigurationError):
    pass


class ProviderValidationError(ProviderError):
    """Backend answered, but the payload does not have the expected shape."""

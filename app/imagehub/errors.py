"""
Image Hub errors.
Precondition errors block a run before anything is dispatched.
"""


class ImageHubError(Exception):
    """Base class for Image Hub errors."""


class PreconditionError(ImageHubError):
    """A run cannot start. Nothing has been dispatched or mutated."""


class NotAuthorizedError(PreconditionError):
    """The user has not logged in."""


class NoPromptsError(PreconditionError):
    """The prompt list is empty."""


class MissingCredentialError(PreconditionError):
    """No API key is stored for the active provider."""


class UnsupportedProviderError(PreconditionError):
    """The provider identifier is not registered."""

    def __init__(self, provider: str):
        super().__init__(f"Unsupported provider: {provider}")
        self.provider = provider


class ItemNotRetryableError(ImageHubError):
    """Only failed items can be retried."""


class NothingToExportError(ImageHubError):
    """No successfully generated images to export."""

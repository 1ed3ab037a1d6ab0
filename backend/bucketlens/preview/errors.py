"""Preview domain errors."""
from __future__ import annotations


class PreviewError(RuntimeError):
    """Base error for the preview pipeline."""


class FetchFailedError(PreviewError):
    """Raised when the storage adapter cannot deliver a URL or byte range."""

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.detail = detail or message


class FetchCancelledError(PreviewError):
    """Raised when a fetch observes its cancellation token. Not a failure."""


class ViewerBundleError(PreviewError):
    """Raised when the point-cloud viewer bundle cannot be fetched or assembled."""


class PreviewActionError(PreviewError):
    """Raised when an action is requested that the current state does not offer."""

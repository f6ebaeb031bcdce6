"""Exceptions raised across the uploader."""


class HsUploaderError(Exception):
    """Base class for uploader errors."""


class InstallNotFoundError(HsUploaderError):
    """The Hearthstone install directory could not be resolved.

    Raised by the startup sequence once the bounded search is exhausted.
    The last underlying error (if any) is chained as ``__cause__``.
    """


class UploadError(HsUploaderError):
    """The replay collector rejected an upload or returned an unusable response."""

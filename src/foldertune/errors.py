"""Exceptions raised by the library client and the media sink."""


class FoldertuneError(Exception):
    """Base class for all foldertune errors."""


class ListingError(FoldertuneError):
    """Raised when a folder or song listing cannot be fetched."""


class PlaybackError(FoldertuneError):
    """Raised when the media sink fails to start playback."""

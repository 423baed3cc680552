from __future__ import annotations


class VsixPortalError(Exception):
    """Base class for all vsixportal domain errors."""


class ParseError(ValueError, VsixPortalError):
    """Raised when an extension list or platform qualifier cannot be used."""


class ResolutionError(LookupError, VsixPortalError):
    """Raised when the marketplace has no version matching a specifier."""


class FetchError(RuntimeError, VsixPortalError):
    """Raised when a download fails."""

    def __init__(
        self, message: str, url: str = "", status_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ExtractError(RuntimeError, VsixPortalError):
    """Raised when a release archive cannot be extracted."""

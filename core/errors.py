from __future__ import annotations


class HarvestError(Exception):
    """Base class for everything the harvest pipeline raises on purpose."""


class ConnectivityError(HarvestError):
    """The browser could not be reached before any extraction started."""


class NavigationError(HarvestError):
    """Opening or verifying the search page failed. Never fatal."""


class ExtractionError(HarvestError):
    """A single oracle call failed or returned something unparseable."""


class BrowserCommandError(HarvestError):
    """A single browser command failed or timed out."""


class InvalidRequestError(HarvestError, ValueError):
    """Caller input rejected before any harvest attempt."""

"""
Exceptions raised while resolving sites and retrieving NWM timesteps.
"""


class NWMExtractionError(Exception):
    """Base exception for the retrieval pipeline."""

    pass


class ResolutionError(NWMExtractionError):
    """A site coordinate did not resolve to an NHDPlus COMID."""

    pass


class FetchError(NWMExtractionError):
    """A remote archive object was unavailable or its transfer failed."""

    pass


class ExtractError(NWMExtractionError):
    """A downloaded file was malformed or missing expected variables."""

    pass


class ArchiveUnavailableError(NWMExtractionError):
    """None of the probed archive objects exist for the requested period."""

    pass

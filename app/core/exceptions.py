class DLsiteError(Exception):
    """Base class for ingestion errors."""


class TransportError(DLsiteError):
    """A request still failed after every retry was spent."""

    def __init__(self, url: str, attempts: int, message: str):
        super().__init__(f"{url} failed after {attempts} attempts: {message}")
        self.url = url
        self.attempts = attempts


class ParseError(DLsiteError):
    """A single field could not be extracted from a page."""


class CrawlTerminationError(DLsiteError):
    """A listing page failed mid-crawl; whatever was gathered so far is kept."""

    def __init__(self, page: int, message: str):
        super().__init__(f"crawl stopped at page {page}: {message}")
        self.page = page


class SingleFlightError(DLsiteError):
    """A ranking rebuild failed; every caller attached to it receives this."""

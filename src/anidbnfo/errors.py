"""Exception taxonomy for anidbnfo.

Only failures the caller has to act on are exceptions. Expected absence of a
match is never raised; lookups return ``None`` instead.

- DataSourceUnavailable: a remote dataset or metadata record could not be
  fetched. Fatal for the bulk title dataset, degraded otherwise.
- ParseFailure: malformed bulk, community or metadata document. Same severity
  rule as above.
- AccessDenied / ClientMisconfigured: a catalog rejected our credentials or
  client registration. Terminal and user-actionable.
- UnparseableFilename: an episode file does not follow the naming grammar.
  Logged and skipped by the directory scan.
"""


class AniDBNfoError(Exception):
    """Base class for all anidbnfo errors."""


class DataSourceUnavailable(AniDBNfoError):
    """Raised when a remote resource cannot be fetched and no copy exists."""

    def __init__(self, locator: str, reason: str | None = None) -> None:
        """Initialize the error with the failing locator."""
        message = f"Data source unavailable: {locator}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.locator = locator


class ParseFailure(AniDBNfoError):
    """Raised when a dataset does not match its expected structure."""

    def __init__(self, source: str, reason: str | None = None) -> None:
        """Initialize the error with the offending source."""
        message = f"Failed to parse {source}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.source = source


class AccessDenied(AniDBNfoError):
    """Raised when a catalog rejects the supplied credentials."""

    def __init__(self, catalog: str, reason: str | None = None) -> None:
        """Initialize the error with the catalog name."""
        message = f"Access denied by {catalog}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.catalog = catalog


class ClientMisconfigured(AniDBNfoError):
    """Raised when a catalog client is missing required registration data."""

    def __init__(self, catalog: str, hint: str) -> None:
        """Initialize the error with a hint on how to fix the configuration."""
        super().__init__(f"{catalog} client misconfigured: {hint}")
        self.catalog = catalog
        self.hint = hint


class UnparseableFilename(AniDBNfoError):
    """Raised when an episode filename does not follow the AniDB naming grammar."""

    def __init__(self, filename: str) -> None:
        """Initialize the error with the rejected filename."""
        super().__init__(f"Failed to parse episode file: {filename}")
        self.filename = filename

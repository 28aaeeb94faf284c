"""Error taxonomy shared by the provider, the cache and the HTTP layer."""


class CatalogError(Exception):
    """Base class for catalog failures.

    Each subclass carries the HTTP status, error code and retry hint used
    when the error reaches the API boundary.
    """

    status_code = 500
    code = "CATALOG_ERROR"
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = str(self.args[0])


class ChannelNotFound(CatalogError):
    """Channel not found"""

    status_code = 404
    code = "CHANNEL_NOT_FOUND"


class InvalidIdentifier(CatalogError):
    """Invalid channel identifier"""

    status_code = 400
    code = "INVALID_CHANNEL"


class ChannelExists(CatalogError):
    """Channel already exists in catalog"""

    status_code = 409
    code = "CHANNEL_EXISTS"


class QuotaExceeded(CatalogError):
    """YouTube API quota exceeded"""

    status_code = 503
    code = "QUOTA_EXCEEDED"
    retryable = True


class UpstreamError(CatalogError):
    """YouTube API request failed"""

    status_code = 502
    code = "UPSTREAM_ERROR"
    retryable = True


class NotConfigured(CatalogError):
    """YouTube API key is not configured"""

    status_code = 500
    code = "NOT_CONFIGURED"


class RefreshAlreadyRunning(CatalogError):
    """A catalog refresh is already running"""

    status_code = 409
    code = "REFRESH_IN_PROGRESS"
    retryable = True

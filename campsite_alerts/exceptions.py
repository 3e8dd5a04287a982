"""
Error taxonomy for Campsite Alerts.

Upstream errors are split by how the caller should react:
- TransientUpstreamError: retry with backoff
- ResourceNotFoundError / ConfigurationError: give up now, tell the user
- DeliveryError: notification transport failed, matches stay persisted
"""

from typing import Optional


class CampsiteAlertsError(Exception):
    """Base class for all Campsite Alerts errors."""


class UpstreamError(CampsiteAlertsError):
    """A park system could not be queried or returned something unusable."""

    def __init__(self, message: str, source: str = "", user_message: Optional[str] = None):
        super().__init__(message)
        self.source = source
        self.user_message = user_message or message


class TransientUpstreamError(UpstreamError):
    """Timeout, connection failure, 429/5xx or unparseable payload."""


class ResourceNotFoundError(UpstreamError):
    """The upstream definitively does not know the requested resource."""


class ConfigurationError(UpstreamError):
    """The alert cannot be polled as configured; the user must edit it."""


class DeliveryError(CampsiteAlertsError):
    """A notification transport failed to deliver a message."""

    def __init__(self, message: str, method: str = ""):
        super().__init__(message)
        self.method = method

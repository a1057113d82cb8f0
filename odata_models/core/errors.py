"""
odata_models.core.errors - Error taxonomy
==========================================

All failures raised by the toolkit derive from :class:`ODataError`:

- UsageError: caller mistakes detected before any I/O (missing key,
  negative paging arguments, attaching a resource of another type, using a
  destroyed model). Never retried.
- TransportError: anything the transport reports as an HTTP-level failure.
  ``NotFound`` (404) and ``ConcurrencyConflict`` (412) are split out so
  callers can branch on them.
- MalformedResponse: the payload does not have the shape the requested
  response type demands.
"""

from __future__ import annotations

from typing import Dict, Optional


class ODataError(Exception):
    """Base class for every error raised by odata_models."""


class UsageError(ODataError, ValueError):
    """Raised synchronously when an operation is called in an invalid state."""


class MissingKey(UsageError):
    """Raised when an entity-scoped operation needs a key that cannot be resolved."""


class ModelDestroyed(UsageError):
    """Raised when a model is used after a successful destroy()."""


class MalformedResponse(ODataError):
    """Raised when a payload lacks the fields its response type requires."""


class TransportError(ODataError):
    """
    Exception raised when the OData service returns an error.

    Attributes
    ----------
    status : int
        HTTP status code
    body : str
        Response body or extracted server message
    url : str
        The URL that was called
    headers : dict
        Response headers
    """

    def __init__(
        self,
        status: int,
        body: str,
        url: str,
        headers: Optional[Dict[str, str]] = None
    ):
        snippet = (body or "")[:1200]
        super().__init__(f"OData upstream error {status} for {url}: {snippet}")
        self.status = status
        self.body = body or ""
        self.url = url
        self.headers = headers or {}


class NotFound(TransportError):
    """The addressed resource does not exist (404)."""


class ConcurrencyConflict(TransportError):
    """The version token sent with an update or delete no longer matches (412)."""


_STATUS_ERRORS = {
    404: NotFound,
    412: ConcurrencyConflict,
}


def classify_transport_error(exc: TransportError) -> TransportError:
    """
    Map a generic TransportError onto the matching subclass by status.

    Errors that are already classified (or whose status has no dedicated
    subclass) are returned unchanged.
    """
    cls = _STATUS_ERRORS.get(exc.status)
    if cls is None or isinstance(exc, cls):
        return exc
    return cls(exc.status, exc.body, exc.url, exc.headers)

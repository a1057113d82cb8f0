"""
odata_models.core.session - OData HTTP Session Management
==========================================================

Default transport collaborator for OData services with:
- Basic and Bearer token authentication
- Automatic retry with exponential backoff
- Optional CSRF token handling for write operations
- Version tokens sent as ``If-Match``
- Error extraction from OData error payloads
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol, Tuple, Union
from urllib.parse import quote
import asyncio
import json
import logging
import threading
import time

import requests
from requests import Response, Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from odata_models.core.errors import TransportError

if TYPE_CHECKING:
    from odata_models.odata.resource import ODataResource


logger = logging.getLogger("odata_models.session")

_WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class Transport(Protocol):
    """
    What the resource layer needs from a transport.

    Implementations send ``str(resource)`` (path and query string exactly as
    rendered) plus any extra params, pass ``etag`` as the conditional-request
    header, and raise :class:`TransportError` carrying the HTTP status on
    failure. They may retry or pool connections as they see fit.
    """

    async def request(
        self,
        method: str,
        resource: "ODataResource",
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
        etag: Optional[str] = None,
    ) -> Any:
        ...


@dataclass
class ODataAuth:
    """
    Authentication configuration for an OData service.

    Parameters
    ----------
    kind : str
        Either "basic" or "bearer"
    value : tuple or str
        For basic: (username, password) tuple
        For bearer: access token string

    Examples
    --------
    >>> auth = ODataAuth("basic", ("USER", "PASSWORD"))
    >>> auth = ODataAuth("bearer", "eyJ...")
    """
    kind: str  # "basic" | "bearer"
    value: Union[Tuple[str, str], str]  # (user, pass) or access_token


@dataclass
class ODataConfig:
    """
    Connection configuration for an OData service.

    Parameters
    ----------
    base_url : str
        Service root, e.g. "https://host/odata/TripPinService/"
    auth : ODataAuth, optional
        Authentication configuration (anonymous when omitted)
    version : str
        OData protocol version, "4.0" (default) or "2.0"
    lang : str
        Accept-Language value (default: "EN")
    timeout : float
        Request timeout in seconds (default: 60.0)
    retries : int
        Number of retry attempts (default: 3)
    backoff : float
        Backoff factor for retries (default: 0.5)
    verify : bool or str
        SSL verification (True, False, or path to CA bundle)
    user_agent : str
        User-Agent header value
    default_params : dict
        Query parameters appended to every request
    fetch_csrf_token : bool
        Fetch an X-CSRF-Token before the first write request

    Examples
    --------
    >>> cfg = ODataConfig(
    ...     base_url="https://services.example.com/odata/",
    ...     auth=ODataAuth("basic", ("USER", "PASS")),
    ... )
    """
    base_url: str
    auth: Optional[ODataAuth] = None
    version: str = "4.0"
    lang: str = "EN"
    timeout: float = 60.0
    retries: int = 3
    backoff: float = 0.5
    verify: Union[bool, str] = True
    user_agent: str = "odata-models/0.1"
    default_params: Dict[str, str] = field(default_factory=dict)
    fetch_csrf_token: bool = False


class ODataSession:
    """
    HTTP transport for OData v2/v4 services.

    Renders the exact address of a resource, sends it with ``requests`` and
    returns the decoded payload. Handles authentication, retries, CSRF
    tokens and version tokens. Use as a context manager for cleanup.

    Parameters
    ----------
    cfg : ODataConfig
        Connection configuration

    Examples
    --------
    >>> cfg = ODataConfig(...)
    >>> with ODataSession(cfg) as sess:
    ...     payload = sess.send("GET", "People('russellwhyte')")
    """

    def __init__(self, cfg: ODataConfig) -> None:
        self.cfg = cfg
        self.base = cfg.base_url.rstrip("/") + "/"
        self.timeout = float(cfg.timeout)
        self.verify = cfg.verify

        self.session = self._build_session()

        self._csrf_token: Optional[str] = None
        self._csrf_lock = threading.Lock()

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()

    def __enter__(self) -> "ODataSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------------- auth/session ----------------

    def _build_session(self) -> Session:
        sess = requests.Session()

        auth = self.cfg.auth
        if auth is not None:
            if auth.kind == "basic":
                sess.auth = auth.value  # type: ignore[assignment]
            elif auth.kind == "bearer":
                sess.headers.update({"Authorization": f"Bearer {auth.value}"})
            else:
                raise ValueError("auth.kind must be 'basic' or 'bearer'")

        sess.headers.update({
            "Accept": "application/json",
            "Accept-Language": self.cfg.lang.lower(),
            "User-Agent": self.cfg.user_agent,
        })
        if self.cfg.version.startswith("4"):
            sess.headers.update({"OData-Version": "4.0", "OData-MaxVersion": "4.0"})
        else:
            sess.headers.update({"DataServiceVersion": "2.0", "MaxDataServiceVersion": "2.0"})

        retry = Retry(
            total=self.cfg.retries,
            backoff_factor=self.cfg.backoff,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset({"GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=20, pool_maxsize=50)
        sess.mount("https://", adapter)
        sess.mount("http://", adapter)
        return sess

    # ---------------- helpers ----------------

    def url(self, address: str) -> str:
        """Absolute URL for a rendered resource address."""
        return f"{self.base}{address.lstrip('/')}"

    def _with_params(self, address: str, params: Optional[Dict[str, Any]]) -> str:
        extra: Dict[str, Any] = dict(self.cfg.default_params)
        if params:
            extra.update(params)
        if not extra:
            return address
        query = "&".join(
            f"{quote(str(k), safe='$')}={quote(str(v), safe='$,()/:@')}"
            for k, v in extra.items()
        )
        sep = "&" if "?" in address else "?"
        return f"{address}{sep}{query}"

    def _decode(self, r: Response) -> Any:
        if r.status_code == 204 or not r.content:
            return None
        ctype = (r.headers.get("Content-Type") or "").lower()
        if "json" in ctype:
            return r.json()
        return r.text

    def _extract_error(self, r: Response) -> str:
        try:
            data = r.json()
        except ValueError:
            return r.text
        if not isinstance(data, dict):
            return r.text
        err = data.get("error")
        if not isinstance(err, dict):
            return r.text

        code = err.get("code")
        message = None
        if isinstance(err.get("message"), dict):
            message = err["message"].get("value")
        elif isinstance(err.get("message"), str):
            message = err.get("message")

        inner = err.get("innererror") or err.get("innerError")
        txid = inner.get("transactionid") if isinstance(inner, dict) else None

        parts = []
        if code:
            parts.append(f"code={code}")
        if message:
            parts.append(f"message={message}")
        if txid:
            parts.append(f"txid={txid}")
        return " | ".join(parts) or r.text

    def _raise_for_error(self, r: Response, url: str) -> None:
        if r.status_code >= 400 or r.status_code in (301, 302, 303, 307, 308):
            body = self._extract_error(r)
            raise TransportError(r.status_code, body, url, dict(r.headers))

    def _ensure_csrf(self) -> Optional[str]:
        if not self.cfg.fetch_csrf_token:
            return None
        if self._csrf_token:
            return self._csrf_token

        with self._csrf_lock:
            if self._csrf_token:
                return self._csrf_token

            url = self.url("$metadata")
            r = self.session.get(
                url,
                headers={"X-CSRF-Token": "Fetch"},
                timeout=self.timeout,
                verify=self.verify,
            )
            self._raise_for_error(r, url)
            token = r.headers.get("x-csrf-token")
            if not token:
                raise TransportError(400, "Failed to obtain CSRF token", url, dict(r.headers))
            self._csrf_token = token
            return token

    # ---------------- public ops ----------------

    def send(
        self,
        method: str,
        address: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
        etag: Optional[str] = None,
    ) -> Any:
        """
        Execute one blocking request against a rendered resource address.

        Parameters
        ----------
        method : str
            HTTP verb
        address : str
            Address relative to the service root, query string included
        headers : dict, optional
            Additional HTTP headers
        params : dict, optional
            Additional query parameters, appended after the resource's own
        body : any, optional
            JSON-serialisable request body
        etag : str, optional
            Version token, sent as If-Match

        Returns
        -------
        any
            Decoded JSON, text for non-JSON bodies, or None when empty
        """
        method = method.upper()
        url = self.url(self._with_params(address, params))
        h: Dict[str, str] = {}
        if body is not None:
            h["Content-Type"] = "application/json"
        if etag:
            h["If-Match"] = etag
        if method in _WRITE_METHODS:
            token = self._ensure_csrf()
            if token:
                h["X-CSRF-Token"] = token
        if headers:
            h.update(headers)

        t0 = time.perf_counter()
        r = self.session.request(
            method=method,
            url=url,
            headers=h,
            data=json.dumps(body, separators=(",", ":")) if body is not None else None,
            timeout=self.timeout,
            verify=self.verify,
        )
        self._raise_for_error(r, url)
        dt = (time.perf_counter() - t0) * 1000.0
        logger.debug("%s %s %sms", method, url, round(dt, 1))
        return self._decode(r)

    async def request(
        self,
        method: str,
        resource: "ODataResource",
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
        etag: Optional[str] = None,
    ) -> Any:
        """Awaitable form of :meth:`send` for a resource; runs off the event loop."""
        return await asyncio.to_thread(
            self.send,
            method,
            str(resource),
            headers=headers,
            params=params,
            body=body,
            etag=etag,
        )

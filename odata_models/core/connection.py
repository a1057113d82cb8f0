"""
odata_models.core.connection - High-level connection management
================================================================

Environment-driven connection context that owns one :class:`ODataSession`
and hands out services bound to it.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Optional

from odata_models.core.session import ODataAuth, ODataConfig, ODataSession

if TYPE_CHECKING:
    from odata_models.models.registry import ModelRegistry
    from odata_models.odata.schema import TypeRegistry
    from odata_models.odata.service import ODataService


class ConnectionContext:
    """
    High-level connection manager for OData services.

    Supports environment variable configuration and context manager usage.

    Parameters
    ----------
    base_url : str, optional
        Service root. Falls back to ODATA_BASE_URL env var.
    user : str, optional
        Username for basic auth. Falls back to ODATA_USER env var.
    password : str, optional
        Password for basic auth. Falls back to ODATA_PASS env var.
    bearer_token : str, optional
        Bearer token for OAuth. Falls back to ODATA_BEARER_TOKEN env var.
    version : str, optional
        OData protocol version. Falls back to ODATA_VERSION env var, then "4.0".
    verify : bool, optional
        SSL verification. Falls back to ODATA_VERIFY_TLS env var.
    timeout : float
        Request timeout in seconds.
    anonymous : bool
        Allow connecting without credentials (public services).

    Examples
    --------
    >>> with ConnectionContext(base_url="https://services.odata.org/V4/TripPinService/",
    ...                        anonymous=True) as conn:
    ...     service = conn.get_service()
    ...     people = await service.fetch_collection("People")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        bearer_token: Optional[str] = None,
        version: Optional[str] = None,
        verify: Optional[bool] = None,
        timeout: float = 60.0,
        anonymous: bool = False,
    ) -> None:
        self._base_url = (base_url or os.environ.get("ODATA_BASE_URL", "")).rstrip("/") + "/"
        self._user = user or os.environ.get("ODATA_USER", "")
        self._password = password or os.environ.get("ODATA_PASS", "")
        self._bearer_token = bearer_token or os.environ.get("ODATA_BEARER_TOKEN", "")
        self._version = version or os.environ.get("ODATA_VERSION", "4.0")

        if verify is not None:
            self._verify = verify
        else:
            self._verify = os.environ.get("ODATA_VERIFY_TLS", "true").lower() != "false"

        self._timeout = timeout
        self._anonymous = anonymous

        if not self._base_url or self._base_url == "/":
            raise ValueError(
                "Missing base_url. Set ODATA_BASE_URL environment variable "
                "or pass base_url parameter."
            )

        if not anonymous and not self._bearer_token and not (self._user and self._password):
            raise ValueError(
                "Missing credentials. Set ODATA_USER/ODATA_PASS or ODATA_BEARER_TOKEN "
                "environment variables, pass user/password or bearer_token parameters, "
                "or pass anonymous=True."
            )

        self._session: Optional[ODataSession] = None

    @property
    def session(self) -> ODataSession:
        """Get or create the underlying OData session."""
        if self._session is None:
            self._session = self._build_session()
        return self._session

    def _build_session(self) -> ODataSession:
        auth: Optional[ODataAuth] = None
        if self._bearer_token:
            auth = ODataAuth("bearer", self._bearer_token)
        elif self._user and self._password:
            auth = ODataAuth("basic", (self._user, self._password))

        cfg = ODataConfig(
            base_url=self._base_url,
            auth=auth,
            version=self._version,
            verify=self._verify,
            timeout=self._timeout,
        )
        return ODataSession(cfg)

    def close(self) -> None:
        """Close the connection."""
        if self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> "ConnectionContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def get_service(
        self,
        *,
        schema: Optional["TypeRegistry"] = None,
        models: Optional["ModelRegistry"] = None,
    ) -> "ODataService":
        """
        Get an ODataService bound to this connection's session.

        Parameters
        ----------
        schema : TypeRegistry, optional
            Pre-built type registry (else filled by ``load_metadata()``)
        models : ModelRegistry, optional
            Model/Collection factories by type name

        Returns
        -------
        ODataService
        """
        # Import here to avoid circular imports
        from odata_models.odata.service import ODataService
        return ODataService(
            self.session,
            schema=schema,
            models=models,
            version=self._version,
            base_url=self._base_url,
        )

    @property
    def base_url(self) -> str:
        """The configured base URL."""
        return self._base_url

    @property
    def version(self) -> str:
        return self._version

"""Async DealCloud REST client: authentication, row queries, row inserts."""

import time
from typing import Any, Callable, Dict, List, Optional, Union

import httpx

from . import constants
from .config import require_dealcloud
from .error_handling import (
    AuthenticationError,
    InsertError,
    QueryError,
)
from .logging_config import get_logger, log_event, Timer
from .models import AccessToken, DealCloudConfig, QuerySpec, ResolveMode

logger = get_logger(__name__)

EntryType = Union[str, int]


def resolve_value(value: Any, resolve: Union[ResolveMode, str]) -> Any:
    """Collapse a nested reference value into a scalar.

    Lists are resolved element by element and joined with ``"; "``. A dict
    holding the ``resolve`` key is replaced by that key's value. Anything else
    is returned unchanged.
    """
    key = resolve.value if isinstance(resolve, ResolveMode) else resolve
    if isinstance(value, list):
        resolved = (resolve_value(item, key) for item in value)
        return constants.ARRAY_JOIN_SEPARATOR.join(
            "" if item is None else str(item) for item in resolved
        )
    if isinstance(value, dict) and key in value:
        return value[key]
    return value


def flatten_object(
    obj: Dict[str, Any], resolve: Optional[Union[ResolveMode, str]] = None
) -> Dict[str, Any]:
    """Flatten the object- and list-valued fields of one row."""
    flattened = {}
    for key, value in obj.items():
        if resolve and isinstance(value, (dict, list)):
            flattened[key] = resolve_value(value, resolve)
        else:
            flattened[key] = value
    return flattened


def flatten_data(
    rows: List[Dict[str, Any]], resolve: Optional[Union[ResolveMode, str]] = None
) -> List[Dict[str, Any]]:
    """Flatten every row of a query response."""
    return [flatten_object(row, resolve) for row in rows]


class DealCloudClient:
    """One authenticated session against a DealCloud site.

    The client owns its access token and its HTTP connection pool. Create it
    once, hand it to the components that need it, and close it on shutdown::

        async with DealCloudClient(config) as client:
            rows = await client.query_data("company", spec)

    Credentials are checked on the first call that needs a token, not at
    construction.
    """

    def __init__(
        self,
        config: DealCloudConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        expiry_margin: float = constants.TOKEN_EXPIRY_MARGIN,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the client.

        Args:
            config: Site and service credential
            http_client: Optional preconfigured httpx client (tests inject a mock transport)
            expiry_margin: Seconds before the real expiry at which a token is refreshed
            clock: Source of the current time in epoch seconds
        """
        self.config = config
        self.expiry_margin = expiry_margin
        self._clock = clock
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=config.timeout)
        self._token: Optional[AccessToken] = None
        self.auth_count = 0

    async def __aenter__(self) -> "DealCloudClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_http_client:
            await self._http.aclose()

    @property
    def oauth_root(self) -> str:
        return f"https://{self.config.site}/api/rest/{constants.OAUTH_API_VERSION}"

    @property
    def data_root(self) -> str:
        return f"https://{self.config.site}/api/rest/{constants.DATA_API_VERSION}"

    @property
    def token(self) -> Optional[AccessToken]:
        return self._token

    async def _authenticate(self) -> AccessToken:
        """Request a new token with the client-credentials grant."""
        require_dealcloud(self.config)
        url = f"{self.oauth_root}/oauth/token"
        data = {
            "scope": self.config.token_scope,
            "grant_type": "client_credentials",
            "client_id": str(self.config.client_id),
            "client_secret": self.config.client_secret,
        }

        try:
            response = await self._http.post(
                url,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            raise AuthenticationError(
                f"Could not authenticate! {type(e).__name__}: {e}",
                context={"url": url},
            ) from e

        if not response.is_success:
            raise AuthenticationError(
                f"Could not authenticate! Status: {response.status_code}. {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            token = AccessToken.from_response(
                response.json(), now=self._clock(), margin=self.expiry_margin
            )
        except (ValueError, KeyError) as e:
            raise AuthenticationError(
                f"Could not authenticate! Unexpected token response: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e

        self._token = token
        self.auth_count += 1
        log_event(__name__, "dealcloud_authenticated", site=self.config.site, expires_at=token.expires_at)
        return token

    async def get_access_token(self) -> str:
        """Return a valid bearer token, re-authenticating when absent or expiring."""
        if self._token is None or self._token.is_expired(self._clock()):
            await self._authenticate()
        return self._token.token

    async def _post_json(
        self,
        url: str,
        payload: Any,
        error_cls: type,
        operation: str,
    ) -> Dict[str, Any]:
        token = await self.get_access_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

        try:
            response = await self._http.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise error_cls(
                f"{operation} failed: {type(e).__name__}: {e}",
                context={"url": url},
            ) from e

        if not response.is_success:
            raise error_cls(
                f"{operation} failed with status: {response.status_code} - {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return response.json()
        except ValueError as e:
            raise error_cls(
                f"{operation} returned invalid JSON",
                status_code=response.status_code,
                body=response.text,
            ) from e

    async def query_data(
        self,
        entry_type: EntryType,
        spec: QuerySpec,
        resolve: Optional[Union[ResolveMode, str]] = None,
    ) -> List[Dict[str, Any]]:
        """Run a filtered row query.

        Args:
            entry_type: Entry type name or numeric id (e.g. ``"company"``)
            spec: Filter, fields and paging of the query
            resolve: How nested reference fields are flattened, if at all

        Returns:
            The ``rows`` of the response envelope, flattened
        """
        url = f"{self.data_root}/data/entrydata/rows/query/{entry_type}"

        with Timer() as timer:
            envelope = await self._post_json(url, spec.to_body(), QueryError, "Query data")

        rows = envelope.get("rows") or []
        log_event(
            __name__,
            "dealcloud_query",
            entry_type=str(entry_type),
            rows=len(rows),
            total_records=envelope.get("totalRecords"),
            duration_ms=timer.duration_ms,
        )
        return flatten_data(rows, resolve)

    async def insert_data(
        self, entry_type: EntryType, records: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """Insert new rows for an entry type.

        Each record is sent with a placeholder ``EntryId`` of ``-(index + 1)``;
        DealCloud requires new rows to carry a negative identity.

        Returns:
            The inserted rows as returned by the API
        """
        url = f"{self.data_root}/data/entrydata/rows/{entry_type}"
        payload = with_placeholder_ids(records)

        with Timer() as timer:
            envelope = await self._post_json(url, payload, InsertError, "Insert data")

        rows = (envelope.get("rows") or []) if isinstance(envelope, dict) else envelope
        log_event(
            __name__,
            "dealcloud_insert",
            entry_type=str(entry_type),
            submitted=len(payload),
            returned=len(rows),
            duration_ms=timer.duration_ms,
        )
        return rows


def with_placeholder_ids(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Prefix each record with a sequential negative ``EntryId``."""
    return [
        {"EntryId": -(index + 1), **{k: v for k, v in record.items() if k != "EntryId"}}
        for index, record in enumerate(records)
    ]

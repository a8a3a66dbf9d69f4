"""Dexcom OAuth and EGV API client.

Talks to the Dexcom Developer API (v2 OAuth, v3 estimated glucose values)
over httpx. Every request carries a short timeout; a timeout is reported
the same way as any other transport failure.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode

import httpx

from hockey_sugar.config import settings
from hockey_sugar.logging_config import get_logger

logger = get_logger(__name__)

TOKEN_PATH = "/v2/oauth2/token"
LOGIN_PATH = "/v2/oauth2/login"
EGVS_PATH = "/v3/users/self/egvs"

EGV_LOOKBACK = timedelta(hours=24)
_DEXCOM_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


class DexcomError(Exception):
    """Base exception for Dexcom API errors."""

    pass


class DexcomAuthError(DexcomError):
    """Dexcom rejected the authorization code or refresh token."""

    pass


class DexcomTokenExpiredError(DexcomAuthError):
    """Dexcom rejected the access token while fetching readings."""

    pass


class DexcomFetchError(DexcomError):
    """Network, timeout, rate limit or malformed response from Dexcom."""

    pass


@dataclass(frozen=True)
class DexcomTokenGrant:
    """Token pair returned by the OAuth token endpoint."""

    access_token: str
    refresh_token: str
    expires_at: datetime


@dataclass(frozen=True)
class DexcomReading:
    """The most recent EGV record.

    ``system_time`` is the receiver clock in UTC and orders readings.
    ``display_time`` is the wall time shown on the device; it carries no
    zone and is kept naive.
    """

    value: float
    unit: str
    system_time: datetime
    display_time: datetime


def format_dexcom_datetime(value: datetime) -> str:
    """Format a datetime the way the EGV endpoint expects (UTC, no millis)."""
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.strftime(_DEXCOM_DATE_FORMAT)


def _parse_system_time(raw: str) -> datetime:
    parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _parse_display_time(raw: str) -> datetime:
    return datetime.fromisoformat(raw.replace("Z", "+00:00")).replace(tzinfo=None)


def _error_description(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(
            body.get("error_description")
            or body.get("error")
            or f"HTTP {response.status_code}"
        )
    return f"HTTP {response.status_code}"


class DexcomClient:
    """Client for the Dexcom OAuth token endpoint and the EGV endpoint.

    Args:
        base_url: Sandbox or production API root
        client_id: OAuth client id
        client_secret: OAuth client secret
        redirect_uri: Registered OAuth redirect URI
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (used by tests)
    """

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "DexcomClient":
        return cls(
            base_url=settings.dexcom_base_url,
            client_id=settings.dexcom_client_id,
            client_secret=settings.dexcom_client_secret,
            redirect_uri=settings.dexcom_redirect_uri,
            timeout=settings.dexcom_http_timeout_seconds,
        )

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    def authorize_url(self, state: str) -> str:
        """Build the Dexcom login URL a parent is redirected to."""
        query = urlencode(
            {
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "response_type": "code",
                "scope": "offline_access",
                "state": state,
            }
        )
        return f"{self.base_url}{LOGIN_PATH}?{query}"

    async def exchange_code(self, code: str) -> DexcomTokenGrant:
        """Exchange an authorization code for the first token pair."""
        return await self._request_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            }
        )

    async def refresh_token(self, refresh_token: str) -> DexcomTokenGrant:
        """Trade a refresh token for a new access/refresh pair.

        Raises:
            DexcomAuthError: Dexcom rejected the refresh token
            DexcomFetchError: Any other failure
        """
        return await self._request_token(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "redirect_uri": self.redirect_uri,
            }
        )

    async def _request_token(self, grant: dict[str, str]) -> DexcomTokenGrant:
        form = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            **grant,
        }
        requested_at = datetime.now(UTC)

        try:
            async with self._http() as client:
                response = await client.post(
                    TOKEN_PATH,
                    data=form,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.warning(
                "Dexcom token request failed",
                grant_type=grant["grant_type"],
                error=str(e),
            )
            raise DexcomFetchError(f"Dexcom token request failed: {e}") from e

        if response.status_code in (400, 401):
            description = _error_description(response)
            logger.warning(
                "Dexcom rejected token request",
                grant_type=grant["grant_type"],
                status_code=response.status_code,
                error=description,
            )
            raise DexcomAuthError(description)

        if response.status_code != 200:
            raise DexcomFetchError(
                f"Dexcom token endpoint returned {response.status_code}: "
                f"{_error_description(response)}"
            )

        try:
            body = response.json()
            return DexcomTokenGrant(
                access_token=body["access_token"],
                refresh_token=body["refresh_token"],
                expires_at=requested_at + timedelta(seconds=int(body["expires_in"])),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise DexcomFetchError("Malformed Dexcom token response") from e

    async def fetch_latest(
        self,
        access_token: str,
        now: datetime | None = None,
    ) -> DexcomReading | None:
        """Fetch the most recent EGV from the last 24 hours.

        Returns:
            The first record Dexcom returns, or None if the window is empty

        Raises:
            DexcomTokenExpiredError: Dexcom answered 401
            DexcomFetchError: Any other failure
        """
        end = now or datetime.now(UTC)
        params = {
            "startDate": format_dexcom_datetime(end - EGV_LOOKBACK),
            "endDate": format_dexcom_datetime(end),
            "minCount": "1",
        }

        try:
            async with self._http() as client:
                response = await client.get(
                    EGVS_PATH,
                    params=params,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as e:
            raise DexcomFetchError(f"Dexcom EGV request failed: {e}") from e

        if response.status_code == 401:
            raise DexcomTokenExpiredError("TOKEN_EXPIRED")

        if response.status_code != 200:
            raise DexcomFetchError(
                f"Dexcom EGV endpoint returned {response.status_code}: "
                f"{_error_description(response)}"
            )

        try:
            records = response.json().get("records") or []
            if not records:
                return None
            latest = records[0]
            return DexcomReading(
                value=float(latest["value"]),
                unit=str(latest.get("unit") or "mg/dL"),
                system_time=_parse_system_time(latest["systemTime"]),
                display_time=_parse_display_time(
                    latest.get("displayTime") or latest["systemTime"]
                ),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise DexcomFetchError("Malformed Dexcom EGV response") from e

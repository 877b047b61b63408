"""
Microsoft Graph API Client

Provides authenticated access to Microsoft Graph API using MSAL (Microsoft Authentication Library).
Handles token acquisition and caching; a 401 triggers exactly one token refresh.
Other failures are raised to the caller, which decides whether to skip or report.
"""

import logging
from typing import Any, Dict, Optional
from datetime import datetime, timedelta
import requests
from msal import ConfidentialClientApplication

from ..core.config import GraphAPIConfig
from ..core.exceptions import GraphAPIError, AuthenticationError, RateLimitError, ResourceNotFoundError


logger = logging.getLogger(__name__)


class GraphAPIClient:
    """
    Microsoft Graph API client with MSAL authentication.

    Supports:
    - Client credentials flow (application permissions)
    - Token caching with 5 minute early refresh
    - One forced token refresh on a 401 response

    Usage:
        client = GraphAPIClient(config.graph_api)
        me = client.get(f"/users/{config.graph_api.mailbox}")
    """

    BASE_URL = "https://graph.microsoft.com/v1.0"
    SCOPES = ["https://graph.microsoft.com/.default"]
    TIMEOUT_SECONDS = 30

    def __init__(self, config: GraphAPIConfig):
        """
        Initialize Graph API client.

        Args:
            config: GraphAPIConfig with client credentials
        """
        self.config = config
        self.base_url = self.BASE_URL
        self._access_token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None

        # Built on first token request (msal contacts the authority on construction)
        self._msal_client: Optional[ConfidentialClientApplication] = None

        logger.info(f"GraphAPIClient initialized (tenant: {config.tenant_id[:8]}..., mailbox: {config.mailbox})")

    def _authenticate(self) -> str:
        """
        Acquire access token using client credentials flow.

        Returns:
            Access token string

        Raises:
            AuthenticationError: If authentication fails
        """
        if self._access_token and self._token_expires_at:
            if datetime.now() < self._token_expires_at - timedelta(minutes=5):
                return self._access_token

        logger.info("Acquiring new access token from Microsoft Identity Platform")
        try:
            if self._msal_client is None:
                self._msal_client = ConfidentialClientApplication(
                    client_id=self.config.client_id,
                    client_credential=self.config.client_secret,
                    authority=self.config.authority or f"https://login.microsoftonline.com/{self.config.tenant_id}",
                )
            result = self._msal_client.acquire_token_for_client(scopes=self.SCOPES)
        except Exception as e:
            logger.error(f"Authentication failed: {e}", exc_info=True)
            raise AuthenticationError(f"Graph API authentication failed: {e}") from e

        if "access_token" not in result:
            error_desc = result.get("error_description", result.get("error", "Unknown error"))
            raise AuthenticationError(f"Failed to acquire token: {error_desc}")

        self._access_token = result["access_token"]
        expires_in = result.get("expires_in", 3600)
        self._token_expires_at = datetime.now() + timedelta(seconds=expires_in)

        logger.info(f"Access token acquired successfully (expires in {expires_in}s)")
        return self._access_token

    def _invalidate_token(self):
        self._access_token = None
        self._token_expires_at = None

    def _build_url(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        return f"{self.base_url}{endpoint}" if endpoint.startswith("/") else f"{self.base_url}/{endpoint}"

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        try:
            return response.json().get("error", {}).get("message", response.text)
        except ValueError:
            return response.text

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        _refreshed: bool = False,
    ) -> requests.Response:
        """
        Make authenticated request to Graph API.

        Args:
            method: HTTP method (GET, POST, PATCH, DELETE)
            endpoint: API endpoint (e.g., '/users' or full URL)
            params: Query parameters
            json: JSON body (for POST/PATCH)
            headers: Additional headers

        Returns:
            requests.Response object

        Raises:
            AuthenticationError: 401 after a token refresh, or token acquisition failed
            RateLimitError: 429 (not retried)
            ResourceNotFoundError: 404
            GraphAPIError: Any other failure
        """
        token = self._authenticate()
        url = self._build_url(endpoint)

        request_headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if headers:
            request_headers.update(headers)

        logger.debug(f"{method} {url}")
        try:
            response = requests.request(
                method=method,
                url=url,
                params=params,
                json=json,
                headers=request_headers,
                timeout=self.TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            raise GraphAPIError(f"{method} {url} failed: {e}") from e

        if response.status_code == 401:
            detail = self._error_detail(response)
            if not _refreshed:
                logger.warning(f"401 Unauthorized ({detail}), refreshing token and retrying once")
                self._invalidate_token()
                return self._request(method, endpoint, params, json, headers, _refreshed=True)
            raise AuthenticationError(f"Authentication failed after token refresh: {detail}")

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After", "?")
            raise RateLimitError(f"Rate limited by Graph API (Retry-After: {retry_after}s)")

        if response.status_code == 404:
            raise ResourceNotFoundError(f"Graph resource not found: {endpoint} - {self._error_detail(response)}")

        if response.status_code >= 400:
            error_msg = f"Graph API request failed: {response.status_code} - {self._error_detail(response)}"
            logger.error(f"{method} {url} failed: {error_msg}")
            raise GraphAPIError(error_msg)

        return response

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET request, returns parsed JSON."""
        response = self._request("GET", endpoint, params=params)
        return response.json()

    def post(self, endpoint: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """POST request, returns parsed JSON (empty dict for 202/204 responses)."""
        response = self._request("POST", endpoint, json=json)
        return response.json() if response.content else {}

    def patch(self, endpoint: str, json: Dict[str, Any]) -> Dict[str, Any]:
        """PATCH request, returns parsed JSON."""
        response = self._request("PATCH", endpoint, json=json)
        return response.json() if response.content else {}

    def delete(self, endpoint: str) -> bool:
        """DELETE request. Returns True on 204."""
        response = self._request("DELETE", endpoint)
        return response.status_code == 204

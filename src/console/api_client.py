"""
Console API client - Communication with the collaborator backend.

This module provides the ConsoleAPIClient class for every call the console
engines make: the link store, the descriptor store, the content catalogs
and the per-device telemetry endpoints. It handles:
- Session pooling for connection reuse
- Optional bearer token authentication
- Mapping of transport and HTTP failures onto console exceptions

Requests are never retried here. Callers decide what a failure means.

Example:
    from src.console.api_client import ConsoleAPIClient

    client = ConsoleAPIClient.from_config()
    data = client.get_layout('device-01')
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from requests.exceptions import (
    ConnectionError as RequestsConnectionError,
    RequestException,
    Timeout,
)

from src.common.config import ConsoleConfig, get_config
from src.common.logger import setup_logger
from src.console import (
    ConsoleAuthenticationError,
    ConsoleClientError,
    ConsoleConnectionError,
    ConsoleNotFoundError,
    ConsoleTimeoutError,
)

logger = setup_logger(__name__)


# Default configuration
DEFAULT_TIMEOUT = 30  # seconds
DEFAULT_POOL_SIZE = 10
LIST_KEYS = ('items', 'data', 'results')


def _segment(value: Any) -> str:
    """URL-encode one path segment."""
    return quote(str(value), safe='')


def extract_items(data: Any, keys=LIST_KEYS) -> List[Any]:
    """Return a list body as-is, or the first list found under keys."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in keys:
            value = data.get(key)
            if isinstance(value, list):
                return value
    return []


class ConsoleAPIClient:
    """
    Client for the collaborator HTTP API.

    Attributes:
        base_url: API base URL
        timeout: Request timeout in seconds
        session: Requests session for connection pooling
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        pool_size: int = DEFAULT_POOL_SIZE,
    ):
        """
        Initialize the client.

        Args:
            base_url: API base URL (e.g., 'http://localhost:8005')
            token: Optional bearer token
            timeout: Request timeout in seconds (default: 30)
            pool_size: Connection pool size, sized for the poller's fan-out
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._token: Optional[str] = None

        self.session = requests.Session()

        # No retries: a failed call is reported, never repeated
        adapter = HTTPAdapter(
            max_retries=0,
            pool_connections=pool_size,
            pool_maxsize=pool_size,
        )
        self.session.mount('http://', adapter)
        self.session.mount('https://', adapter)

        self.session.headers.update({
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'User-Agent': 'SignageLayoutConsole/1.0',
        })

        if token:
            self.set_token(token)

        logger.info("Console API client initialized with base URL: %s", self.base_url)

    @classmethod
    def from_config(cls, config: Optional[ConsoleConfig] = None) -> "ConsoleAPIClient":
        """Build a client from the console configuration."""
        config = config or get_config()
        return cls(
            base_url=config.api_base_url,
            token=config.api_token,
            timeout=config.api_timeout,
            pool_size=max(DEFAULT_POOL_SIZE, config.max_workers),
        )

    def set_token(self, token: str) -> None:
        """
        Set or update the authentication token.

        Args:
            token: Bearer token for the collaborator API
        """
        self._token = token
        self.session.headers['Authorization'] = f'Bearer {token}'
        logger.debug("Authentication token updated")

    def clear_token(self) -> None:
        """Remove authentication token from session."""
        self._token = None
        self.session.headers.pop('Authorization', None)
        logger.debug("Authentication token cleared")

    @property
    def is_authenticated(self) -> bool:
        """Check if client has an authentication token set."""
        return self._token is not None

    def _build_url(self, endpoint: str) -> str:
        """
        Build full URL from endpoint.

        Args:
            endpoint: API endpoint path with segments already encoded

        Returns:
            Full URL string
        """
        endpoint = endpoint.lstrip('/')
        return f"{self.base_url}/{endpoint}"

    def _handle_response(self, response: requests.Response, endpoint: str) -> Any:
        """
        Handle HTTP response and convert errors to exceptions.

        Args:
            response: HTTP response object
            endpoint: Original endpoint for error context

        Returns:
            Parsed JSON response data

        Raises:
            ConsoleAuthenticationError: When authentication fails (401/403)
            ConsoleNotFoundError: When the resource does not exist (404)
            ConsoleClientError: For other HTTP errors
        """
        if response.status_code in (401, 403):
            logger.error("Authentication failed for %s: %s", endpoint, response.status_code)
            raise ConsoleAuthenticationError(
                message=f"Authentication failed for {endpoint}",
                status_code=response.status_code,
                response_body=response.text,
            )

        if response.status_code == 404:
            # Expected for devices without a descriptor, so not an error log
            logger.debug("Not found: %s", endpoint)
            raise ConsoleNotFoundError(
                message=f"Not found: {endpoint}",
                status_code=404,
                response_body=response.text,
            )

        if not response.ok:
            logger.error("Request failed for %s: %s", endpoint, response.status_code)
            raise ConsoleClientError(
                message=f"Request failed for {endpoint}",
                status_code=response.status_code,
                response_body=response.text,
            )

        if not response.content:
            return {}

        try:
            return response.json()
        except ValueError:
            # Response was successful but not JSON
            return {'status': 'ok', 'raw': response.text}

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Make a request and map transport failures onto console exceptions.

        Raises:
            ConsoleConnectionError: When connection fails
            ConsoleTimeoutError: When request times out
            ConsoleAuthenticationError: When authentication fails
            ConsoleNotFoundError: When the resource does not exist
            ConsoleClientError: For other request errors
        """
        url = self._build_url(endpoint)

        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=data,
                timeout=self.timeout,
            )
        except Timeout as e:
            logger.error("Request timeout for %s %s: %s", method, endpoint, e)
            raise ConsoleTimeoutError(
                message=f"Request timed out for {endpoint}",
                details={'timeout': self.timeout},
            ) from e
        except RequestsConnectionError as e:
            logger.error("Connection failed for %s %s: %s", method, endpoint, e)
            raise ConsoleConnectionError(
                message=f"Connection failed for {endpoint}",
                details={'error': str(e)},
            ) from e
        except RequestException as e:
            logger.error("Request error for %s %s: %s", method, endpoint, e)
            raise ConsoleClientError(
                message=f"Request error for {endpoint}",
                details={'error': str(e)},
            ) from e

        return self._handle_response(response, endpoint)

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Make a GET request."""
        return self._request('GET', endpoint, params=params)

    def post(self, endpoint: str, data: Optional[Dict[str, Any]] = None) -> Any:
        """Make a POST request with a JSON body."""
        return self._request('POST', endpoint, data=data)

    def put(self, endpoint: str, data: Optional[Dict[str, Any]] = None) -> Any:
        """Make a PUT request with a JSON body."""
        return self._request('PUT', endpoint, data=data)

    def delete(self, endpoint: str) -> Any:
        """Make a DELETE request."""
        return self._request('DELETE', endpoint)

    def close(self) -> None:
        """Close the session and release resources."""
        self.session.close()
        logger.info("Console API client session closed")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - close session."""
        self.close()
        return False

    # -------------------------------------------------------------------------
    # Descriptor store
    # -------------------------------------------------------------------------

    def get_layout(self, mobile_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a device's stored descriptor.

        Args:
            mobile_id: Device identifier

        Returns:
            {layout_mode, layout_config} or None when the device has none (404)
        """
        try:
            return self.get(f"device/{_segment(mobile_id)}/layout")
        except ConsoleNotFoundError:
            return None

    def save_layout(self, mobile_id: str, layout_mode: str, layout_config: str) -> Any:
        """
        Replace a device's descriptor wholesale.

        Args:
            mobile_id: Device identifier
            layout_mode: Preset id
            layout_config: Serialized entry list
        """
        return self.post(
            f"device/{_segment(mobile_id)}/layout",
            {'layout_mode': layout_mode, 'layout_config': layout_config},
        )

    def sync_group_layout(
        self,
        group_name: str,
        source_mobile_id: str,
        layout_mode: str,
        layout_config: str,
    ) -> Dict[str, Any]:
        """
        Ask the collaborator to copy a layout to every device of a group.

        Returns:
            Response body, typically {devices_updated, mobile_ids}
        """
        data = self.post(
            f"group/{_segment(group_name)}/sync-to-devices",
            {
                'source_mobile_id': source_mobile_id,
                'layout_mode': layout_mode,
                'layout_config': layout_config,
            },
        )
        return data if isinstance(data, dict) else {}

    # -------------------------------------------------------------------------
    # Link store
    # -------------------------------------------------------------------------

    def list_links(self, limit: int = 1000, offset: int = 0) -> List[Dict[str, Any]]:
        """Fetch one page of link records."""
        data = self.get("links", params={'limit': limit, 'offset': offset})
        return [row for row in extract_items(data) if isinstance(row, dict)]

    def list_all_links(self, page_limit: int = 1000) -> List[Dict[str, Any]]:
        """Fetch every link record, page by page."""
        rows: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page = self.list_links(limit=page_limit, offset=offset)
            rows.extend(page)
            if len(page) < page_limit:
                return rows
            offset += page_limit

    def create_link(self, mobile_id: str, gname: str, shop_name: str, video_name: str) -> Any:
        """Link a video to a device."""
        return self.post("link", {
            'mobile_id': mobile_id,
            'gname': gname,
            'shop_name': shop_name,
            'video_name': video_name,
        })

    def delete_link(self, link_id: int) -> Any:
        """Remove one link record."""
        return self.delete(f"link/{_segment(link_id)}")

    def update_link_settings(
        self,
        link_id: int,
        grid_position: int,
        device_rotation: Optional[int],
    ) -> Any:
        """Store a video's slot position and rotation on its link record."""
        return self.put(
            f"link/{_segment(link_id)}/settings",
            {'grid_position': grid_position, 'device_rotation': device_rotation},
        )

    # -------------------------------------------------------------------------
    # Catalogs
    # -------------------------------------------------------------------------

    def list_videos(self) -> List[Any]:
        """Fetch the video catalog."""
        return extract_items(self.get("videos"))

    def list_advertisements(self) -> List[Any]:
        """Fetch the advertisement (image) catalog."""
        return extract_items(self.get("advertisements"))

    def get_group_advertisements(self, group_name: str) -> List[Any]:
        """Fetch the advertisements attached to a group."""
        data = self.get(f"group/{_segment(group_name)}/advertisements")
        return extract_items(data, keys=('advertisements',) + LIST_KEYS)

    def get_group_videos(self, group_name: str) -> List[str]:
        """Fetch the video names attached to a group."""
        data = self.get(f"group/{_segment(group_name)}/videos")
        return [str(v) for v in extract_items(data, keys=('video_names',) + LIST_KEYS) if v]

    # -------------------------------------------------------------------------
    # Telemetry
    # -------------------------------------------------------------------------

    def get_online_status(self, mobile_id: str) -> Any:
        """Fetch a device's raw online status body."""
        return self.get(f"device/{_segment(mobile_id)}/online")

    def get_download_progress(self, mobile_id: str) -> Any:
        """Fetch a device's raw download progress body."""
        return self.get(f"device/{_segment(mobile_id)}/download_progress")

    def get_video_downloads(self, mobile_id: str) -> Dict[str, Any]:
        """Fetch playable download URLs for a device's videos."""
        data = self.get(f"device/{_segment(mobile_id)}/videos/downloads")
        return data if isinstance(data, dict) else {'items': extract_items(data)}

    def refresh_video_downloads(self, mobile_id: str) -> Dict[str, Any]:
        """Ask the collaborator to regenerate a device's download URLs."""
        data = self.post(f"device/{_segment(mobile_id)}/videos/downloads")
        return data if isinstance(data, dict) else {'items': extract_items(data)}

"""Confluence Cloud REST API client with retry logic and error handling."""

import json
import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger('confluence_vuepress_migrator.client')

# Position used for child pages Confluence returns without one
DEFAULT_CHILD_POSITION = 999999

# Some image hosts refuse requests without a browser user agent
EXTERNAL_USER_AGENT = 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36'


class ConfluenceClient:
    """Confluence REST API client with basic authentication, retries and error handling."""

    def __init__(
        self,
        base_url: str,
        email: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout: int = 30,
        max_retries: int = 3,
        retry_backoff_factor: float = 2.0
    ):
        """
        Initialize Confluence client with authentication and retry configuration.

        Args:
            base_url: Confluence site URL (e.g., "https://yoursite.atlassian.net")
            email: Account email for basic auth
            api_token: API token for basic auth
            timeout: HTTP request timeout in seconds
            max_retries: Maximum retry attempts for transient errors
            retry_backoff_factor: Exponential backoff factor
        """
        if not base_url:
            raise ValueError("Confluence base URL is required")

        self.base_url = base_url.rstrip('/')
        self.api_url = f'{self.base_url}/wiki/rest/api'
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff_factor = retry_backoff_factor

        # Initialize session with authentication
        self.session = requests.Session()
        if email and api_token:
            self.session.auth = (email, api_token)
        else:
            logger.warning("No Confluence credentials configured - requests are anonymous")
        self.session.headers.update({
            'Accept': 'application/json',
            'Content-Type': 'application/json'
        })

        # Configure retry strategy for GET requests
        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=retry_backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS"]
        )

        # Mount adapter with retry strategy
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        logger.debug(f"Client configured for {self.api_url} with timeout={timeout}s, "
                     f"max_retries={max_retries}, backoff_factor={retry_backoff_factor}")

    def _make_request(self, method: str, url: str, **kwargs) -> requests.Response:
        """
        Make HTTP request with logging and error handling.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Full request URL
            **kwargs: Additional arguments for requests

        Returns:
            Response object

        Raises:
            requests.exceptions.HTTPError: For HTTP errors
            requests.exceptions.Timeout: For timeout errors
            requests.exceptions.RequestException: For other request errors
        """
        start_time = time.time()
        logger.debug(f"API Request: {method} {url}")

        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            elapsed = time.time() - start_time
            logger.debug(f"API Response: {response.status_code} {url} ({elapsed:.3f}s)")
            response.raise_for_status()
            return response

        except requests.exceptions.Timeout:
            logger.error(f"Request timeout after {self.timeout}s: {method} {url}")
            raise

        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else "unknown"
            logger.error(f"HTTP Error {status_code}: {method} {url}")

            # Extract error message if available
            if e.response is not None:
                try:
                    error_data = e.response.json()
                    logger.debug(f"Error details: {json.dumps(error_data, indent=2)}")
                except ValueError:
                    logger.debug(f"Error response: {e.response.text[:500]}")

            raise

        except requests.exceptions.RequestException as e:
            logger.error(f"Request error: {method} {url} - {str(e)}")
            raise

    def _get_json(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = self._make_request('GET', f'{self.api_url}/{endpoint.lstrip("/")}', params=params)
        return response.json()

    def _get_all(self, endpoint: str, limit: int = 100, expand: Optional[str] = None) -> List[Dict[str, Any]]:
        """Collect every result of a paginated listing endpoint."""
        results = []
        start = 0

        while True:
            params = {'limit': limit, 'start': start}
            if expand:
                params['expand'] = expand

            data = self._get_json(endpoint, params)
            results.extend(data.get('results', []))

            if 'next' not in data.get('_links', {}):
                break

            start += limit

        return results

    def get_page(self, page_id: str) -> Dict[str, Any]:
        """
        Fetch a page with its storage-format body.

        Raises:
            requests.exceptions.HTTPError: For 404 or other HTTP errors
        """
        return self._get_json(
            f'content/{page_id}',
            {'expand': 'body.storage,version,metadata.labels'}
        )

    def get_page_children(self, page_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        """
        Get child pages of a page in Confluence order.

        Failures are logged and reported as an empty list.

        Args:
            page_id: Parent page ID
            limit: Number of children per request

        Returns:
            Child page dictionaries sorted by ``extensions.position``
        """
        try:
            children = self._get_all(f'content/{page_id}/child/page', limit, expand='extensions.position')
        except requests.exceptions.RequestException as e:
            logger.warning(f"Could not list children of page {page_id}: {e}")
            return []

        children.sort(key=self._child_position)
        logger.debug(f"Fetched {len(children)} children for page {page_id}")
        return children

    @staticmethod
    def _child_position(page: Dict[str, Any]) -> float:
        position = (page.get('extensions') or {}).get('position')
        if position is None:
            return DEFAULT_CHILD_POSITION
        try:
            return float(position)
        except (TypeError, ValueError):
            return DEFAULT_CHILD_POSITION

    def get_attachments(self, page_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        """
        Get attachments of a page.

        Failures are logged and reported as an empty list.
        """
        try:
            attachments = self._get_all(f'content/{page_id}/child/attachment', limit, expand='version')
        except requests.exceptions.RequestException as e:
            logger.warning(f"Could not list attachments of page {page_id}: {e}")
            return []

        logger.debug(f"Fetched {len(attachments)} attachments for page {page_id}")
        return attachments

    def attachment_url(self, attachment: Dict[str, Any]) -> Optional[str]:
        """Absolute download URL of an attachment dictionary."""
        download = (attachment.get('_links') or {}).get('download')
        if not download:
            return None
        if download.startswith('http'):
            return download
        return f'{self.base_url}/wiki{download}'

    def download(self, url: str, external: bool = False) -> bytes:
        """
        Download binary content.

        Args:
            url: Absolute URL
            external: True for hosts other than Confluence; credentials are
                never sent to them

        Returns:
            Response body

        Raises:
            requests.exceptions.RequestException: When the download fails
        """
        if not external and self._is_confluence_url(url):
            return self._make_request('GET', url, allow_redirects=True).content

        logger.debug(f"External download: {url}")
        response = requests.get(
            url,
            timeout=self.timeout,
            headers={'User-Agent': EXTERNAL_USER_AGENT}
        )
        response.raise_for_status()
        return response.content

    def _is_confluence_url(self, url: str) -> bool:
        return urlparse(url).netloc == urlparse(self.base_url).netloc

    def test_connection(self, page_id: str) -> Dict[str, Any]:
        """
        Check that the site is reachable and the credentials can read a page.

        Returns:
            ``{'success': True, 'page_title', 'space_key'}`` or
            ``{'success': False, 'error'}``
        """
        try:
            data = self._get_json(f'content/{page_id}', {'expand': 'version,space'})
        except requests.exceptions.HTTPError as e:
            if e.response is not None and e.response.status_code == 401:
                return {'success': False, 'error': 'Authentication failed. Check your email and API token.'}
            return {'success': False, 'error': str(e)}
        except requests.exceptions.RequestException as e:
            return {'success': False, 'error': str(e)}

        return {
            'success': True,
            'page_title': data.get('title'),
            'space_key': (data.get('space') or {}).get('key')
        }

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'ConfluenceClient':
        """
        Initialize Confluence client from configuration dictionary.

        Args:
            config: Configuration dictionary with confluence and advanced settings

        Returns:
            ConfluenceClient instance
        """
        confluence_config = config.get('confluence', {})
        advanced_config = config.get('advanced', {})

        return cls(
            base_url=confluence_config.get('base_url'),
            email=confluence_config.get('email'),
            api_token=confluence_config.get('api_token'),
            timeout=advanced_config.get('request_timeout', 30),
            max_retries=advanced_config.get('max_retries', 3),
            retry_backoff_factor=advanced_config.get('retry_backoff_factor', 2.0)
        )

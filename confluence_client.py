"""Confluence REST API client used by the content stream."""

import json
import logging
import os
import time
from typing import Any, Dict, Optional

import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger('confluence_downloader.client')

# Optional: Use system CA certificates if requested
try:
    if os.getenv('USE_SYSTEM_CA') in ('1', 'true', 'True', 'TRUE'):
        import truststore
        truststore.inject_into_ssl()
        logger.info("Using system CA certificate store")
except ImportError:
    logger.warning("truststore not installed. Install with: pip install truststore")


class ConfluenceClient:
    """Confluence REST API client with authentication, optional retry and rate limiting."""

    def __init__(
        self,
        base_url: str,
        auth_type: str = 'basic',
        username: Optional[str] = None,
        api_token: Optional[str] = None,
        context_path: str = '/wiki',
        verify_ssl: bool = True,
        timeout: int = 30,
        max_retries: int = 0,
        retry_backoff_factor: float = 2.0,
        rate_limit: float = 0.0
    ):
        """
        Initialize Confluence client with authentication and retry configuration.

        Args:
            base_url: Confluence site URL (e.g., "https://example.atlassian.net")
            auth_type: "basic" (username + API token) or "bearer" (personal access token)
            username: Account e-mail or username for basic auth
            api_token: API token (basic auth password) or bearer token
            context_path: Path under which the REST API is served ("/wiki" on Cloud, "" on Server)
            verify_ssl: Whether to verify SSL certificates
            timeout: HTTP request timeout in seconds
            max_retries: Retry attempts for transient errors on GET (0 disables)
            retry_backoff_factor: Exponential backoff factor
            rate_limit: Minimum seconds between requests (0.0 = no rate limiting)
        """
        if not base_url:
            raise ValueError("base_url is required")

        self.base_url = base_url.rstrip('/')
        self.context_path = '/' + context_path.strip('/') if context_path and context_path.strip('/') else ''
        self.api_root = f"{self.base_url}{self.context_path}"
        self.auth_type = auth_type
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff_factor = retry_backoff_factor
        self.rate_limit = rate_limit
        self.last_request_time = 0.0

        self.session = requests.Session()
        self.session.headers['Accept'] = 'application/json'

        if auth_type == 'basic':
            if not username or not api_token:
                raise ValueError("Basic auth requires username and api_token")
            self.session.auth = (username, api_token)
            logger.info(f"Initialized Confluence client with Basic auth for {self.base_url}")
        elif auth_type == 'bearer':
            if not api_token:
                raise ValueError("Bearer auth requires api_token")
            self.session.headers['Authorization'] = f'Bearer {api_token}'
            logger.info(f"Initialized Confluence client with Bearer auth for {self.base_url}")
        else:
            raise ValueError(f"Unsupported auth_type: {auth_type}")

        self.session.verify = verify_ssl
        if not verify_ssl:
            logger.warning("SSL verification disabled - this is insecure!")
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

        if max_retries > 0:
            retry_strategy = Retry(
                total=max_retries,
                backoff_factor=retry_backoff_factor,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=["HEAD", "GET", "OPTIONS"]
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            self.session.mount("http://", adapter)
            self.session.mount("https://", adapter)

        logger.debug(f"Client configured with timeout={timeout}s, max_retries={max_retries}, "
                    f"backoff_factor={retry_backoff_factor}, rate_limit={rate_limit}s")

    def _enforce_rate_limit(self) -> None:
        """Enforce rate limiting if configured."""
        if self.rate_limit <= 0:
            return

        time_since_last = time.time() - self.last_request_time

        if time_since_last < self.rate_limit:
            sleep_time = self.rate_limit - time_since_last
            logger.debug(f"Rate limiting: sleeping for {sleep_time:.2f}s")
            time.sleep(sleep_time)

    def build_url(self, path_or_url: str) -> str:
        """
        Resolve an API path or a server-supplied link to an absolute URL.

        Absolute URLs are returned unchanged. Relative links are appended to the
        API root; links that already carry the context path are appended to the
        site URL. The query string is never rewritten.
        """
        if path_or_url.startswith(('http://', 'https://')):
            return path_or_url

        path = '/' + path_or_url.lstrip('/')
        if self.context_path and (path == self.context_path or path.startswith(self.context_path + '/')):
            return f"{self.base_url}{path}"
        return f"{self.api_root}{path}"

    def _make_request(self, method: str, url: str, **kwargs) -> requests.Response:
        """
        Make HTTP request to Confluence with rate limiting and error logging.

        Raises:
            requests.exceptions.HTTPError: For non-success HTTP status
            requests.exceptions.Timeout: For timeout errors
            requests.exceptions.RequestException: For other request errors
        """
        self._enforce_rate_limit()

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

            if e.response is not None:
                try:
                    error_data = e.response.json()
                    logger.error(f"Error details: {json.dumps(error_data, indent=2)}")
                except ValueError:
                    logger.error(f"Error response: {e.response.text[:500]}")

            raise

        except requests.exceptions.RequestException as e:
            logger.error(f"Request error: {method} {url} - {str(e)}")
            raise

        finally:
            self.last_request_time = time.time()

    def fetch_json(self, path_or_url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        GET a JSON document.

        Used both for structured queries (an API path plus params) and for
        following opaque continuation links returned by the server, which are
        requested exactly as given.

        Args:
            path_or_url: API path (e.g. "/rest/api/content/search") or link
            params: Optional query parameters

        Returns:
            Decoded JSON body

        Raises:
            requests.exceptions.RequestException: For transport or HTTP errors
        """
        url = self.build_url(path_or_url)
        kwargs = {'params': params} if params else {}
        response = self._make_request('GET', url, **kwargs)
        return response.json()

    def get_space(self, space_key: str) -> Dict[str, Any]:
        """Fetch a single space record (used as a connectivity check)."""
        return self.fetch_json(f'/rest/api/space/{space_key}')

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
            auth_type=confluence_config.get('auth_type', 'basic'),
            username=confluence_config.get('username'),
            api_token=confluence_config.get('api_token'),
            context_path=confluence_config.get('context_path', '/wiki'),
            verify_ssl=confluence_config.get('verify_ssl', True),
            timeout=advanced_config.get('request_timeout', 30),
            max_retries=advanced_config.get('max_retries', 0),
            retry_backoff_factor=advanced_config.get('retry_backoff_factor', 2.0),
            rate_limit=advanced_config.get('rate_limit', 0.0)
        )

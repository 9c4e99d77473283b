"""HTTP client for outbound calls to external JSON/XML APIs."""

from typing import Any

import requests

from .errors import UpstreamError
from .logging_config import create_execution_logger

USER_AGENT = "Legislator-Site-Worker/1.0"


class HttpClient:
    """Thin wrapper over a requests session that maps failures to UpstreamError.

    No retries are attempted: a failed call is terminal for its source within
    the current request.
    """

    def __init__(self, timeout: int = 15, request_id: str | None = None):
        """Initialize HttpClient.

        Args:
            timeout: HTTP request timeout in seconds
            request_id: Request ID for logging context
        """
        self.timeout = timeout
        self.logger = create_execution_logger("http_client", request_id)
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})

    def get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        source: str = "upstream",
    ) -> Any:
        """GET a URL and decode its JSON body.

        Raises:
            UpstreamError: On network failure, non-2xx status or invalid JSON
        """
        request_headers = {"Accept": "application/json", **(headers or {})}
        response = self._request("GET", url, source, params=params, headers=request_headers)
        return self._decode_json(response, source)

    def get_text(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        source: str = "upstream",
    ) -> str:
        """GET a URL and return its decoded text body.

        Raises:
            UpstreamError: On network failure or non-2xx status
        """
        response = self._request("GET", url, source, params=params, headers=headers)
        if response.encoding is None or response.encoding.lower() == "iso-8859-1":
            # Feeds and content files are UTF-8 even when the server omits a charset
            response.encoding = "utf-8"
        return response.text

    def post_json(
        self,
        url: str,
        payload: Any,
        headers: dict[str, str] | None = None,
        source: str = "upstream",
    ) -> Any:
        """POST a JSON payload and decode the JSON response.

        Raises:
            UpstreamError: On network failure, non-2xx status or invalid JSON
        """
        request_headers = {"Accept": "application/json", **(headers or {})}
        response = self._request("POST", url, source, json=payload, headers=request_headers)
        return self._decode_json(response, source)

    def _request(self, method: str, url: str, source: str, **kwargs) -> requests.Response:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            self.logger.error(
                f"Request to {source} failed: {e}", source=source, url=url, error=str(e)
            )
            raise UpstreamError(source, f"request failed: {e}") from e

        if not response.ok:
            self.logger.error(
                f"{source} returned HTTP {response.status_code}",
                source=source,
                url=url,
                status_code=response.status_code,
            )
            raise UpstreamError(
                source,
                f"HTTP {response.status_code}: {response.reason}",
                status_code=response.status_code,
            )

        self.logger.debug(
            f"{method} {source} succeeded",
            source=source,
            url=url,
            status_code=response.status_code,
            content_length=len(response.content),
        )
        return response

    def _decode_json(self, response: requests.Response, source: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            self.logger.error(f"Malformed JSON from {source}: {e}", source=source)
            raise UpstreamError(source, f"malformed JSON: {e}") from e

"""Minimal Linear GraphQL client for connectivity checks and file uploads."""
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from feedback_triage import settings
from feedback_triage.logging_conf import logger

VIEWER_QUERY = "query { viewer { id name email } }"

FILE_UPLOAD_MUTATION = """
mutation FileUpload($contentType: String!, $filename: String!, $size: Int!) {
  fileUpload(contentType: $contentType, filename: $filename, size: $size) {
    success
    uploadFile {
      uploadUrl
      assetUrl
      headers { key value }
    }
  }
}
"""

NETWORK_ERRORS = (requests.exceptions.ConnectionError, requests.exceptions.Timeout)


class LinearAPIError(Exception):
    """Linear answered, but with errors."""


class LinearUnavailableError(Exception):
    """Linear could not be reached at startup."""


class LinearClient:
    """Talks to the Linear GraphQL API."""

    def __init__(self, api_key: Optional[str] = None, sleep: Callable[[float], None] = time.sleep):
        self.base_url = "https://api.linear.app/graphql"
        self.sleep = sleep
        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": api_key or settings.LINEAR_API_KEY or "",
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    def get_viewer(self) -> Dict[str, Any]:
        """Return the authenticated user. Network errors are not retried here."""
        data = self._request(VIEWER_QUERY, max_retries=0)
        return data.get("viewer") or {}

    def wait_until_reachable(self, attempts: Optional[int] = None, initial_delay: Optional[float] = None) -> Dict[str, Any]:
        """
        Check the API at startup, backing off exponentially on network errors.

        Args:
            attempts: Total attempts before giving up
            initial_delay: Seconds before the second attempt; doubled each time

        Returns:
            The viewer record

        Raises:
            LinearUnavailableError when retries are exhausted or the error is not transient
        """
        attempts = attempts or settings.LINEAR_CONNECT_ATTEMPTS
        delay = settings.LINEAR_CONNECT_DELAY if initial_delay is None else initial_delay

        for attempt in range(1, attempts + 1):
            try:
                viewer = self.get_viewer()
                logger.info(f"Linear connected as: {viewer.get('name', 'unknown')}")
                return viewer
            except NETWORK_ERRORS as e:
                if attempt >= attempts:
                    raise LinearUnavailableError(f"Failed to connect to Linear after {attempt} attempts: {e}") from e
                wait_time = delay * 2 ** (attempt - 1)
                logger.warning(f"Linear connection failed (attempt {attempt}/{attempts}), retrying in {wait_time}s...")
                self.sleep(wait_time)
            except (requests.exceptions.RequestException, LinearAPIError) as e:
                raise LinearUnavailableError(f"Failed to connect to Linear: {e}") from e

        raise LinearUnavailableError("Failed to connect to Linear")

    def request_file_upload(self, content_type: str, filename: str, size: int) -> Optional[Dict[str, Any]]:
        """
        Ask Linear for a signed upload target.

        Returns:
            Dict with uploadUrl, assetUrl and headers, or None if Linear refused
        """
        data = self._request(FILE_UPLOAD_MUTATION, {
            "contentType": content_type,
            "filename": filename,
            "size": size,
        })
        payload = data.get("fileUpload") or {}
        if not payload.get("success") or not payload.get("uploadFile"):
            logger.error("Failed to get Linear upload URL")
            return None
        return payload["uploadFile"]

    def _request(self, query: str, variables: Optional[Dict[str, Any]] = None,
                 retry_count: int = 0, max_retries: int = 3) -> Dict[str, Any]:
        """Make a GraphQL request with retry logic."""
        try:
            response = self.session.post(
                self.base_url,
                json={"query": query, "variables": variables or {}},
                timeout=30,
            )

            if response.status_code == 429 and retry_count < max_retries:
                retry_after = int(response.headers.get("Retry-After", 60))
                logger.warning(f"Rate limited. Waiting {retry_after}s...")
                self.sleep(retry_after)
                return self._request(query, variables, retry_count + 1, max_retries)

            if response.status_code >= 500 and retry_count < max_retries:
                wait_time = 2 ** retry_count
                logger.warning(f"Server error {response.status_code}. Retrying in {wait_time}s...")
                self.sleep(wait_time)
                return self._request(query, variables, retry_count + 1, max_retries)

            response.raise_for_status()
            body = response.json()

        except NETWORK_ERRORS:
            if retry_count < max_retries:
                wait_time = 2 ** retry_count
                self.sleep(wait_time)
                return self._request(query, variables, retry_count + 1, max_retries)
            raise

        errors: List[Dict[str, Any]] = body.get("errors") or []
        if errors:
            messages = "; ".join(e.get("message", "unknown error") for e in errors)
            raise LinearAPIError(messages)
        return body.get("data") or {}

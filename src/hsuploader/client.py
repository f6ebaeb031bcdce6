"""HSReplay.net upload client.

Uploading is a two step exchange: an upload request carrying the session
metadata returns a pre-signed URL, and the raw log is then PUT to that URL.
"""

import dataclasses
import logging
from typing import Any, Optional, Protocol

import requests

from hsuploader.exceptions import UploadError
from hsuploader.metadata import UploadMetadata

logger = logging.getLogger(__name__)

API_URL = "https://hsreplay.net/api/v1"
UPLOAD_REQUEST_URL = "https://upload.hsreplay.net/api/v1/replay/upload/request"
SITE_URL = "https://hsreplay.net"
USER_AGENT = "hsuploader/0.1.0"
REQUEST_TIMEOUT = 30


class UploadClient(Protocol):
    """Ships a finished session to the collector.

    Any exception raised by upload_session is treated as retryable.
    """

    def upload_session(self, metadata: UploadMetadata, log_lines: list[str]) -> str: ...


class HsReplayClient:
    """Client for the HSReplay.net API.

    Example:
        client = HsReplayClient(api_key, upload_token=token)
        url = client.upload_session(metadata, lines)
    """

    def __init__(
        self,
        api_key: str,
        upload_token: Optional[str] = None,
        test_data: bool = False,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: HSReplay.net API key.
            upload_token: Existing user token from create_upload_token().
            test_data: Flag every upload as test data.
            session: HTTP session to use. A new one is created by default.
        """
        self.api_key = api_key
        self.upload_token = upload_token
        self.test_data = test_data
        self._session = session or requests.Session()
        self._session.headers.update({
            "X-Api-Key": api_key,
            "User-Agent": USER_AGENT,
        })

    def _auth_headers(self) -> dict[str, str]:
        if not self.upload_token:
            raise UploadError("No upload token; call create_upload_token() first")
        return {"Authorization": f"Token {self.upload_token}"}

    def _json(self, response: requests.Response) -> dict[str, Any]:
        response.raise_for_status()
        try:
            return response.json()
        except ValueError as e:
            raise UploadError(f"Invalid JSON from {response.url}: {e}") from e

    def create_upload_token(self) -> str:
        """Create a new user token and remember it for later uploads."""
        response = self._session.post(f"{API_URL}/tokens/", json={}, timeout=REQUEST_TIMEOUT)
        token = self._json(response).get("key")
        if not token:
            raise UploadError("Token response did not contain a key")
        self.upload_token = token
        logger.info("Created HSReplay upload token")
        return token

    def upload_session(self, metadata: UploadMetadata, log_lines: list[str]) -> str:
        """Upload one session log.

        Returns:
            URL of the replay on the site.

        Raises:
            requests.RequestException: On transport or HTTP errors.
            UploadError: If the collector response is unusable.
        """
        if self.test_data:
            metadata = dataclasses.replace(metadata, test_data=True)

        response = self._session.post(
            UPLOAD_REQUEST_URL,
            json=metadata.to_dict(),
            headers=self._auth_headers(),
            timeout=REQUEST_TIMEOUT,
        )
        upload_request = self._json(response)
        put_url = upload_request.get("put_url")
        if not put_url:
            raise UploadError("Upload request response did not contain put_url")

        body = "\n".join(log_lines).encode("utf-8")
        put = self._session.put(
            put_url,
            data=body,
            headers={"Content-Type": "text/plain"},
            timeout=REQUEST_TIMEOUT,
        )
        put.raise_for_status()

        replay_url = upload_request.get("url", "")
        logger.info(f"Uploaded {len(log_lines)} lines: {replay_url}")
        return replay_url

    def get_claim_account_url(self) -> str:
        """URL where the user can link the upload token to their account."""
        response = self._session.post(
            f"{API_URL}/claim_account/",
            headers=self._auth_headers(),
            timeout=REQUEST_TIMEOUT,
        )
        path = self._json(response).get("url", "")
        return f"{SITE_URL}{path}" if path.startswith("/") else path

    def get_linked_battle_tag(self) -> Optional[str]:
        """BattleTag of the account the token is linked to, if claimed."""
        response = self._session.get(
            f"{API_URL}/tokens/{self.upload_token}/",
            headers=self._auth_headers(),
            timeout=REQUEST_TIMEOUT,
        )
        user = self._json(response).get("user") or {}
        return user.get("username") or None

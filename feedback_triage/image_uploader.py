"""Copy Slack image attachments to the Linear CDN."""
import base64
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

import requests

from feedback_triage import settings
from feedback_triage.events import SlackFile
from feedback_triage.linear_client import LinearAPIError, LinearClient
from feedback_triage.logging_conf import logger


@dataclass(frozen=True)
class UploadedImage:
    """An image hosted on the Linear CDN, with its bytes kept for vision input."""

    url: str
    content: bytes
    content_type: str

    @property
    def base64(self) -> str:
        return base64.b64encode(self.content).decode("ascii")


class ImageUploader:
    """Downloads images from Slack and re-uploads them to Linear."""

    def __init__(self, linear: LinearClient, slack_token: Optional[str] = None,
                 settle_seconds: float = 0.5, sleep: Callable[[float], None] = time.sleep):
        self.linear = linear
        self.slack_token = slack_token or settings.SLACK_BOT_TOKEN
        self.settle_seconds = settle_seconds
        self.sleep = sleep

    def upload_all(self, files: Iterable[SlackFile]) -> List[UploadedImage]:
        """Upload every image file; non-images and failures are left out."""
        uploaded = []
        for file in files:
            if not file.is_image:
                continue
            logger.info(f"Uploading image to Linear CDN: {file.name}")
            result = self.upload(file)
            if result:
                uploaded.append(result)
        return uploaded

    def upload(self, file: SlackFile) -> Optional[UploadedImage]:
        """
        Download a Slack file and upload it to Linear.

        Returns:
            The uploaded image, or None if any step failed
        """
        try:
            content = self._download(file.url_private)
            logger.info(f"Downloaded {len(content)} bytes from Slack")

            target = self.linear.request_file_upload(file.mimetype, file.name, len(content))
            if not target:
                return None

            headers = {
                "Content-Type": file.mimetype,
                "Cache-Control": "public, max-age=31536000",
            }
            for header in target.get("headers") or []:
                headers[header["key"]] = header["value"]

            response = requests.put(target["uploadUrl"], data=content, headers=headers, timeout=60)
            if not response.ok:
                logger.error(f"Failed to upload to Linear: {response.status_code} - {response.text[:500]}")
                return None

            logger.info(f"Image uploaded to Linear CDN: {target['assetUrl']}")
            # Give the CDN a moment before the URL is referenced
            self.sleep(self.settle_seconds)
            return UploadedImage(url=target["assetUrl"], content=content, content_type=file.mimetype)

        except (requests.RequestException, LinearAPIError) as e:
            logger.error(f"Error uploading image {file.name}: {e}")
            return None

    def _download(self, url: str) -> bytes:
        """Download a private Slack file using the bot token."""
        response = requests.get(url, headers={"Authorization": f"Bearer {self.slack_token}"}, timeout=60)
        response.raise_for_status()
        return response.content

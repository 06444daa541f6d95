"""Blob store: Cloudflare Images upload and delivery.

Stores image bytes with an attribute bag and hands back a stable id plus a
public delivery URL. Bytes can later be fetched again by id.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from ..core.config import Settings
from ..exceptions import ImageNotFoundError, UpstreamFailureError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredBlob:
    id: str
    public_url: str


@dataclass(frozen=True)
class FetchedBlob:
    data: bytes
    mime_type: str


class BlobStore(Protocol):
    def put(self, data: bytes, mime_type: str, metadata: Dict[str, Any]) -> StoredBlob:
        ...

    def get(self, image_id: str) -> FetchedBlob:
        ...


class CloudflareImagesStore:
    """Blob store backed by the Cloudflare Images v1 API."""

    def __init__(
        self,
        account_id: str,
        api_token: str,
        delivery_url: str,
        api_base: str = "https://api.cloudflare.com/client/v4",
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.account_id = account_id
        self.api_token = api_token
        self.delivery_url = delivery_url.rstrip("/")
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "CloudflareImagesStore":
        return cls(
            account_id=settings.cf_images_account_id,
            api_token=settings.cf_images_token,
            delivery_url=settings.cf_images_delivery_url,
            api_base=settings.cf_images_api_base,
            timeout=settings.blob_timeout_seconds,
        )

    def public_url(self, image_id: str, variant: str = "public") -> str:
        return f"{self.delivery_url}/{image_id}/{variant}"

    def _auth_headers(self) -> Dict[str, str]:
        if not self.api_token:
            return {}
        return {"Authorization": f"Bearer {self.api_token}"}

    def put(self, data: bytes, mime_type: str, metadata: Dict[str, Any]) -> StoredBlob:
        url = f"{self.api_base}/accounts/{self.account_id}/images/v1"
        filename = f"planstudio-{int(time.time() * 1000)}.png"
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(
                    url,
                    headers=self._auth_headers(),
                    files={"file": (filename, data, mime_type or "image/png")},
                    data={
                        "requireSignedURLs": "false",
                        "metadata": json.dumps(metadata, default=str),
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"Image upload failed: {e}")
            raise UpstreamFailureError("blob_store", f"Image upload failed: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if response.status_code >= 400 or not payload.get("success"):
            logger.error(
                "Cloudflare Images rejected upload",
                extra={"status_code": response.status_code, "errors": payload.get("errors")},
            )
            raise UpstreamFailureError(
                "blob_store",
                "Failed to upload to Cloudflare Images",
                upstream_status=response.status_code,
            )

        image_id = payload["result"]["id"]
        return StoredBlob(id=image_id, public_url=self.public_url(image_id))

    def get(self, image_id: str) -> FetchedBlob:
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.get(self.public_url(image_id), headers=self._auth_headers())
        except httpx.HTTPError as e:
            raise UpstreamFailureError("blob_store", f"Unable to download image {image_id}: {e}") from e

        if response.status_code == 404:
            raise ImageNotFoundError(image_id)
        if response.status_code != 200:
            raise UpstreamFailureError(
                "blob_store",
                f"Unable to download image {image_id} for editing",
                upstream_status=response.status_code,
            )
        mime_type = response.headers.get("content-type", "image/png").split(";")[0].strip()
        return FetchedBlob(data=response.content, mime_type=mime_type or "image/png")

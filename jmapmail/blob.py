"""Blob upload/download over the session's templated URLs."""

import logging
from dataclasses import dataclass
from urllib.parse import quote

import httpx

from .client import JmapClient
from .errors import BlobTransferError

logger = logging.getLogger("jmapmail.blob")


@dataclass
class UploadedBlob:
    blob_id: str
    size: int
    type: str


def expand_url_template(template: str, **values: str) -> str:
    """Substitute ``{name}`` placeholders with URL-quoted values."""
    url = template
    for key, value in values.items():
        url = url.replace(f"{{{key}}}", quote(str(value), safe=""))
    return url


class BlobTransfer:
    """Moves attachment bytes outside of the method-call channel."""

    def __init__(self, client: JmapClient):
        self._client = client

    async def upload(self, data: bytes, content_type: str) -> UploadedBlob:
        url = expand_url_template(
            self._client.session.upload_url,
            accountId=self._client.account_id,
        )
        try:
            response = await self._client.client.post(
                url,
                headers={**self._client.auth_headers, "Content-Type": content_type},
                content=data,
            )
        except httpx.HTTPError as e:
            raise BlobTransferError(f"Failed to upload blob: {e}") from e

        if response.is_error:
            logger.error(f"Failed to upload blob: HTTP {response.status_code} {response.text[:200]}")
            raise BlobTransferError(
                f"Failed to upload blob: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            result = response.json()
            return UploadedBlob(
                blob_id=result["blobId"],
                size=int(result.get("size", len(data))),
                type=result.get("type", content_type),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Malformed upload response: {response.text[:200]}")
            raise BlobTransferError(f"Malformed upload response: {e}", status_code=response.status_code) from e

    async def download(
        self,
        blob_id: str,
        name: str = "attachment",
        content_type: str = "application/octet-stream",
    ) -> bytes:
        url = expand_url_template(
            self._client.session.download_url,
            accountId=self._client.account_id,
            blobId=blob_id,
            name=name,
            type=content_type,
        )
        try:
            response = await self._client.client.get(url, headers=self._client.auth_headers)
        except httpx.HTTPError as e:
            raise BlobTransferError(f"Failed to download blob {blob_id}: {e}") from e

        if response.is_error:
            raise BlobTransferError(
                f"Failed to download blob {blob_id}: {response.status_code}",
                status_code=response.status_code,
            )
        return response.content

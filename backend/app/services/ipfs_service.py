import asyncio
import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from app.config import settings
from app.exceptions import AssetUploadError
from app.services.launch_validation import ALLOWED_IMAGE_TYPES

logger = logging.getLogger(__name__)


class IPFSService:
    """Pins token images and metadata documents to IPFS through Pinata"""

    def __init__(
        self,
        jwt: Optional[str] = None,
        api_url: Optional[str] = None,
        gateway_url: Optional[str] = None,
        timeout: float = 30.0
    ):
        self.pinata_jwt = jwt if jwt is not None else settings.PINATA_JWT
        self.api_url = (api_url or settings.PINATA_API_URL).rstrip("/")
        # The URI that ends up on-chain must be a plain HTTP gateway link
        self.gateway_template = gateway_url or settings.IPFS_GATEWAY_URL
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def _pin(self, endpoint: str, what: str, **request_kwargs) -> str:
        headers = {"Authorization": f"Bearer {self.pinata_jwt}"}
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(f"{self.api_url}/{endpoint}", headers=headers, **request_kwargs) as response:
                    if response.status != 200:
                        body = await response.text()
                        logger.error(f"❌ Pinata {what} returned {response.status}: {body[:300]}")
                        raise AssetUploadError(f"Pinata {what} failed with HTTP {response.status}")
                    payload = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"❌ Pinata {what} request failed: {e}")
            raise AssetUploadError(f"Pinata {what} failed: {e}") from e

        cid = payload.get("IpfsHash")
        if not cid:
            raise AssetUploadError(f"Pinata {what} returned no IpfsHash")
        logger.info(f"📌 Pinata {what} ok, CID {cid}")
        return self.get_gateway_url(cid)

    async def publish(self, document: Dict[str, Any]) -> str:
        """Pin a metadata document as JSON and return its gateway URL."""
        label = str(document.get("name", "token")).replace(" ", "")
        return await self._pin(
            "pinJSONToIPFS",
            "metadata pin",
            json={"pinataContent": document, "pinataMetadata": {"name": f"{label}_metadata.json"}},
        )

    async def upload(self, data: bytes, content_type: str, name: str = "token") -> str:
        if not data:
            raise AssetUploadError("No image data to upload")

        filename = f"{name}_image.{ALLOWED_IMAGE_TYPES.get(content_type, 'png')}"
        form = aiohttp.FormData()
        form.add_field("file", data, filename=filename, content_type=content_type)
        form.add_field("pinataMetadata", json.dumps({"name": filename}))
        return await self._pin("pinFileToIPFS", "file pin", data=form)

    def get_gateway_url(self, cid: str) -> str:
        return self.gateway_template.format(cid=cid)

# app/services/metadata_preparer.py
import json
import logging
from typing import Any, Dict, Optional, Protocol, Tuple

from app.config import settings
from app.exceptions import AssetUploadError
from app.schemas.creators.tokencreate import LaunchRequest, MetadataReference
from app.services.launch_validation import validate_launch_request
from app.services.token_identity import TokenIdentity

logger = logging.getLogger(__name__)


class AssetStore(Protocol):
    async def upload(self, data: bytes, content_type: str) -> str: ...


class MetadataStore(Protocol):
    async def publish(self, document: Dict[str, Any]) -> str: ...


def build_metadata_document(request: LaunchRequest, image_uri: str, created_on: Optional[str] = None) -> Dict[str, Any]:
    """Metadata JSON referenced by the on-chain mint. Empty links are left out."""
    document: Dict[str, Any] = {
        "name": request.name,
        "symbol": request.ticker,
        "description": request.description,
        "image": image_uri,
        "showName": True,
        "createdOn": created_on or settings.METADATA_CREATED_ON,
    }
    links = request.links
    if links.x_link:
        document["twitter"] = links.x_link
    if links.website_link:
        document["website"] = links.website_link
    if links.telegram_link:
        document["telegram"] = links.telegram_link
    return document


class MetadataPreparer:
    """Builds the token identity and its off-chain metadata."""

    def __init__(self, asset_store: AssetStore, metadata_store: MetadataStore, created_on: Optional[str] = None):
        self.asset_store = asset_store
        self.metadata_store = metadata_store
        self.created_on = created_on

    async def prepare(self, request: LaunchRequest) -> Tuple[TokenIdentity, MetadataReference]:
        # Nothing leaves the process before the request is known to be valid
        validate_launch_request(request)

        identity = TokenIdentity.generate()
        logger.info(f"Preparing metadata for {request.name} (${request.ticker}), mint {identity.public_key}")

        try:
            image_uri = await self.asset_store.upload(request.image.data, request.image.content_type)
            if not image_uri:
                raise AssetUploadError("Asset store returned no image URI")
            logger.info(f"✅ Image uploaded: {image_uri}")

            document = build_metadata_document(request, image_uri, self.created_on)
            logger.debug(f"Metadata document: {json.dumps(document)}")

            metadata_uri = await self.metadata_store.publish(document)
            if not metadata_uri:
                raise AssetUploadError("Metadata store returned no URI")
            logger.info(f"✅ Metadata published: {metadata_uri}")
        except AssetUploadError:
            identity.discard()
            raise

        return identity, MetadataReference(image_uri=image_uri, metadata_uri=metadata_uri)

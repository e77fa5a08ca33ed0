"""
Token Normalizer
================

Converts raw chain-provider token records into canonical Artifacts.

GUARANTEES:
- Every input record is either normalized or recorded as malformed
- One bad record never fails the batch
- Unresolvable optional fields degrade to None, never to an exception
- Pure: no store access, no network access
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence
import json
import logging
import math
import re

from ..contracts import Artifact, MediaInfo, MediaType, TokenStandard
from ..errors import MalformedTokenError
from .metadata import (
    AnimatedMetadata, ArticleMetadata, ImageMetadata, OpaqueMetadata,
    TokenMetadata, first_name, lookup, parse_metadata,
)


logger = logging.getLogger(__name__)

EVM_ADDRESS = re.compile(r'^0x[0-9a-fA-F]{40}$')

CREATOR_PATHS = (
    'creator',
    'artist',
    'authors',
    'properties.artist',
    'properties.creator',
    'properties.author',
)

CONTRACT_NAME_PATHS = (
    'collection',
    'contract_name',
    'nft_contract.name',
    'properties.collection',
    'properties.contract_name',
)

AUDIO_EXTENSIONS = ('mp3', 'wav', 'ogg', 'flac')
VIDEO_EXTENSIONS = ('mp4', 'webm', 'mov')
MODEL_EXTENSIONS = ('glb', 'gltf')

SPAM_FIELDS = ('isSpam', 'is_spam', 'possible_spam', 'possibleSpam', 'spamInfo.isSpam')


@dataclass(frozen=True)
class MalformedToken:
    """Record of a token that could not be normalized."""
    wallet_id: str
    network: str
    error: str
    raw_content_sample: str  # First 200 chars for debugging
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            'wallet_id': self.wallet_id,
            'network': self.network,
            'error': self.error,
            'raw_content_sample': self.raw_content_sample,
            'timestamp': self.timestamp.isoformat()
        }


@dataclass
class NormalizationReport:
    """
    Outcome of normalizing one batch.

    TRACEABLE: every input record results in exactly one entry in either
    `artifacts` or `malformed_items`.
    """
    processed_count: int = 0
    artifacts: List[Artifact] = field(default_factory=list)
    malformed_items: List[MalformedToken] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.artifacts)

    @property
    def malformed_count(self) -> int:
        return len(self.malformed_items)

    def to_dict(self) -> dict:
        return {
            'processed_count': self.processed_count,
            'success_count': self.success_count,
            'malformed_count': self.malformed_count,
            'malformed_items': [m.to_dict() for m in self.malformed_items],
        }


class TokenNormalizer:
    """
    Normalizes provider token records to Artifacts.

    Accepts the nested provider shape (`id.tokenId`, `contract.address`,
    `contract.type`, `media[0].gateway`) and the flat one (`token_id`,
    `token_address`, `contract_type`, `amount`, `possible_spam`).
    """

    def __init__(
        self,
        ipfs_gateway: str = "https://ipfs.io/ipfs/",
        arweave_gateway: str = "https://arweave.net/"
    ):
        self._ipfs_gateway = ipfs_gateway
        self._arweave_gateway = arweave_gateway

    def normalize_batch(
        self,
        tokens: Sequence[Any],
        wallet_id: str,
        network: str
    ) -> NormalizationReport:
        """
        Normalize a batch of raw tokens for one (wallet, network).

        Returns:
            NormalizationReport with artifacts and malformed records
        """
        report = NormalizationReport(processed_count=len(tokens))

        for token in tokens:
            try:
                report.artifacts.append(self.normalize(token, wallet_id, network))
            except Exception as e:
                logger.warning(
                    "Skipping malformed token for wallet %s on %s: %s",
                    wallet_id, network, e
                )
                report.malformed_items.append(MalformedToken(
                    wallet_id=wallet_id,
                    network=network,
                    error=str(e),
                    raw_content_sample=str(token)[:200],
                    timestamp=datetime.now(timezone.utc)
                ))

        return report

    def normalize(self, token: Any, wallet_id: str, network: str) -> Artifact:
        """
        Normalize a single raw token.

        Raises:
            MalformedTokenError: the record has no usable identity
        """
        if not isinstance(token, Mapping):
            raise MalformedTokenError(f"Token record is not a mapping: {type(token).__name__}")
        if not wallet_id or not network:
            raise MalformedTokenError("Missing wallet or network context")

        token_id = _token_id(token)
        if token_id is None:
            raise MalformedTokenError("Missing required field: token id")

        contract_address = _contract_address(token)
        if contract_address is None:
            raise MalformedTokenError("Missing required field: contract address")

        raw_metadata = token.get('metadata')
        if raw_metadata is None:
            raw_metadata = token.get('normalized_metadata')
        metadata = parse_metadata(raw_metadata)
        fields = metadata.fields

        standard = _token_standard(token)

        return Artifact(
            wallet_id=wallet_id,
            network=network,
            contract_address=contract_address,
            token_id=token_id,
            token_standard=standard,
            title=_title(token, fields, token_id),
            description=_text(token.get('description')) or _text(fields.get('description')),
            media=self._media(metadata, token),
            balance=coerce_balance(token.get('balance', token.get('amount'))),
            is_spam=any(_truthy(lookup(token, path)) for path in SPAM_FIELDS),
            creator=first_name(fields, CREATOR_PATHS) or first_name(token, ('creator',)),
            contract_name=(
                first_name(fields, CONTRACT_NAME_PATHS)
                or first_name(token, ('contractName', 'contract.name', 'name'))
            ),
            raw_metadata=_json_safe(dict(fields) if fields else raw_metadata),
        )

    # =========================================================================
    # MEDIA
    # =========================================================================

    def _media(self, metadata: TokenMetadata, token: Mapping[str, Any]) -> MediaInfo:
        fields = metadata.fields
        url: Optional[str] = None
        media_type = MediaType.UNKNOWN

        if isinstance(metadata, AnimatedMetadata):
            url = metadata.animation_url
            media_type = media_type_from_extension(url)
        elif isinstance(metadata, ArticleMetadata):
            url = metadata.content
            media_type = MediaType.ARTICLE
        elif isinstance(metadata, ImageMetadata):
            url = metadata.image
            media_type = MediaType.IMAGE
        elif isinstance(metadata, OpaqueMetadata):
            gateway = _text(lookup(token, 'media.0.gateway'))
            if gateway:
                url = gateway
                media_type = MediaType.IMAGE

        if metadata.mime_type:
            media_type = _mime_override(metadata.mime_type, media_type)

        cover = None
        for path in ('image', 'artwork.uri', 'image_url', 'thumbnail.uri'):
            cover = _text(lookup(fields, path))
            if cover:
                break

        auxiliary: Dict[str, Any] = {}
        if 'image_data' in fields:
            auxiliary['image_data'] = fields['image_data']
        image_url = _text(fields.get('image_url'))
        if image_url and image_url != _text(fields.get('image')):
            auxiliary['image_url'] = self.normalize_uri(image_url)
        for key in ('external_url', 'youtube_url'):
            value = _text(fields.get(key))
            if value:
                auxiliary[key] = value
        animation_url = _text(fields.get('animation_url'))
        if animation_url and animation_url != url:
            auxiliary['animation_url'] = self.normalize_uri(animation_url)

        return MediaInfo(
            url=self.normalize_uri(url) if url and media_type != MediaType.ARTICLE else url,
            media_type=media_type,
            cover_image_url=self.normalize_uri(cover) if cover else None,
            auxiliary=auxiliary,
        )

    def normalize_uri(self, uri: str) -> str:
        """Rewrite ipfs:// and ar:// URIs onto the configured HTTP gateways."""
        if uri.startswith('ipfs://'):
            return self._ipfs_gateway + uri[len('ipfs://'):]
        if uri.startswith('ar://'):
            return self._arweave_gateway + uri[len('ar://'):]
        return uri


def normalize_token(token: Any, wallet_id: str, network: str) -> Artifact:
    """Normalize one token with default gateways."""
    return TokenNormalizer().normalize(token, wallet_id, network)


# =============================================================================
# FIELD RESOLUTION
# =============================================================================

def normalize_address(address: str) -> str:
    """EVM hex addresses are case-insensitive and get lower-cased; others are kept."""
    address = address.strip()
    if EVM_ADDRESS.match(address):
        return address.lower()
    return address


def coerce_balance(value: Any) -> int:
    """Integer balance >= 0; 1 when absent or non-numeric."""
    if value is None or isinstance(value, bool):
        return 1
    if isinstance(value, int):
        return max(0, value)
    if isinstance(value, float):
        return max(0, int(value)) if math.isfinite(value) else 1
    if isinstance(value, str):
        text = value.strip()
        try:
            return max(0, int(text))
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return 1
        return max(0, int(number)) if math.isfinite(number) else 1
    return 1


def media_type_from_extension(url: str) -> MediaType:
    """Guess an animation URL's media type from its file extension."""
    filename = url.split('?')[0].rsplit('/', 1)[-1]
    extension = filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''
    if extension in AUDIO_EXTENSIONS:
        return MediaType.AUDIO
    if extension in VIDEO_EXTENSIONS:
        return MediaType.VIDEO
    if extension in MODEL_EXTENSIONS:
        return MediaType.MODEL
    return MediaType.ANIMATION


def _mime_override(mime_type: str, current: MediaType) -> MediaType:
    if mime_type.startswith('audio/'):
        return MediaType.AUDIO
    if mime_type.startswith('video/'):
        return MediaType.VIDEO
    if mime_type.startswith('image/'):
        return MediaType.IMAGE
    return current


def _token_id(token: Mapping[str, Any]) -> Optional[str]:
    for path in ('id.tokenId', 'token_id', 'tokenId'):
        value = lookup(token, path)
        if value is None or isinstance(value, bool):
            continue
        if isinstance(value, int):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _contract_address(token: Mapping[str, Any]) -> Optional[str]:
    for path in ('contract.address', 'token_address', 'tokenAddress', 'contract_address'):
        value = lookup(token, path)
        if isinstance(value, Mapping):
            # address objects wrapping the hex string
            value = value.get('_value')
        if isinstance(value, str) and value.strip():
            return normalize_address(value)
    return None


def _token_standard(token: Mapping[str, Any]) -> TokenStandard:
    for path in ('contract.type', 'contract_type', 'contractType', 'tokenType'):
        value = lookup(token, path)
        if isinstance(value, str) and value.strip():
            return TokenStandard.ERC1155 if value == "ERC1155" else TokenStandard.ERC721
    return TokenStandard.ERC721


def _title(token: Mapping[str, Any], fields: Mapping[str, Any], token_id: str) -> str:
    return (
        _text(token.get('title'))
        or _text(fields.get('name'))
        or _text(token.get('name'))
        or f"Token ID: {token_id}"
    )


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _json_safe(value: Any) -> Any:
    """Raw metadata as stored: bytes decoded, anything unserializable as its repr."""
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)
    return value


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes')
    return bool(value)

"""
Token Metadata Shapes

Provider metadata is arbitrary JSON. It is parsed once into one of a closed
set of variants so that media extraction dispatches on the variant instead of
probing fields ad hoc:

- AnimatedMetadata: carries an animation/video URL (sound.xyz style)
- ArticleMetadata:  carries textual `content` (Mirror style)
- ImageMetadata:    carries a plain `image`
- OpaqueMetadata:   anything else, including unparsable strings

Every variant keeps the full field mapping for the creator/contract-name
fallback lookups.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, Union
import json


@dataclass(frozen=True)
class AnimatedMetadata:
    animation_url: str
    mime_type: Optional[str] = None
    fields: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ArticleMetadata:
    content: str
    mime_type: Optional[str] = None
    fields: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ImageMetadata:
    image: str
    mime_type: Optional[str] = None
    fields: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OpaqueMetadata:
    fields: Mapping[str, Any] = field(default_factory=dict)
    mime_type: Optional[str] = None
    raw: Any = None


TokenMetadata = Union[AnimatedMetadata, ArticleMetadata, ImageMetadata, OpaqueMetadata]


def parse_metadata(raw: Any) -> TokenMetadata:
    """
    Parse provider metadata into a TokenMetadata variant.

    Never raises: JSON strings that fail to parse and non-mapping values
    become OpaqueMetadata with no fields.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            return OpaqueMetadata(raw=raw)

    if not isinstance(raw, Mapping):
        return OpaqueMetadata(raw=raw)

    fields = dict(raw)
    mime_type = _mime_type(fields)

    animation_url = _string(fields.get('animation_url'))
    if animation_url:
        return AnimatedMetadata(animation_url=animation_url, mime_type=mime_type, fields=fields)

    content = _string(fields.get('content'))
    if content:
        return ArticleMetadata(content=content, mime_type=mime_type, fields=fields)

    image = _string(fields.get('image'))
    if image:
        return ImageMetadata(image=image, mime_type=mime_type, fields=fields)

    return OpaqueMetadata(fields=fields, mime_type=mime_type, raw=raw)


# =============================================================================
# FIELD LOOKUP HELPERS
# =============================================================================

def lookup(fields: Mapping[str, Any], path: str) -> Any:
    """Dot-path lookup (`properties.artist`, `media.0.gateway`); None when absent."""
    current: Any = fields
    for part in path.split('.'):
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, Sequence) and not isinstance(current, str) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def name_of(value: Any) -> Optional[str]:
    """A non-empty string, or the `name` of an object; None otherwise."""
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, Mapping):
        return name_of(value.get('name')) if isinstance(value.get('name'), str) else None
    return None


def first_name(fields: Mapping[str, Any], paths: Sequence[str]) -> Optional[str]:
    """First path whose value resolves to a name."""
    for path in paths:
        value = lookup(fields, path)
        if isinstance(value, list):
            value = value[0] if value else None
        resolved = name_of(value)
        if resolved:
            return resolved
    return None


def _string(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _mime_type(fields: Mapping[str, Any]) -> Optional[str]:
    for path in ('mimeType', 'mime_type', 'media.mimeType', 'properties.mimeType'):
        value = _string(lookup(fields, path))
        if value:
            return value.lower()
    return None

"""
Ingestion Layer

Raw provider tokens in, canonical Artifacts out.

PRINCIPLES:
1. One bad token never fails its batch
2. One failed network never fails its wallet scan
3. Provider access only through ArtifactProvider / DelegationResolver
"""

from .metadata import (
    AnimatedMetadata, ArticleMetadata, ImageMetadata, OpaqueMetadata, parse_metadata,
)
from .normalizer import NormalizationReport, TokenNormalizer, normalize_token
from .registry import NetworkConfig, NetworkRegistry
from .fetcher import (
    ArtifactProvider, ChainDataClient, DelegationRegistryClient, DelegationResolver,
)

__all__ = [
    'AnimatedMetadata', 'ArticleMetadata', 'ImageMetadata', 'OpaqueMetadata',
    'parse_metadata',
    'NormalizationReport', 'TokenNormalizer', 'normalize_token',
    'NetworkConfig', 'NetworkRegistry',
    'ArtifactProvider', 'ChainDataClient', 'DelegationRegistryClient', 'DelegationResolver',
]

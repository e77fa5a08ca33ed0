"""
Library Settings

Defaults come from config/library.json; secrets and endpoints can be
overridden through ARTIFACT_LIBRARY_* environment variables.
"""

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import json
import os


ENV_PREFIX = "ARTIFACT_LIBRARY_"
DEFAULT_CONFIG_PATH = Path(__file__).parent / 'config' / 'library.json'


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(ENV_PREFIX + key, default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = (_env(key) or "").lower()
    if val in ("true", "1", "yes"):
        return True
    if val in ("false", "0", "no"):
        return False
    return default


def _env_int(key: str, default: int) -> int:
    try:
        return int(_env(key, str(default)))
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    try:
        return float(_env(key, str(default)))
    except ValueError:
        return default


@dataclass(frozen=True)
class LibrarySettings:
    """Resolved configuration for one library instance."""
    provider_base_url: str
    provider_api_key: Optional[str] = None
    provider_page_limit: int = 100
    provider_timeout: float = 30.0
    delegation_base_url: Optional[str] = None
    delegation_page_size: int = 50
    persistence_base_url: Optional[str] = None
    persistence_api_key: Optional[str] = None
    persistence_timeout: float = 15.0
    ipfs_gateway: str = "https://ipfs.io/ipfs/"
    arweave_gateway: str = "https://arweave.net/"
    sync_max_attempts: int = 5
    merge_cross_wallet_duplicates: bool = True

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> 'LibrarySettings':
        """Load settings from library.json, then apply environment overrides."""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)

        provider = config.get('provider', {})
        delegations = config.get('delegations', {})
        persistence = config.get('persistence', {})
        gateways = config.get('gateways', {})
        sync = config.get('sync', {})
        library = config.get('library', {})

        return cls(
            provider_base_url=_env('PROVIDER_URL', provider.get('base_url')),
            provider_api_key=_env('PROVIDER_API_KEY'),
            provider_page_limit=_env_int('PROVIDER_PAGE_LIMIT', provider.get('page_limit', 100)),
            provider_timeout=_env_float('PROVIDER_TIMEOUT', provider.get('timeout_seconds', 30.0)),
            delegation_base_url=_env('DELEGATION_URL', delegations.get('base_url')),
            delegation_page_size=_env_int('DELEGATION_PAGE_SIZE', delegations.get('page_size', 50)),
            persistence_base_url=_env('PERSISTENCE_URL', persistence.get('base_url')),
            persistence_api_key=_env('PERSISTENCE_API_KEY'),
            persistence_timeout=_env_float('PERSISTENCE_TIMEOUT', persistence.get('timeout_seconds', 15.0)),
            ipfs_gateway=gateways.get('ipfs', "https://ipfs.io/ipfs/"),
            arweave_gateway=gateways.get('arweave', "https://arweave.net/"),
            sync_max_attempts=_env_int('SYNC_MAX_ATTEMPTS', sync.get('max_attempts', 5)),
            merge_cross_wallet_duplicates=_env_bool(
                'MERGE_CROSS_WALLET',
                library.get('merge_cross_wallet_duplicates', True)
            ),
        )

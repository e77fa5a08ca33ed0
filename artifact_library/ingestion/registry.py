"""
Network Registry

Loads and manages supported chain networks from networks.json.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional
import json
from pathlib import Path


@dataclass(frozen=True)
class NetworkConfig:
    """Configuration for a single chain network."""
    value: str
    label: str
    chain: str
    enabled: bool = True


@dataclass
class NetworkRegistry:
    """
    Registry of chain networks the provider can be asked about.

    Loads from config/networks.json and provides query methods.
    """

    _networks: Dict[str, NetworkConfig]
    _default_networks: List[str]

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> 'NetworkRegistry':
        """Load registry from networks.json."""
        if config_path is None:
            config_path = Path(__file__).parent.parent / 'config' / 'networks.json'

        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)

        networks = {}
        for entry in config.get('networks', []):
            network = NetworkConfig(
                value=entry['value'],
                label=entry.get('label', entry['value']),
                chain=str(entry['chain']),
                enabled=entry.get('enabled', True)
            )
            networks[network.value] = network

        defaults = [
            value for value in config.get('default_networks', [])
            if value in networks and networks[value].enabled
        ]

        return cls(_networks=networks, _default_networks=defaults)

    def get(self, value: str) -> Optional[NetworkConfig]:
        """Get network by value."""
        return self._networks.get(value)

    def chain_for(self, value: str) -> Optional[str]:
        """Provider chain id for an enabled network; None when unsupported."""
        network = self._networks.get(value)
        if network is None or not network.enabled:
            return None
        return network.chain

    def is_supported(self, value: str) -> bool:
        return self.chain_for(value) is not None

    def all_networks(self) -> Iterator[NetworkConfig]:
        """Iterate all networks."""
        yield from self._networks.values()

    def enabled_networks(self) -> Iterator[NetworkConfig]:
        """Iterate only enabled networks."""
        for network in self._networks.values():
            if network.enabled:
                yield network

    @property
    def default_networks(self) -> List[str]:
        """Networks scanned when a caller does not name any."""
        return list(self._default_networks)

    def stats(self) -> dict:
        """Get registry statistics."""
        return {
            'total': len(self._networks),
            'enabled': sum(1 for n in self._networks.values() if n.enabled),
            'defaults': len(self._default_networks)
        }

"""
Artifact Store

Authoritative in-memory index of every ingested artifact.

RESPONSIBILITY: artifact lifecycle (insert, update in place, delete)
INDEXES:
- by identity:   ArtifactIdentity -> Artifact
- partitions:    wallet_id -> network -> token standard -> [identity, ...]
- balances:      wallet_id -> token_id -> contract_address -> quantity (ERC1155)

GUARANTEES:
===========
1. One entry per (wallet_id, network, contract_address, token_id)
2. Ingesting the same batch twice leaves the same state as ingesting it once
3. Totals are recomputed from partitions on every call, never cached
4. Never raises on ingestion input; bad records stop at the normalizer
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional
import logging

from ..contracts import Artifact, ArtifactIdentity, TokenStandard
from ..ingestion.normalizer import NormalizationReport, TokenNormalizer, normalize_address


logger = logging.getLogger(__name__)


@dataclass
class IngestReport:
    """Outcome of ingesting one (wallet, network) batch."""
    wallet_id: str
    network: str
    normalization: NormalizationReport
    inserted: int = 0
    updated: int = 0
    identities: List[ArtifactIdentity] = field(default_factory=list)

    @property
    def malformed(self) -> int:
        return self.normalization.malformed_count

    def to_dict(self) -> dict:
        return {
            'wallet_id': self.wallet_id,
            'network': self.network,
            'inserted': self.inserted,
            'updated': self.updated,
            'normalization': self.normalization.to_dict(),
        }


class ArtifactStore:
    """
    In-memory artifact index partitioned per wallet and network.

    Artifacts are frozen values; an update replaces the value stored under
    the same identity, so every reader resolving that identity sees it.
    """

    def __init__(self, normalizer: Optional[TokenNormalizer] = None):
        self._normalizer = normalizer or TokenNormalizer()
        self._artifacts: Dict[ArtifactIdentity, Artifact] = {}
        self._partitions: Dict[str, Dict[str, Dict[TokenStandard, List[ArtifactIdentity]]]] = {}
        self._balances: Dict[str, Dict[str, Dict[str, int]]] = {}

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def ingest(self, wallet_id: str, network: str, raw_tokens: Iterable[dict]) -> IngestReport:
        """Normalize raw tokens and upsert them under (wallet_id, network)."""
        normalization = self._normalizer.normalize_batch(list(raw_tokens or []), wallet_id, network)
        report = IngestReport(wallet_id=wallet_id, network=network, normalization=normalization)

        if wallet_id and network:
            self._partition(wallet_id, network)

        for artifact in normalization.artifacts:
            if self.upsert(artifact):
                report.inserted += 1
            else:
                report.updated += 1
            report.identities.append(artifact.identity)

        logger.info(
            "Ingested %s/%s: %d inserted, %d updated, %d malformed",
            wallet_id, network, report.inserted, report.updated, report.malformed
        )
        return report

    def upsert(self, artifact: Artifact) -> bool:
        """Insert or update one artifact. Returns True if it was new."""
        identity = artifact.identity
        existing = self._artifacts.get(identity)

        if existing is not None:
            is_spam = existing.is_spam or artifact.is_spam
            artifact = replace(
                artifact,
                is_spam=is_spam,
                is_in_catalog=existing.is_in_catalog or artifact.is_in_catalog or is_spam
            )
            if existing.token_standard != artifact.token_standard:
                self._partition(identity.wallet_id, identity.network)[existing.token_standard].remove(identity)
                self._partition(identity.wallet_id, identity.network)[artifact.token_standard].append(identity)
        else:
            self._partition(identity.wallet_id, identity.network)[artifact.token_standard].append(identity)

        self._artifacts[identity] = artifact
        self._index_balance(artifact)
        return existing is None

    def remove(
        self,
        wallet_id: str,
        network: str,
        contract_address: str,
        token_id: str
    ) -> Optional[Artifact]:
        """Delete one artifact and its balance entry. Catalogs are not touched."""
        identity = ArtifactIdentity(
            wallet_id=wallet_id,
            network=network,
            contract_address=normalize_address(contract_address),
            token_id=str(token_id)
        )
        artifact = self._artifacts.pop(identity, None)
        if artifact is None:
            return None

        self._partition(wallet_id, network)[artifact.token_standard].remove(identity)
        self._drop_balance(identity)
        return artifact

    def remove_wallet(self, wallet_id: str) -> List[ArtifactIdentity]:
        """Delete every artifact, partition and balance of a wallet."""
        removed: List[ArtifactIdentity] = []
        for networks in self._partitions.pop(wallet_id, {}).values():
            for identities in networks.values():
                for identity in identities:
                    self._artifacts.pop(identity, None)
                    removed.append(identity)
        self._balances.pop(wallet_id, None)
        return removed

    def set_spam(self, identity: ArtifactIdentity, is_spam: bool) -> Optional[Artifact]:
        """
        Flip the spam flag.

        Marking forces is_in_catalog; un-marking leaves it alone since the
        artifact may still belong to a real catalog.
        """
        artifact = self._artifacts.get(identity)
        if artifact is None:
            return None
        if is_spam:
            artifact = replace(artifact, is_spam=True, is_in_catalog=True)
        else:
            artifact = replace(artifact, is_spam=False)
        self._artifacts[identity] = artifact
        return artifact

    def set_in_catalog(self, identity: ArtifactIdentity, value: bool) -> Optional[Artifact]:
        """Set the organized flag; spam artifacts always stay organized."""
        artifact = self._artifacts.get(identity)
        if artifact is None:
            return None
        value = value or artifact.is_spam
        if artifact.is_in_catalog != value:
            artifact = replace(artifact, is_in_catalog=value)
            self._artifacts[identity] = artifact
        return artifact

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get(self, identity: ArtifactIdentity) -> Optional[Artifact]:
        return self._artifacts.get(identity)

    resolve = get

    def __contains__(self, identity: object) -> bool:
        return identity in self._artifacts

    def __len__(self) -> int:
        return len(self._artifacts)

    def wallet_ids(self) -> List[str]:
        return list(self._partitions)

    def networks_for(self, wallet_id: str) -> List[str]:
        return list(self._partitions.get(wallet_id, {}))

    def list_by_wallet(self, wallet_id: str) -> Dict[str, Dict[str, List[Artifact]]]:
        """Nested view: network -> token standard -> artifacts."""
        return {
            network: {
                standard.value: [self._artifacts[i] for i in identities]
                for standard, identities in standards.items()
            }
            for network, standards in self._partitions.get(wallet_id, {}).items()
        }

    def flatten(self, wallet_id: str) -> List[Artifact]:
        """Linear, deduplicated view of a wallet across networks and standards."""
        seen = set()
        flattened = []
        for standards in self._partitions.get(wallet_id, {}).values():
            for standard in (TokenStandard.ERC721, TokenStandard.ERC1155):
                for identity in standards[standard]:
                    if identity not in seen:
                        seen.add(identity)
                        flattened.append(self._artifacts[identity])
        return flattened

    def all_artifacts(self) -> List[Artifact]:
        """Every artifact, wallet by wallet in first-ingested order."""
        artifacts = []
        for wallet_id in self._partitions:
            artifacts.extend(self.flatten(wallet_id))
        return artifacts

    def spam_artifacts(self) -> List[Artifact]:
        return [a for a in self.all_artifacts() if a.is_spam]

    def total_count(self) -> int:
        return sum(
            len(identities)
            for networks in self._partitions.values()
            for standards in networks.values()
            for identities in standards.values()
        )

    def total_spam_count(self) -> int:
        return sum(
            1
            for networks in self._partitions.values()
            for standards in networks.values()
            for identities in standards.values()
            for identity in identities
            if self._artifacts[identity].is_spam
        )

    def balance(self, wallet_id: str, token_id: str, contract_address: str) -> int:
        return self._balances.get(wallet_id, {}).get(token_id, {}).get(contract_address, 0)

    @property
    def balances(self) -> Dict[str, Dict[str, Dict[str, int]]]:
        """Copy of the ERC1155 balance index."""
        return {
            wallet_id: {token_id: dict(contracts) for token_id, contracts in tokens.items()}
            for wallet_id, tokens in self._balances.items()
        }

    def structure(self) -> Dict[str, Dict[str, Dict[str, int]]]:
        """Per-wallet, per-network artifact counts."""
        return {
            wallet_id: {
                network: {
                    TokenStandard.ERC721.value: len(standards[TokenStandard.ERC721]),
                    TokenStandard.ERC1155.value: len(standards[TokenStandard.ERC1155]),
                    'total': sum(len(ids) for ids in standards.values()),
                }
                for network, standards in networks.items()
            }
            for wallet_id, networks in self._partitions.items()
        }

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _partition(self, wallet_id: str, network: str) -> Dict[TokenStandard, List[ArtifactIdentity]]:
        networks = self._partitions.setdefault(wallet_id, {})
        if network not in networks:
            networks[network] = {TokenStandard.ERC721: [], TokenStandard.ERC1155: []}
        return networks[network]

    def _index_balance(self, artifact: Artifact):
        if artifact.token_standard == TokenStandard.ERC1155:
            tokens = self._balances.setdefault(artifact.wallet_id, {})
            tokens.setdefault(artifact.token_id, {})[artifact.contract_address] = artifact.balance
        else:
            self._drop_balance(artifact.identity)

    def _drop_balance(self, identity: ArtifactIdentity):
        tokens = self._balances.get(identity.wallet_id)
        if not tokens or identity.token_id not in tokens:
            return
        tokens[identity.token_id].pop(identity.contract_address, None)
        if not tokens[identity.token_id]:
            del tokens[identity.token_id]
        if not tokens:
            del self._balances[identity.wallet_id]

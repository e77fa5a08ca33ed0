"""
REST Persistence

PersistenceService over a PostgREST-style HTTP API. One table per entity:
artifacts, catalogs, catalog_artifacts, folders, catalog_folders. Rows are
addressed with `column=eq.value` filters.

HTTP failures are mapped onto the persistence error taxonomy:
- 404                         NotFoundError
- 409 with code 23503         ForeignKeyViolation
- any other 409               ConflictError
- other 4xx/5xx, transport    PersistenceError
"""

from __future__ import annotations
from typing import Any, Dict, Optional, Sequence
import logging

import httpx

from ..contracts import Artifact, ArtifactIdentity, Catalog, Folder
from ..errors import (
    ConflictError, ErrorCode, ForeignKeyViolation, NotFoundError, PersistenceError,
)
from .service import (
    PersistenceService, artifact_row, catalog_row, folder_row, membership_row,
)


logger = logging.getLogger(__name__)

FOREIGN_KEY_VIOLATION_CODE = "23503"
ARTIFACT_KEY = "wallet_id,network,contract_address,token_id"


class HttpPersistenceService(PersistenceService):

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self._base_url = base_url.rstrip('/')
        self._timeout = timeout
        self._transport = transport
        self._headers = {'Accept': 'application/json', 'Content-Type': 'application/json'}
        if api_key:
            self._headers['apikey'] = api_key
            self._headers['Authorization'] = f"Bearer {api_key}"

    # =========================================================================
    # ARTIFACTS
    # =========================================================================

    def upsert_artifact(self, artifact: Artifact) -> None:
        self.upsert_artifacts_batch([artifact])

    def upsert_artifacts_batch(self, artifacts: Sequence[Artifact]) -> None:
        if not artifacts:
            return
        self._request(
            'POST', 'artifacts',
            params={'on_conflict': ARTIFACT_KEY},
            json=[artifact_row(a) for a in artifacts],
            prefer='resolution=merge-duplicates,return=minimal'
        )

    def delete_artifacts_for_wallet(self, wallet_id: str) -> None:
        self._request('DELETE', 'artifacts', params={'wallet_id': f"eq.{wallet_id}"})

    # =========================================================================
    # CATALOGS
    # =========================================================================

    def create_catalog(self, catalog: Catalog) -> None:
        self._request('POST', 'catalogs', json=catalog_row(catalog), prefer='return=minimal')

    def update_catalog(self, catalog: Catalog) -> None:
        row = catalog_row(catalog)
        del row['id']
        self._require_rows(self._request(
            'PATCH', 'catalogs',
            params={'id': f"eq.{catalog.id}"},
            json=row,
            prefer='return=representation'
        ), f"Catalog row missing: {catalog.id}")

    def delete_catalog(self, catalog_id: str) -> None:
        self._require_rows(self._request(
            'DELETE', 'catalogs',
            params={'id': f"eq.{catalog_id}"},
            prefer='return=representation'
        ), f"Catalog row missing: {catalog_id}")

    def add_artifact_to_catalog(self, catalog_id: str, identity: ArtifactIdentity) -> None:
        self._request(
            'POST', 'catalog_artifacts',
            json=membership_row(catalog_id, identity),
            prefer='resolution=ignore-duplicates,return=minimal'
        )

    def remove_artifact_from_catalog(self, catalog_id: str, identity: ArtifactIdentity) -> None:
        params = {k: f"eq.{v}" for k, v in membership_row(catalog_id, identity).items()}
        self._request('DELETE', 'catalog_artifacts', params=params)

    # =========================================================================
    # FOLDERS
    # =========================================================================

    def create_folder(self, folder: Folder) -> None:
        self._request('POST', 'folders', json=folder_row(folder), prefer='return=minimal')

    def update_folder(self, folder: Folder) -> None:
        row = folder_row(folder)
        del row['id']
        self._require_rows(self._request(
            'PATCH', 'folders',
            params={'id': f"eq.{folder.id}"},
            json=row,
            prefer='return=representation'
        ), f"Folder row missing: {folder.id}")

    def delete_folder(self, folder_id: str) -> None:
        self._require_rows(self._request(
            'DELETE', 'folders',
            params={'id': f"eq.{folder_id}"},
            prefer='return=representation'
        ), f"Folder row missing: {folder_id}")

    def add_catalog_to_folder(self, folder_id: str, catalog_id: str) -> None:
        self._request(
            'POST', 'catalog_folders',
            json={'folder_id': folder_id, 'catalog_id': catalog_id},
            prefer='resolution=ignore-duplicates,return=minimal'
        )

    def remove_catalog_from_folder(self, folder_id: str, catalog_id: str) -> None:
        self._request(
            'DELETE', 'catalog_folders',
            params={'folder_id': f"eq.{folder_id}", 'catalog_id': f"eq.{catalog_id}"}
        )

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def _request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None
    ) -> httpx.Response:
        headers = dict(self._headers)
        if prefer:
            headers['Prefer'] = prefer

        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.request(
                    method,
                    f"{self._base_url}/{table}",
                    params=params,
                    json=json,
                    headers=headers
                )
        except httpx.HTTPError as e:
            raise PersistenceError(f"{method} {table} failed: {e}")
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"{method} {table} could not encode request: {e}")

        if response.status_code < 400:
            return response

        detail = _error_body(response)
        message = f"{method} {table} returned HTTP {response.status_code}: {detail.get('message', '')}"
        if response.status_code == 404:
            raise NotFoundError(message, code=ErrorCode.ROW_NOT_FOUND)
        if response.status_code == 409:
            if detail.get('code') == FOREIGN_KEY_VIOLATION_CODE:
                raise ForeignKeyViolation(message)
            raise ConflictError(message, code=ErrorCode.ROW_CONFLICT)
        raise PersistenceError(message)

    @staticmethod
    def _require_rows(response: httpx.Response, message: str):
        try:
            rows = response.json()
        except ValueError:
            return
        if isinstance(rows, list) and not rows:
            raise NotFoundError(message, code=ErrorCode.ROW_NOT_FOUND)


def _error_body(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {'message': response.text[:200]}
    return body if isinstance(body, dict) else {}

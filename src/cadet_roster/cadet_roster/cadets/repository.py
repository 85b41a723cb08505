from __future__ import annotations

from typing import List, Optional

from ..cache.policy import ReadThroughPolicy, fetch_with_retry
from ..core.constants import CADETS_COLLECTION
from ..core.enums import Company
from ..store.repository import DocumentStore, eq
from .model import Cadet


def company_scope_key(company: Company) -> str:
    return f"company:{company.value}"


class CadetRepository:
    """Cache-first cadet lookups by company. ``Master`` means every cadet."""

    def __init__(self, store: DocumentStore, policy: ReadThroughPolicy):
        self._store = store
        self._policy = policy

    def _fetch(self, company: Company):
        if company is Company.MASTER:
            return lambda: self._store.query(CADETS_COLLECTION)
        return lambda: self._store.query(CADETS_COLLECTION, [eq("company", company.value)])

    def get_by_company(self, company: Company, *, refresh: bool = False) -> List[Cadet]:
        scope = company_scope_key(company)
        if refresh:
            docs = self._policy.refresh(CADETS_COLLECTION, scope, self._fetch(company))
        else:
            docs = self._policy.read(CADETS_COLLECTION, scope, self._fetch(company))
        cadets = [Cadet.from_document(d.key, d.data) for d in docs]
        return sorted(cadets, key=Cadet.sort_key)

    def get_by_id(self, cadet_id: str) -> Optional[Cadet]:
        docs = fetch_with_retry(
            lambda: [d for d in [self._store.get(CADETS_COLLECTION, cadet_id)] if d is not None],
            operation=f"get cadet {cadet_id}",
        )
        return Cadet.from_document(docs[0].key, docs[0].data) if docs else None

    def save(self, cadet: Cadet) -> None:
        self._store.upsert_merge(CADETS_COLLECTION, cadet.cadet_id, cadet.to_document())

"""
Tipos de estado do workflow de ingestão
=======================================
"""
from __future__ import annotations

from typing import Optional, TypedDict

from fiscal_ingest.domain.errors import FiscalDocumentError
from fiscal_ingest.domain.models import DocumentoFiscal, DocumentType, ValidationResult


class IngestionState(TypedDict, total=False):
    # entrada
    xml: str

    # detecção e parsing
    document_type: DocumentType
    document: DocumentoFiscal

    # validação fiscal (sempre produzida após o parsing)
    validation: ValidationResult

    # deduplicação e gravação
    duplicate: bool
    record_id: Optional[str]

    # falha tipada que encerra o fluxo; relançada pelo orquestrador
    error: FiscalDocumentError

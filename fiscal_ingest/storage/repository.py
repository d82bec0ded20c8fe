"""
Repositório de documentos fiscais
=================================

Contrato assíncrono consumido pelo orquestrador. A unicidade da chave de
acesso é garantida pelo repositório (restrição única no banco real); a
consulta prévia feita pelo orquestrador é apenas uma otimização.

`InMemoryDocumentRepository` implementa o contrato em memória para a CLI e
os testes.
"""
# fiscal_ingest/storage/repository.py
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Protocol

from fiscal_ingest.domain.errors import DuplicateDocument
from fiscal_ingest.domain.models import DocumentoFiscal, ValidationResult

logger = logging.getLogger(__name__)


class DocumentRepository(Protocol):
    async def find_by_access_key(self, access_key: str) -> Optional[DocumentoFiscal]:
        """Documento já gravado com a chave informada, ou None."""
        ...

    async def insert(self, document: DocumentoFiscal) -> str:
        """Grava o documento e devolve o id do registro.

        Levanta `DuplicateDocument` se a chave já existir e `DatabaseError`
        para qualquer outra falha.
        """
        ...

    async def insert_validation(self, result: ValidationResult) -> None:
        ...


class InMemoryDocumentRepository:
    """Repositório em memória com unicidade por chave de acesso."""

    def __init__(self) -> None:
        self.documents: Dict[str, DocumentoFiscal] = {}
        self.validations: List[ValidationResult] = []

    async def find_by_access_key(self, access_key: str) -> Optional[DocumentoFiscal]:
        return self.documents.get(access_key)

    async def insert(self, document: DocumentoFiscal) -> str:
        # sem await entre a checagem e a escrita: atômico no event loop
        if document.chave_acesso in self.documents:
            raise DuplicateDocument(document.chave_acesso)
        self.documents[document.chave_acesso] = document
        logger.debug("Documento gravado: %s (%s)", document.chave_acesso, document.id)
        return str(document.id)

    async def insert_validation(self, result: ValidationResult) -> None:
        self.validations.append(result)

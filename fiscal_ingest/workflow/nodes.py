"""
Nós do workflow de ingestão
===========================

Cada nó recebe o estado e devolve apenas as chaves que alterou. Falhas
tipadas (`FiscalDocumentError`) são colocadas em `error` e o roteamento do
grafo encerra o fluxo; o orquestrador relança o erro para o chamador.
"""
from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional

from fiscal_ingest.agents import fiscal_validator
from fiscal_ingest.agents.acceleration import Accelerator
from fiscal_ingest.agents.document_builder import DocumentBuilder
from fiscal_ingest.domain.errors import (
    DatabaseError,
    DuplicateDocument,
    FiscalDocumentError,
    UnsupportedDocumentType,
)
from fiscal_ingest.domain.models import DocumentType
from fiscal_ingest.storage.repository import DocumentRepository
from fiscal_ingest.utils import metrics
from fiscal_ingest.utils.metrics import MetricsSink
from fiscal_ingest.workflow.state import IngestionState

logger = logging.getLogger(__name__)

# (marcadores, tipo) na ordem de precedência
_MARKERS = (
    (("nfeProc", "NFe"), DocumentType.NOTA_FISCAL),
    (("cteProc", "CTe"), DocumentType.CONHECIMENTO_TRANSPORTE),
)


def detect_document_type(xml: str | bytes, accelerator: Accelerator) -> Optional[DocumentType]:
    """Identifica NF-e ou CT-e pelos marcadores de elemento raiz (`<nfeProc`, `<NFe`, `<cteProc`, `<CTe`)."""
    data = xml.encode("utf-8") if isinstance(xml, str) else xml
    for tags, document_type in _MARKERS:
        if any(accelerator.find_tag(data, tag) is not None for tag in tags):
            return document_type
    return None


class IngestionNodes:
    """Agrupa os nós do grafo e seus colaboradores injetados."""

    def __init__(
        self,
        repository: DocumentRepository,
        builders: Mapping[DocumentType, DocumentBuilder],
        metrics_sink: MetricsSink,
        accelerator: Accelerator,
    ):
        self.repository = repository
        self.builders = builders
        self.metrics = metrics_sink
        self.accelerator = accelerator

    async def detect(self, state: IngestionState) -> Dict:
        document_type = detect_document_type(state["xml"], self.accelerator)
        if document_type is None:
            logger.warning("Tipo de documento não reconhecido")
            return {"error": UnsupportedDocumentType("Não foi possível detectar o tipo de documento")}
        logger.debug("Tipo de documento detectado: %s", document_type.label)
        return {"document_type": document_type}

    async def parse(self, state: IngestionState) -> Dict:
        document_type = state["document_type"]
        builder = self.builders.get(document_type)
        if builder is None:
            return {"error": UnsupportedDocumentType(f"Tipo de documento não suportado: {document_type.value}")}
        try:
            return {"document": builder.parse_string(state["xml"])}
        except FiscalDocumentError as e:
            logger.warning("Falha conhecida no parsing %s: %s", document_type.label, e)
            return {"error": e}

    async def validate(self, state: IngestionState) -> Dict:
        validation = fiscal_validator.validate(state["xml"], state["document_type"])
        return {"validation": validation}

    async def dedup_check(self, state: IngestionState) -> Dict:
        chave = state["document"].chave_acesso
        try:
            existing = await self.repository.find_by_access_key(chave)
        except FiscalDocumentError as e:
            return {"error": e}
        except Exception as e:
            logger.exception("Falha ao consultar o repositório pela chave %s", chave)
            return {"error": DatabaseError(f"Falha ao consultar documento {chave}: {e}")}
        return {"duplicate": existing is not None}

    async def insert(self, state: IngestionState) -> Dict:
        document = state["document"]
        try:
            record_id = await self.repository.insert(document)
        except DuplicateDocument:
            # outra ingestão gravou a mesma chave entre a consulta e o insert
            logger.info("Chave %s gravada concorrentemente; tratando como duplicata", document.chave_acesso)
            self._count_duplicate(state)
            return {"duplicate": True}
        except FiscalDocumentError as e:
            return {"error": e}
        except Exception as e:
            logger.exception("Falha ao gravar documento %s", document.chave_acesso)
            return {"error": DatabaseError(f"Falha ao gravar documento {document.chave_acesso}: {e}")}

        self.metrics.increment(metrics.DOCUMENTS_PROCESSED)
        logger.info("%s gravado | chave=%s id=%s", state["document_type"].label, document.chave_acesso, record_id)
        return {"duplicate": False, "record_id": record_id}

    async def skip_duplicate(self, state: IngestionState) -> Dict:
        self._count_duplicate(state)
        return {"duplicate": True}

    async def record_validation(self, state: IngestionState) -> Dict:
        validation = state["validation"]
        try:
            await self.repository.insert_validation(validation)
        except Exception as e:
            logger.warning(
                "Falha ao persistir validação para chave %s: %s",
                state["document"].chave_acesso,
                e,
            )
            self.metrics.increment(metrics.VALIDATIONS_FAILED)
            return {"validation": validation}
        self.metrics.increment(metrics.VALIDATIONS_SAVED)
        return {"validation": validation}

    def _count_duplicate(self, state: IngestionState) -> None:
        logger.info(
            "%s duplicado detectado | chave=%s",
            state["document_type"].label,
            state["document"].chave_acesso,
        )
        self.metrics.increment(metrics.DOCUMENTS_DUPLICATE)

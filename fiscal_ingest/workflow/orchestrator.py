"""
Orquestrador de ingestão
========================

Ponto de entrada assíncrono do motor: recebe o XML (texto, bytes ou caminho),
executa o grafo de ingestão e devolve um `ProcessingResult`.

Os colaboradores (repositório, métricas, builders e aceleração) são
injetados; nada fica em estado global. A única suspensão acontece nas
chamadas ao repositório e na leitura de arquivo (feita em thread).
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Mapping, Optional

from fiscal_ingest.agents.acceleration import Accelerator, get_accelerator
from fiscal_ingest.agents.cte_builder import CteBuilder
from fiscal_ingest.agents.document_builder import DocumentBuilder, read_xml_bytes, decode_payload
from fiscal_ingest.agents.nfe_builder import NfeBuilder
from fiscal_ingest.domain.errors import MissingRequiredField
from fiscal_ingest.domain.models import DocumentType, ProcessingResult
from fiscal_ingest.storage.repository import DocumentRepository
from fiscal_ingest.utils.metrics import MetricsSink, NullMetricsSink
from fiscal_ingest.workflow.graph import build_ingestion_graph
from fiscal_ingest.workflow.nodes import IngestionNodes, detect_document_type as _detect

logger = logging.getLogger(__name__)

_MESSAGES = {
    DocumentType.NOTA_FISCAL: ("NF-e processada com sucesso", "NF-e já existente"),
    DocumentType.CONHECIMENTO_TRANSPORTE: ("CT-e processado com sucesso", "CT-e já existente"),
}


def detect_document_type(xml: str | bytes, accelerator: Optional[Accelerator] = None) -> Optional[DocumentType]:
    """Detecta o tipo do documento; None quando não há marcador conhecido."""
    return _detect(xml, accelerator or get_accelerator())


def default_builders() -> Mapping[DocumentType, DocumentBuilder]:
    return {
        DocumentType.NOTA_FISCAL: NfeBuilder(),
        DocumentType.CONHECIMENTO_TRANSPORTE: CteBuilder(),
    }


class IngestionOrchestrator:
    def __init__(
        self,
        repository: DocumentRepository,
        *,
        metrics_sink: Optional[MetricsSink] = None,
        builders: Optional[Mapping[DocumentType, DocumentBuilder]] = None,
        accelerator: Optional[Accelerator] = None,
    ):
        self.accelerator = accelerator or get_accelerator()
        self.nodes = IngestionNodes(
            repository=repository,
            builders=builders if builders is not None else default_builders(),
            metrics_sink=metrics_sink or NullMetricsSink(),
            accelerator=self.accelerator,
        )
        self.graph = build_ingestion_graph(self.nodes)

    async def process(self, xml: str) -> ProcessingResult:
        """Detecta, constrói, valida e grava o documento.

        Levanta a falha tipada correspondente quando o fluxo é interrompido
        (tipo não suportado, XML inválido, chave inválida, erro de banco).
        """
        if not xml or not xml.strip():
            raise MissingRequiredField("Conteúdo XML vazio", field="xml")

        state = await self.graph.ainvoke({"xml": xml})
        error = state.get("error")
        if error is not None:
            logger.error("Ingestão interrompida: %s", error)
            raise error

        document_type = state["document_type"]
        duplicate = bool(state.get("duplicate"))
        ok_message, duplicate_message = _MESSAGES[document_type]
        return ProcessingResult(
            document_type=document_type,
            chave_acesso=state["document"].chave_acesso,
            success=True,
            message=duplicate_message if duplicate else ok_message,
            validation=state["validation"],
            duplicate=duplicate,
            record_id=state.get("record_id"),
        )

    async def process_bytes(self, data: bytes) -> ProcessingResult:
        if self.accelerator.validate_bytes(data):
            # somente ASCII: dispensa a validação UTF-8
            xml = data.decode("ascii")
        else:
            xml = decode_payload(data)
        return await self.process(xml)

    async def process_file(self, path: str | Path) -> ProcessingResult:
        logger.debug("process_file chamado com path=%s", path)
        data = await asyncio.to_thread(read_xml_bytes, Path(path))
        return await self.process_bytes(data)

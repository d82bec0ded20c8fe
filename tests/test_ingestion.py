"""
Testes do orquestrador de ingestão
==================================

Exercita o grafo completo (detecção, parsing, validação, deduplicação e
gravação) com o repositório em memória e repositórios de teste que simulam
falhas e concorrência.
"""
import asyncio
import logging
from pathlib import Path

import pytest

from fiscal_ingest.agents.acceleration import NativeAccelerator
from fiscal_ingest.domain.errors import (
    DatabaseError,
    DuplicateDocument,
    EncodingError,
    InvalidAccessKey,
    MissingRequiredField,
    UnsupportedDocumentType,
    XmlParseError,
    XmlReadError,
)
from fiscal_ingest.domain.models import DocumentType
from fiscal_ingest.storage.repository import InMemoryDocumentRepository
from fiscal_ingest.utils import metrics
from fiscal_ingest.utils.metrics import InMemoryMetricsSink
from fiscal_ingest.workflow.orchestrator import (
    IngestionOrchestrator,
    default_builders,
    detect_document_type,
)

CHAVE_NFE = "35240111222333000181550010000123451123456781"
CHAVE_CTE = "35240111222333000181570010000123451123456789"


class RacingRepository(InMemoryDocumentRepository):
    """Simula outra ingestão gravando a mesma chave entre a consulta e o insert."""

    async def find_by_access_key(self, access_key):
        return None

    async def insert(self, document):
        raise DuplicateDocument(document.chave_acesso)


class BrokenValidationRepository(InMemoryDocumentRepository):
    async def insert_validation(self, result):
        raise RuntimeError("tabela de validações indisponível")


class BrokenInsertRepository(InMemoryDocumentRepository):
    async def insert(self, document):
        raise ConnectionError("conexão recusada")


class BrokenLookupRepository(InMemoryDocumentRepository):
    async def find_by_access_key(self, access_key):
        raise TimeoutError("timeout")


class SpyBuilder:
    def __init__(self):
        self.calls = 0

    def parse_string(self, xml):
        self.calls += 1
        raise AssertionError("não deveria ser chamado")


def _run(coro):
    return asyncio.run(coro)


def test_ingestao_nfe(nfe_xml):
    repository = InMemoryDocumentRepository()
    sink = InMemoryMetricsSink()
    orchestrator = IngestionOrchestrator(repository, metrics_sink=sink)

    result = _run(orchestrator.process(nfe_xml))

    assert result.success
    assert not result.duplicate
    assert result.document_type is DocumentType.NOTA_FISCAL
    assert result.chave_acesso == CHAVE_NFE
    assert result.message == "NF-e processada com sucesso"
    assert result.record_id == str(repository.documents[CHAVE_NFE].id)
    assert result.validation.chave_acesso == CHAVE_NFE
    assert repository.validations == [result.validation]
    assert sink.snapshot() == {
        metrics.DOCUMENTS_PROCESSED: 1,
        metrics.VALIDATIONS_SAVED: 1,
    }


def test_ingestao_cte(cte_path: Path):
    repository = InMemoryDocumentRepository()
    orchestrator = IngestionOrchestrator(repository)

    result = _run(orchestrator.process_file(cte_path))

    assert result.document_type is DocumentType.CONHECIMENTO_TRANSPORTE
    assert result.chave_acesso == CHAVE_CTE
    assert result.message == "CT-e processado com sucesso"
    assert list(repository.documents) == [CHAVE_CTE]


def test_ingestao_idempotente(nfe_xml):
    repository = InMemoryDocumentRepository()
    sink = InMemoryMetricsSink()
    orchestrator = IngestionOrchestrator(repository, metrics_sink=sink)

    async def scenario():
        first = await orchestrator.process(nfe_xml)
        second = await orchestrator.process(nfe_xml)
        return first, second

    first, second = _run(scenario())

    assert not first.duplicate
    assert second.duplicate
    assert second.success
    assert second.message == "NF-e já existente"
    assert second.record_id is None
    assert len(repository.documents) == 1
    # a validação é registrada em toda ingestão, inclusive de duplicatas
    assert len(repository.validations) == 2
    assert sink.snapshot() == {
        metrics.DOCUMENTS_PROCESSED: 1,
        metrics.DOCUMENTS_DUPLICATE: 1,
        metrics.VALIDATIONS_SAVED: 2,
    }


def test_insert_concorrente_vira_duplicata(nfe_xml):
    repository = RacingRepository()
    sink = InMemoryMetricsSink()
    orchestrator = IngestionOrchestrator(repository, metrics_sink=sink)

    result = _run(orchestrator.process(nfe_xml))

    assert result.success
    assert result.duplicate
    assert result.message == "NF-e já existente"
    assert sink.snapshot()[metrics.DOCUMENTS_DUPLICATE] == 1
    assert len(repository.validations) == 1


def test_tipo_nao_suportado_nao_chama_builder():
    spy = SpyBuilder()
    builders = {DocumentType.NOTA_FISCAL: spy, DocumentType.CONHECIMENTO_TRANSPORTE: spy}
    repository = InMemoryDocumentRepository()
    orchestrator = IngestionOrchestrator(repository, builders=builders)

    with pytest.raises(UnsupportedDocumentType):
        _run(orchestrator.process("<mdfeProc><MDFe/></mdfeProc>"))

    assert spy.calls == 0
    assert repository.documents == {}
    assert repository.validations == []


def test_tipo_sem_builder_registrado(cte_xml):
    orchestrator = IngestionOrchestrator(
        InMemoryDocumentRepository(),
        builders={DocumentType.NOTA_FISCAL: default_builders()[DocumentType.NOTA_FISCAL]},
    )
    with pytest.raises(UnsupportedDocumentType):
        _run(orchestrator.process(cte_xml))


def test_falha_ao_gravar_validacao_nao_interrompe(nfe_xml, caplog):
    repository = BrokenValidationRepository()
    sink = InMemoryMetricsSink()
    orchestrator = IngestionOrchestrator(repository, metrics_sink=sink)

    with caplog.at_level(logging.WARNING):
        result = _run(orchestrator.process(nfe_xml))

    assert result.success
    assert CHAVE_NFE in repository.documents
    assert "Falha ao persistir validação" in caplog.text
    assert sink.snapshot()[metrics.VALIDATIONS_FAILED] == 1


@pytest.mark.parametrize("xml", ["", "   \n  "])
def test_payload_vazio(xml):
    orchestrator = IngestionOrchestrator(InMemoryDocumentRepository())
    with pytest.raises(MissingRequiredField) as exc_info:
        _run(orchestrator.process(xml))
    assert exc_info.value.field == "xml"


def test_falha_no_insert_vira_database_error(nfe_xml):
    repository = BrokenInsertRepository()
    orchestrator = IngestionOrchestrator(repository)

    with pytest.raises(DatabaseError) as exc_info:
        _run(orchestrator.process(nfe_xml))

    assert CHAVE_NFE in str(exc_info.value)
    # sem documento gravado a validação não é persistida
    assert repository.validations == []


def test_falha_na_consulta_vira_database_error(nfe_xml):
    with pytest.raises(DatabaseError):
        _run(IngestionOrchestrator(BrokenLookupRepository()).process(nfe_xml))


def test_chave_invalida_interrompe(nfe_xml):
    repository = InMemoryDocumentRepository()
    xml = nfe_xml.replace(CHAVE_NFE, CHAVE_NFE[:-1] + "2")
    with pytest.raises(InvalidAccessKey):
        _run(IngestionOrchestrator(repository).process(xml))
    assert repository.documents == {}


def test_xml_mal_formado_interrompe():
    with pytest.raises(XmlParseError):
        _run(IngestionOrchestrator(InMemoryDocumentRepository()).process(f"<nfeProc><chNFe>{CHAVE_NFE}</chNFe>"))


def test_process_bytes(nfe_path: Path):
    orchestrator = IngestionOrchestrator(InMemoryDocumentRepository(), accelerator=NativeAccelerator())
    result = _run(orchestrator.process_bytes(nfe_path.read_bytes()))
    assert result.chave_acesso == CHAVE_NFE


def test_process_bytes_utf8_e_invalido(nfe_xml):
    orchestrator = IngestionOrchestrator(InMemoryDocumentRepository())
    xml = nfe_xml.replace("Camiseta algodao", "Camiseta algodão")

    result = _run(orchestrator.process_bytes(xml.encode("utf-8")))
    assert result.success

    with pytest.raises(EncodingError):
        _run(orchestrator.process_bytes(xml.encode("latin-1")))


def test_process_file_inexistente(tmp_path: Path):
    with pytest.raises(XmlReadError):
        _run(IngestionOrchestrator(InMemoryDocumentRepository()).process_file(tmp_path / "x.xml"))


def test_detect_document_type(nfe_xml, cte_xml):
    assert detect_document_type(nfe_xml) is DocumentType.NOTA_FISCAL
    assert detect_document_type(cte_xml) is DocumentType.CONHECIMENTO_TRANSPORTE
    assert detect_document_type(b"<NFe><infNFe/></NFe>") is DocumentType.NOTA_FISCAL
    assert detect_document_type("<CTe><infCte/></CTe>") is DocumentType.CONHECIMENTO_TRANSPORTE
    assert detect_document_type("<mdfeProc/>") is None

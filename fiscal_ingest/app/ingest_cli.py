"""
CLI de ingestão de documentos fiscais
=====================================

Comandos:
- `parse`: detecta o tipo, monta o documento e imprime o JSON
- `validate`: executa a bateria de regras fiscais e imprime o resultado
- `ingest`: processa um ou mais XMLs com o orquestrador (repositório em
  memória) e imprime os resultados e as métricas

Retorna código 1 em falhas conhecidas, 2 em erros inesperados.
"""
# fiscal_ingest/app/ingest_cli.py
import asyncio
import json
import logging
from enum import Enum
from pathlib import Path
from typing import List, Optional

import typer

from fiscal_ingest.agents import fiscal_validator
from fiscal_ingest.agents.access_key import format_chave_acesso
from fiscal_ingest.agents.document_builder import decode_payload, read_xml_bytes
from fiscal_ingest.config import get_settings
from fiscal_ingest.domain.errors import FiscalDocumentError, UnsupportedDocumentType
from fiscal_ingest.domain.models import DocumentType
from fiscal_ingest.storage.repository import InMemoryDocumentRepository
from fiscal_ingest.utils.formatters import (
    format_documento,
    format_endereco_completo,
    format_telefone,
    format_valor_monetario,
)
from fiscal_ingest.utils.metrics import InMemoryMetricsSink
from fiscal_ingest.workflow.orchestrator import (
    IngestionOrchestrator,
    default_builders,
    detect_document_type,
)

app = typer.Typer(help="CLI para ingestão de NF-e e CT-e (XML).")


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def _configure_logging(level: Optional[LogLevel]) -> None:
    name = level.value if level is not None else get_settings().log_level
    numeric = getattr(logging, name, logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _load(xml: str) -> tuple:
    text = decode_payload(read_xml_bytes(Path(xml)))
    document_type = detect_document_type(text)
    if document_type is None:
        raise UnsupportedDocumentType(f"Não foi possível detectar o tipo de documento: {xml}")
    return text, document_type


def _echo_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


_LOG_OPTION = typer.Option(None, "--log-level", help="Nível de log (padrão: FISCAL_LOG_LEVEL)")


@app.command()
def parse(
    xml: str = typer.Option(..., "--xml", help="Caminho do arquivo XML (NF-e ou CT-e)"),
    log_level: Optional[LogLevel] = _LOG_OPTION,
):
    """Monta o documento e imprime o JSON."""
    _configure_logging(log_level)
    logger = logging.getLogger("cli")

    try:
        text, document_type = _load(xml)
        document = default_builders()[document_type].parse_string(text)
        logger.info(
            "%s %s | emitente %s (%s)",
            document_type.label,
            format_chave_acesso(document.chave_acesso),
            document.emitente.razao_social,
            format_documento(document.emitente),
        )
        logger.info(
            "Endereço do emitente: %s | fone %s",
            format_endereco_completo(document.emitente.endereco),
            format_telefone(document.emitente.telefone),
        )
        if document_type is DocumentType.NOTA_FISCAL:
            logger.info("Valor total: %s", format_valor_monetario(document.totais.valor_total))
        else:
            logger.info("Valor da prestação: %s", format_valor_monetario(document.valores_prestacao.valor_total))
        _echo_json(document.model_dump(mode="json"))
    except FiscalDocumentError as e:
        logger.error("Falha no parsing: %s", e)
        raise typer.Exit(code=1)
    except Exception:
        logger.exception("Erro inesperado")
        raise typer.Exit(code=2)


@app.command()
def validate(
    xml: str = typer.Option(..., "--xml", help="Caminho do arquivo XML (NF-e ou CT-e)"),
    log_level: Optional[LogLevel] = _LOG_OPTION,
):
    """Executa as regras fiscais e imprime o resultado da validação."""
    _configure_logging(log_level)
    logger = logging.getLogger("cli")

    try:
        text, document_type = _load(xml)
        result = fiscal_validator.validate(text, document_type)
        _echo_json(result.model_dump(mode="json"))
    except FiscalDocumentError as e:
        logger.error("Falha na validação: %s", e)
        raise typer.Exit(code=1)
    except Exception:
        logger.exception("Erro inesperado")
        raise typer.Exit(code=2)


async def _ingest_all(paths: List[str], orchestrator: IngestionOrchestrator, logger: logging.Logger):
    results = []
    failures = 0
    for path in paths:
        try:
            result = await orchestrator.process_file(path)
            results.append(result.model_dump(mode="json"))
        except FiscalDocumentError as e:
            failures += 1
            logger.error("Falha ao ingerir %s: %s", path, e)
            results.append({"arquivo": path, "success": False, "error": str(e), "code": e.code})
    return results, failures


@app.command()
def ingest(
    xml: List[str] = typer.Option(..., "--xml", help="Arquivo XML a ingerir (pode repetir)"),
    log_level: Optional[LogLevel] = _LOG_OPTION,
):
    """Ingere os arquivos em um repositório em memória e imprime resultados e métricas."""
    _configure_logging(log_level)
    logger = logging.getLogger("cli")

    try:
        repository = InMemoryDocumentRepository()
        sink = InMemoryMetricsSink()
        orchestrator = IngestionOrchestrator(repository, metrics_sink=sink)
        results, failures = asyncio.run(_ingest_all(xml, orchestrator, logger))
        _echo_json({"resultados": results, "metricas": sink.snapshot()})
    except Exception:
        logger.exception("Erro inesperado")
        raise typer.Exit(code=2)

    if failures:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()

"""
Base dos builders de documentos fiscais
=======================================

Liga o `tag_path_walker` à tabela de regras de cada builder: cada texto é
roteado para o rascunho, cada fechamento de elemento pode encerrar um grupo
repetido e, ao final, a subclasse monta o modelo Pydantic.

A chave de acesso é obrigatória: ela é procurada no XML bruto pelo codec e,
se ausente ou inválida, o builder levanta `InvalidAccessKey`.
"""
# fiscal_ingest/agents/document_builder.py
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from fiscal_ingest.agents import access_key
from fiscal_ingest.agents.field_rules import DraftRecord, GroupRule, RuleTable
from fiscal_ingest.agents.tag_path_walker import TagPath, walk
from fiscal_ingest.domain.errors import EncodingError, XmlReadError
from fiscal_ingest.domain.models import (
    DocumentoFiscal,
    DocumentType,
    Endereco,
    Participante,
)

logger = logging.getLogger(__name__)


def read_xml_bytes(path: Path) -> bytes:
    """Lê o conteúdo bruto do arquivo; falhas de I/O viram `XmlReadError`."""
    try:
        return path.read_bytes()
    except OSError as exc:
        logger.error("Falha ao ler o arquivo XML: %s", path, exc_info=True)
        raise XmlReadError(f"Falha ao ler o arquivo XML: {path}") from exc


def decode_payload(data: bytes) -> str:
    """Decodifica o payload como UTF-8 (BOM tolerado)."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        logger.warning("Payload não está em UTF-8: %s", exc)
        raise EncodingError(f"Conteúdo não está em UTF-8 válido: {exc}") from exc


def build_participante(draft: DraftRecord, party: str, address: str) -> Participante:
    """Monta um `Participante` a partir das seções `party` e `address` do rascunho."""
    data: Dict[str, Any] = dict(draft.section(party))
    data["endereco"] = Endereco(**draft.section(address))
    return Participante(**data)


class DocumentBuilder(ABC):
    """Esqueleto comum aos builders de NF-e e CT-e."""

    document_type: DocumentType
    rules: RuleTable
    groups: Tuple[GroupRule, ...] = ()

    def parse_string(self, xml: str) -> DocumentoFiscal:
        label = self.document_type.label
        logger.debug("Iniciando parsing de %s (%d caracteres)", label, len(xml))
        draft = DraftRecord()

        def on_text(path: TagPath, text: str) -> None:
            rule = self.rules.match(path)
            if rule is None:
                return
            draft.set(rule.section, rule.key, rule.convert(text))

        def on_end(path: TagPath) -> None:
            for group in self.groups:
                if group.matches(path):
                    draft.close_group(group)
                    return

        walk(xml, on_text, on_end)

        chave = access_key.validate(access_key.extract(xml))
        document = self.build(draft, chave)
        logger.debug("%s montada: %s", label, document.chave_acesso)
        return document

    def parse_bytes(self, data: bytes) -> DocumentoFiscal:
        return self.parse_string(decode_payload(data))

    def parse_file(self, path: str | Path) -> DocumentoFiscal:
        logger.debug("parse_file chamado com path=%s", path)
        return self.parse_bytes(read_xml_bytes(Path(path)))

    @abstractmethod
    def build(self, draft: DraftRecord, chave: str) -> DocumentoFiscal:
        """Monta o modelo Pydantic a partir do rascunho preenchido."""


def optional_participante(
    draft: DraftRecord, party: str, address: str
) -> Optional[Participante]:
    """Como `build_participante`, mas devolve None se o grupo não existir no XML."""
    if not draft.section(party) and not draft.section(address):
        return None
    return build_participante(draft, party, address)

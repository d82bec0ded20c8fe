"""
CteBuilder
==========

Converte o XML de um CT-e (com ou sem `cteProc`) no modelo
`ConhecimentoTransporte`.

- Participantes: `emit`, `rem`, `dest` e, quando presentes, `exped` e `receb`,
  cada um com seu bloco de endereço (`enderEmit`, `enderReme`...).
- `vPrest` alimenta os valores da prestação; `infCarga` as informações de carga.
- Cada `infQ` vira uma `QuantidadeCarga`. O peso bruto é a quantidade da
  primeira medida em quilos (`cUnid` 01) ou, na falta dela, a primeira
  quantidade informada; o peso cubado vem da medida cujo `tpMed` contém
  "CUBADO".
- Documentos transportados (`infDoc/infNFe`, `infNF`, `infOutros`) viram
  `DocumentoReferenciado`.
"""
# fiscal_ingest/agents/cte_builder.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from fiscal_ingest.agents.document_builder import (
    DocumentBuilder,
    build_participante,
    optional_participante,
)
from fiscal_ingest.agents.field_rules import (
    DraftRecord,
    FieldRule,
    GroupRule,
    RuleTable,
    to_datetime,
    to_float,
)
from fiscal_ingest.domain.models import (
    ConhecimentoTransporte,
    DocumentoReferenciado,
    DocumentType,
    InformacoesCarga,
    Modal,
    QuantidadeCarga,
    TipoDocumentoReferenciado,
    TipoServicoCTe,
    ValoresPrestacaoCTe,
)

logger = logging.getLogger(__name__)

_KG = "01"

# (grupo do participante, grupo do endereço)
_PARTIES = (
    ("emit", "enderEmit"),
    ("rem", "enderReme"),
    ("dest", "enderDest"),
    ("exped", "enderExped"),
    ("receb", "enderReceb"),
)

_PARTY_FIELDS = {
    "CNPJ": "cnpj_cpf",
    "CPF": "cnpj_cpf",
    "xNome": "razao_social",
    "xFant": "nome_fantasia",
    "IE": "inscricao_estadual",
    "fone": "telefone",
    "email": "email",
}

_ADDRESS_FIELDS = {
    "xLgr": "logradouro",
    "nro": "numero",
    "xCpl": "complemento",
    "xBairro": "bairro",
    "cMun": "codigo_municipio",
    "xMun": "municipio",
    "UF": "uf",
    "CEP": "cep",
    "cPais": "codigo_pais",
    "xPais": "pais",
}


def _party_rules() -> List[FieldRule]:
    rules = []
    for party, address in _PARTIES:
        rules += [FieldRule(leaf, party, key, (party,)) for leaf, key in _PARTY_FIELDS.items()]
        rules += [FieldRule(leaf, address, key, (address,)) for leaf, key in _ADDRESS_FIELDS.items()]
    return rules


CTE_RULES = RuleTable(
    [
        FieldRule("nCT", "ide", "numero", ("ide",)),
        FieldRule("serie", "ide", "serie", ("ide",)),
        FieldRule("dhEmi", "ide", "data_emissao", ("ide",), to_datetime),
        FieldRule("tpServ", "ide", "tipo_servico", ("ide",)),
        FieldRule("modal", "ide", "modal", ("ide",)),
        *_party_rules(),
        FieldRule("vTPrest", "prestacao", "valor_total", ("vPrest",), to_float),
        FieldRule("vRec", "prestacao", "valor_receber", ("vPrest",), to_float),
        FieldRule("vCarga", "carga", "valor_carga", ("infCarga",), to_float),
        FieldRule("proPred", "carga", "produto_predominante", ("infCarga",)),
        FieldRule("xOutCat", "carga", "outras_caracteristicas_carga", ("infCarga",)),
        FieldRule("cUnid", "infQ", "codigo_unidade", ("infQ",)),
        FieldRule("tpMed", "infQ", "tipo_medida", ("infQ",)),
        FieldRule("qCarga", "infQ", "quantidade", ("infQ",), to_float),
        FieldRule("chave", "doc", "chave_acesso", ("infDoc", "infNFe")),
        FieldRule("nDoc", "doc", "numero", ("infDoc",)),
        FieldRule("serie", "doc", "serie", ("infDoc", "infNF")),
        FieldRule("xObs", "adic", "informacoes_adicionais", ("compl",)),
        FieldRule("nProt", "adic", "protocolo_autorizacao", ("protCTe",)),
    ]
)

CTE_GROUPS = (
    GroupRule("infQ", "quantidades", ("infQ",)),
    GroupRule(
        "infNFe", "documentos", ("doc",), ("infDoc",),
        {"tipo": TipoDocumentoReferenciado.NOTA_FISCAL},
    ),
    GroupRule(
        "infNF", "documentos", ("doc",), ("infDoc",),
        {"tipo": TipoDocumentoReferenciado.NOTA_FISCAL_PRODUTOR},
    ),
    GroupRule(
        "infOutros", "documentos", ("doc",), ("infDoc",),
        {"tipo": TipoDocumentoReferenciado.OUTROS_DOCUMENTOS},
    ),
)


def _peso_bruto(quantidades: List[QuantidadeCarga]) -> float:
    for q in quantidades:
        if q.codigo_unidade == _KG:
            return q.quantidade
    return quantidades[0].quantidade if quantidades else 0.0


def _peso_cubado(quantidades: List[QuantidadeCarga]) -> Optional[float]:
    for q in quantidades:
        if "CUBADO" in q.tipo_medida.upper():
            return q.quantidade
    return None


class CteBuilder(DocumentBuilder):
    document_type = DocumentType.CONHECIMENTO_TRANSPORTE
    rules = CTE_RULES
    groups = CTE_GROUPS

    def build(self, draft: DraftRecord, chave: str) -> ConhecimentoTransporte:
        ide = draft.section("ide")
        carga = draft.section("carga")
        adic = draft.section("adic")

        data_emissao = ide.get("data_emissao")
        if data_emissao is None:
            logger.warning("CT-e %s sem data de emissão; usando instante atual", chave)
            data_emissao = datetime.now(timezone.utc)

        quantidades = [QuantidadeCarga(**entry["infQ"]) for entry in draft.group("quantidades")]
        documentos = [
            DocumentoReferenciado(tipo=entry["tipo"], **entry["doc"])
            for entry in draft.group("documentos")
        ]

        cte = ConhecimentoTransporte(
            chave_acesso=chave,
            numero=ide.get("numero", ""),
            serie=ide.get("serie", ""),
            data_emissao=data_emissao,
            tipo_servico=TipoServicoCTe.from_code(ide.get("tipo_servico")),
            emitente=build_participante(draft, "emit", "enderEmit"),
            remetente=build_participante(draft, "rem", "enderReme"),
            destinatario=build_participante(draft, "dest", "enderDest"),
            expedidor=optional_participante(draft, "exped", "enderExped"),
            recebedor=optional_participante(draft, "receb", "enderReceb"),
            valores_prestacao=ValoresPrestacaoCTe(
                valor_total=draft.section("prestacao").get("valor_total", 0.0),
                valor_receber=draft.section("prestacao").get("valor_receber", 0.0),
                valor_total_carga=carga.get("valor_carga", 0.0),
                produto_predominante=carga.get("produto_predominante", ""),
                outras_caracteristicas_carga=carga.get("outras_caracteristicas_carga"),
            ),
            informacoes_carga=InformacoesCarga(
                valor_carga=carga.get("valor_carga", 0.0),
                produto_predominante=carga.get("produto_predominante", ""),
                peso_bruto=_peso_bruto(quantidades),
                peso_cubado=_peso_cubado(quantidades),
                quantidades=quantidades,
            ),
            documentos_referenciados=documentos,
            modal=Modal.from_code(ide.get("modal")),
            informacoes_adicionais=adic.get("informacoes_adicionais"),
            protocolo_autorizacao=adic.get("protocolo_autorizacao"),
        )
        logger.info(
            "CT-e parse OK | chave=%s numero=%s remetente=%s destinatario=%s vprestacao=%.2f documentos=%d",
            cte.chave_acesso,
            cte.numero,
            cte.remetente.razao_social[:30],
            cte.destinatario.razao_social[:30],
            cte.valores_prestacao.valor_total,
            len(cte.documentos_referenciados),
        )
        return cte


def parse_cte(xml_path: str | Path) -> ConhecimentoTransporte:
    """Atalho: lê o arquivo e devolve o `ConhecimentoTransporte`."""
    return CteBuilder().parse_file(xml_path)

"""
NfeBuilder
==========

Converte o XML de uma NF-e (com ou sem `nfeProc`) no modelo `NotaFiscal`.

Principais pontos:
- Campos são roteados pela tabela de regras: `emit`/`dest` separam os
  participantes, `enderEmit`/`enderDest` os endereços, `prod` e `ICMSTot`
  distinguem valores do item e totais com o mesmo nome de tag.
- Cada `det` fechado vira um `ItemNota`, numerado na ordem do documento.
- Impostos por item vêm de `imposto/ICMS*`, `IPI`, `PIS` e `COFINS`,
  independentemente da variante (`ICMS00`, `ICMSSN102`, `PISAliq`...).
- Gera logs em pontos relevantes para facilitar troubleshooting.
"""
# fiscal_ingest/agents/nfe_builder.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from fiscal_ingest.agents.document_builder import DocumentBuilder, build_participante
from fiscal_ingest.agents.field_rules import (
    DraftRecord,
    FieldRule,
    GroupRule,
    RuleTable,
    to_datetime,
    to_float,
)
from fiscal_ingest.domain.models import (
    DocumentType,
    ImpostosItem,
    ItemNota,
    NotaFiscal,
    TipoNota,
    Totais,
)

logger = logging.getLogger(__name__)


def _party_rules(party: str, address: str) -> list:
    return [
        FieldRule("CNPJ", party, "cnpj_cpf", (party,)),
        FieldRule("CPF", party, "cnpj_cpf", (party,)),
        FieldRule("xNome", party, "razao_social", (party,)),
        FieldRule("xFant", party, "nome_fantasia", (party,)),
        FieldRule("IE", party, "inscricao_estadual", (party,)),
        FieldRule("email", party, "email", (party,)),
        FieldRule("fone", party, "telefone", (party,)),
        FieldRule("xLgr", address, "logradouro", (address,)),
        FieldRule("nro", address, "numero", (address,)),
        FieldRule("xCpl", address, "complemento", (address,)),
        FieldRule("xBairro", address, "bairro", (address,)),
        FieldRule("cMun", address, "codigo_municipio", (address,)),
        FieldRule("xMun", address, "municipio", (address,)),
        FieldRule("UF", address, "uf", (address,)),
        FieldRule("CEP", address, "cep", (address,)),
        FieldRule("cPais", address, "codigo_pais", (address,)),
        FieldRule("xPais", address, "pais", (address,)),
    ]


_TOTAIS_FIELDS = {
    "vBC": "base_calculo_icms",
    "vICMS": "valor_icms",
    "vICMSDeson": "valor_icms_desonerado",
    "vFCP": "valor_fcp",
    "vBCST": "base_calculo_icms_st",
    "vST": "valor_icms_st",
    "vProd": "valor_produtos",
    "vFrete": "valor_frete",
    "vSeg": "valor_seguro",
    "vDesc": "valor_desconto",
    "vII": "valor_ii",
    "vIPI": "valor_ipi",
    "vPIS": "valor_pis",
    "vCOFINS": "valor_cofins",
    "vOutro": "outras_despesas",
    "vNF": "valor_total",
}

NFE_RULES = RuleTable(
    [
        FieldRule("nNF", "ide", "numero", ("ide",)),
        FieldRule("serie", "ide", "serie", ("ide",)),
        FieldRule("dhEmi", "ide", "data_emissao", ("ide",), to_datetime),
        FieldRule("dEmi", "ide", "data_emissao", ("ide",), to_datetime),
        FieldRule("tpNF", "ide", "tipo_nota", ("ide",)),
        *_party_rules("emit", "enderEmit"),
        *_party_rules("dest", "enderDest"),
        # produto
        FieldRule("cProd", "item", "codigo_produto", ("det", "prod")),
        FieldRule("cEAN", "item", "ean", ("det", "prod")),
        FieldRule("xProd", "item", "descricao", ("det", "prod")),
        FieldRule("NCM", "item", "ncm", ("det", "prod")),
        FieldRule("CFOP", "item", "cfop", ("det", "prod")),
        FieldRule("uCom", "item", "unidade_comercial", ("det", "prod")),
        FieldRule("qCom", "item", "quantidade_comercial", ("det", "prod"), to_float),
        FieldRule("vUnCom", "item", "valor_unitario", ("det", "prod"), to_float),
        FieldRule("vProd", "item", "valor_total", ("det", "prod"), to_float),
        FieldRule("infAdProd", "item", "informacoes_adicionais", ("det",)),
        # impostos do item
        FieldRule("orig", "imposto", "origem", ("det", "ICMS")),
        FieldRule("CST", "imposto", "cst", ("det", "ICMS")),
        FieldRule("CSOSN", "imposto", "csosn", ("det", "ICMS")),
        FieldRule("vBC", "imposto", "base_calculo_icms", ("det", "ICMS"), to_float),
        FieldRule("pICMS", "imposto", "aliquota_icms", ("det", "ICMS"), to_float),
        FieldRule("vICMS", "imposto", "valor_icms", ("det", "ICMS"), to_float),
        FieldRule("vIPI", "imposto", "valor_ipi", ("det", "IPI"), to_float),
        FieldRule("vPIS", "imposto", "valor_pis", ("det", "PIS"), to_float),
        FieldRule("vCOFINS", "imposto", "valor_cofins", ("det", "COFINS"), to_float),
        # totais
        *[
            FieldRule(leaf, "totais", key, ("ICMSTot",), to_float)
            for leaf, key in _TOTAIS_FIELDS.items()
        ],
        FieldRule("infCpl", "adic", "informacoes_adicionais", ("infAdic",)),
        FieldRule("nProt", "adic", "protocolo_autorizacao", ("protNFe",)),
    ]
)

NFE_GROUPS = (GroupRule("det", "itens", ("item", "imposto")),)


def _build_item(numero: int, entry: Dict[str, Any]) -> ItemNota:
    return ItemNota(
        numero_item=numero,
        impostos=ImpostosItem(**entry["imposto"]),
        **entry["item"],
    )


class NfeBuilder(DocumentBuilder):
    document_type = DocumentType.NOTA_FISCAL
    rules = NFE_RULES
    groups = NFE_GROUPS

    def build(self, draft: DraftRecord, chave: str) -> NotaFiscal:
        ide = draft.section("ide")
        adic = draft.section("adic")
        tp_nf = ide.get("tipo_nota", "1")

        data_emissao = ide.get("data_emissao")
        if data_emissao is None:
            logger.warning("NF-e %s sem data de emissão; usando instante atual", chave)
            data_emissao = datetime.now(timezone.utc)

        itens = [
            _build_item(numero, entry)
            for numero, entry in enumerate(draft.group("itens"), start=1)
        ]
        logger.debug("Itens (det) encontrados: %d", len(itens))

        nota = NotaFiscal(
            chave_acesso=chave,
            numero=ide.get("numero", ""),
            serie=ide.get("serie", ""),
            data_emissao=data_emissao,
            tipo_nota=TipoNota.ENTRADA if tp_nf == "0" else TipoNota.SAIDA,
            emitente=build_participante(draft, "emit", "enderEmit"),
            destinatario=build_participante(draft, "dest", "enderDest"),
            itens=itens,
            totais=Totais(**draft.section("totais")),
            informacoes_adicionais=adic.get("informacoes_adicionais"),
            protocolo_autorizacao=adic.get("protocolo_autorizacao"),
        )
        logger.info(
            "NF-e parse OK | chave=%s numero=%s serie=%s emitente=%s itens=%d vtotal=%.2f",
            nota.chave_acesso,
            nota.numero,
            nota.serie,
            nota.emitente.razao_social[:30],
            len(nota.itens),
            nota.totais.valor_total,
        )
        return nota


def parse_nfe(xml_path: str | Path) -> NotaFiscal:
    """Atalho: lê o arquivo e devolve a `NotaFiscal`."""
    return NfeBuilder().parse_file(xml_path)

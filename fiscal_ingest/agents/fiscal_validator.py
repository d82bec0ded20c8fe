"""
FiscalValidator
===============

Bateria de regras fiscais aplicada ao XML bruto de uma NF-e ou CT-e.

Os fatos (CFOP, NCM, valores de ICMS por item, UFs, data de emissão) são
extraídos uma única vez com o `tag_path_walker`. As regras são independentes
e executadas em ordem fixa; cada uma é protegida para nunca interromper as
demais. O resultado é sempre um `ValidationResult`, mesmo para XML mal formado.

Regras NF-e:
- CFOP: existência na tabela conhecida e coerência com as UFs (5/1xxx interna,
  6/2xxx interestadual)
- NCM: formato de 8 dígitos e NCMs que costumam exigir IPI
- ICMS: base x alíquota por item e soma dos itens x total da nota
- chave de acesso e datas

Regras CT-e: chave de acesso e datas.
"""
# fiscal_ingest/agents/fiscal_validator.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from fiscal_ingest.agents import access_key
from fiscal_ingest.agents.field_rules import (
    DraftRecord,
    FieldRule,
    GroupRule,
    RuleTable,
    parse_rfc3339,
    to_float,
)
from fiscal_ingest.agents.tag_path_walker import walk
from fiscal_ingest.config import Settings, get_settings
from fiscal_ingest.domain.errors import XmlParseError
from fiscal_ingest.domain.models import (
    DocumentType,
    ErrorSeverity,
    ValidationIssue,
    ValidationResult,
    ValidationWarning,
)

logger = logging.getLogger(__name__)

# CFOPs de uso mais comum (entradas e saídas, internas e interestaduais)
CFOPS_CONHECIDOS = frozenset({
    "1102", "1202", "1353", "1403", "1411", "1556", "1910", "1949",
    "2102", "2202", "2353", "2403", "2411", "2556", "2910", "2949",
    "5101", "5102", "5103", "5104", "5152", "5202", "5353", "5401",
    "5403", "5405", "5411", "5910", "5915", "5929", "5933", "5949",
    "6101", "6102", "6103", "6104", "6152", "6202", "6353", "6401",
    "6403", "6404", "6411", "6910", "6915", "6929", "6933", "6949",
})

NCM_PREFIXOS_IPI = ("8433", "8704")

MODELOS_POR_TIPO = {
    DocumentType.NOTA_FISCAL: ("55", "65"),
    DocumentType.CONHECIMENTO_TRANSPORTE: ("57", "67"),
}

_FACT_RULES = RuleTable(
    [
        FieldRule("dhEmi", "ide", "dhEmi", ("ide",)),
        FieldRule("UF", "uf", "emitente", ("enderEmit",)),
        FieldRule("UF", "uf", "destinatario", ("enderDest",)),
        FieldRule("CFOP", "item", "cfop", ("det", "prod")),
        FieldRule("NCM", "item", "ncm", ("det", "prod")),
        FieldRule("vBC", "item", "vBC", ("det", "ICMS"), to_float),
        FieldRule("pICMS", "item", "pICMS", ("det", "ICMS"), to_float),
        FieldRule("vICMS", "item", "vICMS", ("det", "ICMS"), to_float),
        FieldRule("vIPI", "item", "vIPI", ("det", "IPI"), to_float),
        FieldRule("vICMS", "totais", "vICMS", ("ICMSTot",), to_float),
    ]
)
_ITEM_GROUP = GroupRule("det", "itens", ("item",))


@dataclass
class _Facts:
    xml: str
    itens: List[Dict[str, Any]] = field(default_factory=list)
    uf_emitente: str = ""
    uf_destinatario: str = ""
    dh_emi: Optional[str] = None
    total_icms: Optional[float] = None


@dataclass(frozen=True)
class _Context:
    document_type: DocumentType
    now: datetime
    settings: Settings


@dataclass
class _Findings:
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationWarning] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    chave: str = ""

    def error(self, code: str, field_name: str, message: str, severity: ErrorSeverity) -> None:
        self.errors.append(ValidationIssue(code=code, field=field_name, message=message, severity=severity))

    def warning(self, code: str, field_name: str, message: str, impact: str) -> None:
        self.warnings.append(ValidationWarning(code=code, field=field_name, message=message, impact=impact))

    def suggest(self, text: str) -> None:
        if text not in self.suggestions:
            self.suggestions.append(text)


def _extract_facts(xml: str, findings: _Findings) -> _Facts:
    draft = DraftRecord()

    def on_text(path, text):
        rule = _FACT_RULES.match(path)
        if rule is not None:
            draft.set(rule.section, rule.key, rule.convert(text))

    def on_end(path):
        if _ITEM_GROUP.matches(path):
            draft.close_group(_ITEM_GROUP)

    try:
        walk(xml, on_text, on_end)
    except XmlParseError as exc:
        findings.error("XML_MALFORMED", "xml", str(exc), ErrorSeverity.CRITICAL)

    ufs = draft.section("uf")
    return _Facts(
        xml=xml,
        itens=[entry["item"] for entry in draft.group("itens")],
        uf_emitente=str(ufs.get("emitente", "")).upper(),
        uf_destinatario=str(ufs.get("destinatario", "")).upper(),
        dh_emi=draft.section("ide").get("dhEmi"),
        total_icms=draft.section("totais").get("vICMS"),
    )


Check = Callable[[_Facts, _Findings, _Context], None]


def _distinct(values) -> List[str]:
    seen: List[str] = []
    for v in values:
        if v and v not in seen:
            seen.append(v)
    return seen


# ----------------- Regras -----------------

def _check_cfop(facts: _Facts, findings: _Findings, ctx: _Context) -> None:
    for cfop in _distinct(item.get("cfop") for item in facts.itens):
        if cfop not in CFOPS_CONHECIDOS:
            findings.error("CFOP_INVALID", "CFOP", f"CFOP {cfop} não existe na tabela oficial", ErrorSeverity.HIGH)
            findings.suggest("Verifique a tabela de CFOPs da Receita Federal")

        if not (facts.uf_emitente and facts.uf_destinatario):
            continue
        mesma_uf = facts.uf_emitente == facts.uf_destinatario
        if cfop[:1] in ("1", "5") and not mesma_uf:
            findings.warning(
                "CFOP_CHECK_UF", "CFOP",
                f"CFOP {cfop} é para operações internas, mas as UFs diferem "
                f"({facts.uf_emitente} -> {facts.uf_destinatario})",
                "Pode gerar multa se UFs forem diferentes",
            )
        elif cfop[:1] in ("2", "6") and mesma_uf:
            findings.warning(
                "CFOP_CHECK_UF", "CFOP",
                f"CFOP {cfop} é para operações interestaduais, mas emitente e destinatário estão em {facts.uf_emitente}",
                "Operação interna com CFOP interestadual pode gerar autuação",
            )


def _check_ncm(facts: _Facts, findings: _Findings, ctx: _Context) -> None:
    checked = set()
    for item in facts.itens:
        ncm = item.get("ncm")
        if not ncm or ncm in checked:
            continue
        checked.add(ncm)
        if len(ncm) != 8 or not ncm.isdigit():
            findings.error("NCM_INVALID_FORMAT", "NCM", f"NCM {ncm} deve ter 8 dígitos numéricos", ErrorSeverity.HIGH)
        if ncm.startswith(NCM_PREFIXOS_IPI) and not item.get("vIPI"):
            findings.warning(
                "NCM_REQUIRES_IPI", "NCM",
                f"NCM {ncm} pode exigir IPI - verifique alíquota",
                "Falta de IPI pode gerar autuação",
            )


def _check_icms(facts: _Facts, findings: _Findings, ctx: _Context) -> None:
    tolerance = ctx.settings.icms_tolerance
    soma = 0.0
    declarou_icms = False
    for numero, item in enumerate(facts.itens, start=1):
        if "vICMS" in item:
            declarou_icms = True
            soma += item["vICMS"]
        if "vBC" not in item or "pICMS" not in item:
            continue
        esperado = item["vBC"] * item["pICMS"] / 100.0
        declarado = item.get("vICMS", 0.0)
        if abs(declarado - esperado) > tolerance:
            findings.error(
                "ICMS_CALC_ERROR", "ICMS",
                f"Item {numero}: ICMS declarado (R$ {declarado:.2f}) difere do esperado (R$ {esperado:.2f})",
                ErrorSeverity.MEDIUM,
            )
            findings.suggest(
                f"Recalcule o item {numero}: {item['vBC']:.2f} × {item['pICMS']:.2f}% = R$ {esperado:.2f}"
            )

    if declarou_icms and facts.total_icms is not None and abs(soma - facts.total_icms) > tolerance:
        findings.error(
            "ICMS_TOTAL_MISMATCH", "ICMSTot.vICMS",
            f"Total de ICMS (R$ {facts.total_icms:.2f}) difere da soma dos itens (R$ {soma:.2f})",
            ErrorSeverity.MEDIUM,
        )
        findings.suggest(f"Recalcule o total de ICMS: soma dos itens = R$ {soma:.2f}")


def _check_access_key(facts: _Facts, findings: _Findings, ctx: _Context) -> None:
    chave = access_key.extract(facts.xml)
    if chave is None:
        candidatos = access_key.marker_candidates(facts.xml)
        message = (
            "Chave de acesso deve ter 44 dígitos numéricos"
            if candidatos else "Chave de acesso não encontrada no documento"
        )
        findings.error("KEY_INVALID_FORMAT", "chave_acesso", message, ErrorSeverity.CRITICAL)
        return

    findings.chave = chave
    if not access_key.check_digit_valid(chave):
        findings.error(
            "KEY_INVALID_DIGIT", "chave_acesso",
            "Dígito verificador da chave de acesso inválido", ErrorSeverity.CRITICAL,
        )
        return

    modelo = chave[20:22]
    if modelo not in MODELOS_POR_TIPO[ctx.document_type]:
        findings.warning(
            "KEY_MODEL_MISMATCH", "chave_acesso",
            f"Modelo {modelo} da chave não corresponde a um {ctx.document_type.label}",
            "Documento pode ter sido classificado com o tipo errado",
        )


def _check_dates(facts: _Facts, findings: _Findings, ctx: _Context) -> None:
    if facts.dh_emi is None:
        return
    emissao = parse_rfc3339(facts.dh_emi, to_utc=False)
    if emissao is None:
        findings.warning(
            "DATE_INVALID_FORMAT", "data_emissao",
            f"Data de emissão '{facts.dh_emi}' não está no formato RFC 3339",
            "Data não pôde ser conferida",
        )
        return

    if emissao > ctx.now + timedelta(minutes=ctx.settings.future_tolerance_minutes):
        findings.error(
            "DATE_FUTURE", "data_emissao",
            f"Data de emissão {facts.dh_emi} está no futuro",
            ErrorSeverity.HIGH,
        )
    elif emissao < ctx.now - timedelta(days=ctx.settings.retroactive_days):
        findings.warning(
            "DATE_RETROACTIVE", "data_emissao",
            f"Data de emissão está retroativa (mais de {ctx.settings.retroactive_days} dias)",
            "Pode indicar manipulação fiscal",
        )

    chave = findings.chave
    if chave and emissao.strftime("%y%m") != chave[2:6]:
        findings.warning(
            "KEY_DATE_MISMATCH", "chave_acesso",
            f"AAMM da chave ({chave[2:6]}) difere do mês de emissão ({emissao.strftime('%y%m')})",
            "Chave pode não corresponder ao documento",
        )


_NFE_CHECKS: Tuple[Check, ...] = (_check_cfop, _check_ncm, _check_icms)
_COMMON_CHECKS: Tuple[Check, ...] = (_check_access_key, _check_dates)


def validate(
    xml: str,
    document_type: DocumentType,
    *,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> ValidationResult:
    """Executa a bateria de regras e devolve o `ValidationResult`.

    Nunca levanta exceção por conteúdo do XML: problemas viram erros ou
    avisos no resultado. `now` sem fuso é interpretado como UTC.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    ctx = _Context(document_type=document_type, now=now, settings=settings or get_settings())
    findings = _Findings()
    facts = _extract_facts(xml, findings)

    checks = _COMMON_CHECKS
    if document_type is DocumentType.NOTA_FISCAL:
        checks = _NFE_CHECKS + _COMMON_CHECKS

    for check in checks:
        try:
            check(facts, findings, ctx)
        except Exception:
            logger.exception("Falha inesperada na regra %s; seguindo com as demais", check.__name__)

    result = ValidationResult(
        chave_acesso=findings.chave,
        document_type=document_type,
        errors=tuple(findings.errors),
        warnings=tuple(findings.warnings),
        suggestions=tuple(findings.suggestions),
        validated_at=now,
    )
    logger.info(
        "Validação %s | chave=%s valido=%s erros=%d avisos=%d",
        document_type.label,
        result.chave_acesso or "-",
        result.is_valid,
        len(result.errors),
        len(result.warnings),
    )
    return result

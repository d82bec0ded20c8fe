"""
Codec da chave de acesso
========================

A chave de acesso de NF-e/CT-e tem 44 dígitos:

    cUF(2) AAMM(4) CNPJ(14) mod(2) serie(3) nNF(9) tpEmis(1) cNF(8) cDV(1)

O último dígito é o DV módulo 11 calculado sobre os 43 anteriores, com pesos
2..9 aplicados da direita para a esquerda (reiniciando em 2 após o 9). Resto
0 ou 1 resulta em DV 0; caso contrário DV = 11 - resto.

A extração procura primeiro os marcadores usuais (`<chNFe>`, `<chCTe>`,
`Id="NFe`, `Id="CTe`) e, se nenhum contiver uma chave bem formada, a primeira
sequência isolada de exatamente 44 dígitos do documento.
"""
# fiscal_ingest/agents/access_key.py
from __future__ import annotations

import logging
import re
from typing import List, Optional

from fiscal_ingest.agents.acceleration import Accelerator, get_accelerator
from fiscal_ingest.domain.errors import InvalidAccessKey
from fiscal_ingest.domain.models import AccessKey

logger = logging.getLogger(__name__)

KEY_LENGTH = 44

# (marcador, caractere que encerra o valor)
_MARKERS = (
    ("<chNFe>", "<"),
    ("<chCTe>", "<"),
    ('Id="NFe', '"'),
    ('Id="CTe', '"'),
)
_BARE_KEY = re.compile(r"(?<!\d)\d{44}(?!\d)")


def is_well_formed(candidate: Optional[str]) -> bool:
    """Exatamente 44 caracteres, todos dígitos ASCII."""
    if candidate is None or len(candidate) != KEY_LENGTH:
        return False
    return all("0" <= c <= "9" for c in candidate)


def compute_check_digit(first43: str) -> int:
    """Calcula o DV módulo 11 sobre os 43 primeiros dígitos."""
    if len(first43) != KEY_LENGTH - 1 or not all("0" <= c <= "9" for c in first43):
        raise InvalidAccessKey(f"Base da chave deve ter 43 dígitos: {first43!r}")
    total = 0
    weight = 2
    for c in reversed(first43):
        total += int(c) * weight
        weight = 2 if weight == 9 else weight + 1
    remainder = total % 11
    return 0 if remainder < 2 else 11 - remainder


def check_digit_valid(candidate: Optional[str]) -> bool:
    if not is_well_formed(candidate):
        return False
    return compute_check_digit(candidate[:-1]) == int(candidate[-1])


def marker_candidates(xml: str) -> List[str]:
    """Textos encontrados logo após cada marcador de chave, na ordem dos marcadores.

    Os candidatos não são validados; servem para diagnosticar chaves com
    formato incorreto.
    """
    found: List[str] = []
    for marker, terminator in _MARKERS:
        start = xml.find(marker)
        if start < 0:
            continue
        start += len(marker)
        end = xml.find(terminator, start)
        if end < 0:
            end = len(xml)
        found.append(xml[start:end].strip())
    return found


def extract(xml: str) -> Optional[str]:
    """Retorna a primeira chave bem formada encontrada em `xml` (ou None)."""
    for candidate in marker_candidates(xml):
        if is_well_formed(candidate):
            return candidate
    match = _BARE_KEY.search(xml)
    if match:
        logger.debug("Chave de acesso localizada fora dos marcadores usuais")
        return match.group()
    return None


def validate(candidate: Optional[str], *, field: str = "chave_acesso") -> str:
    """Confere formato e DV; levanta `InvalidAccessKey` em qualquer falha."""
    if not candidate:
        raise InvalidAccessKey("Chave de acesso não encontrada", field=field)
    if not is_well_formed(candidate):
        raise InvalidAccessKey(
            f"Chave de acesso deve conter 44 dígitos: {candidate!r}", field=field
        )
    if not check_digit_valid(candidate):
        expected = compute_check_digit(candidate[:-1])
        raise InvalidAccessKey(
            f"Dígito verificador inválido na chave {candidate} (esperado {expected})",
            field=field,
        )
    return candidate


def parse(candidate: str, *, accelerator: Optional[Accelerator] = None) -> AccessKey:
    """Valida a chave e a decompõe em segmentos."""
    key = validate(candidate)
    acc = accelerator or get_accelerator()
    return AccessKey(
        chave=key,
        codigo_uf=acc.extract_number(key[0:2].encode("ascii")),
        ano_mes=key[2:6],
        cnpj_emitente=key[6:20],
        modelo=key[20:22],
        serie=key[22:25],
        numero=key[25:34],
        tipo_emissao=key[34],
        codigo_numerico=key[35:43],
        digito_verificador=acc.extract_number(key[43].encode("ascii")),
    )


def format_chave_acesso(chave: str) -> str:
    """Agrupa a chave em blocos de 4 dígitos; valores fora do padrão voltam inalterados."""
    if len(chave) != KEY_LENGTH:
        return chave
    return " ".join(chave[i:i + 4] for i in range(0, KEY_LENGTH, 4))

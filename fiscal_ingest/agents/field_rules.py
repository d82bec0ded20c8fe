"""
Tabela de regras de campo
=========================

Cada `FieldRule` diz: "o texto da folha `leaf`, quando estiver dentro de
todos os `ancestors`, vai para `section[key]` depois de passar por
`convert`". É assim que o mesmo nome de tag (`xNome`, `CNPJ`, `UF`, `vProd`...)
é atribuído ao participante ou bloco correto.

`GroupRule` delimita grupos repetidos (`det`, `infQ`, `infNF`...): quando o
elemento fecha, as seções indicadas são movidas para uma lista do rascunho.

Conversores:
- `to_text`: texto sem espaços nas bordas
- `to_float`: aceita vírgula ou ponto decimal; inválido vira 0.0 com aviso
- `to_datetime`: RFC 3339 com fuso; inválido vira o instante atual (UTC)
"""
# fiscal_ingest/agents/field_rules.py
from __future__ import annotations

import logging
import math
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from fiscal_ingest.agents.tag_path_walker import TagPath, path_has

logger = logging.getLogger(__name__)

Converter = Callable[[str], Any]


def to_text(value: str) -> str:
    return value.strip()


_PLAIN_NUMBER = re.compile(r"-?[0-9]+(?:\.[0-9]+)?")


def to_float(value: str) -> float:
    raw = value.strip()
    if "," in raw:
        # formato brasileiro: 1.234,56
        raw = raw.replace(".", "").replace(",", ".")
    # float() aceitaria "NaN", "inf" e "1_000"
    number = float(raw) if _PLAIN_NUMBER.fullmatch(raw) else math.nan
    if not math.isfinite(number):
        logger.warning("Valor numérico inválido %r; usando 0.0", value)
        return 0.0
    return number


def parse_rfc3339(value: str, *, to_utc: bool = True) -> Optional[datetime]:
    """Converte um timestamp RFC 3339; devolve None se inválido ou sem fuso.

    Com `to_utc=False` o fuso original é preservado (útil para comparar o
    mês de emissão com o AAMM da chave de acesso).
    """
    raw = value.strip()
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed.astimezone(timezone.utc) if to_utc else parsed


def to_datetime(value: str) -> datetime:
    parsed = parse_rfc3339(value)
    if parsed is None:
        logger.warning("Data/hora inválida %r; usando instante atual", value)
        return datetime.now(timezone.utc)
    return parsed


@dataclass(frozen=True)
class FieldRule:
    leaf: str
    section: str
    key: str
    ancestors: Tuple[str, ...] = ()
    convert: Converter = to_text

    def matches(self, path: TagPath) -> bool:
        if not path or path[-1] != self.leaf:
            return False
        parents = path[:-1]
        return all(path_has(parents, a) for a in self.ancestors)


@dataclass(frozen=True)
class GroupRule:
    element: str
    target: str
    sections: Tuple[str, ...]
    ancestors: Tuple[str, ...] = ()
    extra: Mapping[str, Any] = field(default_factory=dict)

    def matches(self, path: TagPath) -> bool:
        if not path or path[-1] != self.element:
            return False
        parents = path[:-1]
        return all(path_has(parents, a) for a in self.ancestors)


class RuleTable:
    """Índice de regras por nome de folha; vence a primeira regra que casar."""

    def __init__(self, rules: Iterable[FieldRule]):
        self._by_leaf: Dict[str, List[FieldRule]] = defaultdict(list)
        for rule in rules:
            self._by_leaf[rule.leaf].append(rule)

    def match(self, path: TagPath) -> Optional[FieldRule]:
        if not path:
            return None
        for rule in self._by_leaf.get(path[-1], ()):
            if rule.matches(path):
                return rule
        return None

    def __len__(self) -> int:
        return sum(len(rules) for rules in self._by_leaf.values())


class DraftRecord:
    """Rascunho acumulado durante a caminhada pelo XML.

    O primeiro valor gravado para uma chave prevalece dentro de cada seção.
    """

    def __init__(self) -> None:
        self.sections: Dict[str, Dict[str, Any]] = defaultdict(dict)
        self.groups: Dict[str, List[Dict[str, Any]]] = defaultdict(list)

    def set(self, section: str, key: str, value: Any) -> None:
        self.sections[section].setdefault(key, value)

    def section(self, name: str) -> Dict[str, Any]:
        return self.sections.get(name, {})

    def close_group(self, rule: GroupRule) -> None:
        entry: Dict[str, Any] = dict(rule.extra)
        for name in rule.sections:
            entry[name] = self.sections.pop(name, {})
        self.groups[rule.target].append(entry)

    def group(self, target: str) -> List[Dict[str, Any]]:
        return self.groups.get(target, [])

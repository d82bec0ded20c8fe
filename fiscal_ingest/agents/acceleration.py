"""
Primitivas aceleradas de bytes
==============================

Três primitivas usadas na detecção do tipo de documento e na decomposição da
chave de acesso:

- `validate_bytes(data)`: todos os bytes são TAB, LF, CR ou ASCII imprimível
- `find_tag(data, tag)`: posição da primeira ocorrência de `<tag`
- `extract_number(data)`: inteiro formado pelos dígitos ASCII iniciais

Existem duas implementações com a mesma semântica: `PortableAccelerator`
(laços byte a byte) e `NativeAccelerator` (delegando a `bytes.translate`,
`bytes.find` e `re`, implementados em C). A escolha vem de
`FISCAL_ACCELERATION` e nenhum chamador depende de qual está ativa.
"""
# fiscal_ingest/agents/acceleration.py
from __future__ import annotations

import logging
import re
from typing import Optional, Protocol

from fiscal_ingest.config import get_settings

logger = logging.getLogger(__name__)

_U64_MAX = 2**64 - 1
_ALLOWED = bytes([0x09, 0x0A, 0x0D]) + bytes(range(0x20, 0x7F))
_LEADING_DIGITS = re.compile(rb"[0-9]+")


class Accelerator(Protocol):
    name: str

    def validate_bytes(self, data: bytes) -> bool: ...

    def find_tag(self, data: bytes, tag: str) -> Optional[int]: ...

    def extract_number(self, data: bytes) -> Optional[int]: ...


class PortableAccelerator:
    name = "portable"

    def validate_bytes(self, data: bytes) -> bool:
        for b in data:
            if b in (0x09, 0x0A, 0x0D) or 0x20 <= b <= 0x7E:
                continue
            return False
        return True

    def find_tag(self, data: bytes, tag: str) -> Optional[int]:
        if not tag:
            return None
        needle = b"<" + tag.encode("utf-8")
        size = len(needle)
        for pos in range(len(data) - size + 1):
            if data[pos:pos + size] == needle:
                return pos
        return None

    def extract_number(self, data: bytes) -> Optional[int]:
        if not data or not 0x30 <= data[0] <= 0x39:
            return None
        value = 0
        for b in data:
            if not 0x30 <= b <= 0x39:
                break
            value = value * 10 + (b - 0x30)
            if value > _U64_MAX:
                return None
        return value


class NativeAccelerator:
    name = "native"

    def validate_bytes(self, data: bytes) -> bool:
        # remove os bytes permitidos; sobrando algo, o buffer é inválido
        return not data.translate(None, _ALLOWED)

    def find_tag(self, data: bytes, tag: str) -> Optional[int]:
        if not tag:
            return None
        pos = data.find(b"<" + tag.encode("utf-8"))
        return pos if pos >= 0 else None

    def extract_number(self, data: bytes) -> Optional[int]:
        match = _LEADING_DIGITS.match(data)
        if match is None:
            return None
        value = int(match.group())
        return value if value <= _U64_MAX else None


_ACCELERATORS = {
    PortableAccelerator.name: PortableAccelerator,
    NativeAccelerator.name: NativeAccelerator,
}


def get_accelerator(name: Optional[str] = None) -> Accelerator:
    """Devolve a implementação pedida (ou a configurada em `Settings`).

    Nomes desconhecidos caem na implementação portátil com um aviso.
    """
    chosen = (name or get_settings().acceleration).strip().lower()
    factory = _ACCELERATORS.get(chosen)
    if factory is None:
        logger.warning("Aceleração desconhecida '%s'; usando implementação portátil", chosen)
        factory = PortableAccelerator
    return factory()

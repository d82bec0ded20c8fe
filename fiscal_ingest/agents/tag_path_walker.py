"""
TagPathWalker
=============

Percorre um XML fiscal em modo streaming e entrega cada texto não vazio junto
com o caminho de elementos abertos até ele.

O parsing é feito pelo handler SAX do `xmltodict` (expat). O `postprocessor`
recebe cada elemento no momento em que ele fecha e sempre devolve `None`, de
modo que nenhuma árvore é montada em memória: o caminho é repassado aos
callbacks e descartado em seguida.

- Os nomes do caminho são locais (prefixo de namespace removido).
- Atributos não são expostos.
- Expansão de entidades permanece desabilitada; payloads hostis viram
  `XmlParseError`.
"""
# fiscal_ingest/agents/tag_path_walker.py
from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Sequence, Tuple
from xml.parsers.expat import ExpatError

import xmltodict

from fiscal_ingest.domain.errors import FiscalDocumentError, XmlParseError

logger = logging.getLogger(__name__)

TagPath = Tuple[str, ...]
TextCallback = Callable[[TagPath, str], None]
EndCallback = Callable[[TagPath], None]

_TEXT_KEY = "#text"


def local_name(name: str) -> str:
    """Remove o prefixo de namespace (`nfe:infNFe` -> `infNFe`)."""
    return name.rsplit(":", 1)[-1]


def _tag_path(path: Sequence[Tuple[str, Any]], key: str) -> TagPath:
    names = tuple(local_name(name) for name, _attrs in path)
    if key == _TEXT_KEY:
        return names
    key = local_name(key)
    if not names or names[-1] != key:
        names = names + (key,)
    return names


def path_has(path: TagPath, ancestor: str) -> bool:
    """Indica se `ancestor` aparece entre os elementos abertos de `path`."""
    return ancestor in path


def walk(
    xml: str | bytes,
    on_text: TextCallback,
    on_end: Optional[EndCallback] = None,
) -> None:
    """Percorre `xml` chamando `on_text(path, texto)` para cada texto não vazio.

    `on_end(path)` (opcional) é chamado sempre que um elemento fecha, inclusive
    os que não possuem texto, permitindo delimitar grupos repetidos (`det`,
    `infQ`...).
    """

    def _post(path, key, value):
        tag_path = _tag_path(path, key)
        if isinstance(value, str) and value:
            on_text(tag_path, value)
        if on_end is not None and key != _TEXT_KEY:
            on_end(tag_path)
        return None

    try:
        xmltodict.parse(xml, postprocessor=_post, xml_attribs=False)
    except FiscalDocumentError:
        raise
    except ExpatError as exc:
        logger.warning("XML mal formado: %s", exc)
        raise XmlParseError(f"XML mal formado: {exc}") from exc
    except ValueError as exc:
        # disparado pelo xmltodict ao encontrar declarações de entidade
        logger.warning("XML rejeitado: %s", exc)
        raise XmlParseError(f"XML rejeitado: {exc}") from exc

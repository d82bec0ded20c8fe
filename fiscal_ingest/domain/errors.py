"""
Erros do motor de ingestão
==========================

Taxonomia de falhas tipadas do motor. Todas derivam de `FiscalDocumentError`
e carregam uma mensagem legível e um `code` opcional para categorização
programática.

- Falhas estruturais (leitura, parsing, encoding, chave de acesso) abortam o
  pipeline imediatamente.
- `DuplicateDocument` é recuperado localmente pelo orquestrador e vira a flag
  `duplicate` do resultado.
- `DatabaseError` encapsula qualquer outra falha do repositório.
"""
# fiscal_ingest/domain/errors.py
from __future__ import annotations


class FiscalDocumentError(Exception):
    """Erro base do motor com campo opcional de código."""

    default_code: str = "ERR_FISCAL"

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.code = code or self.default_code


class XmlReadError(FiscalDocumentError):
    """Falha de I/O ao ler o arquivo XML de origem."""

    default_code = "ERR_XML_READ"


class XmlParseError(FiscalDocumentError, ValueError):
    """XML mal formado; a mensagem carrega o diagnóstico do decodificador."""

    default_code = "ERR_XML_PARSE"


class EncodingError(FiscalDocumentError, ValueError):
    """Payload que não pode ser convertido para UTF-8."""

    default_code = "ERR_ENCODING"


class InvalidAccessKey(FiscalDocumentError, ValueError):
    """Chave de acesso ausente ou inválida (formato ou dígito verificador)."""

    default_code = "ERR_ACCESS_KEY"

    def __init__(self, message: str, *, field: str = "chave_acesso", code: str | None = None):
        super().__init__(message, code=code)
        self.field = field


class MissingRequiredField(FiscalDocumentError, ValueError):
    default_code = "ERR_MISSING_FIELD"

    def __init__(self, message: str, *, field: str, code: str | None = None):
        super().__init__(message, code=code)
        self.field = field


class UnsupportedDocumentType(FiscalDocumentError):
    """Nenhum marcador de elemento raiz conhecido foi encontrado."""

    default_code = "ERR_UNSUPPORTED_TYPE"


class DuplicateDocument(FiscalDocumentError):
    """Violação de unicidade da chave de acesso reportada pelo repositório."""

    default_code = "ERR_DUPLICATE"

    def __init__(self, access_key: str, *, code: str | None = None):
        super().__init__(f"Documento já existente (chave duplicada): {access_key}", code=code)
        self.access_key = access_key


class DatabaseError(FiscalDocumentError):
    default_code = "ERR_DATABASE"

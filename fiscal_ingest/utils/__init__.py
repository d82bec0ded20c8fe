"""
Utilitários de formatação e validação de documentos brasileiros.
"""
from fiscal_ingest.utils.formatters import (
    format_cep,
    format_cnpj,
    format_cpf,
    format_documento,
    format_endereco_completo,
    format_telefone,
    format_valor_monetario,
)
from fiscal_ingest.utils.identity import only_digits, validate_cnpj, validate_cpf

__all__ = [
    "format_cep",
    "format_cnpj",
    "format_cpf",
    "format_documento",
    "format_endereco_completo",
    "format_telefone",
    "format_valor_monetario",
    "only_digits",
    "validate_cnpj",
    "validate_cpf",
]

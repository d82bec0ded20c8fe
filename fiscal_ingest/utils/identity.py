"""
Validação de CNPJ e CPF
=======================

Algoritmos oficiais de dígitos verificadores (duas passadas ponderadas).
Entradas formatadas são aceitas: tudo que não for dígito é descartado antes
da conferência.
"""
# fiscal_ingest/utils/identity.py
from __future__ import annotations

from typing import Optional

_CNPJ_WEIGHTS_1 = (5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)
_CNPJ_WEIGHTS_2 = (6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)


def only_digits(value: Optional[str]) -> str:
    """Mantém somente os dígitos ASCII de `value`."""
    if not value:
        return ""
    return "".join(c for c in str(value) if "0" <= c <= "9")


def _cnpj_digit(digits: str, weights: tuple) -> int:
    remainder = sum(int(d) * w for d, w in zip(digits, weights)) % 11
    return 0 if remainder < 2 else 11 - remainder


def validate_cnpj(cnpj: Optional[str]) -> bool:
    digits = only_digits(cnpj)
    if len(digits) != 14 or len(set(digits)) == 1:
        return False
    first = _cnpj_digit(digits[:12], _CNPJ_WEIGHTS_1)
    if first != int(digits[12]):
        return False
    second = _cnpj_digit(digits[:13], _CNPJ_WEIGHTS_2)
    return second == int(digits[13])


def _cpf_digit(digits: str) -> int:
    start = len(digits) + 1
    total = sum(int(d) * w for d, w in zip(digits, range(start, 1, -1)))
    digit = (total * 10) % 11
    return 0 if digit == 10 else digit


def validate_cpf(cpf: Optional[str]) -> bool:
    digits = only_digits(cpf)
    if len(digits) != 11 or len(set(digits)) == 1:
        return False
    if _cpf_digit(digits[:9]) != int(digits[9]):
        return False
    return _cpf_digit(digits[:10]) == int(digits[10])

"""
Formatadores de Dados
=====================

Funções auxiliares para apresentação de dados fiscais brasileiros (CLI e
logs). Entradas fora do padrão esperado voltam inalteradas.
"""
# fiscal_ingest/utils/formatters.py
from typing import Optional

from fiscal_ingest.domain.models import Endereco, Participante
from fiscal_ingest.utils.identity import only_digits


def format_cnpj(cnpj: str) -> str:
    """Formata CNPJ para o padrão XX.XXX.XXX/XXXX-XX.

    Só formata entradas compostas apenas por 14 dígitos; qualquer outra
    entrada (inclusive já formatada) é devolvida como veio.

    Examples:
        >>> format_cnpj("11222333000181")
        "11.222.333/0001-81"
    """
    if not cnpj or not isinstance(cnpj, str):
        return cnpj or ""
    if len(cnpj) != 14 or not cnpj.isdigit():
        return cnpj
    return f"{cnpj[:2]}.{cnpj[2:5]}.{cnpj[5:8]}/{cnpj[8:12]}-{cnpj[12:]}"


def format_cpf(cpf: str) -> str:
    """Formata CPF para o padrão XXX.XXX.XXX-XX.

    Examples:
        >>> format_cpf("11144477735")
        "111.444.777-35"
    """
    if not cpf or not isinstance(cpf, str):
        return cpf or ""
    if len(cpf) != 11 or not cpf.isdigit():
        return cpf
    return f"{cpf[:3]}.{cpf[3:6]}.{cpf[6:9]}-{cpf[9:]}"


def format_documento(participante: Participante) -> str:
    """Formata o CNPJ ou CPF do participante conforme o tamanho do documento.

    Returns:
        Documento formatado ou "-" se o participante não tiver documento
    """
    if participante.tipo_documento == "CNPJ":
        return format_cnpj(participante.cnpj_cpf)
    if participante.tipo_documento == "CPF":
        return format_cpf(participante.cnpj_cpf)
    return participante.cnpj_cpf or "-"


def format_cep(cep: Optional[str]) -> str:
    """Formata CEP para o padrão XXXXX-XXX ("-" quando ausente)."""
    if not cep or not isinstance(cep, str):
        return "-"
    digits = only_digits(cep)
    if len(digits) != 8:
        return cep
    return f"{digits[:5]}-{digits[5:]}"


def format_telefone(telefone: Optional[str]) -> str:
    """Formata telefone brasileiro.

    - 10 dígitos: (XX) XXXX-XXXX
    - 11 dígitos: (XX) XXXXX-XXXX
    - Outros: retorna como está
    """
    if not telefone or not isinstance(telefone, str):
        return "-"
    digits = only_digits(telefone)
    if len(digits) == 10:
        return f"({digits[:2]}) {digits[2:6]}-{digits[6:]}"
    if len(digits) == 11:
        return f"({digits[:2]}) {digits[2:7]}-{digits[7:]}"
    return telefone


def format_endereco_completo(endereco: Endereco) -> str:
    """Monta uma linha legível com o endereço.

    Examples:
        >>> format_endereco_completo(Endereco(logradouro="Rua A", numero="10", municipio="Sao Paulo", uf="SP"))
        "Rua A, 10 - Sao Paulo/SP"
    """
    partes = []
    if endereco.logradouro:
        if endereco.numero:
            partes.append(f"{endereco.logradouro}, {endereco.numero}")
        else:
            partes.append(endereco.logradouro)
    if endereco.bairro:
        partes.append(endereco.bairro)
    if endereco.municipio:
        partes.append(f"{endereco.municipio}/{endereco.uf}" if endereco.uf else endereco.municipio)
    elif endereco.uf:
        partes.append(endereco.uf)
    if endereco.cep:
        partes.append(f"CEP: {format_cep(endereco.cep)}")
    return " - ".join(partes) if partes else "Endereço não informado"


def format_valor_monetario(valor: float) -> str:
    """Formata valor monetário no padrão brasileiro: "R$ 1.234,56"."""
    valor_formatado = f"{valor:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return f"R$ {valor_formatado}"

import pytest

from fiscal_ingest.utils.identity import only_digits, validate_cnpj, validate_cpf


@pytest.mark.parametrize("cnpj", ["11222333000181", "11.222.333/0001-81", "11444777000161"])
def test_cnpj_valido(cnpj):
    assert validate_cnpj(cnpj)


@pytest.mark.parametrize(
    "cnpj",
    [
        "11222333000180",   # segundo DV errado
        "11222333000191",   # primeiro DV errado
        "11111111111111",   # dígitos repetidos
        "1122233300018",    # 13 dígitos
        "",
        None,
    ],
)
def test_cnpj_invalido(cnpj):
    assert not validate_cnpj(cnpj)


@pytest.mark.parametrize("cpf", ["11144477735", "111.444.777-35"])
def test_cpf_valido(cpf):
    assert validate_cpf(cpf)


@pytest.mark.parametrize("cpf", ["11144477736", "11144477725", "00000000000", "1114447773", None])
def test_cpf_invalido(cpf):
    assert not validate_cpf(cpf)


def test_only_digits():
    assert only_digits("11.222.333/0001-81") == "11222333000181"
    assert only_digits("") == ""
    assert only_digits(None) == ""

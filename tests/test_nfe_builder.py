from datetime import datetime, timezone
from pathlib import Path

import pytest

from fiscal_ingest.agents.document_builder import DocumentBuilder
from fiscal_ingest.agents.nfe_builder import NfeBuilder, parse_nfe
from fiscal_ingest.domain.errors import (
    EncodingError,
    InvalidAccessKey,
    XmlParseError,
    XmlReadError,
)
from fiscal_ingest.domain.models import DocumentType, TipoNota

CHAVE = "35240111222333000181550010000123451123456781"


def test_parse_exemplo_completo(nfe_path: Path):
    nota = parse_nfe(nfe_path)

    assert nota.document_type is DocumentType.NOTA_FISCAL
    assert nota.chave_acesso == CHAVE
    assert nota.numero == "12345"
    assert nota.serie == "1"
    assert nota.data_emissao == datetime(2024, 1, 15, 13, 30, tzinfo=timezone.utc)
    assert nota.tipo_nota is TipoNota.SAIDA
    assert nota.protocolo_autorizacao == "135240000123456"
    assert nota.informacoes_adicionais.startswith("Pedido 4589")


def test_parse_participantes(nfe_path: Path):
    nota = parse_nfe(nfe_path)

    emit = nota.emitente
    assert emit.cnpj_cpf == "11222333000181"
    assert emit.tipo_documento == "CNPJ"
    assert emit.razao_social == "Comercial Paulista de Roupas Ltda"
    assert emit.nome_fantasia == "Paulista Roupas"
    assert emit.inscricao_estadual == "123456789110"
    assert emit.telefone == "1155551234"
    assert emit.endereco.logradouro == "Rua das Flores"
    assert emit.endereco.municipio == "Sao Paulo"
    assert emit.endereco.codigo_municipio == "3550308"
    assert emit.endereco.uf == "SP"
    assert emit.endereco.cep == "01310100"

    dest = nota.destinatario
    assert dest.cnpj_cpf == "11444777000161"
    assert dest.razao_social == "Loja Campinas Varejo S.A."
    assert dest.email == "compras@lojacampinas.com.br"
    assert dest.endereco.complemento == "Sala 2"
    # CEP com hífen é normalizado
    assert dest.endereco.cep == "13070000"


def test_parse_itens_e_impostos(nfe_path: Path):
    nota = parse_nfe(nfe_path)

    assert [item.numero_item for item in nota.itens] == [1, 2]
    item1, item2 = nota.itens

    assert item1.codigo_produto == "CAM-001"
    assert item1.descricao == "Camiseta algodao"
    assert item1.ean is None
    assert item1.ncm == "61091000"
    assert item1.cfop == "5102"
    assert item1.unidade_comercial == "UN"
    assert item1.quantidade_comercial == 2.0
    assert item1.valor_unitario == 300.0
    assert item1.valor_total == 600.0
    assert item1.impostos.cst == "00"
    assert item1.impostos.csosn is None
    assert item1.impostos.origem == "0"
    assert item1.impostos.base_calculo_icms == 600.0
    assert item1.impostos.aliquota_icms == 18.0
    assert item1.impostos.valor_icms == 108.0
    assert item1.impostos.valor_pis == pytest.approx(9.90)
    assert item1.impostos.valor_cofins == pytest.approx(45.60)
    assert item1.impostos.valor_ipi == 0.0

    assert item2.ean == "7891234567895"
    assert item2.valor_total == 400.0
    assert item2.impostos.valor_icms == 72.0
    assert item2.informacoes_adicionais == "Lote 2024-01"
    assert item1.informacoes_adicionais is None


def test_parse_totais(nfe_path: Path):
    totais = parse_nfe(nfe_path).totais
    assert totais.base_calculo_icms == 1000.0
    assert totais.valor_icms == 180.0
    assert totais.valor_produtos == 1000.0
    assert totais.valor_pis == pytest.approx(16.50)
    assert totais.valor_cofins == pytest.approx(76.00)
    assert totais.valor_total == 1000.0


def test_parse_sem_nfeProc_simples_nacional():
    """Garante que o builder funciona sem o nó raiz nfeProc e com CSOSN."""
    xml = f"""<?xml version="1.0" encoding="UTF-8"?>
    <NFe><infNFe Id="NFe{CHAVE}">
      <ide><nNF>7</nNF><serie>2</serie><dhEmi>2024-01-15T10:30:00Z</dhEmi><tpNF>0</tpNF></ide>
      <emit><CNPJ>11.222.333/0001-81</CNPJ><xNome>EMPRESA</xNome><enderEmit><UF>sp</UF></enderEmit><IE>isento</IE></emit>
      <dest><CPF>111.444.777-35</CPF><xNome>CONSUMIDOR</xNome><enderDest><UF>RJ</UF></enderDest></dest>
      <det nItem="1">
        <prod><cProd>A</cProd><xProd>Produto A</xProd><NCM>61091000</NCM><CFOP>6102</CFOP>
          <qCom>1,5</qCom><vUnCom>1.000,00</vUnCom><vProd>1.500,00</vProd></prod>
        <imposto><ICMS><ICMSSN102><orig>0</orig><CSOSN>102</CSOSN></ICMSSN102></ICMS></imposto>
      </det>
      <total><ICMSTot><vNF>1.500,00</vNF></ICMSTot></total>
    </infNFe></NFe>"""
    nota = NfeBuilder().parse_string(xml)

    assert nota.chave_acesso == CHAVE
    assert nota.numero == "7"
    assert nota.tipo_nota is TipoNota.ENTRADA
    assert nota.emitente.cnpj_cpf == "11222333000181"
    assert nota.emitente.inscricao_estadual == "ISENTO"
    assert nota.emitente.endereco.uf == "SP"
    assert nota.destinatario.cnpj_cpf == "11144477735"
    assert nota.destinatario.tipo_documento == "CPF"
    assert nota.destinatario.endereco.uf == "RJ"
    assert nota.protocolo_autorizacao is None

    item = nota.itens[0]
    assert item.quantidade_comercial == 1.5
    assert item.valor_unitario == 1000.0
    assert item.valor_total == 1500.0
    assert item.impostos.csosn == "102"
    assert item.impostos.cst is None
    assert item.impostos.valor_icms == 0.0
    assert nota.totais.valor_total == 1500.0


def test_parse_sem_itens_e_sem_data():
    xml = f"<NFe><infNFe Id=\"NFe{CHAVE}\"><emit><xNome>E</xNome></emit></infNFe></NFe>"
    nota = NfeBuilder().parse_string(xml)
    assert nota.itens == []
    assert nota.data_emissao.tzinfo is not None
    assert nota.destinatario.cnpj_cpf == ""


def test_parse_sem_chave():
    xml = "<nfeProc><NFe><infNFe><ide><nNF>1</nNF></ide></infNFe></NFe></nfeProc>"
    with pytest.raises(InvalidAccessKey) as exc_info:
        NfeBuilder().parse_string(xml)
    assert "não encontrada" in str(exc_info.value)


def test_parse_chave_com_dv_errado():
    chave = CHAVE[:-1] + "2"
    xml = f"<nfeProc><NFe><infNFe Id=\"NFe{chave}\"></infNFe></NFe></nfeProc>"
    with pytest.raises(InvalidAccessKey):
        NfeBuilder().parse_string(xml)


def test_parse_xml_mal_formado():
    with pytest.raises(XmlParseError):
        NfeBuilder().parse_string(f"<nfeProc><NFe><chNFe>{CHAVE}</chNFe></nfeProc>")


def test_parse_bytes_com_bom(nfe_path: Path):
    data = b"\xef\xbb\xbf" + nfe_path.read_bytes()
    assert NfeBuilder().parse_bytes(data).chave_acesso == CHAVE


def test_parse_bytes_fora_de_utf8():
    with pytest.raises(EncodingError):
        NfeBuilder().parse_bytes(b"<nfeProc>\xff\xfe</nfeProc>")


def test_parse_arquivo_inexistente(tmp_path: Path):
    with pytest.raises(XmlReadError):
        parse_nfe(tmp_path / "nao_existe.xml")


def test_document_builder_exige_build_na_subclasse():
    with pytest.raises(TypeError):
        DocumentBuilder()

    class SemBuild(DocumentBuilder):
        document_type = DocumentType.NOTA_FISCAL

    with pytest.raises(TypeError):
        SemBuild()
    assert isinstance(NfeBuilder(), DocumentBuilder)

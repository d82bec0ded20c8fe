import pytest

from fiscal_ingest.agents.tag_path_walker import local_name, path_has, walk
from fiscal_ingest.domain.errors import FiscalDocumentError, XmlParseError


def _collect(xml):
    texts, ends = [], []
    walk(xml, lambda path, text: texts.append((path, text)), ends.append)
    return texts, ends


def test_walk_entrega_caminho_completo():
    texts, _ = _collect("<a><b>x</b><c><d> y </d></c></a>")
    assert texts == [(("a", "b"), "x"), (("a", "c", "d"), "y")]


def test_walk_fecha_elementos_de_dentro_para_fora():
    _, ends = _collect("<a><b>x</b><c><d>y</d></c></a>")
    assert ends == [("a", "b"), ("a", "c", "d"), ("a", "c"), ("a",)]


def test_walk_texto_direto_na_raiz():
    texts, ends = _collect("<NFe>123</NFe>")
    assert texts == [(("NFe",), "123")]
    assert ends == [("NFe",)]


def test_walk_ignora_textos_vazios_e_elementos_sem_texto():
    texts, ends = _collect("<a><b/><c>   </c><d>1</d></a>")
    assert texts == [(("a", "d"), "1")]
    assert ("a", "b") in ends
    assert ("a", "c") in ends


def test_walk_remove_prefixo_de_namespace():
    xml = '<nfe:NFe xmlns:nfe="http://www.portalfiscal.inf.br/nfe"><nfe:ide><nfe:nNF>42</nfe:nNF></nfe:ide></nfe:NFe>'
    texts, _ = _collect(xml)
    assert texts == [(("NFe", "ide", "nNF"), "42")]


def test_walk_nao_expoe_atributos():
    texts, _ = _collect('<det nItem="1"><vProd>10.00</vProd></det>')
    assert texts == [(("det", "vProd"), "10.00")]


def test_walk_aceita_bytes():
    texts, _ = _collect("<a><b>ação</b></a>".encode("utf-8"))
    assert texts == [(("a", "b"), "ação")]


def test_walk_sem_on_end():
    seen = []
    walk("<a><b>1</b></a>", lambda path, text: seen.append(text))
    assert seen == ["1"]


@pytest.mark.parametrize("xml", ["<a><b></a>", "<a>", "texto solto", "<a></a><b></b>"])
def test_walk_xml_mal_formado(xml):
    with pytest.raises(XmlParseError) as exc_info:
        walk(xml, lambda path, text: None)
    assert exc_info.value.code == "ERR_XML_PARSE"


def test_walk_propaga_erro_tipado_do_callback():
    def on_text(path, text):
        raise FiscalDocumentError("interrompido", code="STOP")

    with pytest.raises(FiscalDocumentError) as exc_info:
        walk("<a><b>1</b></a>", on_text)
    assert exc_info.value.code == "STOP"


def test_local_name_e_path_has():
    assert local_name("nfe:infNFe") == "infNFe"
    assert local_name("infNFe") == "infNFe"
    assert path_has(("nfeProc", "NFe", "infNFe", "emit"), "emit")
    assert not path_has(("nfeProc", "NFe", "infNFe", "dest"), "emit")

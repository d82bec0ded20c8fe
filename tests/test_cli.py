import json
import logging
from pathlib import Path

from typer.testing import CliRunner

from fiscal_ingest.app.ingest_cli import app

runner = CliRunner()

CHAVE_NFE = "35240111222333000181550010000123451123456781"


def test_parse_imprime_json(nfe_path: Path):
    result = runner.invoke(app, ["parse", "--xml", str(nfe_path)])
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["chave_acesso"] == CHAVE_NFE
    assert data["document_type"] == "NFe"
    assert len(data["itens"]) == 2


def test_parse_registra_resumo_do_emitente(nfe_path: Path, caplog):
    with caplog.at_level(logging.INFO, logger="cli"):
        result = runner.invoke(app, ["parse", "--xml", str(nfe_path)])
    assert result.exit_code == 0, result.output
    assert "Rua das Flores, 123 - Centro - Sao Paulo/SP - CEP: 01310-100" in caplog.text
    assert "fone (11) 5555-1234" in caplog.text
    assert "11.222.333/0001-81" in caplog.text


def test_parse_cte(cte_path: Path):
    result = runner.invoke(app, ["parse", "--xml", str(cte_path)])
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["document_type"] == "CTe"
    assert data["informacoes_carga"]["peso_bruto"] == 150.0


def test_parse_arquivo_inexistente(tmp_path: Path):
    result = runner.invoke(app, ["parse", "--xml", str(tmp_path / "nao_existe.xml")])
    assert result.exit_code == 1


def test_parse_tipo_desconhecido(tmp_path: Path):
    xml = tmp_path / "mdfe.xml"
    xml.write_text("<mdfeProc><MDFe/></mdfeProc>", encoding="utf-8")
    result = runner.invoke(app, ["parse", "--xml", str(xml)])
    assert result.exit_code == 1


def test_validate_imprime_resultado(nfe_path: Path):
    result = runner.invoke(app, ["validate", "--xml", str(nfe_path), "--log-level", "ERROR"])
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["is_valid"] is True
    assert data["errors"] == []
    assert data["chave_acesso"] == CHAVE_NFE


def test_ingest_deduplica(nfe_path: Path, cte_path: Path):
    result = runner.invoke(
        app, ["ingest", "--xml", str(nfe_path), "--xml", str(cte_path), "--xml", str(nfe_path)]
    )
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert [r["duplicate"] for r in data["resultados"]] == [False, False, True]
    assert data["metricas"]["documents_processed_total"] == 2
    assert data["metricas"]["documents_duplicate_total"] == 1
    assert data["metricas"]["validations_saved_total"] == 3


def test_ingest_com_falha(nfe_path: Path, tmp_path: Path):
    result = runner.invoke(app, ["ingest", "--xml", str(nfe_path), "--xml", str(tmp_path / "x.xml")])
    assert result.exit_code == 1
    data = json.loads(result.stdout)
    assert data["resultados"][0]["success"] is True
    assert data["resultados"][1]["success"] is False
    assert data["resultados"][1]["code"] == "ERR_XML_READ"

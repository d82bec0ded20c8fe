import os
import sys
from pathlib import Path

import pytest

# Garante que a raiz do projeto (onde está a pasta fiscal_ingest/) esteja no PYTHONPATH
PROJECT_ROOT = Path(__file__).resolve().parents[1]

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Evita que variáveis de ambiente sensíveis quebrem os testes
os.environ.setdefault("PYTHONWARNINGS", "ignore")

XML_DIR = PROJECT_ROOT / "data" / "exemplos" / "xml"


@pytest.fixture
def nfe_path() -> Path:
    return XML_DIR / "nfe_exemplo.xml"


@pytest.fixture
def cte_path() -> Path:
    return XML_DIR / "cte_exemplo.xml"


@pytest.fixture
def nfe_xml(nfe_path: Path) -> str:
    return nfe_path.read_text(encoding="utf-8")


@pytest.fixture
def cte_xml(cte_path: Path) -> str:
    return cte_path.read_text(encoding="utf-8")

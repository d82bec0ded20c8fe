"""
Configuração
============

Lê variáveis de ambiente (com suporte a `.env` via python-dotenv) e expõe um
`Settings` imutável, cacheado em memória.

Variáveis suportadas:
- FISCAL_ACCELERATION: "portable" (padrão) ou "native"
- FISCAL_ICMS_TOLERANCE: tolerância em reais para a conferência de ICMS
- FISCAL_RETROACTIVE_DAYS: dias após os quais a emissão é considerada retroativa
- FISCAL_FUTURE_TOLERANCE_MINUTES: folga aceita para datas de emissão no futuro
- FISCAL_LOG_LEVEL: nível de log padrão da CLI
"""
# fiscal_ingest/config.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()  # carrega variáveis do arquivo .env se existir


@dataclass(frozen=True)
class Settings:
    acceleration: str = "portable"
    icms_tolerance: float = 0.01
    retroactive_days: int = 5
    future_tolerance_minutes: int = 5
    log_level: str = "INFO"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw.replace(",", "."))
    except ValueError:
        logger.warning("Valor inválido para %s=%r; usando padrão %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Valor inválido para %s=%r; usando padrão %s", name, raw, default)
        return default


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Monta o `Settings` a partir do ambiente (uma única vez por processo)."""
    settings = Settings(
        acceleration=os.getenv("FISCAL_ACCELERATION", "portable").strip().lower() or "portable",
        icms_tolerance=_env_float("FISCAL_ICMS_TOLERANCE", 0.01),
        retroactive_days=_env_int("FISCAL_RETROACTIVE_DAYS", 5),
        future_tolerance_minutes=_env_int("FISCAL_FUTURE_TOLERANCE_MINUTES", 5),
        log_level=os.getenv("FISCAL_LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
    logger.debug("Settings carregados: %s", settings)
    return settings

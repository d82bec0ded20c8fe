"""
Métricas do pipeline de ingestão
================================

O orquestrador recebe um `MetricsSink` por injeção; não há contadores globais.
O backend de emissão (Prometheus, StatsD...) fica a cargo de quem integra o
motor; aqui existem apenas um sink nulo e um sink em memória.
"""
# fiscal_ingest/utils/metrics.py
from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, Protocol

logger = logging.getLogger(__name__)

DOCUMENTS_PROCESSED = "documents_processed_total"
DOCUMENTS_DUPLICATE = "documents_duplicate_total"
VALIDATIONS_SAVED = "validations_saved_total"
VALIDATIONS_FAILED = "validations_failed_total"


class MetricsSink(Protocol):
    def increment(self, name: str, value: int = 1) -> None: ...


class NullMetricsSink:
    """Descarta todas as métricas."""

    def increment(self, name: str, value: int = 1) -> None:
        return None


class InMemoryMetricsSink:
    """Acumula contadores em memória (CLI e testes)."""

    def __init__(self) -> None:
        self._counters: Counter = Counter()

    def increment(self, name: str, value: int = 1) -> None:
        self._counters[name] += value
        logger.debug("Métrica %s += %d", name, value)

    def snapshot(self) -> Dict[str, int]:
        return dict(self._counters)

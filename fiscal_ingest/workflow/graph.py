"""
Definição do grafo de ingestão
==============================

Fluxo:
- detect → parse → validate → dedup_check → (insert | skip_duplicate)
  → record_validation → END
- Qualquer `error` no estado encerra o fluxo (END) antes da gravação.
"""
from __future__ import annotations
import logging
from langgraph.graph import StateGraph, END

from fiscal_ingest.workflow.nodes import IngestionNodes
from fiscal_ingest.workflow.state import IngestionState

logger = logging.getLogger(__name__)


def _route_on_error(state: IngestionState) -> str:
    """Retorna 'error' se algum nó registrou falha, senão 'next'."""
    return "error" if state.get("error") is not None else "next"


def _route_after_dedup(state: IngestionState) -> str:
    """Retorna uma das chaves do mapping: 'error' | 'duplicate' | 'new'."""
    if state.get("error") is not None:
        return "error"
    return "duplicate" if state.get("duplicate") else "new"


def build_ingestion_graph(nodes: IngestionNodes):
    logger.debug("Construindo grafo de ingestão")
    graph = StateGraph(IngestionState)

    graph.add_node("detect", nodes.detect)
    graph.add_node("parse", nodes.parse)
    graph.add_node("validate", nodes.validate)
    graph.add_node("dedup_check", nodes.dedup_check)
    graph.add_node("insert", nodes.insert)
    graph.add_node("skip_duplicate", nodes.skip_duplicate)
    graph.add_node("record_validation", nodes.record_validation)

    graph.set_entry_point("detect")
    graph.add_conditional_edges("detect", _route_on_error, {"error": END, "next": "parse"})
    graph.add_conditional_edges("parse", _route_on_error, {"error": END, "next": "validate"})
    graph.add_edge("validate", "dedup_check")

    graph.add_conditional_edges(
        "dedup_check",
        _route_after_dedup,
        {
            "error": END,
            "duplicate": "skip_duplicate",
            "new": "insert",
        },
    )
    graph.add_conditional_edges(
        "insert", _route_on_error, {"error": END, "next": "record_validation"}
    )
    graph.add_edge("skip_duplicate", "record_validation")
    graph.add_edge("record_validation", END)

    logger.debug("Grafo compilado")
    return graph.compile()

"""
E2E — sessão de console via API pública.

Valida:
- initialize_session sem script abre o bloco "Console"
- notificações registram statements já executados pelo host
- save_graph fecha o segmento corrente e abre outro
- finalize_session fecha o segmento aberto e grava o documento final
- segunda inicialização com sessão ativa é ConfigurationError
- falha de gravação vira warning (finalize nunca levanta)
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

import prov_capture as pc
from prov_capture.api import session_manager
from prov_capture.core.graph import OperationKind, ProcedureNode, unmatched_starts
from prov_capture.core.serialize import load_document
from prov_capture.core.session.manager import SessionManager


def _console_blocks(graph, operation):
    return [n for n in graph.nodes if isinstance(n, ProcedureNode) and n.name == "Console" and n.operation == operation]


def test_console_session_with_rotation(tmp_path: Path) -> None:
    ns = {}
    ctx = pc.initialize_session(prov_dir=tmp_path, console_namespace=ns)
    assert ctx.console_mode
    assert ctx.paths.root == (tmp_path / "prov_console").resolve()

    notifier = pc.console_notifier()
    exec("a = 1", ns)
    notifier.notify("a = 1")
    first = pc.save_graph()
    assert first == ctx.paths.document

    exec("b = a + 1", ns)
    notifier.notify("b = a + 1")
    pc.finalize_session()

    doc = load_document(ctx.paths.document)
    assert doc.manifest["script"] == "console"
    assert doc.manifest["scripts"][0]["name"] == "console"

    graph = doc.to_graph()
    assert len(_console_blocks(graph, OperationKind.START)) == 2
    assert len(_console_blocks(graph, OperationKind.FINISH)) == 2
    assert unmatched_starts(graph) == []
    assert [n.name for n in graph.nodes if isinstance(n, ProcedureNode) and n.operation == OperationKind.OPERATION] == [
        "a = 1",
        "b = a + 1",
    ]


def test_graph_document_reflects_live_session(tmp_path: Path) -> None:
    ns = {}
    pc.initialize_session(prov_dir=tmp_path, console_namespace=ns)
    exec("v = 3", ns)
    pc.console_notifier().notify("v = 3")

    live = json.loads(pc.graph_document())
    assert live["manifest"]["active"] is True
    assert [d["name"] for d in live["data"]] == ["v"]
    pc.finalize_session()


def test_second_initialize_is_configuration_error(tmp_path: Path) -> None:
    pc.initialize_session(prov_dir=tmp_path, console_namespace={})
    with pytest.raises(pc.ConfigurationError):
        pc.initialize_session(prov_dir=tmp_path, console_namespace={})
    pc.finalize_session()
    assert pc.finalize_session() is None


def test_graph_document_without_session() -> None:
    with pytest.raises(pc.SessionEnvironmentError):
        SessionManager().graph_document()


def test_save_failure_becomes_warning(tmp_path: Path, monkeypatch) -> None:
    manager = SessionManager()
    ctx = manager.initialize(prov_dir=tmp_path, console_namespace={})

    def broken(document, path):
        raise OSError("read-only")

    monkeypatch.setattr("prov_capture.core.session.manager.save_document", broken)
    assert manager.finalize() is None
    assert not manager.active
    assert any("read-only" in w for w in ctx.warnings["session"])


def test_invalid_option_fails_before_session(tmp_path: Path) -> None:
    with pytest.raises(pc.ConfigurationError):
        pc.initialize_session(prov_dir=tmp_path, max_loops=-5)
    assert not (tmp_path / "prov_console").exists()
    assert not session_manager().active

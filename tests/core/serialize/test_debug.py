# tests/core/serialize/test_debug.py
"""
Testes das tabelas de depuração (`save_debug=True`).

Invariantes:
    - As tabelas são derivadas do mesmo documento de prov.json
    - Colunas aninhadas (span) são achatadas em `chave.sub`
"""

import json

import pytest

try:
    import pandas as pd

    from prov_capture.core.serialize import DEBUG_TABLES, EVENTS_FILE, build_document, write_debug_tables
except Exception as e:  # noqa: BLE001
    write_debug_tables = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing debug tables API. Implement:"
            "- src/prov_capture/core/serialize/debug.py (write_debug_tables)"
            f"Import error: {_IMPORT_ERR}"
        )


def test_debug_tables_match_document(run_source, tmp_path):
    _require_imports()
    ctx, _ = run_source("x = 1\ny = x + 1\n")
    ctx.log(scope="test", level="info", message="hello")
    doc = build_document(ctx)

    written = write_debug_tables(doc, tmp_path / "debug", ctx.events)
    assert [p.name for p in written] == [*DEBUG_TABLES, EVENTS_FILE]

    nodes = pd.read_csv(tmp_path / "debug" / "nodes.csv")
    data = pd.read_csv(tmp_path / "debug" / "data.csv")
    edges = pd.read_csv(tmp_path / "debug" / "edges.csv")
    assert len(nodes) == len(doc.nodes)
    assert list(data["name"]) == ["x", "y"]
    assert len(edges) == len(doc.edges)
    assert "span.start_line" in nodes.columns

    events = json.loads((tmp_path / "debug" / EVENTS_FILE).read_text(encoding="utf-8"))
    assert events[-1]["message"] == "hello"


def test_empty_tables_are_still_written(make_ctx, tmp_path):
    _require_imports()
    ctx = make_ctx()
    written = write_debug_tables(build_document(ctx), tmp_path / "debug", [])
    assert all(p.exists() for p in written)

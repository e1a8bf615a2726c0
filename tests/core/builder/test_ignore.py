# tests/core/builder/test_ignore.py
"""
Testes do IgnoreSet (classificação AST de operações do coletor).

Invariantes:
    - Imports do prov_capture são ignorados e seus aliases aprendidos
    - Bookkeeping (save_graph, graph_document, hooks do console) é ignorado
    - Pontos de entrada são SKIP apenas com suppress_entry_points
    - A classificação é estrutural: texto parecido não é ignorado
"""

import ast

import pytest

try:
    from prov_capture.core.builder import IgnoreSet, Verdict
except Exception as e:  # noqa: BLE001
    IgnoreSet = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing ignore set API. Implement:"
            "- src/prov_capture/core/builder/ignore.py (IgnoreSet, Verdict)"
            f"Import error: {_IMPORT_ERR}"
        )


def _classify(ignore, source):
    return ignore.classify(ast.parse(source).body[0])


def test_module_alias_is_learned():
    _require_imports()
    ignore = IgnoreSet()
    assert _classify(ignore, "import prov_capture as pc") == Verdict.IGNORE
    assert _classify(ignore, "pc.save_graph()") == Verdict.IGNORE
    assert _classify(ignore, "doc = pc.graph_document()") == Verdict.IGNORE
    assert _classify(ignore, "pc.initialize_session()") == Verdict.IGNORE


def test_from_import_names_are_learned():
    _require_imports()
    ignore = IgnoreSet(suppress_entry_points=True)
    assert _classify(ignore, "from prov_capture import save_graph as sg, run_script") == Verdict.IGNORE
    assert _classify(ignore, "sg()") == Verdict.IGNORE
    assert _classify(ignore, "run_script('other.py')") == Verdict.SKIP


def test_entry_points_skipped_only_when_suppressed():
    _require_imports()
    assert _classify(IgnoreSet(), "prov_capture.finalize_session()") == Verdict.IGNORE
    assert _classify(IgnoreSet(suppress_entry_points=True), "prov_capture.finalize_session()") == Verdict.SKIP


def test_console_notifier_methods_are_ignored():
    _require_imports()
    ignore = IgnoreSet()
    _classify(ignore, "import prov_capture")
    assert _classify(ignore, "nb = prov_capture.console_notifier()") == Verdict.IGNORE
    assert _classify(ignore, "nb.notify('x = 1')") == Verdict.IGNORE


def test_unrelated_statements_are_instrumented():
    """Nomes homônimos sem import do prov_capture não são ignorados."""
    _require_imports()
    ignore = IgnoreSet()
    assert _classify(ignore, "save_graph()") == Verdict.INSTRUMENT
    assert _classify(ignore, "x = save_graph + 1") == Verdict.INSTRUMENT
    assert _classify(ignore, "import os") == Verdict.INSTRUMENT
    assert _classify(ignore, "os.save_graph()") == Verdict.INSTRUMENT

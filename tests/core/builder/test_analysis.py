# tests/core/builder/test_analysis.py
"""
Testes da análise de nomes lidos/escritos por statement.

Invariantes:
    - Um nome só é leitura se lido antes de qualquer escrita
    - Alvos por subscript/atributo contam como escrita da base
    - Variáveis de compreensão não vazam
    - Corpos de funções não são avaliados na definição
"""

import ast

import pytest

try:
    from prov_capture.core.builder import analyze
except Exception as e:  # noqa: BLE001
    analyze = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing name analysis API. Implement:"
            "- src/prov_capture/core/builder/analysis.py (analyze, NameUsage)"
            f"Import error: {_IMPORT_ERR}"
        )


def _usage(source):
    return analyze(ast.parse(source).body[0])


def test_assignment_reads_then_writes():
    _require_imports()
    u = _usage("y = x + z")
    assert u.reads == ["x", "z"]
    assert u.writes == ["y"]


def test_read_after_write_is_not_a_read():
    _require_imports()
    u = _usage("x = (y := 1) + y")
    assert u.reads == []
    assert set(u.writes) == {"x", "y"}


def test_subscript_and_attribute_targets():
    _require_imports()
    u = _usage("df['a'] = col")
    assert u.reads == ["col", "df"]
    assert u.writes == ["df"]

    u = _usage("obj.attr.inner = 1")
    assert u.writes == ["obj"]


def test_augmented_assignment_reads_and_writes():
    _require_imports()
    u = _usage("total += step")
    assert u.reads == ["step", "total"]
    assert u.writes == ["total"]


def test_comprehension_variables_are_local():
    _require_imports()
    u = _usage("squares = [i * k for i in items if i > limit]")
    assert set(u.reads) == {"items", "k", "limit"}
    assert "i" not in u.reads
    assert u.writes == ["squares"]


def test_function_definition_skips_body():
    _require_imports()
    u = _usage("@deco\ndef f(a=default):\n    return hidden\n")
    assert u.reads == ["deco", "default"]
    assert u.writes == ["f"]


def test_imports_and_deletes():
    _require_imports()
    assert _usage("import numpy as np").writes == ["np"]
    assert _usage("from os import path, sep").writes == ["path", "sep"]
    assert _usage("del x").deletes == ["x"]

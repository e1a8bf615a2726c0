# tests/core/graph/test_scope_stack.py
"""
Testes da cadeia de escopos (ScopeChain) e da pilha de frames (CallStack).

Invariantes:
    - Busca da folha para a raiz: o escopo mais interno vence
    - O escopo raiz nunca é removido
    - A pilha só desempilha o frame do topo
"""

import pytest

try:
    from prov_capture.core.exceptions import GraphConsistencyError
    from prov_capture.core.graph import CallStack, Frame, FrameKind, ScopeChain
except Exception as e:  # noqa: BLE001
    ScopeChain = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing scope/stack API. Implement:"
            "- src/prov_capture/core/graph/scope.py (ScopeChain)"
            "- src/prov_capture/core/graph/stack.py (CallStack, Frame)"
            f"Import error: {_IMPORT_ERR}"
        )


def test_innermost_scope_wins():
    _require_imports()
    chain = ScopeChain()
    chain.push(1, "global")
    chain.bind("x", node_id=10, identity=1)
    chain.push(2, "f")
    assert chain.lookup("x").node_id == 10

    chain.bind("x", node_id=20, identity=2)
    assert chain.lookup("x").node_id == 20

    chain.pop()
    assert chain.lookup("x").node_id == 10
    assert chain.lookup("missing") is None


def test_root_scope_is_protected():
    _require_imports()
    chain = ScopeChain()
    chain.push(1, "global")
    with pytest.raises(IndexError):
        chain.pop()


def test_unbind_only_current_scope():
    _require_imports()
    chain = ScopeChain()
    chain.push(1, "global")
    chain.bind("x", node_id=3, identity=7)
    assert chain.unbind("x") is True
    assert chain.lookup("x") is None
    assert chain.unbind("x") is False


def test_stack_pops_only_top():
    _require_imports()
    stack = CallStack()
    outer = stack.push(Frame(node_id=1, kind=FrameKind.START, name="script.py"))
    inner = stack.push(Frame(node_id=2, kind=FrameKind.STATEMENT, name="x = 1"))
    assert stack.top is inner
    assert stack.innermost(FrameKind.START) is outer

    with pytest.raises(GraphConsistencyError):
        stack.pop(outer.node_id)

    stack.pop(inner.node_id)
    stack.pop(outer.node_id)
    assert stack.is_empty()

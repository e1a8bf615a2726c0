# tests/core/iotrace/test_display.py
"""
Testes do DisplayTracer (figuras matplotlib em backend Agg).

Invariantes:
    - Figuras alteradas viram nós File "plot" gravados em data/
    - Cada figura gera um único nó Device
    - Sem pyplot importado, nada é capturado
    - O snapshot final grava toda figura ainda aberta
"""

import sys

import pytest

try:
    from prov_capture.core.builder import GraphBuilder, ScriptState, parse_source
    from prov_capture.core.graph import DeviceNode, EdgeKind
    from prov_capture.core.iotrace import DisplayTracer
    from tests._helpers import files, has_edge, op_named
except Exception as e:  # noqa: BLE001
    DisplayTracer = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing display tracing API. Implement:"
            "- src/prov_capture/core/iotrace/display.py (DisplayTracer)"
            f"Import error: {_IMPORT_ERR}"
        )


PLOT = """\
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
fig = plt.figure()
line = plt.plot([1, 2, 3])
"""


@pytest.fixture
def display_ctx(make_ctx):
    ctx = make_ctx()
    ctx.display = DisplayTracer(ctx)
    yield ctx
    if "matplotlib.pyplot" in sys.modules:
        sys.modules["matplotlib.pyplot"].close("all")


def _run(ctx, source):
    builder = GraphBuilder(ctx)
    namespace = {"__name__": "__main__"}
    state = ScriptState(ns=namespace, filename="<test>", script_num=0, source=source)
    builder.run_script(parse_source(source, filename="<test>"), state, name="test.py")
    return namespace


def test_plot_captured_after_statement(display_ctx):
    _require_imports()
    _run(display_ctx, PLOT)

    plots = files(display_ctx, "plot")
    assert plots
    last = plots[-1]
    assert last.path.endswith(".png")
    with open(last.path, "rb") as fh:
        assert fh.read(8) == b"\x89PNG\r\n\x1a\n"

    (plotter,) = op_named(display_ctx, "line = plt.plot([1, 2, 3])")
    assert has_edge(display_ctx, plotter.id, last.id, EdgeKind.DATA_OUT)

    devices = [n for n in display_ctx.graph.nodes if isinstance(n, DeviceNode)]
    assert len(devices) == 1


def test_unchanged_figure_not_recaptured(display_ctx):
    _require_imports()
    _run(display_ctx, PLOT)
    before = len(files(display_ctx, "plot"))
    assert display_ctx.display.capture(display_ctx.graph.last_activity) == []
    assert len(files(display_ctx, "plot")) == before


def test_no_capture_without_pyplot(make_ctx, monkeypatch):
    _require_imports()
    monkeypatch.delitem(sys.modules, "matplotlib.pyplot", raising=False)
    ctx = make_ctx()
    tracer = DisplayTracer(ctx)
    assert tracer.capture(1) == []


def test_final_capture_snapshots_every_open_figure(display_ctx):
    """No finalize, figuras abertas recebem um último snapshot mesmo sem alteração."""
    _require_imports()
    _run(display_ctx, PLOT)
    before = files(display_ctx, "plot")
    activity = display_ctx.graph.last_activity

    (node_id,) = display_ctx.display.capture(activity, final=True)
    after = files(display_ctx, "plot")
    assert len(after) == len(before) + 1
    assert after[-1].id == node_id
    assert after[-1].digest == before[-1].digest
    assert has_edge(display_ctx, activity, node_id, EdgeKind.DATA_OUT)
    assert len([n for n in display_ctx.graph.nodes if isinstance(n, DeviceNode)]) == 1

# src/prov_capture/core/builder/functions.py
"""
Anotação do corpo de funções (`annotate_inside_functions`).

Com a opção ligada, toda `def` comum (não geradora, não async) é reescrita
no AST antes da compilação:

    def f(a):
        __prov_call__ = __prov_hooks__.enter("f", span, locals())
        try:
            __prov_call__.before(span, "y = a + 1", ("a",), locals())
            y = a + 1
            __prov_call__.after(("y",), locals())
            ...
        except BaseException as __prov_exc__:
            __prov_call__.fail(__prov_exc__)
            raise
        finally:
            __prov_call__.exit()

Cada chamada empilha um novo escopo; parâmetros viram versões Data do nó
start da chamada; o corpo segue o mesmo algoritmo do Builder com diff de
`locals()`; o nó finish é emitido mesmo quando a chamada levanta.

Com loops habilitados (`max_loops != 0`), `for`/`while`/`if` do corpo são
reescritos recursivamente:

    __prov_loop_1__ = __prov_call__.loop_start(span, "for i in ...:", ("n",), locals())
    try:
        for i in range(n):
            __prov_loop_1__.iteration(locals())
            try:
                ...
            except BaseException as __prov_exc__:
                __prov_call__.fail(__prov_exc__)
                raise
            finally:
                __prov_loop_1__.end_iteration()
        else:
            ...
    except BaseException as __prov_exc__:
        __prov_call__.fail(__prov_exc__)
        raise
    finally:
        __prov_loop_1__.finish(locals())

O loop continua sendo executado pelo próprio Python (break, continue,
else e return mantêm a semântica nativa); os hooks só aplicam a janela
de iterações, as regiões silenciosas e a reconciliação no nó finish.

Decisões arquiteturais:
    - Docstring, `global` e `nonlocal` ficam fora do bloco instrumentado
    - Chamadas em regiões silenciosas (ou com a sessão inativa) recebem um
      frame nulo: executam sem criar nós
    - `break`/`continue` não viram nós (como no Builder de topo)
    - Com loops desabilitados, `for`/`while`/`if` executam como um único
      statement
    - Corpos de `try`/`with` não são reescritos
"""

from __future__ import annotations

import ast
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from prov_capture.core.graph import ControlKind, Frame, SourceSpan

from .analysis import NameUsage, analyze, reads_of
from .builder import visible
from .parser import label_of, span_of

if TYPE_CHECKING:  # pragma: no cover
    from .builder import GraphBuilder, ScriptState


HOOKS_NAME = "__prov_hooks__"
CALL_NAME = "__prov_call__"
EXC_NAME = "__prov_exc__"

SpanTuple = Tuple[int, int, int, int, int]


def _is_generator(node: ast.AST) -> bool:
    stack = list(ast.iter_child_nodes(node))
    while stack:
        child = stack.pop()
        if isinstance(child, (ast.Yield, ast.YieldFrom, ast.Await)):
            return True
        if isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda, ast.ClassDef)):
            continue
        stack.extend(ast.iter_child_nodes(child))
    return False


def _span_tuple(node: ast.AST, script_num: int) -> SpanTuple:
    span = span_of(node, script_num)
    return (span.script_num, span.start_line, span.start_col, span.end_line, span.end_col)


def _hook_call(obj: str, method: str, *args: ast.expr) -> ast.Expr:
    return ast.Expr(
        value=ast.Call(
            func=ast.Attribute(value=ast.Name(id=obj, ctx=ast.Load()), attr=method, ctx=ast.Load()),
            args=list(args),
            keywords=[],
        )
    )


def _locals() -> ast.Call:
    return ast.Call(func=ast.Name(id="locals", ctx=ast.Load()), args=[], keywords=[])


def _failing_handler() -> ast.ExceptHandler:
    return ast.ExceptHandler(
        type=ast.Name(id="BaseException", ctx=ast.Load()),
        name=EXC_NAME,
        body=[_hook_call(CALL_NAME, "fail", ast.Name(id=EXC_NAME, ctx=ast.Load())), ast.Raise()],
    )


class FunctionRewriter(ast.NodeTransformer):
    def __init__(self, *, source: Optional[str], script_num: int, loops: bool = False):
        self.source = source
        self.script_num = script_num
        self.loops = loops
        self._hooks = 0

    def _hook_name(self, kind: str) -> str:
        self._hooks += 1
        return f"__prov_{kind}_{self._hooks}__"

    def _wrap(self, stmt: ast.stmt) -> List[ast.stmt]:
        usage = analyze(stmt)
        before = _hook_call(
            CALL_NAME,
            "before",
            ast.Constant(value=_span_tuple(stmt, self.script_num)),
            ast.Constant(value=label_of(self.source, stmt)),
            ast.Constant(value=tuple(usage.reads)),
            _locals(),
        )
        after = _hook_call(CALL_NAME, "after", ast.Constant(value=tuple(usage.writes)), _locals())
        return [ast.copy_location(before, stmt), stmt, ast.copy_location(after, stmt)]

    def _instrument(self, body: Sequence[ast.stmt]) -> List[ast.stmt]:
        out: List[ast.stmt] = []
        for stmt in body:
            if isinstance(stmt, (ast.Break, ast.Continue)):
                out.append(stmt)
            elif self.loops and isinstance(stmt, (ast.For, ast.While)):
                out.extend(self._loop(stmt))
            elif self.loops and isinstance(stmt, ast.If):
                out.extend(self._conditional(stmt))
            else:
                out.extend(self._wrap(stmt))
        return out

    def _loop(self, node: ast.stmt) -> List[ast.stmt]:
        hook = self._hook_name("loop")
        header = node.iter if isinstance(node, ast.For) else node.test
        start = ast.Assign(
            targets=[ast.Name(id=hook, ctx=ast.Store())],
            value=_hook_call(
                CALL_NAME,
                "loop_start",
                ast.Constant(value=_span_tuple(node, self.script_num)),
                ast.Constant(value=label_of(self.source, node)),
                ast.Constant(value=tuple(reads_of(header))),
                _locals(),
            ).value,
        )
        iteration = ast.Try(
            body=self._instrument(node.body) or [ast.Pass()],
            handlers=[_failing_handler()],
            orelse=[],
            finalbody=[_hook_call(hook, "end_iteration")],
        )
        node.body = [_hook_call(hook, "iteration", _locals()), iteration]
        node.orelse = self._instrument(node.orelse)
        guarded = ast.Try(
            body=[node],
            handlers=[_failing_handler()],
            orelse=[],
            finalbody=[_hook_call(hook, "finish", _locals())],
        )
        return [ast.copy_location(start, node), ast.copy_location(guarded, node)]

    def _conditional(self, node: ast.If) -> List[ast.stmt]:
        hook = self._hook_name("cond")
        start = ast.Assign(
            targets=[ast.Name(id=hook, ctx=ast.Store())],
            value=_hook_call(
                CALL_NAME,
                "cond_start",
                ast.Constant(value=label_of(self.source, node)),
                ast.Constant(value=tuple(reads_of(node.test))),
            ).value,
        )
        node.body = self._instrument(node.body) or [ast.Pass()]
        node.orelse = self._instrument(node.orelse)
        guarded = ast.Try(
            body=[node],
            handlers=[_failing_handler()],
            orelse=[],
            finalbody=[_hook_call(hook, "finish")],
        )
        return [ast.copy_location(start, node), ast.copy_location(guarded, node)]

    def visit_FunctionDef(self, node: ast.FunctionDef) -> ast.FunctionDef:
        self.generic_visit(node)
        if _is_generator(node):
            return node

        body = list(node.body)
        prefix = []
        if body and isinstance(body[0], ast.Expr) and isinstance(body[0].value, ast.Constant) and isinstance(body[0].value.value, str):
            prefix.append(body.pop(0))

        wrapped = []
        for stmt in body:
            if isinstance(stmt, (ast.Global, ast.Nonlocal)):
                prefix.append(stmt)
            else:
                wrapped.extend(self._instrument([stmt]))

        if not wrapped:
            return node

        enter = ast.Assign(
            targets=[ast.Name(id=CALL_NAME, ctx=ast.Store())],
            value=ast.Call(
                func=ast.Attribute(value=ast.Name(id=HOOKS_NAME, ctx=ast.Load()), attr="enter", ctx=ast.Load()),
                args=[
                    ast.Constant(value=node.name),
                    ast.Constant(value=_span_tuple(node, self.script_num)),
                    _locals(),
                ],
                keywords=[],
            ),
        )
        guarded = ast.Try(body=wrapped, handlers=[_failing_handler()], orelse=[], finalbody=[_hook_call(CALL_NAME, "exit")])
        first = body[0] if body else node
        node.body = prefix + [ast.copy_location(enter, first), ast.copy_location(guarded, first)]
        return ast.fix_missing_locations(node)


class _NullHook:
    """Loop/condicional sem registro."""

    def iteration(self, local_vars: Dict[str, Any]) -> None:
        return None

    def end_iteration(self) -> None:
        return None

    def finish(self, local_vars: Optional[Dict[str, Any]] = None) -> None:
        return None


NULL_HOOK = _NullHook()


class _NullCall:
    """Frame de chamada sem registro (região silenciosa ou sessão inativa)."""

    def before(self, *args: Any) -> None:
        return None

    def after(self, *args: Any) -> None:
        return None

    def fail(self, exc: BaseException) -> None:
        return None

    def exit(self) -> None:
        return None

    def loop_start(self, *args: Any) -> _NullHook:
        return NULL_HOOK

    def cond_start(self, *args: Any) -> _NullHook:
        return NULL_HOOK


NULL_CALL = _NullCall()


def _on_stack(builder: "GraphBuilder", frame: Frame) -> bool:
    return any(f.node_id == frame.node_id for f in builder.ctx.stack)


class LoopHook:
    """
    Janela de iterações de um loop dentro de função anotada.

    Invariantes:
        - Iterações dentro da janela abrem um Control (LOOP) com o índice
        - Iterações fora da janela executam em região silenciosa
        - Alterações feitas em silêncio são versionadas pelo próximo Control
          da janela e pelo nó finish do loop
    """

    def __init__(self, call: "CallFrame", start: Frame, label: str, baseline: Dict[str, int]):
        self.call = call
        self.start = start
        self.label = label
        self.baseline = baseline
        self.count = 0
        self._control: Optional[Frame] = None
        self._silent = False

    def iteration(self, local_vars: Dict[str, Any]) -> None:
        builder = self.call.builder
        self.count += 1
        if _on_stack(builder, self.start) and builder.ctx.settings.in_loop_window(self.count):
            self._control = builder.open_control(ControlKind.LOOP, self.label, iteration=self.count)
            builder.reconcile(local_vars, self.baseline, self._control.node_id)
        else:
            builder.ctx.silent_depth += 1
            self._silent = True

    def end_iteration(self) -> None:
        if self._silent:
            self._silent = False
            self.call.builder.ctx.silent_depth -= 1
            return
        control, self._control = self._control, None
        if control is not None and _on_stack(self.call.builder, control):
            self.call.unwind_to(control)
            self.call.builder.close_control(control)

    def finish(self, local_vars: Dict[str, Any]) -> None:
        builder = self.call.builder
        if not _on_stack(builder, self.start):
            return
        self.call.unwind_to(self.start)
        finish_id = builder.close_block(self.start, failed=self.call.failed)
        builder.reconcile(local_vars, self.baseline, finish_id)
        builder.ctx.log(scope="builder", level="debug", message="loop finished", node_id=self.start.node_id, iterations=self.count)


class ConditionalHook:
    """Control CONDITIONAL em volta do `if` executado pelo Python."""

    def __init__(self, call: "CallFrame", control: Frame):
        self.call = call
        self.control = control

    def finish(self) -> None:
        if not _on_stack(self.call.builder, self.control):
            return
        self.call.unwind_to(self.control)
        self.call.builder.close_control(self.control)


class CallFrame:
    """Registro de uma chamada de função anotada."""

    def __init__(self, builder: "GraphBuilder", start: Frame):
        self.builder = builder
        self.start = start
        self.failed = False
        self._step: Optional[Frame] = None
        self._before: Dict[str, int] = {}

    def _live(self) -> bool:
        return self.builder.ctx.active and _on_stack(self.builder, self.start)

    def _close_step(self, exc: Optional[BaseException] = None) -> None:
        if self._step is not None:
            step, self._step = self._step, None
            if _on_stack(self.builder, step):
                self.builder.close_statement(step, exc)

    def unwind_to(self, frame: Frame) -> None:
        """Fecha o statement pendente e frames internos acima de `frame`."""
        self._close_step()
        stack = self.builder.ctx.stack
        while stack.top is not None and stack.top.node_id != frame.node_id:
            # frames internos deixados abertos por uma saída antecipada
            self.builder.abort_frame(stack.top)

    def before(self, span: SpanTuple, label: str, reads: Sequence[str], local_vars: Dict[str, Any]) -> None:
        if not self._live() or self.builder.ctx.silent:
            return
        self._close_step()
        self._step = self.builder.open_statement(label, SourceSpan(*span))
        self.builder.link_reads(list(reads), self._step.node_id)
        self._before = visible(local_vars)

    def after(self, writes: Sequence[str], local_vars: Dict[str, Any]) -> None:
        if self._step is None or not self._live():
            return
        step_id = self._step.node_id
        self.builder.record_writes(NameUsage(writes=list(writes)), self._before, local_vars, step_id)
        self.builder.capture_display(step_id)
        self._close_step()

    def fail(self, exc: BaseException) -> None:
        self.failed = True
        if self._live():
            self._close_step(exc)

    def loop_start(self, span: SpanTuple, label: str, reads: Sequence[str], local_vars: Dict[str, Any]) -> Any:
        if not self._live() or self.builder.ctx.silent:
            return NULL_HOOK
        self._close_step()
        start = self.builder.open_block(label, SourceSpan(*span))
        self.builder.link_reads(list(reads), start.node_id)
        return LoopHook(self, start, label, visible(local_vars))

    def cond_start(self, label: str, reads: Sequence[str]) -> Any:
        if not self._live() or self.builder.ctx.silent:
            return NULL_HOOK
        self._close_step()
        control = self.builder.open_control(ControlKind.CONDITIONAL, label)
        self.builder.link_reads(list(reads), control.node_id)
        return ConditionalHook(self, control)

    def exit(self) -> None:
        if not self._live():
            return
        self.unwind_to(self.start)
        self.builder.close_block(self.start, failed=self.failed)


class FunctionHooks:
    """Objeto injetado no namespace do script como `__prov_hooks__`."""

    def __init__(self, builder: "GraphBuilder"):
        self.builder = builder

    def rewrite(self, node: ast.stmt, state: "ScriptState") -> ast.stmt:
        state.ns[HOOKS_NAME] = self
        rewriter = FunctionRewriter(
            source=state.source,
            script_num=state.script_num,
            loops=self.builder.ctx.settings.loops_enabled,
        )
        return rewriter.visit(node)

    def enter(self, name: str, span: SpanTuple, local_vars: Dict[str, Any]) -> Any:
        builder = self.builder
        if not builder.recording:
            return NULL_CALL
        start = builder.open_block(f"{name}()", SourceSpan(*span), scope_name=name)
        for var in visible(local_vars):
            builder.new_version(var, local_vars[var], start.node_id)
        return CallFrame(builder, start)

# src/prov_capture/core/builder/builder.py
"""
Graph Builder — execução instrumentada de statements.

Este módulo define o `GraphBuilder`, o único componente que executa o
script observado e monta o grafo de proveniência.

Algoritmo por statement:
    1. Classificação contra o IgnoreSet (ignorado → executa sem nós)
    2. Abertura de um nó Procedure (operation) com span e escopo
    3. Execução no namespace do script
    4. Diff dos bindings visíveis: nomes novos/alterados (e alvos de
       atribuição do AST) recebem nova versão Data (data-out); nomes lidos
       antes de escritos ligam a versão mais recente do escopo mais
       interno (data-in)
    5. Fechamento com status ok, ou failed seguido de propagação do erro

Statements especiais:
    - for/while: dirigidos pelo Builder quando `max_loops != 0`; iterações
      dentro da janela são envolvidas em nós Control, as demais executam
      em região silenciosa
    - if/elif/else: nós Control de condicional (fora de regiões silenciosas)
    - `runpy.run_path("<script>")`: inclusão aninhada com novo número de
      script, novo escopo e par start/finish com o span do chamador

Decisões arquiteturais:
    - O Builder nunca engole erros do script: `abort` fecha todos os frames
      abertos (da folha para a raiz) e o chamador re-levanta o erro
    - break/continue são sinais de fluxo (`Flow`) devolvidos pelos blocos
    - Loops cujo break/continue não é alcançável por statements dirigíveis
      executam como um único statement opaco

Limites explícitos:
    - Não cria diretórios nem persiste o grafo
    - Corpos de try/with/match executam de forma opaca
"""

from __future__ import annotations

import __future__
import ast
import builtins
import copy
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence, Tuple

from prov_capture.core.errors import script_execution_error
from prov_capture.core.exceptions import CaptureError
from prov_capture.core.graph import (
    ControlKind,
    ControlPhase,
    EdgeKind,
    Frame,
    FrameKind,
    OperationKind,
    ProcedureStatus,
    SourceSpan,
)

from .analysis import NameUsage, analyze, reads_of
from .ignore import IgnoreSet, Verdict
from .parser import Statement, parse_script, statements_from

if TYPE_CHECKING:  # pragma: no cover
    from prov_capture.core.session.context import SessionContext


HOOK_PREFIX = "__prov"
_VALUE_SLOT = "__prov_value__"


class Flow(str, Enum):
    NORMAL = "normal"
    BREAK = "break"
    CONTINUE = "continue"


@dataclass
class ScriptState:
    """Namespace e metadados de compilação de um script em execução."""

    ns: Dict[str, Any]
    filename: str
    script_num: int
    source: Optional[str] = None
    flags: int = 0
    loop_depth: int = 0


def visible(namespace: Dict[str, Any]) -> Dict[str, int]:
    """Identidade dos bindings visíveis (sem dunders e sem nomes do coletor)."""
    return {
        name: id(value)
        for name, value in namespace.items()
        if not (name.startswith("__") and name.endswith("__")) and not name.startswith(HOOK_PREFIX)
    }


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# -----------------------------------------------------------------------------
# Dirigibilidade de loops
# -----------------------------------------------------------------------------

def _has_flow(node: ast.AST) -> bool:
    """True se `node` contém break/continue pertencente a um loop externo."""
    if isinstance(node, (ast.Break, ast.Continue)):
        return True
    if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef, ast.Lambda)):
        return False
    if isinstance(node, (ast.For, ast.AsyncFor, ast.While)):
        return any(_has_flow(s) for s in node.orelse)
    return any(_has_flow(child) for child in ast.iter_child_nodes(node))


def flow_safe(stmts: Sequence[ast.stmt]) -> bool:
    """break/continue só aparecem em posições que o Builder dirige."""
    for stmt in stmts:
        if isinstance(stmt, (ast.Break, ast.Continue)):
            continue
        if isinstance(stmt, ast.If):
            if not (flow_safe(stmt.body) and flow_safe(stmt.orelse)):
                return False
            continue
        if isinstance(stmt, (ast.For, ast.While)):
            if loop_drivable(stmt) or not any(_has_flow(s) for s in stmt.orelse):
                continue
            return False
        if _has_flow(stmt):
            return False
    return True


def loop_drivable(node: ast.stmt) -> bool:
    if not isinstance(node, (ast.For, ast.While)):
        return False
    return flow_safe(node.body) and flow_safe(node.orelse)


def inclusion_call(node: ast.stmt) -> Optional[Tuple[ast.Call, Optional[ast.expr]]]:
    """Reconhece `[alvo =] runpy.run_path("<script>", ...)` / `run_path(...)`."""
    target: Optional[ast.expr] = None
    if isinstance(node, ast.Expr):
        value = node.value
    elif isinstance(node, ast.Assign) and len(node.targets) == 1:
        value, target = node.value, node.targets[0]
    else:
        return None
    if not isinstance(value, ast.Call) or not value.args:
        return None
    func = value.func
    is_run_path = (isinstance(func, ast.Name) and func.id == "run_path") or (
        isinstance(func, ast.Attribute)
        and func.attr == "run_path"
        and isinstance(func.value, ast.Name)
        and func.value.id == "runpy"
    )
    first = value.args[0]
    if is_run_path and isinstance(first, ast.Constant) and isinstance(first.value, str):
        return value, target
    return None


# -----------------------------------------------------------------------------
# Builder
# -----------------------------------------------------------------------------

class GraphBuilder:
    """Executa statements e monta o grafo da sessão ativa."""

    def __init__(self, ctx: "SessionContext", *, ignore: Optional[IgnoreSet] = None):
        self.ctx = ctx
        self.ignore = ignore or IgnoreSet(suppress_entry_points=ctx.suppress_entry_points)
        self.functions = None
        if ctx.settings.annotate_inside_functions:
            from .functions import FunctionHooks

            self.functions = FunctionHooks(self)
        if len(ctx.scopes) == 0:
            ctx.scopes.push(ctx.graph.new_scope_id(), "global")

    @property
    def graph(self):
        return self.ctx.graph

    @property
    def recording(self) -> bool:
        return self.ctx.active and not self.ctx.silent

    def _scope_id(self) -> int:
        return self.ctx.scopes.current.scope_id

    # ------------------------------------------------------------------
    # Primitivas de registro
    # ------------------------------------------------------------------
    def open_statement(self, label: str, span: Optional[SourceSpan]) -> Frame:
        node = self.graph.add_procedure(
            name=label,
            operation=OperationKind.OPERATION,
            span=span,
            scope_id=self._scope_id(),
            status=ProcedureStatus.RUNNING,
        )
        return self.ctx.stack.push(Frame(node_id=node.id, kind=FrameKind.STATEMENT, name=label, span=span, scope_id=node.scope_id))

    def close_statement(self, frame: Frame, exc: Optional[BaseException] = None) -> None:
        self.ctx.stack.pop(frame.node_id)
        node = self.graph.node(frame.node_id)
        node.finished_at = _now()
        if exc is None:
            node.status = ProcedureStatus.OK
            return
        node.status = ProcedureStatus.FAILED
        payload = script_execution_error(
            exc=exc,
            script_num=frame.span.script_num if frame.span else None,
            line=frame.span.start_line if frame.span else None,
        )
        node.error = payload.to_dict()
        self.ctx.log(scope="builder", level="error", message=payload.message, node_id=node.id, error=payload.to_dict())

    def open_block(self, name: str, span: Optional[SourceSpan], *, scope_name: Optional[str] = None) -> Frame:
        """Procedure start; com `scope_name`, empilha um novo escopo."""
        node = self.graph.add_procedure(
            name=name,
            operation=OperationKind.START,
            span=span,
            scope_id=self._scope_id(),
            status=ProcedureStatus.RUNNING,
        )
        if scope_name is not None:
            self.ctx.scopes.push(self.graph.new_scope_id(), scope_name)
        frame = Frame(
            node_id=node.id,
            kind=FrameKind.START,
            name=name,
            span=span,
            scope_id=node.scope_id,
            pushes_scope=scope_name is not None,
        )
        return self.ctx.stack.push(frame)

    def close_block(self, frame: Frame, *, failed: bool = False) -> int:
        """Procedure finish ligado ao start; retorna o id do nó de término."""
        self.ctx.stack.pop(frame.node_id)
        if frame.pushes_scope:
            self.ctx.scopes.pop()
        start = self.graph.node(frame.node_id)
        start.status = ProcedureStatus.FAILED if failed else ProcedureStatus.OK
        start.finished_at = _now()
        finish = self.graph.add_procedure(
            name=frame.name,
            operation=OperationKind.FINISH,
            span=frame.span,
            scope_id=frame.scope_id,
            status=start.status,
            start_id=frame.node_id,
        )
        return finish.id

    def open_control(self, control: ControlKind, name: str, *, iteration: Optional[int] = None) -> Frame:
        node = self.graph.add_control(
            name=name,
            control=control,
            phase=ControlPhase.START,
            iteration=iteration,
            scope_id=self._scope_id(),
        )
        frame = Frame(
            node_id=node.id,
            kind=FrameKind.CONTROL,
            name=name,
            scope_id=node.scope_id,
            control=control,
            iteration=iteration,
        )
        return self.ctx.stack.push(frame)

    def close_control(self, frame: Frame) -> int:
        self.ctx.stack.pop(frame.node_id)
        node = self.graph.add_control(
            name=frame.name,
            control=frame.control or ControlKind.LOOP,
            phase=ControlPhase.FINISH,
            iteration=frame.iteration,
            scope_id=frame.scope_id,
            start_id=frame.node_id,
        )
        return node.id

    def new_version(self, name: str, value: Any, source_id: int) -> int:
        """Nova versão Data de `name` no escopo corrente, produzida por `source_id`."""
        node = self.graph.add_data(name=name, scope_id=self._scope_id())
        with self.ctx.quiet():
            try:
                result = self.ctx.snapshots.capture(node_id=node.id, name=name, value=value)
            except CaptureError as e:
                self.ctx.report_capture_error(scope="snapshot", what="snapshot", exc=e, target=name)
                result = None
        if result is not None:
            node.value = result.value
            node.value_type = result.value_type
            node.digest = result.digest
            node.artifact = result.artifact
            node.truncated = result.truncated
        self.graph.add_edge(source_id, node.id, EdgeKind.DATA_OUT)
        self.ctx.scopes.bind(name, node.id, id(value))
        return node.id

    def link_reads(self, names: Sequence[str], target_id: int) -> None:
        for name in names:
            binding = self.ctx.scopes.lookup(name)
            if binding is not None:
                self.graph.add_edge(binding.node_id, target_id, EdgeKind.DATA_IN)

    def record_writes(
        self,
        usage: NameUsage,
        before: Dict[str, int],
        namespace: Dict[str, Any],
        source_id: int,
    ) -> None:
        after = visible(namespace)
        changed = [n for n in usage.writes if n in after]
        changed += [n for n, ident in after.items() if before.get(n) != ident and n not in changed]
        for name in changed:
            self.new_version(name, namespace[name], source_id)
        for name in before:
            if name not in after:
                self.ctx.scopes.unbind(name)

    def reconcile(self, namespace: Dict[str, Any], baseline: Dict[str, int], source_id: int) -> None:
        """Versiona bindings alterados fora de statements registrados (regiões silenciosas)."""
        for name, ident in visible(namespace).items():
            if baseline.get(name) == ident:
                continue
            binding = self.ctx.scopes.lookup(name)
            if binding is not None and binding.identity == ident:
                continue
            self.new_version(name, namespace[name], source_id)

    def capture_display(self, activity_id: int) -> None:
        if self.ctx.display is None:
            return
        with self.ctx.quiet():
            self.ctx.display.capture(activity_id)

    # ------------------------------------------------------------------
    # Compilação e avaliação
    # ------------------------------------------------------------------
    def _compile(self, node: ast.stmt, state: ScriptState):
        if self.functions is not None:
            node = self.functions.rewrite(copy.deepcopy(node), state)
        module = ast.fix_missing_locations(ast.Module(body=[node], type_ignores=[]))
        return compile(module, state.filename, "exec", flags=state.flags, dont_inherit=True)

    def _exec(self, node: ast.stmt, state: ScriptState) -> None:
        code = self._compile(node, state)
        exec(code, state.ns)
        if isinstance(node, ast.ImportFrom) and node.module == "__future__":
            for alias in node.names:
                feature = getattr(__future__, alias.name, None)
                if feature is not None:
                    state.flags |= feature.compiler_flag

    def _eval(self, expr: ast.expr, state: ScriptState) -> Any:
        tree = ast.fix_missing_locations(ast.Expression(body=expr))
        code = compile(tree, state.filename, "eval", flags=state.flags, dont_inherit=True)
        return eval(code, state.ns)

    def _assign(self, target: ast.expr, value: Any, state: ScriptState) -> None:
        assign = ast.copy_location(
            ast.Assign(targets=[target], value=ast.Name(id=_VALUE_SLOT, ctx=ast.Load())),
            target,
        )
        state.ns[_VALUE_SLOT] = value
        try:
            exec(self._compile(assign, state), state.ns)
        finally:
            state.ns.pop(_VALUE_SLOT, None)

    def _statements(self, nodes: Sequence[ast.stmt], state: ScriptState) -> List[Statement]:
        return statements_from(nodes, source=state.source, script_num=state.script_num, filename=state.filename)

    # ------------------------------------------------------------------
    # Execução
    # ------------------------------------------------------------------
    def run_block(self, statements: Sequence[Statement], state: ScriptState) -> Flow:
        for stmt in statements:
            flow = self.execute(stmt, state)
            if flow != Flow.NORMAL:
                return flow
        return Flow.NORMAL

    def execute(self, stmt: Statement, state: ScriptState) -> Flow:
        node = stmt.node
        if state.loop_depth and isinstance(node, ast.Break):
            return Flow.BREAK
        if state.loop_depth and isinstance(node, ast.Continue):
            return Flow.CONTINUE

        verdict = self.ignore.classify(node)
        if verdict == Verdict.SKIP:
            self.ctx.log(scope="builder", level="info", message="entry point skipped", label=stmt.label)
            return Flow.NORMAL
        if verdict == Verdict.IGNORE:
            self._exec(node, state)
            return Flow.NORMAL

        loops = self.ctx.settings.loops_enabled
        if loops and loop_drivable(node):
            return self._drive_loop(stmt, state)
        if loops and isinstance(node, ast.If):
            return self._drive_conditional(stmt, state)

        if not self.recording:
            self._exec(node, state)
            return Flow.NORMAL

        inclusion = inclusion_call(node)
        if inclusion is not None:
            self._include(stmt, state, *inclusion)
            return Flow.NORMAL

        self.run_statement(stmt, state)
        return Flow.NORMAL

    def run_statement(self, stmt: Statement, state: ScriptState) -> None:
        usage = analyze(stmt.node)
        before = visible(state.ns)
        frame = self.open_statement(stmt.label, stmt.span)
        self.link_reads(usage.reads, frame.node_id)
        try:
            self._exec(stmt.node, state)
        except BaseException as e:
            self.close_statement(frame, e)
            raise
        self.record_writes(usage, before, state.ns, frame.node_id)
        self.capture_display(frame.node_id)
        self.close_statement(frame)

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------
    def _drive_loop(self, stmt: Statement, state: ScriptState) -> Flow:
        node = stmt.node
        recording = self.recording
        header = node.iter if isinstance(node, ast.For) else node.test

        start: Optional[Frame] = None
        if recording:
            start = self.open_block(stmt.label, stmt.span)
            self.link_reads(reads_of(header), start.node_id)
        baseline = visible(state.ns)

        body = self._statements(node.body, state)
        iterator = iter(self._eval(node.iter, state)) if isinstance(node, ast.For) else None
        iteration = 0
        broke = False

        while True:
            if iterator is not None:
                try:
                    value = next(iterator)
                except StopIteration:
                    break
                self._assign(node.target, value, state)
            elif not self._eval(node.test, state):
                break
            iteration += 1

            state.loop_depth += 1
            try:
                if recording and self.ctx.settings.in_loop_window(iteration):
                    control = self.open_control(ControlKind.LOOP, stmt.label, iteration=iteration)
                    self.reconcile(state.ns, baseline, control.node_id)
                    flow = self.run_block(body, state)
                    self.close_control(control)
                else:
                    with self.ctx.quiet():
                        flow = self.run_block(body, state)
            finally:
                state.loop_depth -= 1

            if flow == Flow.BREAK:
                broke = True
                break

        flow = Flow.NORMAL
        if not broke and node.orelse:
            flow = self.run_block(self._statements(node.orelse, state), state)

        if start is not None:
            finish_id = self.close_block(start)
            self.reconcile(state.ns, baseline, finish_id)
            self.ctx.log(scope="builder", level="debug", message="loop finished", node_id=start.node_id, iterations=iteration)
        return flow

    # ------------------------------------------------------------------
    # Condicionais
    # ------------------------------------------------------------------
    def _drive_conditional(self, stmt: Statement, state: ScriptState) -> Flow:
        node = stmt.node
        control: Optional[Frame] = None
        if self.recording:
            control = self.open_control(ControlKind.CONDITIONAL, stmt.label)
            self.link_reads(reads_of(node.test), control.node_id)
        branch = node.body if self._eval(node.test, state) else node.orelse
        flow = self.run_block(self._statements(branch, state), state)
        if control is not None:
            self.close_control(control)
        return flow

    # ------------------------------------------------------------------
    # Inclusão de scripts
    # ------------------------------------------------------------------
    def _include(self, stmt: Statement, state: ScriptState, call: ast.Call, target: Optional[ast.expr]) -> None:
        path = Path(call.args[0].value)
        if not path.is_file():
            # diretórios/zips e caminhos ausentes ficam com o próprio runpy
            self.run_statement(stmt, state)
            return
        keywords = {kw.arg: self._eval(kw.value, state) for kw in call.keywords if kw.arg}
        extra = [self._eval(arg, state) for arg in call.args[1:]]
        init_globals = keywords.get("init_globals", extra[0] if extra else None)
        run_name = keywords.get("run_name", extra[1] if len(extra) > 1 else None)

        entry = self.ctx.scripts.register(path)
        statements = parse_script(path, script_num=entry.num)

        start = self.open_block(f'run_path("{entry.name}")', stmt.span, scope_name=entry.name)
        for kw in call.keywords:
            self.link_reads(reads_of(kw.value), start.node_id)
        for arg in call.args[1:]:
            self.link_reads(reads_of(arg), start.node_id)
        self.ctx.log(scope="builder", level="info", message="script included", script_num=entry.num, path=entry.path)

        namespace: Dict[str, Any] = dict(init_globals or {})
        namespace.update(
            {
                "__name__": run_name or "<run_path>",
                "__file__": str(path.resolve()),
                "__builtins__": builtins,
            }
        )
        included = ScriptState(
            ns=namespace,
            filename=str(path.resolve()),
            script_num=entry.num,
            source=Path(path).read_text(encoding="utf-8", errors="replace"),
        )
        self.run_block(statements, included)

        finish_id = self.close_block(start)
        if target is not None:
            result = dict(namespace)
            self._assign(target, result, state)
            for name in analyze(ast.Assign(targets=[target], value=ast.Constant(None))).writes:
                if name in state.ns:
                    self.new_version(name, state.ns[name], finish_id)

    # ------------------------------------------------------------------
    # Modos de execução
    # ------------------------------------------------------------------
    def run_script(self, statements: Sequence[Statement], state: ScriptState, *, name: str) -> None:
        """Execução direta: par start/finish em torno do script inteiro."""
        frame = self.open_block(name, None)
        self.run_block(statements, state)
        self.close_block(frame)

    def run_callable(self, func: Callable[[], Any]) -> Any:
        """Execução delegada: a rotina roda entre um par start/finish."""
        name = getattr(func, "__qualname__", None) or getattr(func, "__name__", None) or repr(func)
        frame = self.open_block(f"{name}()", None)
        result = func()
        finish_id = self.close_block(frame)
        self.capture_display(finish_id)
        return result

    def record(self, statements: Sequence[Statement], namespace: Dict[str, Any], baseline: Dict[str, int]) -> None:
        """
        Modo sem execução (console): cria nós para statements que o host já
        executou, usando o estado atual do namespace.
        """
        last_id: Optional[int] = None
        for stmt in statements:
            if self.ignore.classify(stmt.node) != Verdict.INSTRUMENT:
                continue
            usage = analyze(stmt.node)
            frame = self.open_statement(stmt.label, stmt.span)
            self.link_reads(usage.reads, frame.node_id)
            for name in usage.writes:
                if name in namespace and not name.startswith(HOOK_PREFIX):
                    self.new_version(name, namespace[name], frame.node_id)
            for name in usage.deletes:
                if name not in namespace:
                    self.ctx.scopes.unbind(name)
            self.close_statement(frame)
            last_id = frame.node_id
        if last_id is not None:
            self.reconcile(namespace, baseline, last_id)
            self.capture_display(last_id)

    # ------------------------------------------------------------------
    # Cleanup garantido
    # ------------------------------------------------------------------
    def abort(self, exc: Optional[BaseException] = None) -> int:
        """
        Fecha todos os frames abertos, da folha para a raiz.

        Frames de statement são marcados failed quando há erro. Retorna a
        quantidade de frames fechados.
        """
        closed = 0
        self.ctx.silent_depth = 0
        while not self.ctx.stack.is_empty():
            self.abort_frame(self.ctx.stack.top, exc)
            closed += 1
        if closed:
            self.ctx.log(scope="builder", level="warning" if exc else "info", message="open frames closed", count=closed)
        return closed

    def abort_frame(self, frame: Frame, exc: Optional[BaseException] = None) -> None:
        """Fecha um único frame (o topo da pilha) conforme o seu tipo."""
        if frame.kind == FrameKind.STATEMENT:
            self.close_statement(frame, exc)
        elif frame.kind == FrameKind.CONTROL:
            self.close_control(frame)
        else:
            self.close_block(frame, failed=exc is not None)

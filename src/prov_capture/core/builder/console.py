# src/prov_capture/core/builder/console.py
"""
Adaptador de console (notificação por statement).

Em sessões de console o host executa os statements; o `ConsoleNotifier`
recebe o código já executado e o namespace resultante e cria os nós
correspondentes sem reexecutar nada.

Pode ser acionado manualmente (`notify(source, namespace)`) ou acoplado ao
evento `post_run_cell` do IPython (`attach_ipython`).

Invariantes:
    - Uma notificação nunca reentra no Builder enquanto outra está em
      andamento: notificações reentrantes são enfileiradas e drenadas em
      ordem ao final da notificação corrente
    - Falhas de parse do código do console são CaptureError (reportadas,
      não propagadas)
"""

from __future__ import annotations

import builtins
from collections import deque
from typing import TYPE_CHECKING, Any, Deque, Dict, Optional, Tuple

from .builder import visible
from .parser import parse_source

if TYPE_CHECKING:  # pragma: no cover
    from .builder import GraphBuilder


class ConsoleNotifier:
    def __init__(self, builder: "GraphBuilder", namespace: Optional[Dict[str, Any]] = None):
        self.builder = builder
        self.namespace = namespace if namespace is not None else {}
        self._baseline: Dict[str, int] = visible(self.namespace)
        self._busy = False
        self._queue: Deque[Tuple[str, Dict[str, Any]]] = deque()
        self._shell: Any = None

    @property
    def ctx(self):
        return self.builder.ctx

    def notify(self, source: str, namespace: Optional[Dict[str, Any]] = None) -> None:
        """Registra statements já executados pelo host."""
        ns = namespace if namespace is not None else self.namespace
        if self._busy:
            self._queue.append((source, ns))
            return
        self._busy = True
        try:
            self._process(source, ns)
            while self._queue:
                self._process(*self._queue.popleft())
        finally:
            self._busy = False

    def _process(self, source: str, namespace: Dict[str, Any]) -> None:
        if not self.ctx.active or not source or not source.strip():
            return
        try:
            statements = parse_source(source, script_num=0, filename="<console>")
        except SyntaxError as e:
            self.ctx.report_capture_error(scope="console", what="console parse", exc=e, target=source[:60])
            return
        self.builder.record(statements, namespace, self._baseline)
        self._baseline = visible(namespace)
        self.ctx.log(scope="console", level="debug", message="console statements recorded", count=len(statements))

    # -----------------------------
    # IPython
    # -----------------------------
    def attach_ipython(self, shell: Any = None) -> bool:
        """Acopla ao `post_run_cell` do IPython; False se não houver shell ativo."""
        if shell is None:
            get_ipython = getattr(builtins, "get_ipython", None)
            shell = get_ipython() if get_ipython is not None else None
        if shell is None:
            return False
        shell.events.register("post_run_cell", self._post_run_cell)
        self._shell = shell
        self.namespace = shell.user_ns
        self._baseline = visible(self.namespace)
        return True

    def detach_ipython(self) -> None:
        if self._shell is None:
            return
        try:
            self._shell.events.unregister("post_run_cell", self._post_run_cell)
        except ValueError:
            pass
        self._shell = None

    def _post_run_cell(self, result: Any) -> None:
        info = getattr(result, "info", None)
        source = getattr(info, "raw_cell", None) if info is not None else None
        if source:
            self.notify(source, self.namespace)

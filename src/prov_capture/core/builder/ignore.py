# src/prov_capture/core/builder/ignore.py
"""
Conjunto de operações ignoradas pelo Builder (IgnoreSet).

Statements ignorados não criam nós, mas avançam o cursor de posição.
A classificação é feita sobre o AST (nunca por padrão textual):

    - imports do próprio `prov_capture` (os aliases são aprendidos)
    - chamadas a operações de bookkeeping do coletor (`save_graph`,
      `graph_document`, hooks do console)
    - quando `suppress_entry_points` está ativo, chamadas aos pontos de
      entrada (`initialize_session`, `run_script`, `finalize_session`):
      estas são descartadas sem execução, evitando auto-instrumentação
      recursiva

Decisões arquiteturais:
    - Aliases (`import prov_capture as pc`, `from prov_capture import
      save_graph as sg`) são registrados ao classificar o import
"""

from __future__ import annotations

import ast
from enum import Enum
from typing import FrozenSet, Optional, Set


PACKAGE = "prov_capture"

BOOKKEEPING_OPERATIONS: FrozenSet[str] = frozenset(
    {
        "save_graph",
        "graph_document",
        "console_notifier",
        "ConsoleNotifier",
        "notify",
        "attach_ipython",
        "detach_ipython",
    }
)
ENTRY_POINTS: FrozenSet[str] = frozenset({"initialize_session", "run_script", "finalize_session"})


class Verdict(str, Enum):
    INSTRUMENT = "instrument"
    IGNORE = "ignore"   # executa sem criar nós
    SKIP = "skip"       # não executa (ponto de entrada suprimido)


class IgnoreSet:
    def __init__(self, *, suppress_entry_points: bool = False):
        self.suppress_entry_points = suppress_entry_points
        self._module_aliases: Set[str] = {PACKAGE}
        # nomes locais aprendidos via `from prov_capture import ...`
        self._bookkeeping: Set[str] = set()
        self._entry_points: Set[str] = set()

    # -----------------------------
    # Aliases
    # -----------------------------
    def _learn_import(self, node: ast.stmt) -> bool:
        if isinstance(node, ast.Import):
            hits = [a for a in node.names if a.name == PACKAGE or a.name.startswith(PACKAGE + ".")]
            for alias in hits:
                self._module_aliases.add(alias.asname or alias.name.split(".")[0])
            return bool(hits) and len(hits) == len(node.names)
        if isinstance(node, ast.ImportFrom):
            module = node.module or ""
            if module != PACKAGE and not module.startswith(PACKAGE + "."):
                return False
            for alias in node.names:
                local = alias.asname or alias.name
                if alias.name in ENTRY_POINTS:
                    self._entry_points.add(local)
                elif alias.name in BOOKKEEPING_OPERATIONS:
                    self._bookkeeping.add(local)
                else:
                    self._module_aliases.add(local)
            return True
        return False

    # -----------------------------
    # Classificação
    # -----------------------------
    def _operation_of(self, call: ast.Call) -> Optional[str]:
        func = call.func
        if isinstance(func, ast.Name):
            return func.id
        if isinstance(func, ast.Attribute):
            root = func.value
            while isinstance(root, (ast.Attribute, ast.Call)):
                root = root.value if isinstance(root, ast.Attribute) else root.func
            if isinstance(root, ast.Name) and root.id in self._module_aliases:
                return func.attr
        return None

    def _call_of(self, node: ast.stmt) -> Optional[ast.Call]:
        if isinstance(node, ast.Expr) and isinstance(node.value, ast.Call):
            return node.value
        if isinstance(node, ast.Assign) and isinstance(node.value, ast.Call):
            return node.value
        return None

    def classify(self, node: ast.stmt) -> Verdict:
        if self._learn_import(node):
            return Verdict.IGNORE

        call = self._call_of(node)
        if call is None:
            return Verdict.INSTRUMENT

        operation = self._operation_of(call)
        if operation is None:
            return Verdict.INSTRUMENT

        if isinstance(call.func, ast.Attribute):
            entry, bookkeeping = operation in ENTRY_POINTS, operation in BOOKKEEPING_OPERATIONS
        else:
            entry, bookkeeping = operation in self._entry_points, operation in self._bookkeeping
        if entry:
            return Verdict.SKIP if self.suppress_entry_points else Verdict.IGNORE
        if bookkeeping:
            if isinstance(node, ast.Assign):
                # `n = pc.console_notifier()`: métodos de `n` também são do coletor
                self._module_aliases.update(t.id for t in node.targets if isinstance(t, ast.Name))
            return Verdict.IGNORE
        return Verdict.INSTRUMENT

    def is_ignored(self, node: ast.stmt) -> bool:
        return self.classify(node) != Verdict.INSTRUMENT

# src/prov_capture/core/builder/analysis.py
"""
Análise estática de nomes lidos e escritos por um statement.

Regras:
    - Leituras são registradas na ordem aproximada de avaliação do Python
      (lado direito antes dos alvos de atribuição)
    - Um nome só conta como leitura se for lido antes de qualquer escrita
      no mesmo statement
    - Corpos de funções e lambdas não são avaliados na definição: apenas
      decoradores, defaults e anotações contam
    - Variáveis de compreensões são locais à compreensão
    - Alvos `x[i] = ...`, `x.attr = ...` e `x += ...` contam como escrita
      de `x` (e `x += ...` também como leitura)

Limites explícitos:
    - Mutação via chamada de método (`x.append(1)`) não é detectada aqui
"""

from __future__ import annotations

import ast
from dataclasses import dataclass, field
from typing import List, Optional, Set


@dataclass
class NameUsage:
    reads: List[str] = field(default_factory=list)
    writes: List[str] = field(default_factory=list)
    deletes: List[str] = field(default_factory=list)

    def add_read(self, name: str) -> None:
        if name not in self.writes and name not in self.reads:
            self.reads.append(name)

    def add_write(self, name: str) -> None:
        if name not in self.writes:
            self.writes.append(name)


def _base_name(node: ast.AST) -> Optional[str]:
    while isinstance(node, (ast.Subscript, ast.Attribute, ast.Starred)):
        node = node.value
    if isinstance(node, ast.Name):
        return node.id
    return None


class _UsageVisitor(ast.NodeVisitor):
    def __init__(self) -> None:
        self.usage = NameUsage()
        self._hidden: List[Set[str]] = []

    def _is_hidden(self, name: str) -> bool:
        return any(name in hidden for hidden in self._hidden)

    # -----------------------------
    # Nomes e alvos
    # -----------------------------
    def visit_Name(self, node: ast.Name) -> None:
        if self._is_hidden(node.id):
            return
        if isinstance(node.ctx, ast.Load):
            self.usage.add_read(node.id)
        elif isinstance(node.ctx, ast.Store):
            self.usage.add_write(node.id)
        elif isinstance(node.ctx, ast.Del):
            self.usage.deletes.append(node.id)

    def _visit_target(self, target: ast.AST) -> None:
        if isinstance(target, ast.Name):
            self.visit_Name(target)
        elif isinstance(target, (ast.Tuple, ast.List)):
            for elt in target.elts:
                self._visit_target(elt)
        elif isinstance(target, ast.Starred):
            self._visit_target(target.value)
        elif isinstance(target, (ast.Subscript, ast.Attribute)):
            # a base e os índices são lidos antes da escrita
            self.visit(target.value)
            if isinstance(target, ast.Subscript):
                self.visit(target.slice)
            base = _base_name(target)
            if base is not None and not self._is_hidden(base):
                self.usage.add_write(base)

    def visit_Assign(self, node: ast.Assign) -> None:
        self.visit(node.value)
        for target in node.targets:
            self._visit_target(target)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        if node.value is not None:
            self.visit(node.value)
            self._visit_target(node.target)

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        self.visit(node.value)
        base = _base_name(node.target)
        if base is not None and not self._is_hidden(base):
            self.usage.add_read(base)
        self._visit_target(node.target)

    def visit_NamedExpr(self, node: ast.NamedExpr) -> None:
        self.visit(node.value)
        self._visit_target(node.target)

    def visit_Delete(self, node: ast.Delete) -> None:
        for target in node.targets:
            if isinstance(target, ast.Name):
                self.visit_Name(target)
            else:
                self._visit_target(target)

    # -----------------------------
    # Definições (corpo não é avaliado)
    # -----------------------------
    def _visit_arguments(self, args: ast.arguments) -> None:
        for default in list(args.defaults) + [d for d in args.kw_defaults if d is not None]:
            self.visit(default)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        for decorator in node.decorator_list:
            self.visit(decorator)
        self._visit_arguments(node.args)
        self.usage.add_write(node.name)

    visit_AsyncFunctionDef = visit_FunctionDef  # type: ignore[assignment]

    def visit_Lambda(self, node: ast.Lambda) -> None:
        self._visit_arguments(node.args)

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        for decorator in node.decorator_list:
            self.visit(decorator)
        for base in node.bases:
            self.visit(base)
        for kw in node.keywords:
            self.visit(kw.value)
        self.usage.add_write(node.name)

    # -----------------------------
    # Imports
    # -----------------------------
    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            self.usage.add_write(alias.asname or alias.name.split(".")[0])

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        for alias in node.names:
            if alias.name != "*":
                self.usage.add_write(alias.asname or alias.name)

    # -----------------------------
    # Compreensões
    # -----------------------------
    def _visit_comprehension(self, node: ast.AST, elements: List[ast.AST]) -> None:
        generators = node.generators  # type: ignore[attr-defined]
        # o primeiro iterável é avaliado no escopo externo
        self.visit(generators[0].iter)
        local: Set[str] = set()
        for gen in generators:
            for n in ast.walk(gen.target):
                if isinstance(n, ast.Name):
                    local.add(n.id)
        self._hidden.append(local)
        try:
            for i, gen in enumerate(generators):
                if i > 0:
                    self.visit(gen.iter)
                for cond in gen.ifs:
                    self.visit(cond)
            for element in elements:
                self.visit(element)
        finally:
            self._hidden.pop()

    def visit_ListComp(self, node: ast.ListComp) -> None:
        self._visit_comprehension(node, [node.elt])

    visit_SetComp = visit_ListComp  # type: ignore[assignment]
    visit_GeneratorExp = visit_ListComp  # type: ignore[assignment]

    def visit_DictComp(self, node: ast.DictComp) -> None:
        self._visit_comprehension(node, [node.key, node.value])

    # -----------------------------
    # Blocos compostos
    # -----------------------------
    def visit_For(self, node: ast.For) -> None:
        self.visit(node.iter)
        self._visit_target(node.target)
        for stmt in node.body + node.orelse:
            self.visit(stmt)

    visit_AsyncFor = visit_For  # type: ignore[assignment]

    def visit_With(self, node: ast.With) -> None:
        for item in node.items:
            self.visit(item.context_expr)
            if item.optional_vars is not None:
                self._visit_target(item.optional_vars)
        for stmt in node.body:
            self.visit(stmt)

    visit_AsyncWith = visit_With  # type: ignore[assignment]

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.type is not None:
            self.visit(node.type)
        if node.name:
            self.usage.add_write(node.name)
        for stmt in node.body:
            self.visit(stmt)

    def visit_Global(self, node: ast.Global) -> None:
        return

    visit_Nonlocal = visit_Global  # type: ignore[assignment]


def analyze(node: ast.AST) -> NameUsage:
    """Nomes lidos antes de escritos, escritos e removidos por `node`."""
    visitor = _UsageVisitor()
    visitor.visit(node)
    return visitor.usage


def reads_of(node: Optional[ast.AST]) -> List[str]:
    """Atalho: apenas os nomes lidos por uma expressão."""
    if node is None:
        return []
    return analyze(node).reads

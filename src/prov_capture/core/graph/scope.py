# src/prov_capture/core/graph/scope.py
"""
Cadeia de escopos (ScopeChain).

Cada escopo mapeia nome → (nó Data mais recente, identidade do valor
registrado). A busca é sempre da folha para a raiz: o escopo mais interno
vence.

Invariantes:
    - O escopo raiz (script principal) nunca é removido por `pop`
    - `bind` afeta apenas o escopo corrente
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional


@dataclass(frozen=True)
class Binding:
    node_id: int
    identity: int


@dataclass
class Scope:
    scope_id: int
    name: str
    bindings: Dict[str, Binding] = field(default_factory=dict)


class ScopeChain:
    def __init__(self) -> None:
        self._scopes: List[Scope] = []

    def __len__(self) -> int:
        return len(self._scopes)

    def __iter__(self) -> Iterator[Scope]:
        """Itera da folha para a raiz."""
        return reversed(self._scopes)

    @property
    def current(self) -> Scope:
        if not self._scopes:
            raise IndexError("ScopeChain vazia")
        return self._scopes[-1]

    def push(self, scope_id: int, name: str) -> Scope:
        scope = Scope(scope_id=scope_id, name=name)
        self._scopes.append(scope)
        return scope

    def pop(self) -> Scope:
        if len(self._scopes) <= 1:
            raise IndexError("O escopo raiz não pode ser removido")
        return self._scopes.pop()

    def lookup(self, name: str) -> Optional[Binding]:
        for scope in self:
            binding = scope.bindings.get(name)
            if binding is not None:
                return binding
        return None

    def bind(self, name: str, node_id: int, identity: int) -> None:
        self.current.bindings[name] = Binding(node_id=node_id, identity=identity)

    def unbind(self, name: str) -> bool:
        return self.current.bindings.pop(name, None) is not None

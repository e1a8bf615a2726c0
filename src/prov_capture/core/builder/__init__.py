"""
Command Parser & Graph Builder do prov_capture.

    - parser    → statements com SourceSpan a partir do código-fonte
    - analysis  → nomes lidos/escritos por statement
    - ignore    → IgnoreSet (operações do próprio coletor)
    - builder   → GraphBuilder (execução instrumentada, loops, inclusão)
    - functions → anotação do corpo de funções
    - console   → ConsoleNotifier (modo sem execução)
"""

from .analysis import NameUsage, analyze, reads_of
from .builder import Flow, GraphBuilder, ScriptState, inclusion_call, loop_drivable, visible
from .console import ConsoleNotifier
from .ignore import IgnoreSet, Verdict
from .parser import Statement, parse_script, parse_source

__all__ = [
    "NameUsage",
    "analyze",
    "reads_of",
    "Flow",
    "GraphBuilder",
    "ScriptState",
    "inclusion_call",
    "loop_drivable",
    "visible",
    "ConsoleNotifier",
    "IgnoreSet",
    "Verdict",
    "Statement",
    "parse_script",
    "parse_source",
]

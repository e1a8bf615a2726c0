# src/prov_capture/core/builder/parser.py
"""
Parser de scripts em statements com posição no código-fonte.

Cada statement de topo vira um `Statement` com o nó AST, o `SourceSpan`
(linhas e colunas 1-based) e um rótulo curto (primeira linha do trecho,
até 60 caracteres) usado como nome do nó Procedure.

O encoding do arquivo é detectado pelo cookie PEP 263 (`tokenize.open`,
via `ScriptRegistry.read_source`).
"""

from __future__ import annotations

import ast
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

from prov_capture.core.exceptions import SessionEnvironmentError
from prov_capture.core.graph import SourceSpan
from prov_capture.core.session.scripts import read_source


LABEL_LIMIT = 60


@dataclass(frozen=True)
class Statement:
    node: ast.stmt
    span: SourceSpan
    label: str
    filename: str = "<string>"


def span_of(node: ast.AST, script_num: int) -> SourceSpan:
    start_line = getattr(node, "lineno", 0) or 0
    end_line = getattr(node, "end_lineno", None) or start_line
    start_col = (getattr(node, "col_offset", 0) or 0) + 1
    end_col = getattr(node, "end_col_offset", None)
    return SourceSpan(
        script_num=script_num,
        start_line=start_line,
        start_col=start_col,
        end_line=end_line,
        end_col=end_col if end_col is not None else start_col,
    )


def label_of(source: Optional[str], node: ast.AST) -> str:
    segment = ast.get_source_segment(source, node) if source else None
    if not segment:
        segment = ast.unparse(node)
    first = segment.strip().splitlines()[0] if segment.strip() else type(node).__name__
    if len(first) > LABEL_LIMIT:
        first = first[: LABEL_LIMIT - 3] + "..."
    return first


def statements_from(
    nodes: Sequence[ast.stmt],
    *,
    source: Optional[str],
    script_num: int,
    filename: str,
) -> List[Statement]:
    return [
        Statement(node=node, span=span_of(node, script_num), label=label_of(source, node), filename=filename)
        for node in nodes
    ]


def parse_source(source: str, *, script_num: int = 0, filename: str = "<string>") -> List[Statement]:
    """
    Converte código-fonte em uma lista ordenada de statements.

    Raises:
        SyntaxError: O código não é Python válido (propaga como erro do script).
    """
    tree = ast.parse(source, filename=filename, mode="exec")
    return statements_from(tree.body, source=source, script_num=script_num, filename=filename)


def parse_script(path: Union[str, Path], *, script_num: int = 0) -> List[Statement]:
    """
    Lê (com detecção de encoding) e faz o parse de um script.

    Raises:
        SessionEnvironmentError: Script ausente ou encoding indeterminável.
        SyntaxError: O script não é Python válido.
    """
    path = Path(path)
    if not path.is_file():
        raise SessionEnvironmentError(message="Script não encontrado", details={"path": str(path)})
    source = read_source(path)
    return parse_source(source, script_num=script_num, filename=str(path.resolve()))

# src/prov_capture/core/iotrace/files.py
"""
Tracing de arquivos abertos via `open()` (v1).

Enquanto uma sessão está ativa, `builtins.open` é substituído por um
wrapper que cria um nó File (placeholder) a cada abertura de arquivo por
caminho e devolve um proxy que observa leituras, escritas e fechamento.

Ciclo de vida de um nó File:
    - open: nó criado com caminho e modo declarado; direção derivada do modo
      (`r` leitura, `w`/`x` escrita, `a` append, modos com `+` indefinidos)
    - primeiro acesso: direção fixada se ainda indefinida
    - close (ou finalize para arquivos ainda abertos): digest do estado
      final do arquivo + aresta para o Procedure ativo
      (leitura → data-in, escrita/append → data-out)

Decisões arquiteturais:
    - Escritas internas (documento, snapshots, tabelas de debug) ocorrem
      com o tracing suspenso (`suspended()`)
    - Descritores inteiros e aberturas durante regiões silenciosas não são
      rastreados
    - Arquivos ainda abertos no finalize são apenas descarregados (flush),
      não fechados

Limites explícitos:
    - Não intercepta `io.open`, `os.open` nem `pathlib.Path.open`
    - Não rastreia conexões de rede
"""

from __future__ import annotations

import builtins
import io
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, Optional

from prov_capture.core.graph import EdgeKind, FileDirection, FileNode
from prov_capture.core.snapshot import digest_file

if TYPE_CHECKING:  # pragma: no cover
    from prov_capture.core.session.context import SessionContext


def direction_from_mode(mode: str) -> FileDirection:
    if "+" in mode:
        return FileDirection.UNKNOWN
    if "a" in mode:
        return FileDirection.APPEND
    if "w" in mode or "x" in mode:
        return FileDirection.WRITE
    return FileDirection.READ


def _fallback_direction(mode: str) -> FileDirection:
    # modo "+" sem nenhum acesso observado
    if "r" in mode:
        return FileDirection.READ
    if "a" in mode:
        return FileDirection.APPEND
    return FileDirection.WRITE


class _TracedFile:
    """Proxy sobre o objeto de arquivo real; delega tudo que não observa."""

    def __init__(self, handle: Any, tracer: "FileTracer", node_id: int):
        self._handle = handle
        self._tracer = tracer
        self._node_id = node_id

    def __getattr__(self, name: str) -> Any:
        return getattr(self._handle, name)

    def __repr__(self) -> str:
        return f"<traced {self._handle!r}>"

    # leitura
    def read(self, *args: Any) -> Any:
        self._tracer.touch(self._node_id, FileDirection.READ)
        return self._handle.read(*args)

    def readline(self, *args: Any) -> Any:
        self._tracer.touch(self._node_id, FileDirection.READ)
        return self._handle.readline(*args)

    def readlines(self, *args: Any) -> Any:
        self._tracer.touch(self._node_id, FileDirection.READ)
        return self._handle.readlines(*args)

    def __iter__(self) -> "_TracedFile":
        self._tracer.touch(self._node_id, FileDirection.READ)
        return self

    def __next__(self) -> Any:
        return next(self._handle)

    # escrita
    def write(self, data: Any) -> Any:
        self._tracer.touch(self._node_id, FileDirection.WRITE)
        return self._handle.write(data)

    def writelines(self, lines: Any) -> None:
        self._tracer.touch(self._node_id, FileDirection.WRITE)
        self._handle.writelines(lines)

    # fechamento
    @property
    def closed(self) -> bool:
        return self._handle.closed

    def close(self) -> None:
        already = self._handle.closed
        self._handle.close()
        if not already:
            self._tracer.finalize_node(self._node_id)

    def __enter__(self) -> "_TracedFile":
        self._handle.__enter__()
        return self

    def __exit__(self, *exc: Any) -> bool:
        self.close()
        return False


class TracedTextFile(_TracedFile):
    pass


class TracedBinaryFile(_TracedFile):
    pass


io.TextIOBase.register(TracedTextFile)
io.BufferedIOBase.register(TracedBinaryFile)


class FileTracer:
    def __init__(self, ctx: "SessionContext"):
        self.ctx = ctx
        self._original: Optional[Callable[..., Any]] = None
        self._suspended = 0
        self._open: Dict[int, _TracedFile] = {}

    # -----------------------------
    # Instalação
    # -----------------------------
    @property
    def installed(self) -> bool:
        return self._original is not None

    def install(self) -> None:
        if self.installed:
            return
        self._original = builtins.open
        builtins.open = self._traced_open

    def uninstall(self) -> None:
        if not self.installed:
            return
        if builtins.open == self._traced_open:
            builtins.open = self._original
        self._original = None

    @contextmanager
    def suspended(self) -> Iterator[None]:
        self._suspended += 1
        try:
            yield
        finally:
            self._suspended -= 1

    def open_nodes(self) -> Dict[int, _TracedFile]:
        return dict(self._open)

    # -----------------------------
    # Wrapper
    # -----------------------------
    def _should_trace(self, file: Any) -> bool:
        if self._suspended or not self.ctx.active or self.ctx.silent:
            return False
        return isinstance(file, (str, bytes, os.PathLike))

    def _traced_open(self, file: Any, mode: str = "r", *args: Any, **kwargs: Any) -> Any:
        opener = self._original or builtins.open
        handle = opener(file, mode, *args, **kwargs)
        if not self._should_trace(file):
            return handle

        path = os.path.abspath(os.fsdecode(file))
        node = self.ctx.graph.add_file(
            name=os.path.basename(path),
            path=path,
            direction=direction_from_mode(mode),
            mode=mode,
        )
        proxy_cls = TracedBinaryFile if "b" in mode else TracedTextFile
        proxy = proxy_cls(handle, self, node.id)
        self._open[node.id] = proxy
        self.ctx.log(scope="iotrace", level="debug", message="file opened", node_id=node.id, path=path, mode=mode)
        return proxy

    # -----------------------------
    # Ciclo de vida do nó File
    # -----------------------------
    def touch(self, node_id: int, direction: FileDirection) -> None:
        node = self.ctx.graph.node(node_id)
        if isinstance(node, FileNode) and node.direction == FileDirection.UNKNOWN:
            node.direction = direction

    def finalize_node(self, node_id: int) -> None:
        """Digest do estado final + aresta para o Procedure ativo."""
        self._open.pop(node_id, None)
        node = self.ctx.graph.node(node_id)
        if not isinstance(node, FileNode) or node.closed_at is not None:
            return
        if node.direction == FileDirection.UNKNOWN:
            node.direction = _fallback_direction(node.mode or "r")

        try:
            with self.suspended():
                node.digest = digest_file(node.path, self.ctx.hash_algorithm)
        except OSError as e:
            self.ctx.report_capture_error(scope="iotrace", what="file digest", exc=e, target=node.path)
        node.closed_at = datetime.now(timezone.utc).isoformat()

        target = self.ctx.current_procedure_id()
        if target is None:
            return
        if node.direction == FileDirection.READ:
            self.ctx.graph.add_edge(node.id, target, EdgeKind.DATA_IN)
        else:
            self.ctx.graph.add_edge(target, node.id, EdgeKind.DATA_OUT)

    def flush_open(self) -> int:
        """Finaliza nós de arquivos ainda abertos (flush sem fechar). Retorna quantos."""
        count = 0
        for node_id, proxy in list(self._open.items()):
            handle = proxy._handle
            if not handle.closed:
                try:
                    with self.suspended():
                        handle.flush()
                except (OSError, ValueError) as e:
                    self.ctx.report_capture_error(scope="iotrace", what="file flush", exc=e, target=getattr(handle, "name", None))
            self.finalize_node(node_id)
            count += 1
        return count

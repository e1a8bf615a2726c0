# src/prov_capture/core/session/manager.py
"""
Session Manager do prov_capture.

Este módulo define o `SessionManager`, o dono do ciclo de vida de uma
sessão de captura:

    initialize → (execução | notificações do console) → save* → finalize

Responsabilidades:
    - Validar a configuração antes de qualquer execução (ConfigurationError)
    - Resolver, limpar (flush) e criar o diretório da sessão
    - Registrar o script principal (convertendo Markdown quando necessário)
    - Instalar e remover os tracers de I/O
    - Conduzir a execução direta (script) ou delegada (callable)
    - Persistir o documento a cada save e no finalize

Invariantes:
    - No máximo uma sessão ativa por manager
    - O finalize nunca levanta: falhas viram warnings no manifest
    - Erros do script observado propagam inalterados, depois do cleanup
      (frames fechados) e da persistência do grafo

Limites explícitos:
    - Não implementa o visualizador: apenas invoca o callable `viewer`
      recebido com o caminho do documento
"""

from __future__ import annotations

import builtins
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Union
from uuid import uuid4

from prov_capture.core.builder import ConsoleNotifier, GraphBuilder, ScriptState, parse_script
from prov_capture.core.config import load_settings
from prov_capture.core.errors import graph_consistency_error, save_error
from prov_capture.core.exceptions import ConfigurationError, SessionEnvironmentError
from prov_capture.core.graph import unmatched_starts
from prov_capture.core.iotrace import DisplayTracer, FileTracer
from prov_capture.core.serialize import build_document, save_document, write_debug_tables
from prov_capture.markdown import is_markdown, markdown_to_script

from .context import SessionContext
from .paths import SessionPaths, create_session_dirs, flush_session_dir, resolve_base_dir, session_dir_name
from .scripts import read_source


CONSOLE_BLOCK = "Console"

PathLike = Union[str, Path]
Viewer = Callable[[Path], Any]


class SessionManager:
    """Mantém a sessão ativa e expõe as operações de ciclo de vida."""

    def __init__(self) -> None:
        self._ctx: Optional[SessionContext] = None
        self._builder: Optional[GraphBuilder] = None
        self._notifier: Optional[ConsoleNotifier] = None
        self._viewer: Optional[Viewer] = None

    @property
    def ctx(self) -> Optional[SessionContext]:
        return self._ctx

    @property
    def builder(self) -> Optional[GraphBuilder]:
        return self._builder

    @property
    def active(self) -> bool:
        return self._ctx is not None and self._ctx.active

    # ------------------------------------------------------------------
    # initialize
    # ------------------------------------------------------------------
    def initialize(
        self,
        script_path: Optional[PathLike] = None,
        prov_dir: Optional[PathLike] = None,
        *,
        overwrite: Optional[bool] = None,
        snapshot_size: Optional[int] = None,
        hash_algorithm: Optional[str] = None,
        annotate_inside_functions: Optional[bool] = None,
        first_loop: Optional[int] = None,
        max_loops: Optional[int] = None,
        save_debug: Optional[bool] = None,
        display: Optional[bool] = None,
        defaults_path: Optional[str] = None,
        local_path: Optional[str] = None,
        console: Optional[bool] = None,
        console_namespace: Optional[Dict[str, Any]] = None,
        suppress_entry_points: bool = False,
        viewer: Optional[Viewer] = None,
    ) -> SessionContext:
        """
        Inicializa uma nova sessão de captura.

        Parâmetros não informados (None) usam a configuração resolvida
        (defaults do pacote + arquivos opcionais).

        Raises:
            ConfigurationError: Configuração inválida ou sessão já ativa.
            SessionEnvironmentError: Script ausente ou diretório não criável.
        """
        if self.active:
            raise ConfigurationError(
                message="Já existe uma sessão de captura ativa",
                details={"session_id": self._ctx.session_id},
                hint="Chame finalize_session() antes de iniciar outra sessão.",
            )

        settings = load_settings(
            defaults_path=defaults_path,
            local_path=local_path,
            overwrite=overwrite,
            snapshot_size=snapshot_size,
            hash_algorithm=hash_algorithm,
            annotate_inside_functions=annotate_inside_functions,
            first_loop=first_loop,
            max_loops=max_loops,
            save_debug=save_debug,
            display=display,
        )

        source: Optional[Path] = None
        if script_path is not None:
            source = Path(script_path).expanduser().resolve()
            if not source.is_file():
                raise SessionEnvironmentError(message="Script não encontrado", details={"path": str(source)})
        if console is None:
            console = source is None

        root = resolve_base_dir(prov_dir) / session_dir_name(source, overwrite=settings.overwrite)
        flushed = flush_session_dir(SessionPaths(root=root))
        paths = create_session_dirs(root)

        main_path = source
        if source is not None and is_markdown(source):
            main_path = markdown_to_script(source, paths.scripts / f"{source.stem}.py")

        ctx = SessionContext(
            session_id=uuid4().hex,
            created_at=datetime.now(timezone.utc),
            settings=settings,
            paths=paths,
            script_path=str(main_path) if main_path is not None else None,
            console_mode=console,
            suppress_entry_points=suppress_entry_points,
        )
        if not flushed:
            ctx.add_warning(
                scope="session",
                message=f"Diretório da sessão é o diretório de trabalho; arquivos anteriores preservados: {root}",
            )

        if main_path is not None:
            ctx.scripts.register(main_path, source_path=source if main_path != source else None)
        elif console:
            ctx.scripts.register_console()

        ctx.files = FileTracer(ctx)
        ctx.files.install()
        ctx.display = DisplayTracer(ctx)

        builder = GraphBuilder(ctx)
        notifier: Optional[ConsoleNotifier] = None
        if console:
            frame = builder.open_block(CONSOLE_BLOCK, None)
            ctx.console_start_id = frame.node_id
            namespace = console_namespace
            if namespace is None:
                namespace = vars(sys.modules["__main__"])
            notifier = ConsoleNotifier(builder, namespace)
            notifier.attach_ipython()

        self._ctx = ctx
        self._builder = builder
        self._notifier = notifier
        self._viewer = viewer

        ctx.log(
            scope="session",
            level="info",
            message="session initialized",
            root=str(paths.root),
            script=ctx.script_path,
            console=console,
            config=settings.to_dict(),
        )
        return ctx

    # ------------------------------------------------------------------
    # save / finalize
    # ------------------------------------------------------------------
    def save(self, save_debug: bool = False) -> Optional[Path]:
        """
        Persiste o grafo corrente.

        Em modo console, o segmento "Console" corrente é fechado e um novo
        é aberto antes da escrita.
        """
        ctx = self._ctx
        if ctx is None or not ctx.active:
            return None
        if ctx.console_mode and self._builder is not None:
            self._rotate_console()
        return self._write(save_debug)

    def finalize(self, save_debug: bool = False) -> Optional[Path]:
        """
        Encerra a sessão: fecha frames e arquivos abertos, captura a figura
        final, remove os tracers, grava o documento e marca a sessão como
        inativa. Nunca levanta.
        """
        ctx = self._ctx
        if ctx is None or not ctx.active:
            return None

        if self._builder is not None:
            self._builder.abort()
        if ctx.files is not None:
            ctx.files.flush_open()
        self._final_display(ctx)

        if ctx.files is not None:
            ctx.files.uninstall()
        if self._notifier is not None:
            self._notifier.detach_ipython()

        unmatched = unmatched_starts(ctx.graph)
        if unmatched:
            payload = graph_consistency_error(unmatched=unmatched)
            ctx.log(scope="session", level="error", message=payload.message, error=payload.to_dict())
            ctx.add_warning(scope="session", message=f"{payload.message}: {len(unmatched)} nó(s) start sem finish")

        ctx.active = False
        ctx.log(scope="session", level="info", message="session finalized", nodes=len(ctx.graph.nodes), edges=len(ctx.graph.edges))
        path = self._write(save_debug)

        if ctx.settings.display and self._viewer is not None and path is not None:
            try:
                self._viewer(path)
            except Exception as e:
                ctx.log(scope="session", level="warning", message="viewer failed", exc_type=e.__class__.__name__, exc_message=str(e))

        self._builder = None
        self._notifier = None
        return path

    # ------------------------------------------------------------------
    # run
    # ------------------------------------------------------------------
    def run(
        self,
        script_path: Optional[PathLike] = None,
        func: Optional[Callable[[], Any]] = None,
        prov_dir: Optional[PathLike] = None,
        *,
        viewer: Optional[Viewer] = None,
        **options: Any,
    ) -> Any:
        """
        Executa um script (ou um callable sem argumentos) sob captura.

        A sessão é inicializada, a execução é registrada e o finalize é
        sempre chamado. Erros do script propagam inalterados depois que o
        grafo foi balanceado e persistido.

        Returns:
            Any: Retorno do callable (None para scripts).

        Raises:
            ConfigurationError: Nenhum ou ambos entre script_path e func.
        """
        if (script_path is None) == (func is None):
            raise ConfigurationError(
                message="Informe exatamente um entre script_path e func",
                details={"script_path": None if script_path is None else str(script_path), "func": repr(func)},
            )
        if func is not None and not callable(func):
            raise ConfigurationError(message="func deve ser um callable sem argumentos", details={"func": repr(func)})

        self.initialize(
            script_path=script_path,
            prov_dir=prov_dir,
            console=False,
            suppress_entry_points=True,
            viewer=viewer,
            **options,
        )
        builder = self._builder
        try:
            if func is not None:
                return builder.run_callable(func)
            self._run_main(builder)
            return None
        except BaseException as e:
            builder.abort(e)
            raise
        finally:
            self.finalize()

    def _run_main(self, builder: GraphBuilder) -> None:
        ctx = builder.ctx
        entry = ctx.scripts.get(0)
        path = Path(entry.path)
        statements = parse_script(path, script_num=entry.num)
        namespace: Dict[str, Any] = {
            "__name__": "__main__",
            "__file__": str(path),
            "__builtins__": builtins,
        }
        state = ScriptState(ns=namespace, filename=str(path), script_num=entry.num, source=read_source(path))

        script_dir = str(Path(entry.source_path or entry.path).parent)
        sys.path.insert(0, script_dir)
        try:
            builder.run_script(statements, state, name=entry.name)
        finally:
            if script_dir in sys.path:
                sys.path.remove(script_dir)

    # ------------------------------------------------------------------
    # Documento / console
    # ------------------------------------------------------------------
    def graph_document(self) -> str:
        """
        Documento corrente como string JSON.

        Raises:
            SessionEnvironmentError: Nenhuma sessão foi inicializada.
        """
        if self._ctx is None:
            raise SessionEnvironmentError(
                message="Nenhuma sessão de captura inicializada",
                hint="Chame initialize_session() ou run_script() primeiro.",
            )
        return build_document(self._ctx).to_json()

    def console_notifier(self) -> Optional[ConsoleNotifier]:
        return self._notifier

    # ------------------------------------------------------------------
    # Internos
    # ------------------------------------------------------------------
    @contextmanager
    def _untraced(self, ctx: SessionContext) -> Iterator[None]:
        if ctx.files is None:
            yield
            return
        with ctx.files.suspended():
            yield

    def _rotate_console(self) -> None:
        ctx, builder = self._ctx, self._builder
        top = ctx.stack.top
        if top is not None and top.node_id == ctx.console_start_id:
            builder.close_block(top)
        frame = builder.open_block(CONSOLE_BLOCK, None)
        ctx.console_start_id = frame.node_id

    def _final_display(self, ctx: SessionContext) -> None:
        activity = ctx.graph.last_activity
        if ctx.display is None or activity is None:
            return
        try:
            ctx.display.capture(activity, final=True)
        except Exception as e:
            ctx.report_capture_error(scope="display", what="final display capture", exc=e)

    def _write(self, save_debug: bool) -> Optional[Path]:
        ctx = self._ctx
        document = build_document(ctx)
        try:
            with self._untraced(ctx):
                path = save_document(document, ctx.paths.document)
                if save_debug or ctx.settings.save_debug:
                    write_debug_tables(document, ctx.paths.debug, ctx.events)
        except OSError as e:
            payload = save_error(exc=e, path=str(ctx.paths.document))
            ctx.log(scope="session", level="error", message=payload.message, error=payload.to_dict())
            ctx.add_warning(scope="session", message=f"{payload.message}: {e}")
            return None
        ctx.log(scope="session", level="info", message="graph saved", path=str(path))
        return path

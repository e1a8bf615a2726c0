# src/prov_capture/api.py
"""
API pública do prov_capture.

Funções de módulo que operam sobre um único `SessionManager` do processo:

    - initialize_session → inicia uma sessão (script ou console)
    - save_graph         → persiste o grafo corrente (rotaciona o segmento
                           "Console" em modo console)
    - finalize_session   → encerra a sessão e grava o documento final
    - run_script         → executa um script ou callable sob captura
    - graph_document     → documento corrente como string JSON

Chamadas a estas funções dentro de um script executado por `run_script`
são reconhecidas pelo Builder e não são reexecutadas.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional

from prov_capture.core.builder import ConsoleNotifier
from prov_capture.core.session.context import SessionContext
from prov_capture.core.session.manager import PathLike, SessionManager, Viewer


_manager = SessionManager()


def session_manager() -> SessionManager:
    return _manager


def initialize_session(
    script_path: Optional[PathLike] = None,
    prov_dir: Optional[PathLike] = None,
    overwrite: Optional[bool] = None,
    snapshot_size: Optional[int] = None,
    hash_algorithm: Optional[str] = None,
    **options: Any,
) -> SessionContext:
    """
    Inicializa uma sessão de captura.

    Sem `script_path`, a sessão fica em modo console: os statements são
    registrados via `ConsoleNotifier` (acoplado automaticamente ao IPython
    quando houver shell ativo).
    """
    return _manager.initialize(
        script_path=script_path,
        prov_dir=prov_dir,
        overwrite=overwrite,
        snapshot_size=snapshot_size,
        hash_algorithm=hash_algorithm,
        **options,
    )


def save_graph(save_debug: bool = False) -> Optional[Path]:
    return _manager.save(save_debug)


def finalize_session(save_debug: bool = False) -> Optional[Path]:
    return _manager.finalize(save_debug)


def run_script(
    script_path: Optional[PathLike] = None,
    func: Optional[Callable[[], Any]] = None,
    prov_dir: Optional[PathLike] = None,
    overwrite: Optional[bool] = None,
    annotate_inside_functions: Optional[bool] = None,
    first_loop: Optional[int] = None,
    max_loops: Optional[int] = None,
    snapshot_size: Optional[int] = None,
    save_debug: Optional[bool] = None,
    display: Optional[bool] = None,
    hash_algorithm: Optional[str] = None,
    viewer: Optional[Viewer] = None,
    **options: Any,
) -> Any:
    """Executa `script_path` ou `func` (exatamente um) e grava o grafo."""
    return _manager.run(
        script_path=script_path,
        func=func,
        prov_dir=prov_dir,
        viewer=viewer,
        overwrite=overwrite,
        annotate_inside_functions=annotate_inside_functions,
        first_loop=first_loop,
        max_loops=max_loops,
        snapshot_size=snapshot_size,
        save_debug=save_debug,
        display=display,
        hash_algorithm=hash_algorithm,
        **options,
    )


def graph_document() -> str:
    return _manager.graph_document()


def console_notifier() -> Optional[ConsoleNotifier]:
    """Notificador da sessão de console ativa (None fora do modo console)."""
    return _manager.console_notifier()

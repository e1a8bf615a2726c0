"""
Session Manager do prov_capture.

    - paths   → layout e ciclo de vida do diretório da sessão
    - scripts → registro e cópia dos scripts executados
    - context → SessionContext (estado canônico da sessão ativa)
    - manager → SessionManager (importado diretamente de `.manager`)
"""

from .context import SessionContext
from .paths import (
    PROV_DIR_ENV,
    SessionPaths,
    create_session_dirs,
    flush_session_dir,
    is_working_directory,
    resolve_base_dir,
    session_dir_name,
)
from .scripts import ScriptEntry, ScriptRegistry, read_source

__all__ = [
    "SessionContext",
    "PROV_DIR_ENV",
    "SessionPaths",
    "create_session_dirs",
    "flush_session_dir",
    "is_working_directory",
    "resolve_base_dir",
    "session_dir_name",
    "ScriptEntry",
    "ScriptRegistry",
    "read_source",
]

# src/prov_capture/core/session/paths.py
"""
Layout de diretórios da sessão de captura.

    <base>/<prov_console | prov_<stem>>[_<timestamp>]/{data, debug, scripts}

Resolução da base (primeira fonte definida vence):
    1. argumento `prov_dir` ("." → diretório de trabalho)
    2. variável de ambiente `PROV_DIR` ("." → diretório de trabalho)
    3. diretório temporário do sistema

Invariantes:
    - O flush nunca remove arquivos quando o diretório alvo é o diretório
      de trabalho do processo (ou o contém)
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Mapping, Optional, Union

from prov_capture.core.exceptions import SessionEnvironmentError


PROV_DIR_ENV = "PROV_DIR"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H.%M.%S"


@dataclass(frozen=True)
class SessionPaths:
    root: Path

    @property
    def data(self) -> Path:
        return self.root / "data"

    @property
    def debug(self) -> Path:
        return self.root / "debug"

    @property
    def scripts(self) -> Path:
        return self.root / "scripts"

    @property
    def document(self) -> Path:
        return self.root / "prov.json"

    def subdirs(self) -> tuple:
        return (self.data, self.debug, self.scripts)


def timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def _expand(value: str) -> Path:
    if value == ".":
        return Path.cwd()
    return Path(value).expanduser().resolve()


def resolve_base_dir(
    prov_dir: Optional[Union[str, Path]] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Path:
    if prov_dir is not None and str(prov_dir) != "":
        return _expand(str(prov_dir))
    env = os.environ if environ is None else environ
    value = env.get(PROV_DIR_ENV)
    if value:
        return _expand(value)
    return Path(tempfile.gettempdir()).resolve()


def session_dir_name(
    script_path: Optional[Union[str, Path]],
    *,
    overwrite: bool = True,
    now: Optional[datetime] = None,
) -> str:
    name = "prov_console" if script_path is None else f"prov_{Path(script_path).stem}"
    if not overwrite:
        name = f"{name}_{timestamp(now)}"
    return name


def is_working_directory(path: Union[str, Path]) -> bool:
    """True se `path` é o diretório de trabalho ou um ancestral dele."""
    target = Path(path).resolve()
    cwd = Path.cwd().resolve()
    return cwd == target or target in cwd.parents


def flush_session_dir(paths: SessionPaths) -> bool:
    """
    Remove arquivos remanescentes de uma sessão anterior no mesmo diretório.

    Apenas arquivos da raiz e de data/debug/scripts são removidos; outros
    subdiretórios são preservados.

    Returns:
        bool: False quando o flush foi recusado (diretório de trabalho).
    """
    if is_working_directory(paths.root):
        return False
    for directory in (paths.root, *paths.subdirs()):
        if not directory.is_dir():
            continue
        for entry in directory.iterdir():
            if entry.is_file() or entry.is_symlink():
                entry.unlink()
    return True


def create_session_dirs(root: Union[str, Path]) -> SessionPaths:
    """
    Cria a raiz da sessão e seus subdiretórios.

    Raises:
        SessionEnvironmentError: O diretório não pode ser criado.
    """
    paths = SessionPaths(root=Path(root))
    try:
        for directory in (paths.root, *paths.subdirs()):
            directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise SessionEnvironmentError(
            message="Não foi possível criar o diretório da sessão",
            details={"path": str(paths.root), "exc_type": e.__class__.__name__, "exc_message": str(e)},
            hint="Informe um prov_dir gravável ou ajuste a variável PROV_DIR.",
        ) from e
    return paths

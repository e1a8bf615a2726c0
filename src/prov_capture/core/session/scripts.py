# src/prov_capture/core/session/scripts.py
"""
Registro de scripts da sessão (ScriptRegistry).

Número 0 é o script principal (ou o console); scripts incluídos via
`runpy.run_path` recebem números subsequentes. Todo script registrado é
copiado byte a byte para `scripts/`.
"""

from __future__ import annotations

import tokenize
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from prov_capture.core.exceptions import SessionEnvironmentError


CONSOLE_SCRIPT_NAME = "console"


@dataclass(frozen=True)
class ScriptEntry:
    num: int
    name: str
    path: Optional[str]
    copy_path: Optional[str]
    copied_at: str
    source_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "num": self.num,
            "name": self.name,
            "path": self.path,
            "copy_path": self.copy_path,
            "copied_at": self.copied_at,
            "source_path": self.source_path,
        }


def read_source(path: Union[str, Path]) -> str:
    """
    Lê o código-fonte respeitando o cookie de encoding (PEP 263).

    Raises:
        SessionEnvironmentError: Script ausente, ilegível ou com encoding
            que não pode ser determinado.
    """
    try:
        with tokenize.open(str(path)) as fh:
            return fh.read()
    except FileNotFoundError as e:
        raise SessionEnvironmentError(
            message="Script não encontrado",
            details={"path": str(path)},
        ) from e
    except (SyntaxError, LookupError, UnicodeDecodeError) as e:
        raise SessionEnvironmentError(
            message="Não foi possível determinar o encoding do script",
            details={"path": str(path), "exc_type": e.__class__.__name__, "exc_message": str(e)},
            hint="Declare o encoding com um cookie PEP 263 ou salve o arquivo em UTF-8.",
        ) from e
    except OSError as e:
        raise SessionEnvironmentError(
            message="Script ilegível",
            details={"path": str(path), "exc_type": e.__class__.__name__, "exc_message": str(e)},
        ) from e


class ScriptRegistry:
    def __init__(self, scripts_dir: Path):
        self.scripts_dir = Path(scripts_dir)
        self._entries: List[ScriptEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, num: int) -> ScriptEntry:
        return self._entries[num]

    def register_console(self) -> ScriptEntry:
        entry = ScriptEntry(
            num=len(self._entries),
            name=CONSOLE_SCRIPT_NAME,
            path=None,
            copy_path=None,
            copied_at=datetime.now(timezone.utc).isoformat(),
        )
        self._entries.append(entry)
        return entry

    def register(self, path: Union[str, Path], *, source_path: Optional[Union[str, Path]] = None) -> ScriptEntry:
        """Registra e copia um script; retorna a entrada com o número atribuído."""
        src = Path(path).resolve()
        num = len(self._entries)
        target = self.scripts_dir / src.name
        if any(e.copy_path == str(target) for e in self._entries):
            target = self.scripts_dir / f"{num}-{src.name}"

        try:
            self.scripts_dir.mkdir(parents=True, exist_ok=True)
            if src != target.resolve():
                target.write_bytes(src.read_bytes())
        except FileNotFoundError as e:
            raise SessionEnvironmentError(message="Script não encontrado", details={"path": str(src)}) from e
        except OSError as e:
            raise SessionEnvironmentError(
                message="Falha ao copiar o script para a sessão",
                details={"path": str(src), "target": str(target), "exc_message": str(e)},
            ) from e

        entry = ScriptEntry(
            num=num,
            name=src.name,
            path=str(src),
            copy_path=str(target),
            copied_at=datetime.now(timezone.utc).isoformat(),
            source_path=str(Path(source_path).resolve()) if source_path else None,
        )
        self._entries.append(entry)
        return entry

    def to_list(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self._entries]

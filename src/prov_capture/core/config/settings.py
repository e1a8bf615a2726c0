# src/prov_capture/core/config/settings.py
"""
Parâmetros canônicos de captura do prov_capture.

Este módulo define `CaptureSettings`, a visão validada e imutável da
configuração de captura usada pelo Builder, pelo Snapshot Manager e pelo
Serializer durante uma sessão.

Superfície de configuração:
    - snapshot_size: 0 (sem snapshots), -1 (valor completo), N (truncar em N KB)
    - first_loop / max_loops: janela de iterações instrumentadas
      (max_loops = -1 sem limite, 0 desativa loops e condicionais)
    - annotate_inside_functions: instrumentação do corpo de funções
    - hash_algorithm: algoritmo de digest (conjunto fixo registrado)
    - save_debug: gravação de tabelas de debug
    - display: aciona o visualizador externo após o finalize
    - overwrite: se False, o diretório da sessão recebe sufixo de timestamp

Invariantes:
    - Uma instância validada nunca contém janela de loops ou snapshot inválidos
    - A validação ocorre antes de qualquer execução do script observado
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from prov_capture.core.exceptions import ConfigurationError
from prov_capture.core.snapshot.digest import available_algorithms
from prov_capture.core.snapshot.snapshot import SnapshotPolicy

from .loader import load_config


DEFAULT_SETTINGS: Dict[str, Any] = {
    "capture": {
        "snapshot_size": 0,
        "hash_algorithm": "md5",
        "annotate_inside_functions": False,
        "first_loop": 1,
        "max_loops": 0,
    },
    "output": {
        "overwrite": True,
        "save_debug": False,
        "display": False,
    },
}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class CaptureSettings:
    """Configuração de captura validada e imutável de uma sessão."""

    snapshot_size: int = 0
    hash_algorithm: str = "md5"
    annotate_inside_functions: bool = False
    first_loop: int = 1
    max_loops: int = 0
    overwrite: bool = True
    save_debug: bool = False
    display: bool = False

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not _is_int(self.snapshot_size) or self.snapshot_size < -1:
            raise ConfigurationError(
                message="snapshot_size inválido",
                details={"snapshot_size": self.snapshot_size},
                hint="Use 0 (desligado), -1 (completo) ou um número positivo de kilobytes.",
            )
        if not _is_int(self.first_loop) or self.first_loop < 1:
            raise ConfigurationError(
                message="first_loop inválido",
                details={"first_loop": self.first_loop},
                hint="first_loop deve ser um inteiro >= 1.",
            )
        if not _is_int(self.max_loops) or self.max_loops < -1:
            raise ConfigurationError(
                message="max_loops inválido",
                details={"max_loops": self.max_loops},
                hint="Use -1 (sem limite), 0 (desligado) ou um inteiro positivo.",
            )
        if self.hash_algorithm not in available_algorithms():
            raise ConfigurationError(
                message="Algoritmo de hash não suportado",
                details={
                    "hash_algorithm": self.hash_algorithm,
                    "available": sorted(available_algorithms()),
                },
                hint="Escolha um dos algoritmos registrados.",
            )
        for flag in ("annotate_inside_functions", "overwrite", "save_debug", "display"):
            if not isinstance(getattr(self, flag), bool):
                raise ConfigurationError(
                    message=f"{flag} deve ser booleano",
                    details={flag: getattr(self, flag)},
                )

    # -----------------------------
    # Janela de loops
    # -----------------------------
    @property
    def loops_enabled(self) -> bool:
        return self.max_loops != 0

    def in_loop_window(self, iteration: int) -> bool:
        """Indica se a iteração (1-based) está em [first_loop, first_loop + max_loops)."""
        if self.max_loops == 0:
            return False
        if iteration < self.first_loop:
            return False
        if self.max_loops == -1:
            return True
        return iteration < self.first_loop + self.max_loops

    # -----------------------------
    # Snapshot
    # -----------------------------
    def snapshot_policy(self) -> SnapshotPolicy:
        return SnapshotPolicy.from_size(self.snapshot_size)

    # -----------------------------
    # Serialização
    # -----------------------------
    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "CaptureSettings":
        capture = dict(data.get("capture", {}) or {})
        output = dict(data.get("output", {}) or {})
        return cls(
            snapshot_size=capture.get("snapshot_size", 0),
            hash_algorithm=capture.get("hash_algorithm", "md5"),
            annotate_inside_functions=capture.get("annotate_inside_functions", False),
            first_loop=capture.get("first_loop", 1),
            max_loops=capture.get("max_loops", 0),
            overwrite=output.get("overwrite", True),
            save_debug=output.get("save_debug", False),
            display=output.get("display", False),
        )


_CAPTURE_KEYS = ("snapshot_size", "hash_algorithm", "annotate_inside_functions", "first_loop", "max_loops")
_OUTPUT_KEYS = ("overwrite", "save_debug", "display")


def load_settings(
    *,
    defaults_path: Optional[str] = None,
    local_path: Optional[str] = None,
    **overrides: Any,
) -> CaptureSettings:
    """
    Resolve `CaptureSettings` a partir dos defaults do pacote, arquivos
    opcionais (YAML/JSON) e overrides explícitos por keyword.

    Overrides com valor None são ignorados (o parâmetro não foi informado).

    Raises:
        ConfigurationError: Parâmetro desconhecido ou valor inválido.
        ConfigError: Falha estrutural em arquivo de configuração.
    """
    resolved = load_config(base=DEFAULT_SETTINGS, defaults_path=defaults_path, local_path=local_path)

    for key, value in overrides.items():
        if value is None:
            continue
        if key in _CAPTURE_KEYS:
            resolved["capture"][key] = value
        elif key in _OUTPUT_KEYS:
            resolved["output"][key] = value
        else:
            raise ConfigurationError(
                message=f"Parâmetro de captura desconhecido: {key}",
                details={"parameter": key},
            )

    return CaptureSettings.from_mapping(resolved)

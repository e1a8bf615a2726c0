"""
Snapshot & Hash Manager do prov_capture.

API pública exposta:
    - SnapshotPolicy / SnapshotMode → política de snapshot da sessão
    - SnapshotManager               → captura de valores em artefatos
    - digest_bytes / digest_file    → digests determinísticos plugáveis
"""

from .digest import (
    available_algorithms,
    digest_bytes,
    digest_file,
    digest_text,
    get_algorithm,
    register_algorithm,
)
from .snapshot import SnapshotManager, SnapshotMode, SnapshotPolicy, SnapshotResult

__all__ = [
    "available_algorithms",
    "digest_bytes",
    "digest_file",
    "digest_text",
    "get_algorithm",
    "register_algorithm",
    "SnapshotManager",
    "SnapshotMode",
    "SnapshotPolicy",
    "SnapshotResult",
]

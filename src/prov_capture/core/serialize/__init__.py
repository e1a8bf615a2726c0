"""
Serializer do prov_capture.

    - document → documento de intercâmbio (manifest, nodes, data, edges)
    - debug    → tabelas CSV de depuração + log de eventos
"""

from .debug import DEBUG_TABLES, EVENTS_FILE, write_debug_tables
from .document import (
    CONSOLE_MARKER,
    TOOL_NAME,
    TOOL_VERSION,
    ProvDocument,
    build_document,
    build_manifest,
    load_document,
    save_document,
    write_atomic,
)

__all__ = [
    "DEBUG_TABLES",
    "EVENTS_FILE",
    "write_debug_tables",
    "CONSOLE_MARKER",
    "TOOL_NAME",
    "TOOL_VERSION",
    "ProvDocument",
    "build_document",
    "build_manifest",
    "load_document",
    "save_document",
    "write_atomic",
]

"""
I/O Tracer do prov_capture.

    - FileTracer    → nós File para arquivos abertos via `open()`
    - DisplayTracer → nós File ("plot") e Device para figuras matplotlib
"""

from .display import DisplayTracer
from .files import FileTracer, TracedBinaryFile, TracedTextFile, direction_from_mode

__all__ = [
    "DisplayTracer",
    "FileTracer",
    "TracedBinaryFile",
    "TracedTextFile",
    "direction_from_mode",
]

# src/prov_capture/core/iotrace/display.py
"""
Captura de superfícies de exibição (figuras matplotlib).

Após cada statement instrumentado, figuras marcadas como `stale` (alteradas
desde a última captura) são renderizadas em PNG e gravadas como
`data/<id>-plot-<n>.png`, registradas como nó File do tipo "plot" ligado por
data-out ao statement. Na primeira vez que uma figura é vista, um nó Device
é criado para o número da figura.

Decisões arquiteturais:
    - matplotlib só é consultado se `matplotlib.pyplot` já foi importado
      pelo script observado (o tracer nunca importa pyplot por conta própria)
    - A figura corrente do pyplot não é alterada (figuras são obtidas via Gcf)
    - Renderizações idênticas à última captura da mesma figura são descartadas,
      exceto no snapshot final do finalize (toda figura aberta é gravada)

Limites explícitos:
    - Falhas de backend são CaptureError: reportadas, nunca propagadas
"""

from __future__ import annotations

import io
import sys
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Tuple

from prov_capture.core.graph import EdgeKind, FileDirection
from prov_capture.core.snapshot import digest_bytes

if TYPE_CHECKING:  # pragma: no cover
    from prov_capture.core.session.context import SessionContext


class DisplayTracer:
    def __init__(self, ctx: "SessionContext"):
        self.ctx = ctx
        self._devices: Dict[int, int] = {}
        self._last_digest: Dict[int, str] = {}
        self._plots = 0

    def _figures(self) -> List[Tuple[Any, Any]]:
        if "matplotlib.pyplot" not in sys.modules:
            return []
        from matplotlib._pylab_helpers import Gcf

        return [(manager.num, manager.canvas.figure) for manager in Gcf.get_all_fig_managers()]

    def capture(self, activity_id: int, *, final: bool = False) -> List[int]:
        """
        Captura figuras alteradas; retorna os ids dos nós "plot" criados.

        Com `final=True` (finalize), toda figura ainda aberta recebe um último
        snapshot, mesmo sem alteração desde a captura anterior.
        """
        created: List[int] = []
        for num, fig in self._figures():
            seen = num in self._last_digest
            if not final and seen and not getattr(fig, "stale", False):
                continue
            if not final and not seen and not getattr(fig, "stale", True):
                continue
            try:
                node_id = self._capture_figure(num, fig, activity_id, force=final)
            except Exception as e:
                self.ctx.report_capture_error(scope="display", what="display capture", exc=e, target=f"figure {num}")
                continue
            if node_id is not None:
                created.append(node_id)
        return created

    def _capture_figure(self, num: Any, fig: Any, activity_id: int, *, force: bool = False) -> Any:
        buf = io.BytesIO()
        fig.savefig(buf, format="png")
        fig.stale = False
        data = buf.getvalue()

        digest = digest_bytes(data, self.ctx.hash_algorithm)
        if not force and self._last_digest.get(num) == digest:
            return None
        self._last_digest[num] = digest

        graph = self.ctx.graph
        if num not in self._devices:
            device = graph.add_device(name=f"figure {num}", surface_id=str(num))
            self._devices[num] = device.id
            graph.add_edge(activity_id, device.id, EdgeKind.DATA_OUT)

        self._plots += 1
        node = graph.add_file(name="plot", path="", direction=FileDirection.WRITE, file_type="plot", mode="wb")
        path = self.ctx.paths.data / f"{node.id}-plot-{self._plots}.png"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

        node.name = path.name
        node.path = str(path)
        node.digest = digest
        node.closed_at = datetime.now(timezone.utc).isoformat()
        graph.add_edge(activity_id, node.id, EdgeKind.DATA_OUT)
        self.ctx.log(scope="display", level="info", message="plot captured", node_id=node.id, figure=str(num))
        return node.id

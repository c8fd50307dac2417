"""
Debug directory sink for failed browser fetches.
"""

import logging
from pathlib import Path
from typing import Union

from core.interfaces import DiagnosticsSink
from core.models import DiagnosticArtifact


logger = logging.getLogger(__name__)


class DebugDirectorySink(DiagnosticsSink):
    """Writes each artifact to ``<debug_dir>/<source_id>-<timestamp>/``.

    Produces ``meta.txt`` always, plus ``page.html`` and ``screenshot.png``
    when the browser managed to capture them.
    """

    name = "DebugDirectorySink"

    def __init__(self, debug_dir: Union[str, Path] = "debug"):
        self.debug_dir = Path(debug_dir)

    def _target(self, artifact: DiagnosticArtifact) -> Path:
        stamp = artifact.captured_at.strftime("%Y%m%dT%H%M%SZ")
        safe_id = "".join(c if c.isalnum() or c in "-_." else "_" for c in artifact.source_id)
        return self.debug_dir / f"{safe_id}-{stamp}"

    async def handle(self, artifact: DiagnosticArtifact) -> None:
        target = self._target(artifact)
        target.mkdir(parents=True, exist_ok=True)

        meta = [
            f"url: {artifact.url}",
            f"captured_at: {artifact.captured_at.isoformat()}",
            f"http_status: {artifact.http_status}",
            f"error: {artifact.error or '-'}",
            f"title: {artifact.title or '-'}",
        ]
        (target / "meta.txt").write_text("\n".join(meta) + "\n", encoding="utf-8")
        if artifact.html:
            (target / "page.html").write_text(artifact.html, encoding="utf-8")
        if artifact.screenshot:
            (target / "screenshot.png").write_bytes(artifact.screenshot)

        logger.info("Saved browser diagnostics for %s to %s", artifact.source_id, target)

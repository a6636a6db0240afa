"""Export adapter: turn a candidate selection into a file or a sheet link.

Formats:
  csv, excel, pdf  - the service replies with a file body; it is saved under
                     the output directory, named from Content-Disposition or
                     ``ats-export-<ms>.<ext>`` when the header is missing.
  google_sheets    - the service replies with a sheet URL, surfaced as a notice.
Failures of either kind surface a notice; ``is_exporting`` is always reset.
"""

import logging
import re
import time
from collections.abc import Callable, Iterable
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from src.backend.base import ExportResponse, PipelineBackend, reply_message
from src.core.config import EXPORT_FORMATS
from src.core.errors import BackendError
from src.core.schemas import Notice

logger = logging.getLogger(__name__)

FILE_EXTENSIONS = {"csv": "csv", "excel": "xlsx", "pdf": "pdf"}
SHEET_FORMATS = ("google_sheets",)

GENERIC_FAILURE = "Failed to export applications"

_FILENAME_RE = re.compile(
    r"""filename\*?\s*=\s*(?:UTF-8'')?["']?([^"';]+)["']?""",
    re.IGNORECASE,
)


class ExportOutcome(BaseModel):
    """What an export produced."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    path: Path | None = None
    sheet_url: str | None = None
    notice: Notice | None = None


class ExportAdapter:
    """Runs exports against the service and delivers the result.

    Usage::

        exporter = ExportAdapter(backend, "exports", on_notice=show)
        outcome = await exporter.export_selection([1, 2], "csv")
        print(outcome.path)
    """

    def __init__(
        self,
        backend: PipelineBackend,
        output_dir: str | Path,
        on_notice: Callable[[Notice], None] | None = None,
    ) -> None:
        self._backend = backend
        self._output_dir = Path(output_dir)
        self._on_notice = on_notice
        self._is_exporting = False

    @property
    def is_exporting(self) -> bool:
        return self._is_exporting

    async def export_selection(self, record_ids: Iterable[int], fmt: str) -> ExportOutcome:
        ids = list(dict.fromkeys(record_ids))
        if fmt not in EXPORT_FORMATS:
            logger.warning("Unsupported export format '%s'", fmt)
            return ExportOutcome(ok=False)
        if not ids:
            logger.debug("Export skipped: no applications selected")
            return ExportOutcome(ok=False)

        self._is_exporting = True
        try:
            response = await self._backend.export_applications(ids, fmt)
            if fmt in SHEET_FORMATS:
                return self._deliver_sheet(response)
            return self._save_file(response, fmt)
        except BackendError as e:
            logger.error("Export of %d applications as %s failed: %s", len(ids), fmt, e)
            return self._fail(e.message)
        except OSError as e:
            logger.error("Could not save export: %s", e)
            return self._fail(f"Could not save export file: {e}")
        finally:
            self._is_exporting = False

    def _deliver_sheet(self, response: ExportResponse) -> ExportOutcome:
        data = response.data or {}
        url = data.get("sheetUrl")
        if not isinstance(url, str) or not url:
            return self._fail(reply_message(data, GENERIC_FAILURE))
        notice = Notice(
            title="Export ready",
            message=str(data.get("message") or "Candidates exported to Google Sheets"),
            url=url,
        )
        self._notify(notice)
        logger.info("Exported to sheet %s", url)
        return ExportOutcome(ok=True, sheet_url=url, notice=notice)

    def _save_file(self, response: ExportResponse, fmt: str) -> ExportOutcome:
        if not response.is_binary:
            return self._fail(reply_message(response.data, GENERIC_FAILURE))

        filename = export_filename(response.content_disposition, fmt)
        self._output_dir.mkdir(parents=True, exist_ok=True)
        path = self._output_dir / filename
        path.write_bytes(response.content or b"")
        logger.info("Saved export to %s (%d bytes)", path, len(response.content or b""))
        return ExportOutcome(ok=True, path=path)

    def _fail(self, message: str) -> ExportOutcome:
        notice = Notice(title="Export failed", message=message, level="error")
        self._notify(notice)
        return ExportOutcome(ok=False, notice=notice)

    def _notify(self, notice: Notice) -> None:
        if self._on_notice is not None:
            self._on_notice(notice)


def export_filename(content_disposition: str | None, fmt: str) -> str:
    """Filename from a Content-Disposition header, else a timestamped default."""
    if content_disposition:
        match = _FILENAME_RE.search(content_disposition)
        if match:
            name = Path(match.group(1).strip()).name
            if name:
                return name
    extension = FILE_EXTENSIONS.get(fmt, fmt)
    return f"ats-export-{int(time.time() * 1000)}.{extension}"

"""Data models shared by the translation pipeline.

Contains dataclasses that flow from the Cobertura report to the upload:
    - FileEntry / CoverageReport   (parsed report)
    - ResolvedSource               (reported path + physical location)
    - SourceCoverageRecord         (one entry of ``source_files``)
    - PayloadEnvelope              (fixed fields of the upload payload)
    - UploadResult                 (outcome of one upload attempt)
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class FileEntry:
    reported_path: str
    line_hits: dict[int, int] = field(default_factory=dict)


@dataclass(frozen=True)
class CoverageReport:
    """Parsed Cobertura report, in report order.

    ``sources`` holds the ``<sources><source>`` directories declared by the
    report itself, if any.
    """

    files: tuple[FileEntry, ...] = ()
    sources: tuple[str, ...] = ()

    def __iter__(self):
        return iter(self.files)

    def __len__(self) -> int:
        return len(self.files)


@dataclass(frozen=True)
class ResolvedSource:
    reported_path: str
    resolved_path: Path | None = None

    @property
    def resolved(self) -> bool:
        return self.resolved_path is not None


@dataclass(frozen=True)
class SourceCoverageRecord:
    name: str
    digest: str
    coverage: list[int | None]

    def to_dict(self) -> dict[str, Any]:
        """Return the record in its Coveralls wire shape."""
        return {
            "name": self.name,
            "source_digest": self.digest,
            "coverage": self.coverage,
        }


@dataclass(frozen=True)
class PayloadEnvelope:
    repo_token: str | None = None
    service_job_id: str | None = None
    service_name: str | None = None
    git: dict[str, Any] | None = None

    def fields(self) -> dict[str, Any]:
        """Envelope fields in wire order, with absent values omitted."""
        raw = {
            "repo_token": self.repo_token,
            "service_job_id": self.service_job_id,
            "service_name": self.service_name,
            "git": self.git,
        }
        return {k: v for k, v in raw.items() if v is not None}


@dataclass(frozen=True)
class UploadResult:
    """Outcome of a single upload.

    ``kind`` names the failure class (``"api"`` or ``"network"``) when
    ``error`` is true, and is ``None`` on success.
    """

    error: bool
    message: str
    url: str = ""
    kind: str | None = None

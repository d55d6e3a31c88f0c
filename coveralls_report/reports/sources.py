"""Source lookup and per-line coverage vectors.

Functions:
    resolve(reported_path, roots)                            -> Path | None
    resolve_all(report, roots)                               -> list[ResolvedSource]
    map_coverage(resolved_path, line_hits, encoding, base)   -> SourceCoverageRecord
"""

import hashlib
import re
import warnings
from collections.abc import Iterable, Sequence
from pathlib import Path, PurePosixPath

from coveralls_report.models import CoverageReport, ResolvedSource, SourceCoverageRecord

_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")


# ---------------------------------------------------------------------------
# Exceptions and warnings
# ---------------------------------------------------------------------------

class SourceError(Exception):
    """Base exception for problems with a single source file."""


class EncodingError(SourceError):
    """Raised when a source file cannot be decoded with the configured codec."""


class SourceReadError(SourceError):
    """Raised when a resolved source file cannot be read."""


class SourceUnresolvedWarning(UserWarning):
    """A reported file was not found under any source root."""


class SourceEncodingWarning(UserWarning):
    """A source file was skipped because it could not be decoded."""


class SourceReadWarning(UserWarning):
    """A source file was skipped because it could not be read."""


# ---------------------------------------------------------------------------
# Root resolution
# ---------------------------------------------------------------------------

def resolve(reported_path: str, roots: Iterable[str | Path]) -> Path | None:
    """Return the first ``root / reported_path`` that is a regular file.

    Roots are tried in the given order, so earlier roots win when the same
    relative path exists under several of them. Backslash separators in the
    reported path are treated as directory separators. An absolute reported
    path that already exists is returned as is.
    """
    relative = PurePosixPath(reported_path.replace("\\", "/"))
    if relative.is_absolute():
        candidate = Path(relative)
        return candidate if candidate.is_file() else None

    for root in roots:
        candidate = Path(root) / relative
        if candidate.is_file():
            return candidate
    return None


def resolve_all(report: CoverageReport, roots: Sequence[str | Path]) -> list[ResolvedSource]:
    """Resolve every report entry, warning about the ones that match no root."""
    resolved: list[ResolvedSource] = []
    for entry in report:
        path = resolve(entry.reported_path, roots)
        if path is None:
            warnings.warn(
                f"Skipping '{entry.reported_path}': not found under any source root",
                SourceUnresolvedWarning,
                stacklevel=2,
            )
        resolved.append(ResolvedSource(entry.reported_path, path))
    return resolved


# ---------------------------------------------------------------------------
# Coverage vector
# ---------------------------------------------------------------------------

def map_coverage(
    resolved_path: str | Path,
    line_hits: dict[int, int],
    encoding: str = "UTF-8",
    base_dir: str | Path | None = None,
) -> SourceCoverageRecord:
    """Build the Coveralls record for one source file.

    The vector has one slot per physical line of the file: the hit count
    when the report covers that line, ``None`` otherwise. Hits reported for
    lines past the end of the file are dropped. The digest is the MD5 of
    the text re-encoded as UTF-8.

    Raises:
        SourceReadError: the file cannot be read
        EncodingError:   the file is not valid in *encoding*
    """
    path = Path(resolved_path)
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise SourceReadError(f"Cannot read '{path}': {exc.strerror or exc}") from exc
    try:
        text = raw.decode(encoding)
    except UnicodeDecodeError as exc:
        raise EncodingError(
            f"Cannot decode '{path}' as {encoding}: {exc.reason} at byte {exc.start}"
        ) from exc

    line_count = count_lines(text)
    coverage = [line_hits.get(number) for number in range(1, line_count + 1)]

    return SourceCoverageRecord(
        name=display_name(path, base_dir),
        digest=hashlib.md5(text.encode("utf-8")).hexdigest(),
        coverage=coverage,
    )


def count_lines(text: str) -> int:
    """Number of lines in *text*; a final line terminator does not add one."""
    if not text:
        return 0
    parts = _LINE_BREAK_RE.split(text)
    if parts[-1] == "":
        parts.pop()
    return len(parts)


def display_name(path: Path, base_dir: str | Path | None) -> str:
    """POSIX path of *path* relative to *base_dir*, or absolute when outside it."""
    absolute = path.resolve()
    if base_dir is not None:
        try:
            return absolute.relative_to(Path(base_dir).resolve()).as_posix()
        except ValueError:
            pass
    return absolute.as_posix()

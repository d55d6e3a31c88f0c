"""Cobertura XML report reader.

Usage:
    report = parse("coverage.xml")          # raises ReportError subclasses
    for entry in report:
        entry.reported_path, entry.line_hits

Only class-level ``<lines>`` are read: Cobertura repeats every method line
under ``<methods>``, so reading both would double the hit counts.
"""

from pathlib import Path
from xml.etree.ElementTree import Element, ParseError

from defusedxml import DefusedXmlException, ElementTree

from coveralls_report.models import CoverageReport, FileEntry


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ReportError(Exception):
    """Base exception for coverage report problems."""


class ReportMissingError(ReportError):
    """Raised when the coverage report file does not exist."""


class MalformedReportError(ReportError):
    """Raised when the report is not well-formed or is not Cobertura."""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse(xml_path: str | Path) -> CoverageReport:
    """Parse a Cobertura report into a :class:`CoverageReport`.

    Files appear in the order they are first referenced. When several
    ``<class>`` elements point at the same file, their hits are summed per
    line number.

    Raises:
        ReportMissingError:   the file does not exist
        MalformedReportError: bad XML or an unexpected document shape
    """
    path = Path(xml_path)
    if not path.is_file():
        raise ReportMissingError(f"Coverage report not found: '{path}'")

    try:
        root = ElementTree.parse(str(path)).getroot()
    except (ParseError, DefusedXmlException) as exc:
        raise MalformedReportError(f"Failed to parse '{path}': {exc}") from exc

    if _local_name(root) != "coverage":
        raise MalformedReportError(
            f"Unexpected root element <{root.tag}> in '{path}', expected <coverage>"
        )

    packages = _child(root, "packages")
    if packages is None:
        raise MalformedReportError(f"'{path}' has no <packages> element")

    merged: dict[str, dict[int, int]] = {}
    for package in _children(packages, "package"):
        for classes in _children(package, "classes"):
            for cls in _children(classes, "class"):
                filename = cls.get("filename")
                if not filename:
                    raise MalformedReportError(
                        f"<class name={cls.get('name')!r}> in '{path}' has no filename"
                    )
                hits = merged.setdefault(filename, {})
                for lines in _children(cls, "lines"):
                    for line in _children(lines, "line"):
                        number, count = _read_line(line, filename)
                        hits[number] = hits.get(number, 0) + count

    return CoverageReport(
        files=tuple(FileEntry(name, hits) for name, hits in merged.items()),
        sources=_declared_sources(root),
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _local_name(el: Element) -> str:
    """Tag name without any ``{namespace}`` prefix."""
    return (el.tag or "").rsplit("}", 1)[-1]


def _children(el: Element, name: str) -> list[Element]:
    return [c for c in el if _local_name(c) == name]


def _child(el: Element, name: str) -> Element | None:
    found = _children(el, name)
    return found[0] if found else None


def _read_line(line: Element, filename: str) -> tuple[int, int]:
    raw_number = line.get("number")
    raw_hits = line.get("hits")
    if raw_number is None or raw_hits is None:
        raise MalformedReportError(
            f"<line> in '{filename}' needs both 'number' and 'hits' attributes"
        )
    try:
        number = int(raw_number)
        count = int(raw_hits)
    except ValueError as exc:
        raise MalformedReportError(
            f"Non-integer line data in '{filename}': number={raw_number!r} hits={raw_hits!r}"
        ) from exc
    if number < 1 or count < 0:
        raise MalformedReportError(
            f"Out-of-range line data in '{filename}': number={number} hits={count}"
        )
    return number, count


def _declared_sources(root: Element) -> tuple[str, ...]:
    sources = _child(root, "sources")
    if sources is None:
        return ()
    return tuple(
        s.text.strip() for s in _children(sources, "source")
        if s.text and s.text.strip()
    )

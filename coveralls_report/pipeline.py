"""Cobertura-to-Coveralls pipeline.

Functions:
    build_payload(config, git_info)          -> PayloadSummary
    run(config, client=None, git_info=None)  -> PayloadSummary (with .upload)

Report-level and configuration-level problems raise; problems with a single
source file are reported as warnings and the file is skipped. Upload
failures are returned, never raised. Deciding whether a failure should stop
the build is left to the caller.
"""

import warnings
from dataclasses import dataclass, field
from pathlib import Path

from coveralls_report.client import CoverallsClient
from coveralls_report.config import Config, validate
from coveralls_report.models import PayloadEnvelope, UploadResult
from coveralls_report.payload import PayloadWriter
from coveralls_report.reports import cobertura
from coveralls_report.reports.sources import (
    EncodingError,
    SourceEncodingWarning,
    SourceReadError,
    SourceReadWarning,
    map_coverage,
    resolve_all,
)


@dataclass
class PayloadSummary:
    """What was written to the payload file and, after :func:`run`, the upload outcome.

    ``upload`` stays None when nothing was sent (dry run).
    """

    path: Path
    files_written: int = 0
    skipped: list[str] = field(default_factory=list)
    upload: UploadResult | None = None


def source_roots(config: Config, declared: tuple[str, ...] = ()) -> list[Path]:
    """Configured roots (or the base dir), then roots declared by the report."""
    roots = list(config.source_roots) or [config.base_dir]
    for source in declared:
        path = Path(source)
        roots.append(path if path.is_absolute() else config.base_dir / path)
    return roots


def envelope_for(config: Config, git_info: dict | None = None) -> PayloadEnvelope:
    return PayloadEnvelope(
        repo_token=config.repo_token,
        service_job_id=config.service_job_id,
        service_name=config.service_name,
        git=git_info,
    )


def build_payload(
    config: Config,
    git_info: dict | None = None,
    *,
    strict_encoding: bool = False,
) -> PayloadSummary:
    """Translate the Cobertura report into the payload file.

    Raises:
        ConfigurationError:   no repo token and no CI job id
        ReportMissingError:   the Cobertura file does not exist
        MalformedReportError: the Cobertura file cannot be read
        EncodingError:        only when *strict_encoding* is set
    """
    validate(config)
    report = cobertura.parse(config.cobertura_file)
    roots = source_roots(config, report.sources)

    summary = PayloadSummary(path=config.payload_file)
    with PayloadWriter(config.payload_file, envelope_for(config, git_info)) as writer:
        for entry, source in zip(report, resolve_all(report, roots)):
            if not source.resolved:
                summary.skipped.append(source.reported_path)
                continue
            try:
                record = map_coverage(
                    source.resolved_path,
                    entry.line_hits,
                    encoding=config.encoding,
                    base_dir=config.base_dir,
                )
            except EncodingError as exc:
                if strict_encoding:
                    raise
                _skip(summary, source.reported_path, exc, SourceEncodingWarning)
                continue
            except SourceReadError as exc:
                _skip(summary, source.reported_path, exc, SourceReadWarning)
                continue
            writer.add_source_file(record)
        summary.files_written = writer.records_written

    return summary


def run(
    config: Config,
    client: CoverallsClient | None = None,
    git_info: dict | None = None,
    *,
    strict_encoding: bool = False,
    dry_run: bool = False,
) -> PayloadSummary:
    """Build the payload file and, unless *dry_run*, upload it.

    The report is checked before the client is ever used, so a missing or
    malformed report never reaches the network. The upload outcome is in
    the returned summary's ``upload`` field.
    """
    summary = build_payload(config, git_info, strict_encoding=strict_encoding)
    if dry_run:
        return summary
    if client is None:
        client = CoverallsClient(endpoint=config.endpoint)
    summary.upload = client.post_file(summary.path)
    return summary


def _skip(summary: PayloadSummary, reported_path: str, exc: Exception, category) -> None:
    warnings.warn(f"Skipping '{reported_path}': {exc}", category, stacklevel=3)
    summary.skipped.append(reported_path)

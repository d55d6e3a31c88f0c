"""Tests for coveralls_report/pipeline.py"""

import json
import warnings
from pathlib import Path

import pytest

from coveralls_report.client import CoverallsClient
from coveralls_report.config import Config, ConfigurationError
from coveralls_report.models import UploadResult
from coveralls_report.pipeline import build_payload, run, source_roots
from coveralls_report.reports.cobertura import MalformedReportError, ReportMissingError
from coveralls_report.reports.sources import (
    EncodingError,
    SourceEncodingWarning,
    SourceReadWarning,
    SourceUnresolvedWarning,
)

ENDPOINT = "https://coveralls.example.com"


def cobertura(*classes: tuple[str, dict[int, int]], sources: tuple[str, ...] = ()) -> str:
    source_xml = "".join(f"<source>{s}</source>" for s in sources)
    class_xml = ""
    for i, (filename, hits) in enumerate(classes):
        lines = "".join(f'<line number="{n}" hits="{h}"/>' for n, h in hits.items())
        class_xml += f'<class name="C{i}" filename="{filename}"><lines>{lines}</lines></class>'
    return (
        f"<coverage><sources>{source_xml}</sources><packages><package name=\"p\">"
        f"<classes>{class_xml}</classes></package></packages></coverage>"
    )


@pytest.fixture
def project(tmp_path) -> Path:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "Foo.scala").write_text("a\nb\nc\nd\ne\n", encoding="utf-8")
    return tmp_path


def make_config(project: Path, **overrides) -> Config:
    values = dict(
        cobertura_file=project / "coverage.xml",
        payload_file=project / "target" / "coveralls.json",
        base_dir=project,
        source_roots=(project / "src",),
        repo_token="tok",
        endpoint=ENDPOINT,
    )
    values.update(overrides)
    return Config(**values)


class RecordingClient:
    """Stands in for CoverallsClient and remembers what it was asked to send."""

    def __init__(self, result: UploadResult | None = None):
        self.result = result or UploadResult(error=False, message="Job #1", url="https://c/jobs/1")
        self.posted: list[Path] = []

    def post_file(self, payload_path):
        self.posted.append(Path(payload_path))
        return self.result


# ---------------------------------------------------------------------------
# build_payload()
# ---------------------------------------------------------------------------

def test_scenario_vector_with_gaps(project):
    (project / "coverage.xml").write_text(cobertura(("Foo.scala", {1: 0, 3: 2})), encoding="utf-8")
    config = make_config(project)

    summary = build_payload(config)

    data = json.loads(config.payload_file.read_text(encoding="utf-8"))
    assert summary.files_written == 1
    assert data["repo_token"] == "tok"
    assert data["source_files"][0]["name"] == "src/Foo.scala"
    assert data["source_files"][0]["coverage"] == [0, None, 2, None, None]


def test_git_info_goes_into_envelope(project):
    (project / "coverage.xml").write_text(cobertura(), encoding="utf-8")
    config = make_config(project, service_job_id="77", service_name="travis-ci")
    build_payload(config, git_info={"branch": "main"})
    data = json.loads(config.payload_file.read_text(encoding="utf-8"))
    assert data["git"] == {"branch": "main"}
    assert data["service_job_id"] == "77"
    assert data["service_name"] == "travis-ci"
    assert data["source_files"] == []


def test_unresolved_files_are_skipped_with_warning(project):
    (project / "coverage.xml").write_text(
        cobertura(("Gone.scala", {1: 1}), ("Foo.scala", {2: 4})), encoding="utf-8"
    )
    config = make_config(project)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        summary = build_payload(config)

    assert summary.skipped == ["Gone.scala"]
    assert summary.files_written == 1
    assert any(issubclass(w.category, SourceUnresolvedWarning) for w in caught)


def test_undecodable_file_is_skipped_with_warning(project):
    (project / "src" / "Bad.scala").write_bytes(b"\xff\xfe\n")
    (project / "coverage.xml").write_text(
        cobertura(("Bad.scala", {1: 1}), ("Foo.scala", {1: 1})), encoding="utf-8"
    )
    config = make_config(project)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        summary = build_payload(config)

    assert summary.skipped == ["Bad.scala"]
    names = [f["name"] for f in json.loads(config.payload_file.read_text("utf-8"))["source_files"]]
    assert names == ["src/Foo.scala"]
    assert any(issubclass(w.category, SourceEncodingWarning) for w in caught)


def test_strict_encoding_aborts_and_leaves_no_payload(project):
    (project / "src" / "Bad.scala").write_bytes(b"\xff\xfe\n")
    (project / "coverage.xml").write_text(cobertura(("Bad.scala", {1: 1})), encoding="utf-8")
    config = make_config(project)

    with pytest.raises(EncodingError):
        build_payload(config, strict_encoding=True)
    assert not config.payload_file.exists()


def test_multi_module_roots_first_match_wins(project):
    for module in ("core", "web"):
        path = project / module / "src" / "Shared.scala"
        path.parent.mkdir(parents=True)
        path.write_text(f"// {module}\n", encoding="utf-8")
    (project / "coverage.xml").write_text(cobertura(("Shared.scala", {1: 1})), encoding="utf-8")
    config = make_config(
        project,
        source_roots=(project / "src", project / "core" / "src", project / "web" / "src"),
    )

    build_payload(config)

    data = json.loads(config.payload_file.read_text(encoding="utf-8"))
    assert data["source_files"][0]["name"] == "core/src/Shared.scala"


def test_report_declared_sources_are_searched_last(project):
    extra = project / "generated"
    extra.mkdir()
    (extra / "Gen.scala").write_text("x\n", encoding="utf-8")
    (project / "coverage.xml").write_text(
        cobertura(("Gen.scala", {1: 3}), sources=(extra.as_posix(),)), encoding="utf-8"
    )

    build_payload(make_config(project))

    data = json.loads((project / "target" / "coveralls.json").read_text(encoding="utf-8"))
    assert data["source_files"] == [
        {"name": "generated/Gen.scala", "source_digest": data["source_files"][0]["source_digest"],
         "coverage": [3]},
    ]


def test_source_roots_default_to_base_dir(project):
    config = make_config(project, source_roots=())
    assert source_roots(config, ("rel",)) == [project, project / "rel"]


def test_missing_report_raises(project):
    with pytest.raises(ReportMissingError):
        build_payload(make_config(project))


def test_malformed_report_raises(project):
    (project / "coverage.xml").write_text("<coverage>", encoding="utf-8")
    with pytest.raises(MalformedReportError):
        build_payload(make_config(project))


def test_configuration_error_before_any_io(project):
    config = make_config(project, repo_token=None, service_job_id=None)
    with pytest.raises(ConfigurationError):
        build_payload(config)
    assert not config.payload_file.exists()


# ---------------------------------------------------------------------------
# run()
# ---------------------------------------------------------------------------

def test_run_uploads_payload(project):
    (project / "coverage.xml").write_text(cobertura(("Foo.scala", {1: 1})), encoding="utf-8")
    config = make_config(project)
    client = RecordingClient()

    result = run(config, client=client).upload

    assert result.error is False
    assert client.posted == [config.payload_file]


def test_run_missing_report_never_touches_network(project):
    client = RecordingClient()
    with pytest.raises(ReportMissingError):
        run(make_config(project), client=client)
    assert client.posted == []


def test_run_returns_api_error(project, requests_mock):
    (project / "coverage.xml").write_text(cobertura(("Foo.scala", {1: 1})), encoding="utf-8")
    requests_mock.post(
        f"{ENDPOINT}/api/v1/jobs",
        status_code=422,
        json={"error": True, "message": "Couldn't find a repository matching this job."},
    )

    result = run(make_config(project), client=CoverallsClient(endpoint=ENDPOINT)).upload

    assert result.error is True
    assert result.kind == "api"
    assert result.message == "Couldn't find a repository matching this job."


def test_run_builds_default_client_from_config(project, requests_mock):
    (project / "coverage.xml").write_text(cobertura(), encoding="utf-8")
    adapter = requests_mock.post(f"{ENDPOINT}/api/v1/jobs", json={"message": "ok", "url": "u"})
    result = run(make_config(project)).upload
    assert adapter.called
    assert result == UploadResult(error=False, message="ok", url="u")


def test_run_dry_run_skips_upload(project):
    (project / "coverage.xml").write_text(cobertura(("Foo.scala", {1: 1})), encoding="utf-8")
    config = make_config(project)
    client = RecordingClient()

    summary = run(config, client=client, dry_run=True)

    assert summary.upload is None
    assert summary.files_written == 1
    assert client.posted == []
    assert config.payload_file.exists()


def test_run_strict_encoding_aborts_before_upload(project):
    (project / "src" / "Bad.scala").write_bytes(b"\xff\xfe\n")
    (project / "coverage.xml").write_text(cobertura(("Bad.scala", {1: 1})), encoding="utf-8")
    client = RecordingClient()

    with pytest.raises(EncodingError):
        run(make_config(project), client=client, strict_encoding=True)
    assert client.posted == []


def test_unreadable_file_is_skipped_with_warning(project, monkeypatch):
    (project / "coverage.xml").write_text(
        cobertura(("Foo.scala", {1: 1}), ("Other.scala", {1: 2})), encoding="utf-8"
    )
    (project / "src" / "Other.scala").write_text("y\n", encoding="utf-8")
    config = make_config(project)

    real_read_bytes = Path.read_bytes

    def read_bytes(self):
        if self.name == "Foo.scala":
            raise PermissionError(13, "Permission denied")
        return real_read_bytes(self)

    monkeypatch.setattr(Path, "read_bytes", read_bytes)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        summary = build_payload(config)

    assert summary.skipped == ["Foo.scala"]
    assert summary.files_written == 1
    assert any(issubclass(w.category, SourceReadWarning) for w in caught)

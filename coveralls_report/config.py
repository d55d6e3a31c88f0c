"""Configuration loading and validation.

Usage:
    config = load("coveralls-config.yaml")        # raises ConfigurationError
    config.source_roots                           # ordered, flattened roots
    generate_template("coveralls-config.yaml")    # writes example file to disk

The environment is read once, here, through the *env* mapping
(``os.environ`` by default). Nothing downstream looks at it again.
"""

import codecs
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import yaml

from coveralls_report.client import DEFAULT_ENDPOINT

DEFAULT_CONFIG_PATH = "coveralls-config.yaml"

ENV_REPO_TOKEN = "COVERALLS_REPO_TOKEN"
ENV_ENDPOINT = "COVERALLS_ENDPOINT"
ENV_JOB_ID = "TRAVIS_JOB_ID"

#: Service name assumed when a CI job id is found and none is configured
DEFAULT_SERVICE_NAME = "travis-ci"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ConfigurationError(Exception):
    """Raised when the configuration is missing, malformed or insufficient."""


# ---------------------------------------------------------------------------
# Config dataclass
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Config:
    cobertura_file: Path = Path("coverage.xml")
    payload_file: Path = Path("coveralls.json")
    base_dir: Path = Path(".")
    source_roots: tuple[Path, ...] = ()
    encoding: str = "UTF-8"
    repo_token: str | None = None
    service_job_id: str | None = None
    service_name: str | None = None
    endpoint: str = DEFAULT_ENDPOINT
    fail_build_on_error: bool = False


# ---------------------------------------------------------------------------
# Resolution helpers
# ---------------------------------------------------------------------------

def read_token_file(path: str | Path | None) -> str | None:
    """Return the stripped token stored in *path*, or None if unreadable."""
    if not path:
        return None
    try:
        token = Path(path).read_text(encoding="utf-8").strip()
    except OSError:
        return None
    return token or None


def resolve_repo_token(
    env: Mapping[str, str],
    setting: str | None,
    token_file: str | Path | None,
) -> str | None:
    """Pick the repo token: environment, then setting, then token file."""
    return (
        _clean(env.get(ENV_REPO_TOKEN))
        or _clean(setting)
        or read_token_file(token_file)
    )


def resolve_endpoint(env: Mapping[str, str], setting: str | None) -> str:
    return _clean(env.get(ENV_ENDPOINT)) or _clean(setting) or DEFAULT_ENDPOINT


def flatten_roots(source_roots, module_source_roots) -> tuple[Path, ...]:
    """Standard roots first, then each module's roots in configured order.

    A bare path is accepted wherever a list of paths is expected.

    Raises:
        ConfigurationError: a value is neither a path nor a list of paths
    """
    roots = [Path(r) for r in _path_list(source_roots, "project.source_roots")]
    for module in _path_list(module_source_roots, "project.module_source_roots", nested=True):
        roots.extend(Path(r) for r in _path_list(module, "project.module_source_roots"))
    return tuple(roots)


def _path_list(value, key: str, nested: bool = False) -> list:
    if value is None:
        return []
    if isinstance(value, (str, os.PathLike)):
        return [value]
    if not isinstance(value, (list, tuple)):
        raise ConfigurationError(
            f"'{key}' must be a path or a list of paths, got {type(value).__name__}"
        )
    for item in value:
        allowed = (str, os.PathLike, list, tuple) if nested else (str, os.PathLike)
        if not isinstance(item, allowed):
            raise ConfigurationError(
                f"'{key}' entries must be paths, got {type(item).__name__}: {item!r}"
            )
    return list(value)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load(
    config_path: str | Path | None = DEFAULT_CONFIG_PATH,
    env: Mapping[str, str] | None = None,
) -> Config:
    """Load and validate configuration from a YAML file and the environment.

    The file is optional: when it does not exist every setting takes its
    default and the environment has to supply a token or a job id.

    Raises:
        ConfigurationError: malformed file, unknown encoding, or neither a
                            repo token nor a CI job id could be found.
    """
    env = os.environ if env is None else env
    raw = _read_yaml(config_path) if config_path else {}

    report = _section(raw, "report")
    project = _section(raw, "project")
    coveralls = _section(raw, "coveralls")

    base_dir = Path(project.get("base_dir") or ".")
    repo_token = resolve_repo_token(
        env,
        coveralls.get("repo_token"),
        _under(base_dir, coveralls.get("repo_token_file")),
    )
    job_id = _clean(env.get(ENV_JOB_ID))
    service_name = _clean(coveralls.get("service_name"))
    if service_name is None and job_id is not None:
        service_name = DEFAULT_SERVICE_NAME

    config = Config(
        cobertura_file=_under(base_dir, report.get("cobertura_file") or "coverage.xml"),
        payload_file=_under(base_dir, report.get("payload_file") or "coveralls.json"),
        base_dir=base_dir,
        source_roots=tuple(
            _under(base_dir, r)
            for r in flatten_roots(project.get("source_roots"), project.get("module_source_roots"))
        ),
        encoding=str(report.get("encoding") or "UTF-8"),
        repo_token=repo_token,
        service_job_id=job_id,
        service_name=service_name,
        endpoint=resolve_endpoint(env, coveralls.get("endpoint")),
        fail_build_on_error=_flag(coveralls, "fail_build_on_error"),
    )
    validate(config)
    return config


def _read_yaml(config_path: str | Path) -> dict:
    path = Path(config_path)
    if not path.exists():
        return {}

    try:
        with path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Failed to parse '{config_path}': {exc}") from exc

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"'{config_path}' must be a YAML mapping at the top level.")
    return raw


def _flag(section: dict, name: str, default: bool = False) -> bool:
    value = section.get(name)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigurationError(
            f"'coveralls.{name}' must be true or false, got {value!r}"
        )
    return value


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"'{name}' must be a mapping, got {type(value).__name__}")
    return value


def validate(config: Config) -> None:
    """Raise ConfigurationError if the upload cannot possibly be attributed."""
    errors: list[str] = []

    try:
        codec = codecs.lookup(config.encoding)
    except LookupError:
        errors.append(f"  - 'report.encoding' names an unknown codec: {config.encoding!r}")
    else:
        # rot13, hex, base64 and friends are codecs but not text encodings
        try:
            b"".decode(codec.name)
        except LookupError:
            errors.append(
                f"  - 'report.encoding' is not a text encoding: {config.encoding!r}"
            )

    if not config.repo_token and not config.service_job_id:
        errors.append(
            "  - Could not find a coveralls repo token or determine the CI job id\n"
            f"    (set {ENV_REPO_TOKEN} or 'coveralls.repo_token' / 'coveralls.repo_token_file',\n"
            f"    or run under CI with {ENV_JOB_ID} set)"
        )

    if errors:
        raise ConfigurationError("Invalid configuration:\n" + "\n".join(errors))


def _clean(value) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _under(base_dir: Path, value) -> Path | None:
    if value is None:
        return None
    path = Path(value)
    return path if path.is_absolute() else base_dir / path


# ---------------------------------------------------------------------------
# Template generator (used by `init` command)
# ---------------------------------------------------------------------------

TEMPLATE = """\
report:
  cobertura_file: "coverage.xml"     # Cobertura XML produced by the test run
  payload_file: "coveralls.json"     # Where the upload payload is written
  encoding: "UTF-8"                  # Encoding of your source files

project:
  base_dir: "."                      # File names are reported relative to this
  source_roots:
    - "src"
  module_source_roots:               # One list per module, searched in order
    # - ["module-a/src"]
    # - ["module-b/src"]

coveralls:
  # repo_token: "xxxxxxxxxxxx"       # Or set COVERALLS_REPO_TOKEN
  # repo_token_file: ".coveralls-token"
  # service_name: "github-actions"
  endpoint: "https://coveralls.io"
  fail_build_on_error: false
"""


def generate_template(output_path: str = DEFAULT_CONFIG_PATH) -> None:
    """Write a template coveralls-config.yaml to *output_path*.

    Raises:
        ConfigurationError: if the file already exists (to avoid overwriting secrets).
    """
    path = Path(output_path)
    if path.exists():
        raise ConfigurationError(
            f"'{output_path}' already exists. Remove it first or choose a different path."
        )
    path.write_text(TEMPLATE, encoding="utf-8")

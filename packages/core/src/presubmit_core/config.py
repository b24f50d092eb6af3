import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional
from urllib.parse import urlparse

import yaml

from presubmit_core.errors import ConfigError

DEFAULT_CONFIG: dict = {
    "gerrit_url": "https://vanadium-review.googlesource.com",
    "jenkins_host": "",  # empty = never dispatch anything
    "job": "vanadium-presubmit-test",
    "query": "(status:open -project:experimental)",
    "store": "json",
    "store_path": "${HOME}/tmp/presubmit_log",
    "build_number": -1,
    "dashboard_host": "https://dashboard.v.io",
    "trusted_owner_domain": "@google.com",
    "workspace": None,  # None = $WORKSPACE
    "request_timeout": 30,
    "projects": {},  # project name -> list of tests
    "test_parts": {},  # test name -> list of part specs
    "matrix_jobs": {},  # job name -> {has_arch, has_os, has_parts, show_os}
    "oncall": None,  # {"primary": ..., "secondary": ...}
}


@dataclass(frozen=True)
class MatrixJobInfo:
    """Axes of a Jenkins multi-configuration job."""

    has_arch: bool = False
    has_os: bool = False
    has_parts: bool = False
    show_os: bool = False


@dataclass(frozen=True)
class PresubmitConfig:
    """Immutable view of the merged configuration, passed to every pipeline."""

    gerrit_url: str
    jenkins_host: str
    job: str
    query: str
    store: str
    store_path: str
    build_number: int
    dashboard_host: str
    trusted_owner_domain: str
    workspace: str
    request_timeout: float
    projects: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    test_parts: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    matrix_jobs: Mapping[str, MatrixJobInfo] = field(default_factory=dict)
    oncall: Optional[tuple[str, str]] = None

    @classmethod
    def from_dict(cls, config: dict) -> "PresubmitConfig":
        gerrit_url = validate_url(config.get("gerrit_url") or "")
        oncall = config.get("oncall") or None
        if oncall is not None:
            oncall = (str(oncall.get("primary", "")), str(oncall.get("secondary", "")))
        try:
            return cls(
                gerrit_url=gerrit_url,
                jenkins_host=(config.get("jenkins_host") or "").rstrip("/"),
                job=config["job"],
                query=config["query"],
                store=config["store"],
                store_path=os.path.expanduser(os.path.expandvars(config["store_path"])),
                build_number=int(config["build_number"]),
                dashboard_host=config["dashboard_host"].rstrip("/"),
                trusted_owner_domain=config["trusted_owner_domain"],
                workspace=config.get("workspace") or os.environ.get("WORKSPACE", ""),
                request_timeout=float(config["request_timeout"]),
                projects=MappingProxyType(
                    {name: tuple(tests or ()) for name, tests in (config.get("projects") or {}).items()}
                ),
                test_parts=MappingProxyType(
                    {name: tuple(parts or ()) for name, parts in (config.get("test_parts") or {}).items()}
                ),
                matrix_jobs=MappingProxyType(
                    {name: MatrixJobInfo(**(axes or {})) for name, axes in (config.get("matrix_jobs") or {}).items()}
                ),
                oncall=oncall,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ConfigError(f"invalid configuration: {e}")


def validate_url(url: str) -> str:
    """Return url without a trailing slash, or raise ConfigError if it is not absolute http(s)."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"invalid gerrit url {url!r}")
    return url.rstrip("/")


def load_config(config_path: str = ".presubmit.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .presubmit.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG}

    path = Path(config_path)
    if path.exists():
        try:
            with open(path) as f:
                file_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"cannot parse {config_path}: {e}")
        if not isinstance(file_config, dict):
            raise ConfigError(f"{config_path} must contain a mapping")
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    return config

"""
Configuration model — the immutable settings snapshot for one run.

Built once by the ConfigResolver from defaults, the persisted
key=value file and command-line flags, then shared read-only by every
component. Field validators enforce the format invariants; the
root-exclusion invariant is enforced by the identity pre-flight so it
surfaces as an IdentityError rather than a ConfigError.
"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

USERNAME_PATTERN = re.compile(r"^[a-z_][a-z0-9_-]*$")
_VERSION_PATTERN = re.compile(r"^[A-Za-z0-9._/*+-]+$")
_NAME_PATTERN = re.compile(r"^[A-Za-z0-9._@-]+$")


def is_url(value: str) -> bool:
    """Whether *value* is an http(s)/ftp URL rather than a filesystem path."""
    return urlparse(value).scheme in ("http", "https", "ftp")


class Configuration(BaseModel):
    """Immutable configuration snapshot."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    dry_run: bool = False
    min_disk_space_mb: int = Field(default=1000, ge=0)
    runtime_version: str = "18"
    service_user: str = "mediauser"
    cleanup_previous: bool = True
    log_file: str = "/var/log/nms.log"
    start_service: bool = True
    health_check_url: str = "http://localhost:8000/api/server"
    ports: tuple[int, ...] = (1935, 8000)
    app_source: str = (
        "https://raw.githubusercontent.com/dejosli/boilerplates/refs/heads/main/"
        "docker-compose/node-media-server/app.js"
    )
    package_version: str = "2.7.0"
    quiet: bool = False
    force_cleanup: bool = False
    no_rollback: bool = False

    # Deployment naming (fixed in older releases, configurable now)
    service_name: str = "nms"
    package_name: str = "node-media-server"
    install_dir_name: str = "Node-Media-Server"

    # Host resolver settings
    dns_servers: tuple[str, ...] = ("1.1.1.1", "8.8.8.8")
    fallback_dns: tuple[str, ...] = ("9.9.9.9",)

    @field_validator("service_user")
    @classmethod
    def _check_username(cls, value: str) -> str:
        if not value or not USERNAME_PATTERN.match(value):
            raise ValueError(
                f"invalid username {value!r}: must start with a letter or "
                "underscore, followed by letters, digits, underscores or hyphens"
            )
        return value

    @field_validator("runtime_version", "package_version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        if not _VERSION_PATTERN.match(value):
            raise ValueError(f"invalid version string {value!r}")
        return value

    @field_validator("service_name", "package_name", "install_dir_name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not _NAME_PATTERN.match(value):
            raise ValueError(f"invalid name {value!r}")
        return value

    @field_validator("log_file")
    @classmethod
    def _check_log_file(cls, value: str) -> str:
        if not value.startswith("/") or any(c.isspace() for c in value):
            raise ValueError(f"log_file must be an absolute path without whitespace: {value!r}")
        return value

    @field_validator("health_check_url")
    @classmethod
    def _check_health_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"malformed health check URL {value!r}")
        return value

    @field_validator("app_source")
    @classmethod
    def _check_app_source(cls, value: str) -> str:
        if not value or any(c.isspace() for c in value):
            raise ValueError(f"invalid app_source {value!r}")
        if is_url(value):
            if not urlparse(value).netloc:
                raise ValueError(f"malformed app_source URL {value!r}")
        elif not value.startswith("/"):
            raise ValueError(f"app_source path must be absolute: {value!r}")
        return value

    @field_validator("ports", mode="before")
    @classmethod
    def _parse_ports(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [p for p in re.split(r"[,\s]+", value.strip()) if p]
        return value

    @field_validator("ports")
    @classmethod
    def _check_ports(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        if not value:
            raise ValueError("at least one port is required")
        for port in value:
            if not 1 <= port <= 65535:
                raise ValueError(f"port out of range: {port}")
        # ordered set: keep first occurrence
        return tuple(dict.fromkeys(value))

    @field_validator("dns_servers", "fallback_dns", mode="before")
    @classmethod
    def _parse_hosts(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [h for h in re.split(r"[,\s]+", value.strip()) if h]
        return value

    @property
    def runs_as_root(self) -> bool:
        return self.service_user == "root"

    @property
    def unit_name(self) -> str:
        return f"{self.service_name}.service"

    def to_file_values(self) -> dict[str, str]:
        """Render every field as a persisted-file string value."""
        values: dict[str, str] = {}
        for name, value in self.model_dump().items():
            if isinstance(value, bool):
                values[name] = "1" if value else "0"
            elif isinstance(value, (list, tuple)):
                values[name] = ",".join(str(v) for v in value)
            else:
                values[name] = str(value)
        return values

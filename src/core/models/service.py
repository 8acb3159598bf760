"""
ServiceDescriptor — everything needed to render and manage the service.

Derived from the Configuration by the ServiceDeployer; replaced
whenever the service identity changes across runs.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator


class ServiceDescriptor(BaseModel):
    """The deployed service, as rendered into unit and policy files."""

    model_config = ConfigDict(frozen=True)

    service_name: str
    target_user: str
    group: str
    home: str
    install_dir: str
    entrypoint: str
    runtime_dir: str
    log_path: str
    ports: tuple[int, ...]
    restart_policy: str = "always"
    restart_sec: int = 5
    unit_path: str
    logrotate_path: str
    description: str = "Node Media Server"

    @field_validator(
        "home", "install_dir", "entrypoint", "runtime_dir",
        "log_path", "unit_path", "logrotate_path",
    )
    @classmethod
    def _check_path(cls, value: str) -> str:
        # Values end up verbatim in unit/policy files.
        if not value.startswith("/") or any(c.isspace() or c in "'\"\\%$`;" for c in value):
            raise ValueError(f"unsafe path for rendered artifact: {value!r}")
        return value

    @property
    def unit_name(self) -> str:
        return f"{self.service_name}.service"

"""
systemd unit generator — render ``<service>.service`` from a descriptor.

The runtime is installed per user under ``~/.nvm``, so ExecStart
sources ``nvm.sh`` before exec'ing node. Output is appended to the
service log file so logrotate can manage it.
"""

from __future__ import annotations

from src.core.models.service import ServiceDescriptor
from src.core.models.template import RenderedFile

_UNIT_TEMPLATE = """\
[Unit]
Description={description}
After=network.target

[Service]
ExecStart=/bin/bash -c '. {runtime_dir}/nvm.sh && exec node {entrypoint}'
Restart={restart_policy}
RestartSec={restart_sec}s
User={user}
Group={group}
WorkingDirectory={install_dir}
StandardOutput=append:{log_path}
StandardError=append:{log_path}

[Install]
WantedBy=multi-user.target
"""


def render_unit(descriptor: ServiceDescriptor) -> RenderedFile:
    """Render the unit file for *descriptor* (mode 0644)."""
    content = _UNIT_TEMPLATE.format(
        description=descriptor.description,
        runtime_dir=descriptor.runtime_dir,
        entrypoint=descriptor.entrypoint,
        restart_policy=descriptor.restart_policy,
        restart_sec=descriptor.restart_sec,
        user=descriptor.target_user,
        group=descriptor.group,
        install_dir=descriptor.install_dir,
        log_path=descriptor.log_path,
    )
    return RenderedFile(
        path=descriptor.unit_path,
        content=content,
        mode=0o644,
        reason=f"systemd unit for {descriptor.service_name}",
    )


def unit_owner(text: str) -> str | None:
    """Extract ``User=`` from an existing unit file, if any."""
    for line in text.splitlines():
        line = line.strip()
        if line.startswith("User="):
            return line.partition("=")[2].strip() or None
    return None

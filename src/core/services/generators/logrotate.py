"""
logrotate policy generator.

Weekly rotation, two generations kept, early rotation past 10M,
compressed (delayed by one cycle). ``copytruncate`` because the unit
appends to the file and never reopens it.
"""

from __future__ import annotations

from src.core.models.service import ServiceDescriptor
from src.core.models.template import RenderedFile

_POLICY_TEMPLATE = """\
{log_path} {{
    weekly
    rotate 2
    size 10M
    missingok
    compress
    delaycompress
    notifempty
    copytruncate
    create 640 {user} {group}
}}
"""


def render_logrotate(descriptor: ServiceDescriptor) -> RenderedFile:
    content = _POLICY_TEMPLATE.format(
        log_path=descriptor.log_path,
        user=descriptor.target_user,
        group=descriptor.group,
    )
    return RenderedFile(
        path=descriptor.logrotate_path,
        content=content,
        mode=0o644,
        reason=f"log rotation for {descriptor.log_path}",
    )

"""
Domain models — typed records shared by every component.

All models are re-exported here for convenient access:

    from src.core.models import Configuration, PlatformProfile, Phase, ErrorLog
"""

from src.core.models.config import Configuration
from src.core.models.phase import Criticality, Phase, PhaseOutcome, PhaseStatus
from src.core.models.platform import (
    DistroFamily,
    FirewallKind,
    PackageCommands,
    PlatformProfile,
)
from src.core.models.result import ErrorLog, ExecutionResult
from src.core.models.run import RunReport, RunState
from src.core.models.service import ServiceDescriptor
from src.core.models.template import RenderedFile

__all__ = [
    # config.py
    "Configuration",
    # phase.py
    "Criticality",
    "Phase",
    "PhaseOutcome",
    "PhaseStatus",
    # platform.py
    "DistroFamily",
    "FirewallKind",
    "PackageCommands",
    "PlatformProfile",
    # result.py
    "ErrorLog",
    "ExecutionResult",
    # run.py
    "RunReport",
    "RunState",
    # service.py
    "ServiceDescriptor",
    # template.py
    "RenderedFile",
]

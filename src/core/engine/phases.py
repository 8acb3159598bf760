"""
Phase declarations — the provisioning pipeline, in execution order.

Declared once and statically. The list never changes at runtime; what
a phase does on a particular host is decided inside its action through
the capability set, never by adding or removing phases.
"""

from __future__ import annotations

from src.core.context import RunContext
from src.core.errors import NotApplicable
from src.core.models.phase import Criticality, Phase
from src.core.models.run import RunState
from src.core.observability.health import HealthValidator
from src.core.reliability.retry import NETWORK_RETRY, RetryPolicy
from src.core.services import host_tuning
from src.core.services.service_deploy import ServiceDeployer
from src.core.services.user_lifecycle import UserLifecycleManager

WARN = Criticality.WARN


# ── Identity ────────────────────────────────────────────────────


def _cleanup_previous(ctx: RunContext) -> None:
    if not ctx.config.cleanup_previous:
        raise NotApplicable("cleanup_previous disabled")
    users = UserLifecycleManager(ctx)
    old_user = users.detect_previous()
    if old_user is None:
        raise NotApplicable("No previous installation under another identity")
    users.cleanup_previous_user(old_user)


def _identity_exists(ctx: RunContext) -> bool:
    return UserLifecycleManager(ctx).user_exists(ctx.config.service_user)


def _create_identity(ctx: RunContext) -> None:
    UserLifecycleManager(ctx).create_identity()


# ── Deployment ──────────────────────────────────────────────────


def _deploy_step(name: str):
    def step(ctx: RunContext):
        return getattr(ServiceDeployer(ctx), name)()

    step.__name__ = name
    return step


def _validate_health(ctx: RunContext) -> None:
    HealthValidator(ctx).validate()


def build_phases(
    *,
    network_retry: RetryPolicy = NETWORK_RETRY,
    health_validator=None,
) -> list[Phase]:
    """The full pipeline.

    Args:
        network_retry: Policy for the package index refresh/upgrade.
        health_validator: ``callable(ctx) -> None`` replacing the default
            validation (tests inject a validator with a stubbed probe).
    """
    validate = health_validator or _validate_health
    return [
        Phase(
            name="disk_space",
            description="Checking free disk space",
            action=host_tuning.ensure_disk_space,
        ),
        Phase(
            name="previous_installation",
            description="Checking for a previous installation",
            action=_cleanup_previous,
            criticality=WARN,
        ),
        Phase(
            name="package_sources",
            description="Configuring package sources",
            action=host_tuning.configure_package_sources,
            is_satisfied=host_tuning.package_sources_current,
        ),
        Phase(
            name="package_refresh",
            description="Updating and upgrading system packages",
            action=host_tuning.refresh_packages,
            retry=network_retry,
        ),
        Phase(
            name="package_cleanup",
            description="Cleaning up the package cache",
            action=host_tuning.clean_packages,
            criticality=WARN,
        ),
        Phase(
            name="required_packages",
            description="Installing required packages",
            action=host_tuning.install_required_packages,
            is_satisfied=host_tuning.required_packages_installed,
        ),
        Phase(
            name="journald",
            description="Configuring persistent journal",
            action=host_tuning.configure_journald,
            is_satisfied=host_tuning.journald_applied,
            criticality=WARN,
        ),
        Phase(
            name="journal_vacuum",
            description="Scheduling weekly journal vacuum",
            action=host_tuning.install_vacuum_cron,
            is_satisfied=host_tuning.vacuum_cron_current,
            criticality=WARN,
        ),
        Phase(
            name="zram_swap",
            description="Configuring ZRAM swap",
            action=host_tuning.configure_zram,
            is_satisfied=host_tuning.zram_current,
            criticality=WARN,
        ),
        Phase(
            name="dns_resolver",
            description="Configuring systemd-resolved",
            action=host_tuning.configure_resolver,
            is_satisfied=host_tuning.resolver_applied,
            criticality=WARN,
        ),
        Phase(
            name="service_user",
            description="Creating the service user",
            action=_create_identity,
            is_satisfied=_identity_exists,
        ),
        Phase(
            name="runtime",
            description="Installing nvm and Node.js",
            action=_deploy_step("install_runtime"),
            is_satisfied=_deploy_step("runtime_current"),
        ),
        Phase(
            name="application",
            description="Installing the application",
            action=_deploy_step("install_application"),
            is_satisfied=_deploy_step("application_current"),
        ),
        Phase(
            name="service_unit",
            description="Installing the systemd unit",
            action=_deploy_step("install_unit"),
            is_satisfied=_deploy_step("unit_current"),
        ),
        Phase(
            name="log_rotation",
            description="Configuring the service log and its rotation",
            action=_deploy_step("install_log_rotation"),
            is_satisfied=_deploy_step("log_rotation_current"),
        ),
        Phase(
            name="mac_labels",
            description="Applying SELinux labels",
            action=_deploy_step("apply_labels"),
            criticality=WARN,
        ),
        Phase(
            name="firewall",
            description="Opening service ports",
            action=_deploy_step("open_ports"),
            is_satisfied=_deploy_step("ports_open"),
            rollback=_deploy_step("close_ports"),
        ),
        Phase(
            name="service_start",
            description="Starting the service",
            action=_deploy_step("start"),
            advances_to=RunState.DEPLOYED,
        ),
        Phase(
            name="health_validation",
            description="Validating service health",
            action=validate,
            advances_to=RunState.VALIDATED,
        ),
        Phase(
            name="auto_updates",
            description="Enabling automatic security updates",
            action=host_tuning.enable_auto_updates,
            is_satisfied=host_tuning.auto_updates_installed,
            criticality=WARN,
        ),
        Phase(
            name="ssd_trim",
            description="Enabling periodic SSD trim",
            action=host_tuning.enable_ssd_trim,
            is_satisfied=host_tuning.trim_timer_enabled,
            criticality=WARN,
        ),
        Phase(
            name="unused_services",
            description="Disabling unused services",
            action=host_tuning.disable_unused_services,
            is_satisfied=host_tuning.unused_services_disabled,
            criticality=WARN,
        ),
        Phase(
            name="final_checks",
            description="Checking final system status",
            action=host_tuning.final_checks,
            criticality=WARN,
        ),
    ]


def phase_names() -> list[str]:
    return [phase.name for phase in build_phases()]

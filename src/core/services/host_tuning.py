"""
Host tuning — the system-level phases around the service deployment.

Package sources and updates, journald, journal vacuum, zram swap,
resolver, automatic updates, SSD trim, unused services and the final
status report. Each forward action has a predicate named
``*_current`` / ``*_applied`` used as the phase's idempotency check.

All functions take the RunContext; none keeps state between calls.
"""

from __future__ import annotations

import logging
from pathlib import Path

from src.core.context import RunContext
from src.core.errors import CapabilityMissing, DiskExhausted, NotApplicable
from src.core.models.template import RenderedFile
from src.core.services.generators.host_config import (
    JOURNALD_SETTINGS,
    disable_deb_lines,
    render_debian_sources,
    render_journald,
    render_resolved,
    render_vacuum_cron,
    render_zram,
    resolved_settings,
    settings_applied,
)
from src.core.services.platform_detect import parse_os_release

logger = logging.getLogger(__name__)

VACUUM_CRON_NAME = "nms-journal-vacuum"
UNUSED_SERVICES = ("bluetooth.service",)
_VIRTUAL_DISKS = ("loop", "ram", "zram", "dm-", "sr")


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError:
        return ""


def _write(ctx: RunContext, rendered: RenderedFile) -> None:
    logger.info("Writing %s (%s)", rendered.path, rendered.reason)
    ctx.runner.write_file(rendered.path, rendered.content, mode=rendered.mode)


# ── Disk ────────────────────────────────────────────────────────


def ensure_disk_space(ctx: RunContext) -> None:
    """Global disk check at run start."""
    root = ctx.paths.disk_root
    required = ctx.config.min_disk_space_mb
    available = ctx.disk_free(root)
    if available < required:
        raise DiskExhausted(required, available, str(root))
    logger.info("Disk space OK: %dMB free on %s (minimum %dMB)", available, root, required)


# ── Package sources ─────────────────────────────────────────────


def _debian_sources(ctx: RunContext) -> RenderedFile:
    if ctx.profile.family != "debian":
        raise CapabilityMissing(
            f"Package source management not supported on {ctx.profile.distro_id}"
        )
    if ctx.profile.distro_id != "debian":
        raise NotApplicable(f"Keeping {ctx.profile.distro_id}'s own package sources")
    codename = parse_os_release(_read(ctx.paths.os_release)).get("VERSION_CODENAME", "")
    if not codename:
        raise CapabilityMissing("Debian release codename unknown; package sources left unchanged")
    return render_debian_sources(codename, ctx.paths.apt_sources)


def _extra_source_lists(ctx: RunContext) -> list[Path]:
    directory = ctx.paths.apt_sources_dir
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.glob("*.list") if p.is_file())


def package_sources_current(ctx: RunContext) -> bool:
    try:
        rendered = _debian_sources(ctx)
    except (CapabilityMissing, NotApplicable):
        return False
    if not rendered.is_current():
        return False
    return all(disable_deb_lines(_read(p)) == _read(p) for p in _extra_source_lists(ctx))


def configure_package_sources(ctx: RunContext) -> None:
    """Back up and replace sources.list; disable extra repositories."""
    rendered = _debian_sources(ctx)
    runner = ctx.runner
    sources = ctx.paths.apt_sources

    if sources.is_file():
        backup = sources.with_name(sources.name + ".bak")
        runner.copy_file(sources, backup)
    _write(ctx, rendered)

    for extra in _extra_source_lists(ctx):
        text = _read(extra)
        disabled = disable_deb_lines(text)
        if disabled != text:
            logger.info("Disabling additional repository %s", extra)
            runner.write_file(extra, disabled, mode=0o644)


# ── Packages ────────────────────────────────────────────────────


def refresh_packages(ctx: RunContext) -> None:
    packages = ctx.capabilities.packages
    packages.refresh()
    packages.upgrade()


def clean_packages(ctx: RunContext) -> None:
    packages = ctx.capabilities.packages
    packages.autoremove()
    packages.clean()


def required_package_names(ctx: RunContext) -> list[str]:
    return list(dict.fromkeys(ctx.profile.required_tools.values()))


def required_packages_installed(ctx: RunContext) -> bool:
    if not ctx.profile.has_package_manager:
        return False
    packages = ctx.capabilities.packages
    return all(packages.is_installed(name) for name in required_package_names(ctx))


def install_required_packages(ctx: RunContext) -> None:
    if not ctx.profile.has_package_manager:
        raise CapabilityMissing("No supported package manager; required packages not installed")
    packages = ctx.capabilities.packages
    missing = []
    for name in required_package_names(ctx):
        if packages.is_installed(name):
            logger.info("%s is already installed", name)
        else:
            missing.append(name)
    if missing:
        logger.info("Installing missing packages: %s", ", ".join(missing))
        packages.install(missing)


# ── journald ────────────────────────────────────────────────────


def journald_applied(ctx: RunContext) -> bool:
    return settings_applied(_read(ctx.paths.journald_conf), "Journal", JOURNALD_SETTINGS)


def configure_journald(ctx: RunContext) -> None:
    conf = ctx.paths.journald_conf
    if not conf.is_file() and not ctx.dry_run:
        raise CapabilityMissing(f"{conf} not found; journald left unconfigured")
    ctx.runner.make_dir(ctx.paths.journal_dir, mode=0o755)
    _write(ctx, render_journald(_read(conf), conf))
    ctx.capabilities.services.restart("systemd-journald")


def _vacuum_cron(ctx: RunContext) -> RenderedFile:
    return render_vacuum_cron(ctx.paths.cron_dir / VACUUM_CRON_NAME)


def vacuum_cron_current(ctx: RunContext) -> bool:
    return _vacuum_cron(ctx).is_current()


def install_vacuum_cron(ctx: RunContext) -> None:
    _write(ctx, _vacuum_cron(ctx))


# ── zram ────────────────────────────────────────────────────────


def zram_current(ctx: RunContext) -> bool:
    return render_zram(ctx.paths.zram_conf).is_current()


def configure_zram(ctx: RunContext) -> None:
    if ctx.runner.which("zramswap") is None:
        raise CapabilityMissing("zram-tools not installed; compressed swap not configured")
    _write(ctx, render_zram(ctx.paths.zram_conf))
    ctx.capabilities.services.restart("zramswap")


# ── Resolver ────────────────────────────────────────────────────


def resolver_applied(ctx: RunContext) -> bool:
    settings = resolved_settings(ctx.config.dns_servers, ctx.config.fallback_dns)
    return settings_applied(_read(ctx.paths.resolved_conf), "Resolve", settings)


def configure_resolver(ctx: RunContext) -> None:
    if not ctx.config.dns_servers:
        raise NotApplicable("No DNS servers configured")
    if ctx.runner.which("resolvectl") is None:
        raise CapabilityMissing("systemd-resolved not available; resolver left unchanged")
    services = ctx.capabilities.services
    services.enable("systemd-resolved", now=True)
    conf = ctx.paths.resolved_conf
    _write(
        ctx,
        render_resolved(_read(conf), conf, ctx.config.dns_servers, ctx.config.fallback_dns),
    )
    services.restart("systemd-resolved")


# ── Automatic updates ───────────────────────────────────────────


def auto_updates_installed(ctx: RunContext) -> bool:
    package = ctx.profile.auto_updates_package
    return bool(package) and ctx.capabilities.packages.is_installed(package)


def enable_auto_updates(ctx: RunContext) -> None:
    package = ctx.profile.auto_updates_package
    if not package:
        raise CapabilityMissing(f"No automatic update package known for {ctx.profile.family}")
    ctx.capabilities.packages.install([package])
    if ctx.profile.family == "debian":
        ctx.runner.run(
            ["dpkg-reconfigure", "-f", "noninteractive", "-plow", package]
        )
    elif package == "dnf-automatic":
        ctx.capabilities.services.enable("dnf-automatic.timer", now=True)


# ── SSD trim ────────────────────────────────────────────────────


def _root_disk_rotational(ctx: RunContext) -> bool | None:
    """Rotational flag of the first physical disk; None if unknown."""
    block = ctx.paths.sys_block
    if not block.is_dir():
        return None
    for disk in sorted(block.iterdir()):
        if disk.name.startswith(_VIRTUAL_DISKS):
            continue
        flag = _read(disk / "queue" / "rotational").strip()
        if flag in ("0", "1"):
            return flag == "1"
    return None


def trim_timer_enabled(ctx: RunContext) -> bool:
    return ctx.capabilities.services.is_enabled("fstrim.timer")


def enable_ssd_trim(ctx: RunContext) -> None:
    rotational = _root_disk_rotational(ctx)
    if rotational is None or rotational:
        raise NotApplicable("No SSD detected; periodic trim not needed")
    ctx.capabilities.services.enable("fstrim.timer")


# ── Unused services ─────────────────────────────────────────────


def unused_services_disabled(ctx: RunContext) -> bool:
    services = ctx.capabilities.services
    return not any(services.is_enabled(unit) for unit in UNUSED_SERVICES)


def disable_unused_services(ctx: RunContext) -> None:
    services = ctx.capabilities.services
    for unit in UNUSED_SERVICES:
        if services.is_enabled(unit):
            logger.info("Disabling unused service %s", unit)
            services.disable(unit, now=True, best_effort=True)


# ── Final status ────────────────────────────────────────────────


def final_checks(ctx: RunContext) -> None:
    """Report service and journal state; problems become warnings."""
    if ctx.dry_run:
        raise NotApplicable("Dry run; nothing deployed to report on")
    runner = ctx.runner
    services = ctx.capabilities.services
    unit = ctx.config.unit_name

    if ctx.config.start_service and not services.is_active(unit):
        ctx.warn(runner.phase, f"{unit} is not active at the end of the run")
    if not services.is_active("systemd-journald"):
        ctx.warn(runner.phase, "systemd-journald is not active")

    verify = runner.probe(["journalctl", "--verify", "--quiet"], timeout=120)
    if not verify.ok:
        ctx.warn(runner.phase, "Journal verification reported problems")

    node = runner.probe(
        ["bash", "-c", f". {ctx.paths.home_of(ctx.config.service_user)}/.nvm/nvm.sh && node -v"],
        as_user=ctx.config.service_user,
    )
    logger.info("Node.js version: %s", node.output.strip() if node.ok else "unknown")
    logger.info("Service user: %s", ctx.config.service_user)
    logger.info("Service log file: %s", ctx.config.log_file)
    logger.info("Free disk space: %dMB", ctx.disk_free(ctx.paths.disk_root))

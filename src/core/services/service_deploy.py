"""
Service deployment — runtime, application, unit, log rotation,
labels, firewall and start.

``describe()`` derives the ServiceDescriptor from the configuration;
each ``install_*`` / ``apply_*`` method is the forward action of one
phase, with a matching ``*_current`` predicate so a second run reports
the step as already satisfied without issuing commands.
"""

from __future__ import annotations

import json
import logging
import shlex
from datetime import datetime
from pathlib import Path
from urllib.parse import urlparse

from src.core.context import HostPaths, RunContext
from src.core.errors import CapabilityMissing, DiskExhausted, NotApplicable
from src.core.models.config import Configuration, is_url
from src.core.models.service import ServiceDescriptor
from src.core.services.generators.logrotate import render_logrotate
from src.core.services.generators.systemd_unit import render_unit, unit_owner
from src.core.services.user_lifecycle import RUNTIME_DIR_NAME

logger = logging.getLogger(__name__)

NVM_VERSION = "v0.40.1"
NVM_INSTALL_URL = f"https://raw.githubusercontent.com/nvm-sh/nvm/{NVM_VERSION}/install.sh"
RUNTIME_MIN_DISK_MB = 500

# SELinux types for deployed artifacts
_LABELS = {
    "unit": "systemd_unit_file_t",
    "logrotate": "etc_t",
    "log": "var_log_t",
    "install": "usr_t",
}


def describe(config: Configuration, paths: HostPaths | None = None) -> ServiceDescriptor:
    """Derive the service descriptor for *config*."""
    paths = paths or HostPaths()
    home = paths.home_of(config.service_user)
    install_dir = home / config.install_dir_name
    entry_name = Path(urlparse(config.app_source).path).name if is_url(config.app_source) \
        else Path(config.app_source).name
    return ServiceDescriptor(
        service_name=config.service_name,
        target_user=config.service_user,
        group=config.service_user,
        home=str(home),
        install_dir=str(install_dir),
        entrypoint=str(install_dir / (entry_name or "app.js")),
        runtime_dir=str(home / RUNTIME_DIR_NAME),
        log_path=config.log_file,
        ports=config.ports,
        unit_path=str(paths.unit_path(config.unit_name)),
        logrotate_path=str(paths.logrotate_path(config.service_name)),
    )


class ServiceDeployer:
    """Deploys the service for one run context."""

    def __init__(self, ctx: RunContext):
        self.ctx = ctx

    @property
    def descriptor(self) -> ServiceDescriptor:
        if self.ctx.descriptor is None:
            self.ctx.descriptor = describe(self.ctx.config, self.ctx.paths)
        return self.ctx.descriptor

    def _nvm(self, script: str) -> list[str]:
        nvm_sh = shlex.quote(f"{self.descriptor.runtime_dir}/nvm.sh")
        return ["bash", "-c", f". {nvm_sh} && {script}"]

    def _chown(self, path: str, *, recursive: bool = False) -> None:
        d = self.descriptor
        cmd = ["chown"]
        if recursive:
            cmd.append("-R")
        cmd += [f"{d.target_user}:{d.group}", path]
        self.ctx.runner.run(cmd)

    # ── Runtime (nvm + Node.js) ─────────────────────────────────

    def runtime_current(self) -> bool:
        d = self.descriptor
        if not Path(d.runtime_dir, "nvm.sh").is_file():
            return False
        version = shlex.quote(self.ctx.config.runtime_version)
        result = self.ctx.runner.probe(self._nvm(f"nvm ls {version}"), as_user=d.target_user)
        return result.ok and "N/A" not in result.output

    def install_runtime(self) -> None:
        d = self.descriptor
        runner = self.ctx.runner

        runtime = Path(d.runtime_dir)
        if runtime.is_dir():
            stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            backup = Path(d.home) / f"{RUNTIME_DIR_NAME}_backup_{stamp}"
            logger.info("Backing up existing runtime environment to %s", backup)
            runner.copy_file(runtime, backup)
            runner.run(["chmod", "-R", "700", str(backup)])
            self._chown(str(backup), recursive=True)
        else:
            self.check_disk(RUNTIME_MIN_DISK_MB)
            installer = str(Path(d.home) / ".nvm-install.sh")
            logger.info("Installing nvm %s for %s", NVM_VERSION, d.target_user)
            runner.run(["curl", "-fsSL", "-o", installer, NVM_INSTALL_URL], as_user=d.target_user)
            runner.run(["bash", installer], as_user=d.target_user)
            runner.remove(installer, check=False)

        version = shlex.quote(self.ctx.config.runtime_version)
        logger.info("Installing Node.js %s", self.ctx.config.runtime_version)
        runner.run(self._nvm(f"nvm install {version}"), as_user=d.target_user)
        runner.run(self._nvm("corepack enable yarn"), as_user=d.target_user)
        runner.run(["chmod", "-R", "700", d.runtime_dir])
        self._chown(d.runtime_dir, recursive=True)

    def check_disk(self, required_mb: int) -> None:
        root = self.ctx.paths.disk_root
        available = self.ctx.disk_free(root)
        if available < required_mb:
            raise DiskExhausted(required_mb, available, str(root))
        logger.debug("Disk space OK: %dMB available, %dMB required", available, required_mb)

    # ── Application ─────────────────────────────────────────────

    def application_current(self) -> bool:
        d = self.descriptor
        config = self.ctx.config
        manifest = Path(d.install_dir, "node_modules", config.package_name, "package.json")
        if not Path(d.entrypoint).is_file() or not manifest.is_file():
            return False
        try:
            installed = json.loads(manifest.read_text(encoding="utf-8")).get("version")
        except (OSError, ValueError):
            return False
        return installed == config.package_version

    def install_application(self) -> None:
        d = self.descriptor
        config = self.ctx.config
        runner = self.ctx.runner
        self.check_disk(config.min_disk_space_mb)

        runner.make_dir(d.install_dir, mode=0o700)
        self._chown(d.install_dir)

        package_ref = shlex.quote(f"{config.package_name}@{config.package_version}")
        logger.info("Installing %s@%s", config.package_name, config.package_version)
        runner.run(self._nvm(f"npm i {package_ref}"), as_user=d.target_user, cwd=d.install_dir)

        if is_url(config.app_source):
            runner.run(
                ["wget", "-q", "-O", d.entrypoint, config.app_source],
                as_user=d.target_user,
            )
        else:
            runner.copy_file(config.app_source, d.entrypoint, mode=0o600)
            self._chown(d.entrypoint)

    # ── Unit ────────────────────────────────────────────────────

    def unit_current(self) -> bool:
        return render_unit(self.descriptor).is_current() and \
            self.ctx.capabilities.services.is_enabled(self.descriptor.unit_name)

    def install_unit(self) -> None:
        d = self.descriptor
        services = self.ctx.capabilities.services
        unit_path = Path(d.unit_path)

        if unit_path.is_file():
            owner = unit_owner(unit_path.read_text(encoding="utf-8"))
            if owner and owner != d.target_user:
                logger.info("Stopping %s owned by previous identity '%s'", d.unit_name, owner)
                services.stop(d.unit_name, best_effort=True)

        rendered = render_unit(d)
        self.ctx.runner.write_file(rendered.path, rendered.content, mode=rendered.mode)
        services.daemon_reload()
        services.enable(d.unit_name)

    # ── Log file + rotation ─────────────────────────────────────

    def log_rotation_current(self) -> bool:
        log = Path(self.descriptor.log_path)
        try:
            mode_ok = log.is_file() and (log.stat().st_mode & 0o777) == 0o640
        except OSError:
            mode_ok = False
        return mode_ok and render_logrotate(self.descriptor).is_current()

    def install_log_rotation(self) -> None:
        d = self.descriptor
        runner = self.ctx.runner

        if not Path(d.log_path).exists():
            runner.write_file(d.log_path, "", mode=0o640)
        runner.run(["chmod", "640", d.log_path])
        self._chown(d.log_path)

        policy = render_logrotate(d)
        runner.write_file(policy.path, policy.content, mode=policy.mode)

        if self.ctx.dry_run:
            return
        if runner.which("logrotate") is None:
            self.ctx.warn(runner.phase, "logrotate not installed; policy not verified")
            return
        check = runner.probe(["logrotate", "-d", policy.path])
        if not check.ok:
            self.ctx.warn(runner.phase, f"logrotate rejected {policy.path}: {check.output[-200:]}")

    # ── SELinux labels ──────────────────────────────────────────

    def apply_labels(self) -> None:
        labeler = self.ctx.capabilities.labeler
        if not labeler.enforcing:
            raise NotApplicable("SELinux not enforcing; no labels to apply")
        d = self.descriptor
        targets = [
            (d.unit_path, _LABELS["unit"], False),
            (d.logrotate_path, _LABELS["logrotate"], False),
            (d.log_path, _LABELS["log"], False),
            (d.install_dir, _LABELS["install"], True),
        ]
        for path, context_type, recursive in targets:
            if not labeler.label(path, context_type, recursive=recursive):
                self.ctx.warn(self.ctx.runner.phase, f"Failed to label {path} as {context_type}")
            if not labeler.restore(path, recursive=recursive):
                self.ctx.warn(self.ctx.runner.phase, f"Failed to restore label of {path}")

    # ── Firewall ────────────────────────────────────────────────

    def ports_open(self) -> bool:
        firewall = self.ctx.capabilities.firewall
        if not firewall.is_active():
            return False
        return all(firewall.is_port_allowed(p) for p in self.descriptor.ports)

    def open_ports(self) -> None:
        firewall = self.ctx.capabilities.firewall
        ports = list(self.descriptor.ports)
        if not firewall.is_available():
            raise CapabilityMissing(f"No firewall backend installed; ports {ports} not opened")
        if not firewall.is_active():
            raise NotApplicable(f"Firewall '{firewall.name}' installed but inactive; left untouched")
        added: list[int] = self.ctx.notes.setdefault("ports_added", [])
        for port in self.descriptor.ports:
            if firewall.is_port_allowed(port):
                logger.info("Port %d/tcp already allowed", port)
                continue
            firewall.allow_port(port)
            added.append(port)
        if added:
            firewall.reload()

    def close_ports(self) -> None:
        """Rollback hook: remove only the rules this run added."""
        firewall = self.ctx.capabilities.firewall
        added = self.ctx.notes.get("ports_added", [])
        for port in added:
            firewall.remove_port(port)
        if added:
            firewall.reload()

    # ── Start ───────────────────────────────────────────────────

    def start(self) -> None:
        if not self.ctx.config.start_service:
            raise NotApplicable("start_service disabled; service left stopped")
        services = self.ctx.capabilities.services
        unit = self.descriptor.unit_name
        if services.is_active(unit):
            services.restart(unit)
        else:
            services.start(unit)
        if not self.ctx.dry_run:
            self.ctx.service_started = True

    def deploy(self) -> ServiceDescriptor:
        """Run every deploy step in order (used outside the phase pipeline)."""
        self.install_runtime()
        self.install_application()
        self.install_unit()
        self.install_log_rotation()
        for step in (self.apply_labels, self.open_ports, self.start):
            try:
                step()
            except NotApplicable as e:
                logger.info("Skipped: %s", e)
            except CapabilityMissing as e:
                self.ctx.warn(self.ctx.runner.phase, str(e))
        return self.descriptor

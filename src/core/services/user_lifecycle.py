"""
User lifecycle — service identity validation, previous-installation
cleanup and identity creation.

Root is never a valid service identity: not as the configured target,
not as a previously detected owner to be cleaned up. Every destructive
step is enumerated and confirmed before it runs; account removal
happens only here and only after confirmation.
"""

from __future__ import annotations

import logging
import pwd
from dataclasses import dataclass, field
from pathlib import Path

from src.core.context import RunContext
from src.core.errors import IdentityError
from src.core.models.config import USERNAME_PATTERN, Configuration
from src.core.services.generators.systemd_unit import unit_owner

logger = logging.getLogger(__name__)

RUNTIME_DIR_NAME = ".nvm"


@dataclass(frozen=True)
class IdentityOutcome:
    """Result of the identity pre-flight."""

    user: str
    home: str
    exists: bool


@dataclass
class CleanupPlan:
    """What removing a previous installation will delete."""

    user: str
    unit_name: str
    paths: list[Path] = field(default_factory=list)
    account_exists: bool = False

    def describe(self) -> list[str]:
        items = [f"service {self.unit_name} (stopped and disabled)"]
        items += [str(p) for p in self.paths]
        if self.account_exists:
            items.append(f"user account '{self.user}' and its home directory")
        return items


def _owner_name(path: Path) -> str | None:
    try:
        return pwd.getpwuid(path.stat().st_uid).pw_name
    except (OSError, KeyError):
        return None


class UserLifecycleManager:
    """Identity checks and account lifecycle for one run."""

    def __init__(self, ctx: RunContext):
        self.ctx = ctx

    # ── Identity ────────────────────────────────────────────────

    def user_exists(self, user: str) -> bool:
        return self.ctx.runner.probe(["id", "-u", user]).ok

    def ensure_identity(self, config: Configuration | None = None) -> IdentityOutcome:
        """Validate the service identity before any mutation.

        Raises:
            IdentityError: Grammar violation, or the identity is root.
        """
        config = config or self.ctx.config
        user = config.service_user
        if not USERNAME_PATTERN.match(user):
            raise IdentityError(f"Invalid service username: {user!r}")
        if config.runs_as_root:
            raise IdentityError(
                "Refusing to run the service as root",
                context="set service_user to an unprivileged account",
            )
        home = self.ctx.paths.home_of(user)
        exists = self.user_exists(user)
        logger.info("Service identity: %s (%s)", user, "existing" if exists else "to be created")
        return IdentityOutcome(user=user, home=str(home), exists=exists)

    def create_identity(self, config: Configuration | None = None) -> None:
        """Create the account, lock down its home, set a password."""
        config = config or self.ctx.config
        user = config.service_user
        runner = self.ctx.runner
        home = self.ctx.paths.home_of(user)

        logger.info("Creating service user: %s", user)
        runner.run(["useradd", "-m", "-s", "/bin/bash", user])
        runner.run(["chmod", "700", str(home)])

        if config.quiet:
            self.ctx.warn(
                runner.phase,
                f"Password for '{user}' not set in quiet mode; run 'passwd {user}' manually",
            )
            return
        logger.info("Set a password for %s", user)
        result = runner.run(["passwd", user], interactive=True, check=False)
        if result.failed:
            logger.warning("Password for '%s' was not set", user)

    # ── Previous installation ───────────────────────────────────

    def detect_previous(self, config: Configuration | None = None) -> str | None:
        """Find the identity of an earlier installation, if it differs.

        Looked up in order: ``User=`` of the existing unit file, owner of
        the target's install dir, then any ``<home_root>/*/<install_dir>``.
        """
        config = config or self.ctx.config
        paths = self.ctx.paths
        target = config.service_user

        unit_path = paths.unit_path(config.unit_name)
        if unit_path.is_file():
            owner = unit_owner(unit_path.read_text(encoding="utf-8"))
            if owner and owner != target:
                logger.info("Previous installation owned by '%s' (from %s)", owner, unit_path)
                return owner
            if owner == target:
                return None

        install_dir = paths.home_of(target) / config.install_dir_name
        if install_dir.is_dir():
            owner = _owner_name(install_dir)
            if owner == "root" and target != "root":
                self.ctx.warn(
                    self.ctx.runner.phase,
                    f"{install_dir} is owned by root; refusing to treat root as a previous installation",
                )
            elif owner and owner != target:
                logger.info("Previous installation owned by '%s' (%s)", owner, install_dir)
                return owner

        if paths.home_root.is_dir():
            for home in sorted(paths.home_root.iterdir()):
                if home.name != target and (home / config.install_dir_name).is_dir():
                    logger.info("Previous installation found in %s", home)
                    return home.name
        return None

    def plan_cleanup(self, old_user: str) -> CleanupPlan:
        config = self.ctx.config
        paths = self.ctx.paths
        home = paths.home_of(old_user)
        candidates = [
            paths.unit_path(config.unit_name),
            paths.logrotate_path(config.service_name),
            home / config.install_dir_name,
            home / RUNTIME_DIR_NAME,
        ]
        return CleanupPlan(
            user=old_user,
            unit_name=config.unit_name,
            paths=[p for p in candidates if p.exists()],
            account_exists=self.user_exists(old_user),
        )

    def confirm_cleanup(self, plan: CleanupPlan) -> bool:
        config = self.ctx.config
        if config.force_cleanup:
            return True
        if config.quiet:
            return False
        listing = "\n".join(f"  - {item}" for item in plan.describe())
        return self.ctx.confirm(
            f"Remove the previous installation of '{plan.user}'?\n{listing}\n"
        )

    def cleanup_previous_user(self, old_user: str) -> bool:
        """Remove a previous installation and its account.

        Returns:
            True if cleanup ran, False if the operator declined.

        Raises:
            IdentityError: *old_user* or the configured target is root.
        """
        if old_user == "root" or self.ctx.config.runs_as_root:
            raise IdentityError("Refusing to remove the root account or its files")
        if not USERNAME_PATTERN.match(old_user):
            raise IdentityError(f"Invalid previous username: {old_user!r}")

        plan = self.plan_cleanup(old_user)
        for item in plan.describe():
            logger.info("Will remove: %s", item)

        if not self.confirm_cleanup(plan):
            self.ctx.warn(
                self.ctx.runner.phase,
                f"Cleanup of previous user '{old_user}' declined; leaving it in place",
            )
            return False

        runner = self.ctx.runner
        services = self.ctx.capabilities.services
        unit = plan.unit_name

        services.stop(unit, best_effort=True)
        services.disable(unit, best_effort=True)
        for path in plan.paths:
            runner.remove(path)
        services.daemon_reload(check=False)
        if plan.account_exists:
            runner.run(["userdel", "-r", old_user])
        logger.info("Previous installation of '%s' removed", old_user)
        return True

"""
Fake Debian host for tests.

A MockCommandRunner answers commands from a small in-memory model of
the host (users, packages, units, firewall rules), so repeated runs
observe the effects of earlier ones.
"""

from src.adapters.mock import MockCommandRunner
from src.core.observability.health import HealthValidator

DEBIAN_TOOLS = (
    "apt-get",
    "dpkg-query",
    "systemctl",
    "ufw",
    "logrotate",
    "zramswap",
    "resolvectl",
    "ss",
)

OS_RELEASE = """\
PRETTY_NAME="Debian GNU/Linux 12 (bookworm)"
NAME="Debian GNU/Linux"
VERSION_ID="12"
VERSION_CODENAME=bookworm
ID=debian
"""

JOURNALD_CONF = """\
#  This file is part of systemd.
[Journal]
#Storage=auto
#Compress=yes
#SystemMaxUse=
"""

RESOLVED_CONF = """\
[Resolve]
#DNS=
#FallbackDNS=
"""


class FakeHost:
    """In-memory host state behind a MockCommandRunner."""

    def __init__(self, runner: MockCommandRunner, ports=(1935, 8000)):
        self.runner = runner
        self.users: set[str] = set()
        self.installed: set[str] = set()
        self.allowed: set[int] = set()
        self.enabled: set[str] = set()
        self.active: set[str] = {"systemd-journald"}
        self.listening = list(ports)
        self.firewall_active = True

        r = runner
        r.respond_with("id -u", self._id)
        r.respond_with("useradd", self._useradd)
        r.respond_with("userdel", self._userdel)
        r.respond_with("dpkg-query", self._query)
        r.respond_with("apt-get install", self._install)
        r.respond_with("ufw status", self._ufw_status)
        r.respond_with("ufw allow", self._ufw_allow)
        r.respond_with("ufw delete allow", self._ufw_delete)
        r.respond_with("systemctl is-enabled", self._is_enabled)
        r.respond_with("systemctl is-active", self._is_active)
        r.respond_with("systemctl enable", self._enable)
        r.respond_with("systemctl disable", self._disable)
        r.respond_with("systemctl start", self._start)
        r.respond_with("systemctl restart", self._start)
        r.respond_with("systemctl stop", self._stop)
        r.respond_with("ss -tuln", self._ss)

    def _id(self, argv):
        return (0, "1001") if argv[-1] in self.users else (1, f"id: '{argv[-1]}': no such user")

    def _useradd(self, argv):
        self.users.add(argv[-1])
        return 0, ""

    def _userdel(self, argv):
        self.users.discard(argv[-1])
        return 0, ""

    def _query(self, argv):
        if argv[-1] in self.installed:
            return 0, "install ok installed"
        return 1, f"dpkg-query: no packages found matching {argv[-1]}"

    def _install(self, argv):
        self.installed.update(argv[3:])
        return 0, ""

    def _ufw_status(self, argv):
        if not self.firewall_active:
            return 0, "Status: inactive"
        rules = "".join(f"{p}/tcp                   ALLOW       Anywhere\n" for p in sorted(self.allowed))
        return 0, "Status: active\n\nTo                         Action      From\n" + rules

    def _ufw_allow(self, argv):
        self.allowed.add(int(argv[-1].split("/")[0]))
        return 0, "Rule added"

    def _ufw_delete(self, argv):
        self.allowed.discard(int(argv[-1].split("/")[0]))
        return 0, "Rule deleted"

    def _is_enabled(self, argv):
        return (0, "enabled") if argv[2] in self.enabled else (1, "disabled")

    def _is_active(self, argv):
        return (0, "active") if argv[2] in self.active else (3, "inactive")

    def _enable(self, argv):
        self.enabled.add(argv[2])
        if "--now" in argv:
            self.active.add(argv[2])
        return 0, ""

    def _disable(self, argv):
        self.enabled.discard(argv[2])
        if "--now" in argv:
            self.active.discard(argv[2])
        return 0, ""

    def _start(self, argv):
        self.active.add(argv[2])
        return 0, ""

    def _stop(self, argv):
        self.active.discard(argv[2])
        return 0, ""

    def _ss(self, argv):
        lines = ["Netid State  Recv-Q Send-Q Local Address:Port Peer Address:Port"]
        lines += [f"tcp   LISTEN 0      511    0.0.0.0:{p}     0.0.0.0:*" for p in self.listening]
        return 0, "\n".join(lines)


def healthy_probe(url, timeout):
    return 200, "HTTP 200"


def unreachable_probe(url, timeout):
    return 0, "unreachable: [Errno 111] Connection refused"


def stub_validator(probe=healthy_probe):
    """Health validator with a stubbed HTTP probe and no settle delay."""

    def _validate(ctx):
        HealthValidator(ctx, http_probe=probe, sleep=lambda _s: None).validate()

    return _validate

"""
Firewall adapters — ufw, firewalld, iptables.

Each backend answers three questions through read-only probes (is it
installed, is it enforcing, is a port already allowed) and performs
one mutation (permanently allow a port). Rules are always TCP unless
stated otherwise.
"""

from __future__ import annotations

import logging
import re

from src.adapters.base import FirewallBackend
from src.core.errors import CapabilityMissing
from src.core.models.platform import FirewallKind

logger = logging.getLogger(__name__)


class UfwBackend(FirewallBackend):
    @property
    def name(self) -> str:
        return FirewallKind.UFW.value

    def is_available(self) -> bool:
        return self.runner.which("ufw") is not None

    def is_active(self) -> bool:
        result = self.runner.probe(["ufw", "status"])
        return result.ok and "status: active" in result.output.lower()

    def is_port_allowed(self, port: int, protocol: str = "tcp") -> bool:
        result = self.runner.probe(["ufw", "status"])
        if not result.ok:
            return False
        pattern = re.compile(rf"^{port}(/{protocol})?\s+ALLOW", re.MULTILINE)
        return bool(pattern.search(result.output))

    def allow_port(self, port: int, protocol: str = "tcp") -> None:
        self.runner.run(["ufw", "allow", f"{port}/{protocol}"])

    def remove_port(self, port: int, protocol: str = "tcp") -> None:
        self.runner.run(["ufw", "delete", "allow", f"{port}/{protocol}"], tolerate=True)


class FirewalldBackend(FirewallBackend):
    @property
    def name(self) -> str:
        return FirewallKind.FIREWALLD.value

    def is_available(self) -> bool:
        return self.runner.which("firewall-cmd") is not None

    def is_active(self) -> bool:
        result = self.runner.probe(["firewall-cmd", "--state"])
        return result.ok and result.output.strip() == "running"

    def is_port_allowed(self, port: int, protocol: str = "tcp") -> bool:
        result = self.runner.probe(
            ["firewall-cmd", "--permanent", f"--query-port={port}/{protocol}"]
        )
        return result.ok

    def allow_port(self, port: int, protocol: str = "tcp") -> None:
        self.runner.run(["firewall-cmd", "--permanent", f"--add-port={port}/{protocol}"])

    def remove_port(self, port: int, protocol: str = "tcp") -> None:
        self.runner.run(
            ["firewall-cmd", "--permanent", f"--remove-port={port}/{protocol}"],
            tolerate=True,
        )

    def reload(self) -> None:
        self.runner.run(["firewall-cmd", "--reload"])


class IptablesBackend(FirewallBackend):
    @property
    def name(self) -> str:
        return FirewallKind.IPTABLES.value

    def is_available(self) -> bool:
        return self.runner.which("iptables") is not None

    def is_active(self) -> bool:
        return self.runner.probe(["iptables", "-L", "INPUT", "-n"]).ok

    def _rule(self, port: int, protocol: str) -> list[str]:
        return ["INPUT", "-p", protocol, "--dport", str(port), "-j", "ACCEPT"]

    def is_port_allowed(self, port: int, protocol: str = "tcp") -> bool:
        return self.runner.probe(["iptables", "-C", *self._rule(port, protocol)]).ok

    def allow_port(self, port: int, protocol: str = "tcp") -> None:
        self.runner.run(["iptables", "-A", *self._rule(port, protocol)])

    def remove_port(self, port: int, protocol: str = "tcp") -> None:
        self.runner.run(["iptables", "-D", *self._rule(port, protocol)], tolerate=True)

    def reload(self) -> None:
        # Persist when the distribution ships a saver; rules are live already.
        if self.runner.which("netfilter-persistent"):
            self.runner.run(["netfilter-persistent", "save"], check=False)


class NullFirewall(FirewallBackend):
    @property
    def name(self) -> str:
        return FirewallKind.NONE.value

    def is_available(self) -> bool:
        return False

    def is_active(self) -> bool:
        return False

    def is_port_allowed(self, port: int, protocol: str = "tcp") -> bool:
        return False

    def allow_port(self, port: int, protocol: str = "tcp") -> None:
        raise CapabilityMissing("No firewall backend installed")

    def remove_port(self, port: int, protocol: str = "tcp") -> None:
        return None


# Detection priority order
FIREWALL_BACKENDS: tuple[type[FirewallBackend], ...] = (
    UfwBackend,
    FirewalldBackend,
    IptablesBackend,
)

_BY_KIND: dict[FirewallKind, type[FirewallBackend]] = {
    FirewallKind.UFW: UfwBackend,
    FirewallKind.FIREWALLD: FirewalldBackend,
    FirewallKind.IPTABLES: IptablesBackend,
    FirewallKind.NONE: NullFirewall,
}


def build_firewall(runner, kind: FirewallKind) -> FirewallBackend:
    """Instantiate the adapter for a detected backend kind."""
    return _BY_KIND[kind](runner)

"""
Tests for file generators — unit, logrotate, journald/resolver, sources.
"""

from pathlib import Path

from src.core.context import HostPaths
from src.core.models.config import Configuration
from src.core.models.template import RenderedFile
from src.core.services.generators.host_config import (
    JOURNALD_SETTINGS,
    apply_ini_settings,
    disable_deb_lines,
    parse_ini_section,
    render_debian_sources,
    render_journald,
    render_resolved,
    render_vacuum_cron,
    render_zram,
    settings_applied,
)
from src.core.services.generators.logrotate import render_logrotate
from src.core.services.generators.systemd_unit import render_unit, unit_owner
from src.core.services.service_deploy import describe

PATHS = HostPaths()


def _descriptor(**overrides):
    return describe(Configuration(**overrides), PATHS)


# ── Rendered file ────────────────────────────────────────────────────


class TestRenderedFile:
    def test_is_current(self, tmp_path: Path):
        target = tmp_path / "f.conf"
        rendered = RenderedFile(path=str(target), content="a=1\n")
        assert not rendered.is_current()
        target.write_text("a=2\n")
        assert not rendered.is_current()
        target.write_text("a=1\n")
        assert rendered.is_current()

    def test_directory_is_not_current(self, tmp_path: Path):
        assert not RenderedFile(path=str(tmp_path), content="").is_current()


# ── Descriptor ───────────────────────────────────────────────────────


class TestDescribe:
    def test_defaults(self):
        d = _descriptor()
        assert d.target_user == "mediauser"
        assert d.home == "/home/mediauser"
        assert d.install_dir == "/home/mediauser/Node-Media-Server"
        assert d.entrypoint == "/home/mediauser/Node-Media-Server/app.js"
        assert d.runtime_dir == "/home/mediauser/.nvm"
        assert d.unit_path == "/etc/systemd/system/nms.service"
        assert d.logrotate_path == "/etc/logrotate.d/nms"
        assert d.ports == (1935, 8000)

    def test_entrypoint_from_local_source(self):
        d = _descriptor(app_source="/opt/src/server.js")
        assert d.entrypoint.endswith("/server.js")

    def test_custom_service_name(self):
        d = _descriptor(service_name="media")
        assert d.unit_name == "media.service"
        assert d.unit_path == "/etc/systemd/system/media.service"


# ── systemd unit ─────────────────────────────────────────────────────


class TestUnit:
    def test_render(self):
        rendered = render_unit(_descriptor(service_user="streamer", log_file="/var/log/s.log"))
        text = rendered.content
        assert rendered.path == "/etc/systemd/system/nms.service"
        assert rendered.mode == 0o644
        assert "User=streamer\n" in text
        assert "Group=streamer\n" in text
        assert "Restart=always\n" in text
        assert "RestartSec=5s\n" in text
        assert "WorkingDirectory=/home/streamer/Node-Media-Server\n" in text
        assert "StandardOutput=append:/var/log/s.log\n" in text
        assert "StandardError=append:/var/log/s.log\n" in text
        assert "/home/streamer/.nvm/nvm.sh && exec node /home/streamer/Node-Media-Server/app.js" in text
        assert "WantedBy=multi-user.target" in text

    def test_deterministic(self):
        assert render_unit(_descriptor()) == render_unit(_descriptor())

    def test_unit_owner(self):
        assert unit_owner(render_unit(_descriptor(service_user="old")).content) == "old"
        assert unit_owner("[Service]\nExecStart=/bin/true\n") is None


# ── logrotate ────────────────────────────────────────────────────────


class TestLogrotate:
    def test_render(self):
        rendered = render_logrotate(_descriptor(log_file="/var/log/nms.log"))
        text = rendered.content
        assert rendered.path == "/etc/logrotate.d/nms"
        assert text.startswith("/var/log/nms.log {\n")
        for directive in ("weekly", "rotate 2", "size 10M", "missingok", "compress",
                          "delaycompress", "notifempty", "copytruncate"):
            assert f"    {directive}\n" in text
        assert "create 640 mediauser mediauser" in text
        assert text.rstrip().endswith("}")


# ── INI editing ──────────────────────────────────────────────────────


class TestIniSettings:
    STOCK = "[Journal]\n#Storage=auto\n#Compress=yes\nSplitMode=uid\n"

    def test_replaces_commented_and_appends(self):
        out = apply_ini_settings(self.STOCK, "Journal", {"Storage": "persistent", "SystemMaxUse": "200M"})
        values = parse_ini_section(out, "Journal")
        assert values["Storage"] == "persistent"
        assert values["SystemMaxUse"] == "200M"
        assert values["SplitMode"] == "uid"
        assert "#Compress=yes" in out

    def test_idempotent(self):
        once = apply_ini_settings(self.STOCK, "Journal", JOURNALD_SETTINGS)
        assert apply_ini_settings(once, "Journal", JOURNALD_SETTINGS) == once
        assert settings_applied(once, "Journal", JOURNALD_SETTINGS)

    def test_duplicates_collapsed(self):
        out = apply_ini_settings("[Journal]\nStorage=auto\n#Storage=volatile\n", "Journal", {"Storage": "persistent"})
        assert out.count("Storage=") == 1

    def test_other_sections_untouched(self):
        text = "[Journal]\n[Other]\nStorage=keep\n"
        out = apply_ini_settings(text, "Journal", {"Storage": "persistent"})
        assert parse_ini_section(out, "Other") == {"Storage": "keep"}
        assert parse_ini_section(out, "Journal") == {"Storage": "persistent"}

    def test_missing_section_appended(self):
        out = apply_ini_settings("# empty\n", "Resolve", {"DNS": "1.1.1.1"})
        assert "[Resolve]\nDNS=1.1.1.1\n" in out

    def test_not_applied_on_stock(self):
        assert not settings_applied(self.STOCK, "Journal", JOURNALD_SETTINGS)


class TestHostFiles:
    def test_journald(self, tmp_path: Path):
        rendered = render_journald("[Journal]\n", tmp_path / "journald.conf")
        assert "Storage=persistent" in rendered.content
        assert "MaxRetentionSec=30day" in rendered.content

    def test_vacuum_cron(self, tmp_path: Path):
        rendered = render_vacuum_cron(tmp_path / "cron")
        assert "0 3 * * 7 root journalctl --vacuum-time=30d" in rendered.content

    def test_zram(self, tmp_path: Path):
        assert render_zram(tmp_path / "z").content == "ALGO=zstd\nPERCENT=50\n"

    def test_resolved(self, tmp_path: Path):
        rendered = render_resolved("[Resolve]\n#DNS=\n", tmp_path / "r", ("1.1.1.1", "8.8.8.8"), ("9.9.9.9",))
        values = parse_ini_section(rendered.content, "Resolve")
        assert values == {"DNS": "1.1.1.1 8.8.8.8", "FallbackDNS": "9.9.9.9"}

    def test_debian_sources(self, tmp_path: Path):
        text = render_debian_sources("bookworm", tmp_path / "sources.list").content
        assert "deb http://deb.debian.org/debian bookworm main" in text
        assert "bookworm-security" in text
        assert "bookworm-updates" in text

    def test_disable_deb_lines(self):
        text = "deb http://a b main\n# note\ndeb-src http://a b main\n"
        out = disable_deb_lines(text)
        assert out == "#deb http://a b main\n# note\n#deb-src http://a b main\n"
        assert disable_deb_lines(out) == out

"""Tests for fact gathering."""

from __future__ import annotations

import time

import pytest

from hc_common.errors import FactUnavailable, TimeoutExceeded, UnreachableHost
from hc_controller.engine.facts import FactGatherer
from hc_modules.interface import FactKey
from tests.helpers.fakes import ScriptedTransport, make_host


pytestmark = pytest.mark.unit_controller


def _query(transport: ScriptedTransport, *keys: FactKey):
    return FactGatherer(transport).query(make_host(), keys)


def test_file_fact() -> None:
    transport = ScriptedTransport().on("stat -c", stdout="directory|755|hng|hng\n")
    facts = _query(transport, FactKey("file", "/opt/app"))
    assert facts[FactKey("file", "/opt/app")] == {
        "exists": True,
        "type": "directory",
        "mode": "0755",
        "owner": "hng",
        "group": "hng",
    }


def test_missing_file_fact() -> None:
    transport = ScriptedTransport().on("stat -c", rc=1, stderr="No such file")
    assert _query(transport, FactKey("file", "/nope"))[FactKey("file", "/nope")] == {"exists": False}


def test_package_fact() -> None:
    transport = (
        ScriptedTransport()
        .on("dpkg-query -W -f='${Status}\\t${Version}' git", stdout="install ok installed\t1:2.34.1")
        .on("dpkg-query", rc=1, stderr="no packages found")
    )
    facts = _query(transport, FactKey("package", "git"), FactKey("package", "whois"))
    assert facts[FactKey("package", "git")] == {"installed": True, "version": "1:2.34.1"}
    assert facts[FactKey("package", "whois")] == {"installed": False, "version": None}


def test_user_fact_excludes_primary_group() -> None:
    stdout = "hng:x:1001:1001::/home/hng:/bin/bash\nhng\nhng sudo docker\n"
    transport = ScriptedTransport().on("getent passwd", stdout=stdout)
    fact = _query(transport, FactKey("user", "hng"))[FactKey("user", "hng")]
    assert fact["exists"] is True
    assert fact["shell"] == "/bin/bash"
    assert fact["groups"] == ["sudo", "docker"]


def test_service_fact() -> None:
    transport = ScriptedTransport().on("systemctl", stdout="active=inactive\nenabled=\n")
    fact = _query(transport, FactKey("service", "nginx"))[FactKey("service", "nginx")]
    assert fact == {"active": "inactive", "enabled": None}


def test_git_remote_prefers_branch_over_tag() -> None:
    stdout = f"{'1' * 40}\trefs/tags/devops\n{'2' * 40}\trefs/heads/devops\n"
    transport = ScriptedTransport().on("git ls-remote", stdout=stdout)
    key = FactKey("git_remote", "https://example.test/app.git#devops")
    assert _query(transport, key)[key] == "2" * 40


def test_duplicate_keys_are_queried_once() -> None:
    transport = ScriptedTransport().on("sha256sum", stdout="abc  /etc/x\n")
    facts = _query(transport, FactKey("checksum", "/etc/x"), FactKey("checksum", "/etc/x", required=False))
    assert facts == {FactKey("checksum", "/etc/x"): "abc"}
    assert len(transport.commands) == 1


def test_unsupported_kind_fails_before_contacting_host() -> None:
    transport = ScriptedTransport()
    with pytest.raises(FactUnavailable):
        _query(transport, FactKey("file", "/etc/x"), FactKey("selinux", "/etc/x"))
    assert transport.commands == []


def test_unreachable_host_propagates() -> None:
    transport = ScriptedTransport().raise_on("stat", UnreachableHost("down"))
    with pytest.raises(UnreachableHost):
        _query(transport, FactKey("file", "/etc/x"))


def test_expired_deadline_stops_before_next_query() -> None:
    transport = ScriptedTransport()
    with pytest.raises(TimeoutExceeded):
        FactGatherer(transport).query(
            make_host(), [FactKey("file", "/etc/motd")], deadline=time.monotonic() - 1
        )
    assert transport.commands == []


def test_each_query_gets_the_time_left() -> None:
    transport = ScriptedTransport().on("stat -c", rc=1)
    FactGatherer(transport).query(
        make_host(),
        [FactKey("file", "/a"), FactKey("file", "/b")],
        deadline=time.monotonic() + 30,
    )
    assert len(transport.timeouts) == 2
    assert 0 < transport.timeouts[1] <= transport.timeouts[0] <= 30


def test_pip_packages_fact_uses_canonical_names() -> None:
    transport = ScriptedTransport().on(
        "list --format=freeze", stdout="Flask==3.0.3\nzope.interface==6.4\n-e git+https://x#egg=y\n"
    )
    facts = _query(transport, FactKey("pip_packages", "/opt/app/venv/bin/pip"))
    assert facts[FactKey("pip_packages", "/opt/app/venv/bin/pip")] == {
        "flask": "3.0.3",
        "zope-interface": "6.4",
    }


def test_pip_pending_fact() -> None:
    key = FactKey("pip_pending", "pip3#-r /srv/requirements.txt")
    transport = ScriptedTransport().on("--dry-run", stdout="Would install gunicorn-22.0.0\n")
    assert _query(transport, key)[key] == ["gunicorn-22.0.0"]
    assert transport.commands == [
        "pip3 install --dry-run --disable-pip-version-check -r /srv/requirements.txt"
    ]

    failing = ScriptedTransport().on("--dry-run", rc=127, stderr="pip3: not found")
    assert _query(failing, key)[key] is None

from pathlib import Path
import textwrap

import pytest

from compilemaster_automation.inventory import RequestLoader
from compilemaster_automation.types import RequestValidationError


def write_request(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "request.toml"
    path.write_text(textwrap.dedent(text).strip())
    return path


def test_loads_minimal_request(tmp_path: Path) -> None:
    path = write_request(
        tmp_path,
        """
        target = "compile01.example.com"
        mom = "mom.example.com"
        """,
    )

    request = RequestLoader().load(path)

    assert request.target.name == "compile01.example.com"
    assert request.target.connection == "ssh"
    assert request.mom_fqdn == "mom.example.com"
    assert request.manage_pos_release is False
    assert request.github_server == "api.github.com"
    assert request.key_pair.public_path == "/root/.ssh/id-control_repo.rsa.pub"
    request.validate()


def test_loads_host_tables_and_toggles(tmp_path: Path) -> None:
    path = write_request(
        tmp_path,
        """
        dns_alt_names = ["puppet", "puppet.example.com"]
        manage_mom_hosts = true
        mom_ipaddress = "10.0.0.2"
        manage_github_deploy_key = true
        github_deploy_key_name = "compile01"
        github_token = { env = "GITHUB_TOKEN" }
        github_user = "example"
        github_project = "control-repo"

        [target]
        name = "compile01.example.com"
        address = "10.0.0.5"
        user = "admin"
        variables = { sudo = true }

        [mom]
        name = "mom.example.com"
        connection = "local"
        """,
    )

    request = RequestLoader().load(path)

    assert request.target.address == "10.0.0.5"
    assert request.target.user == "admin"
    assert request.target.variables == {"sudo": True}
    assert request.mom.connection == "local"
    assert request.dns_alt_names == ("puppet", "puppet.example.com")
    assert request.effective_mom_ipaddress == "10.0.0.2"
    deploy_key = request.effective_deploy_key
    assert deploy_key is not None
    assert deploy_key.repository == "example/control-repo"
    assert deploy_key.token == {"env": "GITHUB_TOKEN"}


def test_overrides_win_over_file(tmp_path: Path) -> None:
    path = write_request(
        tmp_path,
        """
        target = "compile01.example.com"
        mom = "mom.example.com"
        dns_alt_names = "puppet, puppet.example.com"
        """,
    )

    request = RequestLoader().load(
        path,
        {
            "target": {"address": "192.0.2.10"},
            "manage_pos_release": True,
            "pos_release_package": "https://example.invalid/release.rpm",
            "github_user": None,
            "dns_alt_names": [],
        },
    )

    assert request.target.name == "compile01.example.com"
    assert request.target.address == "192.0.2.10"
    assert request.effective_release_package == "https://example.invalid/release.rpm"
    assert request.dns_alt_names == ("puppet", "puppet.example.com")


def test_gated_values_hidden_when_toggle_off() -> None:
    request = RequestLoader().build(
        {
            "target": "compile01",
            "mom": "mom",
            "pos_release_package": "/tmp/release.rpm",
            "mom_ipaddress": "10.0.0.2",
            "github_user": "example",
        }
    )

    assert request.effective_release_package is None
    assert request.effective_mom_ipaddress is None
    assert request.effective_deploy_key is None


def test_missing_target_raises() -> None:
    with pytest.raises(ValueError):
        RequestLoader().build({"mom": "mom.example.com"})


def test_unknown_keys_raise() -> None:
    with pytest.raises(ValueError, match="unknown request keys: colour"):
        RequestLoader().build({"target": "a", "mom": "b", "colour": "blue"})


def test_toggle_must_be_boolean() -> None:
    with pytest.raises(ValueError):
        RequestLoader().build({"target": "a", "mom": "b", "manage_mom_hosts": "maybe"})


def test_validate_lists_every_missing_value() -> None:
    request = RequestLoader().build(
        {"target": "a", "mom": "b", "manage_pos_release": True, "manage_mom_hosts": "yes"}
    )

    with pytest.raises(RequestValidationError) as excinfo:
        request.validate()
    assert excinfo.value.missing == ["pos_release_package", "mom_ipaddress"]


def test_invalid_toml_reports_path(tmp_path: Path) -> None:
    path = tmp_path / "broken.toml"
    path.write_text("target = ")

    with pytest.raises(ValueError, match="broken.toml"):
        RequestLoader().load(path)

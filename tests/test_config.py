from pathlib import Path

import pytest

from compilemaster_automation.config import CompileMasterConfig, load_config


def test_load_config_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "missing.conf")
    assert isinstance(config, CompileMasterConfig)
    assert config.request == Path("/etc/compilemaster/request.toml")
    assert config.settle_mode == "poll"
    assert config.settle_seconds == 10.0
    assert config.site_roles == ["compile_master"]
    assert config.puppetserver_ssh_dir == "/etc/puppetlabs/puppetserver/ssh"


def test_load_config_overrides(tmp_path: Path) -> None:
    cfg_path = tmp_path / "main.conf"
    cfg_path.write_text(
        """
        [defaults]
        request = "/opt/compilemaster/compile01.toml"
        settle_mode = "fixed"
        settle_seconds = 20
        poll_attempts = 3
        site_roles = "puppet::compile_master"
        site_bundle = "/opt/site/compile_master.pp"
        deploy_command = "r10k deploy environment -p"
        ssh_options = "-oStrictHostKeyChecking=no -p 2222"
        sudo = true
        puppetserver_user = ""
        """
    )

    config = load_config(cfg_path)
    assert config.request == Path("/opt/compilemaster/compile01.toml")
    assert config.settle_mode == "fixed"
    assert config.settle_seconds == 20.0
    assert config.poll_attempts == 3
    assert config.site_roles == ["puppet::compile_master"]
    assert config.site_bundle == "/opt/site/compile_master.pp"
    assert config.deploy_command == "r10k deploy environment -p"
    assert config.ssh_options == ["-oStrictHostKeyChecking=no", "-p", "2222"]
    assert config.sudo is True
    assert config.puppetserver_user is None


def test_load_config_rejects_unknown_settle_mode(tmp_path: Path) -> None:
    cfg_path = tmp_path / "main.conf"
    cfg_path.write_text('[defaults]\nsettle_mode = "guess"\n')

    with pytest.raises(ValueError):
        load_config(cfg_path)

"""
프로비저닝 단계 테스트
"""

import json

from conftest import FakeHost
from vps_optimizer.firewall import FirewallManager
from vps_optimizer.security import AUTHORIZED_KEYS, JAIL_LOCAL, SSHD_DROPIN, SecurityManager
from vps_optimizer.steps import (
    COMPOSE_BINARY,
    DOCKER_DAEMON_CONFIG,
    FSTAB,
    SYSCTL_CONFIG,
    ServerProvisioner,
    fstab_has_entry,
    parse_sysctl_conf,
)

SWAP_BYTES = 2048 * 1024 * 1024


def test_parse_sysctl_conf():
    content = (
        "# comment\n"
        "; other comment\n"
        "vm.swappiness = 10\n"
        "net.core.somaxconn=1024\n"
        "\n"
        "garbage line\n"
    )
    assert parse_sysctl_conf(content) == {
        "vm.swappiness": "10",
        "net.core.somaxconn": "1024",
    }


def test_fstab_has_entry_ignores_comments():
    assert fstab_has_entry("/swapfile none swap sw 0 0\n", "/swapfile")
    assert not fstab_has_entry("# /swapfile none swap sw 0 0\n", "/swapfile")
    assert not fstab_has_entry("/swapfile2 none swap sw 0 0\n", "/swapfile")


def test_build_steps_criticality(config):
    steps = ServerProvisioner(FakeHost(), config).build_steps()
    critical = {s.name for s in steps if s.critical}

    assert critical == {"install_docker", "install_compose", "setup_swap_file"}
    assert [s.name for s in steps][:3] == ["update_system", "install_docker", "install_compose"]
    assert "configure_firewall" not in {s.name for s in steps}


def test_build_steps_with_security_options(config):
    config.security.firewall_enabled = True
    config.security.ssh_hardening = True
    config.security.fail2ban_enabled = True
    names = [s.name for s in ServerProvisioner(FakeHost(), config).build_steps()]

    assert names[-3:] == ["configure_firewall", "harden_ssh", "install_fail2ban"]


def test_swap_file_created_and_registered(config):
    host = FakeHost()
    ok, _ = ServerProvisioner(host, config).setup_swap_file()

    assert ok
    assert host.sizes["/swapfile"] == SWAP_BYTES
    assert host.modes["/swapfile"] == 0o600
    assert "/swapfile" in host.swaps
    assert host.files[FSTAB].endswith("/swapfile none swap sw 0 0\n")


def test_swap_file_rerun_has_single_fstab_entry(config):
    host = FakeHost()
    provisioner = ServerProvisioner(host, config)
    provisioner.setup_swap_file()
    ok, message = provisioner.setup_swap_file()

    assert ok
    assert message == "이미 구성됨"
    assert host.files[FSTAB].count("/swapfile") == 1
    assert len([c for c in host.calls if c[0] == "mkswap"]) == 1


def test_swap_file_fstab_without_trailing_newline(config):
    host = FakeHost()
    host.files[FSTAB] = "UUID=abc / ext4 defaults 0 1"
    ServerProvisioner(host, config).setup_swap_file()

    assert host.files[FSTAB] == "UUID=abc / ext4 defaults 0 1\n/swapfile none swap sw 0 0\n"


def test_swap_file_falls_back_to_dd(config):
    host = FakeHost()
    host.fail("fallocate")
    ok, _ = ServerProvisioner(host, config).setup_swap_file()

    assert ok
    assert host.called("dd", "if=/dev/zero", "of=/swapfile")
    assert host.sizes["/swapfile"] == SWAP_BYTES


def test_smaller_swap_file_is_recreated(config):
    host = FakeHost()
    host.files["/swapfile"] = ""
    host.sizes["/swapfile"] = 1024 * 1024 * 1024
    host.swaps.append("/swapfile")
    ServerProvisioner(host, config).setup_swap_file()

    assert host.called("swapoff", "/swapfile")
    assert host.sizes["/swapfile"] == SWAP_BYTES
    assert host.swaps.count("/swapfile") == 1


def test_unformatted_swap_file_is_formatted_on_rerun(config):
    # 이전 실행이 fallocate 직후 중단되어 서명 없는 파일만 남은 상태
    host = FakeHost()
    host._allocate("/swapfile", 2048)
    ok, message = ServerProvisioner(host, config).setup_swap_file()

    assert ok
    assert message == "스왑 서명 복구"
    assert host.called("blkid", "-o", "value", "-s", "TYPE", "/swapfile")
    assert host.called("mkswap", "/swapfile")
    assert not host.called("fallocate")
    assert "/swapfile" in host.swaps


def test_inactive_formatted_swap_file_is_only_activated(config):
    # 재부팅 후 fstab 미적용 등으로 비활성 상태인 정상 스왑 파일
    host = FakeHost()
    host._allocate("/swapfile", 2048)
    host.swap_signatures.add("/swapfile")
    ok, message = ServerProvisioner(host, config).setup_swap_file()

    assert ok
    assert message == "이미 구성됨"
    assert not host.called("mkswap")
    assert host.called("swapon", "/swapfile")


def test_install_docker_fresh(config):
    host = FakeHost()
    ok, _ = ServerProvisioner(host, config).install_docker()

    assert ok
    assert host.called("download", "https://get.docker.com")
    assert host.called("sh", "/tmp/get-docker.sh")
    assert "/tmp/get-docker.sh" not in host.files
    daemon = json.loads(host.files[DOCKER_DAEMON_CONFIG])
    assert daemon["log-opts"] == {"max-size": "10m", "max-file": "3"}
    assert host.units["docker"]["active"]


def test_install_docker_skips_existing(config):
    host = FakeHost(docker_installed=True)
    provisioner = ServerProvisioner(host, config)
    provisioner.install_docker()
    host.calls.clear()
    provisioner.install_docker()

    assert not host.called("download")
    assert host.called("systemctl", "start", "docker")
    assert not host.called("systemctl", "restart", "docker")


def test_install_compose_uses_machine_arch(config):
    host = FakeHost(machine="arm64")
    ok, _ = ServerProvisioner(host, config).install_compose()

    assert ok
    url = "https://github.com/docker/compose/releases/download/v2.29.7/docker-compose-linux-aarch64"
    assert ["download", url, COMPOSE_BINARY] in host.calls
    assert host.modes[COMPOSE_BINARY] == 0o755


def test_install_compose_skips_existing(config):
    host = FakeHost(compose_installed=True)
    ok, message = ServerProvisioner(host, config).install_compose()

    assert ok
    assert message == "이미 설치됨"
    assert not host.called("download")


def test_optimize_kernel_applies_parameters(config):
    host = FakeHost()
    ok, _ = ServerProvisioner(host, config).optimize_kernel()

    assert ok
    assert "vm.swappiness = 10" in host.files[SYSCTL_CONFIG]
    assert host.sysctl["vm.swappiness"] == "10"
    assert host.sysctl["fs.file-max"] == "262144"


def test_disable_services_skips_disabled_units(config):
    host = FakeHost()
    ok, message = ServerProvisioner(host, config).disable_services()

    assert ok
    assert message == "2개 비활성화"
    assert not host.units["bluetooth"]["enabled"]
    assert not host.called("systemctl", "disable", "--now", "snapd")


def test_disable_services_reports_failure(config):
    host = FakeHost()
    host.fail("systemctl", "disable", "--now", "cups")
    ok, message = ServerProvisioner(host, config).disable_services()

    assert not ok
    assert "cups" in message
    assert not host.units["bluetooth"]["enabled"]


def test_generated_files_are_stable_across_runs(config):
    host = FakeHost()
    provisioner = ServerProvisioner(host, config)
    for step in (provisioner.setup_log_rotation, provisioner.create_monitoring_tools,
                 provisioner.create_compose_template):
        step()
    host.writes.clear()
    for step in (provisioner.setup_log_rotation, provisioner.create_monitoring_tools,
                 provisioner.create_compose_template):
        step()

    assert host.writes == []
    assert host.is_executable("/root/check-resources.sh")
    assert host.is_executable("/root/docker-status.sh")
    assert "/root/docker-templates/docker-compose.yml" in host.files


def test_firewall_allows_ssh_before_enable(config):
    config.security.firewall_enabled = True
    host = FakeHost()
    ok, _ = FirewallManager(host, config.security).configure()

    assert ok
    ufw = [c[1:] for c in host.calls if c[0] == "ufw"]
    assert ufw.index(["allow", "22/tcp"]) < ufw.index(["--force", "enable"])
    assert ["allow", "443/tcp"] in ufw
    assert host.ufw_active


def test_firewall_disabled_is_skipped(config):
    host = FakeHost()
    ok, _ = FirewallManager(host, config.security).configure()

    assert ok
    assert host.calls == []


def test_harden_ssh_requires_authorized_keys(config):
    host = FakeHost()
    ok, _ = SecurityManager(host, config.security).harden_ssh()

    assert not ok
    assert SSHD_DROPIN not in host.files


def test_harden_ssh_writes_dropin(config):
    host = FakeHost()
    host.files[AUTHORIZED_KEYS] = "ssh-ed25519 AAAAC3Nza admin@laptop\n"
    ok, _ = SecurityManager(host, config.security).harden_ssh()

    assert ok
    assert "PasswordAuthentication no" in host.files[SSHD_DROPIN]
    assert host.called("systemctl", "reload", "ssh")


def test_harden_ssh_rolls_back_invalid_config(config):
    host = FakeHost()
    host.files[AUTHORIZED_KEYS] = "ssh-ed25519 AAAAC3Nza admin@laptop\n"
    host.sshd_config_valid = False
    ok, _ = SecurityManager(host, config.security).harden_ssh()

    assert not ok
    assert SSHD_DROPIN not in host.files
    assert not host.called("systemctl", "reload", "ssh")


def test_install_fail2ban(config):
    host = FakeHost()
    ok, _ = SecurityManager(host, config.security).install_fail2ban()

    assert ok
    assert "bantime  = 3600" in host.files[JAIL_LOCAL]
    assert host.units["fail2ban"]["active"]

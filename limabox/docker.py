"""Idempotent provisioning of the Docker engine inside the VM."""

from __future__ import annotations

import json
import os
import shlex

from loguru import logger

from .config import LimaboxConfig
from .errors import HostPermissionError, ProvisioningFailedError
from .lima import guest_exec, restart_instance
from .paths import (
    MARKER_DOCKER_GROUP,
    clear_marker,
    has_marker,
    instance_paths,
    write_marker,
)
from .tunnel import register_tunnel, unregister_tunnel
from .util import CmdError, run_cmd

log = logger

DAEMON_CONFIG = {'features': {'buildkit': True}}

INSTALLED_PROBE = 'command -v docker'
RUNNING_PROBE = 'sudo service docker status'
GROUP_PROBE = 'id -nG | grep -qw docker'
GROUP_ADD_SCRIPT = 'sudo usermod -aG docker "$USER"'
START_SCRIPT = 'sudo service docker start'
STOP_SCRIPT = 'sudo service docker stop'
VERSION_SCRIPT = "sudo docker version --format '{{.Server.Version}}'"
INSTALL_SCRIPT = (
    'set -e; '
    'sudo apt-get update -y; '
    'sudo DEBIAN_FRONTEND=noninteractive apt-get install -y docker.io; '
    'sudo mkdir -p /etc/docker; '
    f'echo {shlex.quote(json.dumps(DAEMON_CONFIG))} | sudo tee /etc/docker/daemon.json >/dev/null'
)


def socket_link_ok(cfg: LimaboxConfig) -> bool:
    p = instance_paths(cfg)
    link = p['host_docker_socket']
    if not link.is_symlink():
        return False
    return os.readlink(link) == str(p['docker_socket'])


def ensure_socket_link(cfg: LimaboxConfig) -> bool:
    """Point the host's well-known docker socket at the tunnel socket."""
    if socket_link_ok(cfg):
        return False
    p = instance_paths(cfg)
    link = str(p['host_docker_socket'])
    target = str(p['docker_socket'])
    log.info('Linking {} -> {} (may ask for your password)', link, target)
    try:
        run_cmd(['rm', '-rf', link], sudo_interactive=True, check=True)
        run_cmd(['ln', '-sfn', target, link], sudo_interactive=True, check=True)
    except CmdError as ex:
        raise HostPermissionError(
            'link host docker socket',
            f'could not replace {link}: {ex.result.summary}',
        ) from ex
    return True


def is_installed(cfg: LimaboxConfig) -> bool:
    return guest_exec(cfg, INSTALLED_PROBE).code == 0


def is_running(cfg: LimaboxConfig) -> bool:
    return guest_exec(cfg, RUNNING_PROBE).code == 0


def ensure_docker_installed(cfg: LimaboxConfig) -> bool:
    if is_installed(cfg):
        return False
    log.info('Installing docker in VM {}', cfg.vm.name)
    res = guest_exec(cfg, INSTALL_SCRIPT)
    if res.code != 0:
        raise ProvisioningFailedError('install docker', res.summary)
    return True


def ensure_docker_group(cfg: LimaboxConfig) -> bool:
    """Make the guest user a docker group member; reboots the VM if it had to."""
    if has_marker(cfg, MARKER_DOCKER_GROUP):
        return False
    if guest_exec(cfg, GROUP_PROBE).code == 0:
        write_marker(cfg, MARKER_DOCKER_GROUP)
        return False
    log.info('Adding VM user to the docker group')
    res = guest_exec(cfg, GROUP_ADD_SCRIPT)
    if res.code != 0:
        raise ProvisioningFailedError('docker group', res.summary)
    # Group membership only applies to new login sessions.
    try:
        restart_instance(cfg)
    except CmdError as ex:
        raise ProvisioningFailedError('docker group', 'VM restart failed') from ex
    write_marker(cfg, MARKER_DOCKER_GROUP)
    return True


def start_docker(cfg: LimaboxConfig) -> bool:
    if is_running(cfg):
        return False
    res = guest_exec(cfg, START_SCRIPT)
    if res.code != 0:
        raise ProvisioningFailedError('start docker', res.summary)
    log.info('Docker started in VM {}', cfg.vm.name)
    return True


def stop_docker(cfg: LimaboxConfig) -> None:
    if not is_running(cfg):
        return
    guest_exec(cfg, STOP_SCRIPT)
    log.info('Docker stopped in VM {}', cfg.vm.name)


def provision_docker(cfg: LimaboxConfig) -> None:
    log.debug('Provisioning docker for {}', cfg.vm.name)
    ensure_socket_link(cfg)
    ensure_docker_installed(cfg)
    ensure_docker_group(cfg)
    register_tunnel(cfg)
    start_docker(cfg)
    log.info('Docker is ready; socket at {}', cfg.paths.docker_socket)


def teardown_docker(cfg: LimaboxConfig) -> None:
    unregister_tunnel(cfg)
    instance_paths(cfg)['launch_agent'].delete()
    clear_marker(cfg, MARKER_DOCKER_GROUP)


def guest_version(cfg: LimaboxConfig) -> str:
    res = guest_exec(cfg, VERSION_SCRIPT)
    return res.stdout.strip() if res.code == 0 else ''

"""Docker socket tunnel: the SSH forward script and its launchd agent."""

from __future__ import annotations

import plistlib
import shlex
from dataclasses import dataclass

from loguru import logger

from .config import LimaboxConfig
from .errors import ConfigInvalidError, ProvisioningFailedError
from .paths import instance_paths, launch_agent_label
from .util import CmdError, run_cmd

log = logger

GUEST_DOCKER_SOCKET = '/var/run/docker.sock'
THROTTLE_INTERVAL_S = 5


@dataclass(frozen=True)
class TunnelScript:
    socket_file: str
    ssh_port: int
    identity_file: str
    guest_socket: str = GUEST_DOCKER_SOCKET

    def render(self) -> str:
        if not self.socket_file or not self.identity_file:
            raise ConfigInvalidError('tunnel socket and identity paths are required')
        if not 1 <= int(self.ssh_port) <= 65535:
            raise ConfigInvalidError(f'ssh port out of range: {self.ssh_port!r}')
        sock = shlex.quote(self.socket_file)
        ssh_cmd = ' '.join(
            [
                'exec ssh',
                f'-p {int(self.ssh_port)}',
                f'-i {shlex.quote(self.identity_file)}',
                '-o NoHostAuthenticationForLocalhost=yes',
                f'-L {shlex.quote(self.socket_file + ":" + self.guest_socket)}',
                '-N 127.0.0.1',
            ]
        )
        return f'#!/usr/bin/env bash\nrm -rf {sock}\n{ssh_cmd}\n'


@dataclass(frozen=True)
class LaunchAgent:
    label: str
    program: str
    stdout_path: str = ''
    stderr_path: str = ''
    run_at_load: bool = True
    keep_alive: bool = True
    throttle_interval: int = THROTTLE_INTERVAL_S

    def as_dict(self) -> dict:
        body = {
            'Label': self.label,
            'Program': self.program,
            'RunAtLoad': self.run_at_load,
            'KeepAlive': self.keep_alive,
            'ThrottleInterval': self.throttle_interval,
        }
        if self.stdout_path:
            body['StandardOutPath'] = self.stdout_path
        if self.stderr_path:
            body['StandardErrorPath'] = self.stderr_path
        return body

    def render(self) -> bytes:
        return plistlib.dumps(self.as_dict())


def tunnel_script(cfg: LimaboxConfig) -> TunnelScript:
    p = instance_paths(cfg)
    return TunnelScript(
        socket_file=str(p['docker_socket']),
        ssh_port=cfg.vm.ssh_port,
        identity_file=str(p['lima_identity']),
    )


def launch_agent(cfg: LimaboxConfig) -> LaunchAgent:
    p = instance_paths(cfg)
    return LaunchAgent(
        label=launch_agent_label(cfg),
        program=str(p['tunnel_script']),
        stdout_path=str(p['tunnel_log']),
        stderr_path=str(p['tunnel_log']),
    )


def tunnel_loaded(cfg: LimaboxConfig) -> bool:
    res = run_cmd(
        ['launchctl', 'list', launch_agent_label(cfg)], check=False, capture=True
    )
    return res.code == 0


def register_tunnel(cfg: LimaboxConfig) -> None:
    """Write the tunnel script and agent, then load the agent if needed."""
    p = instance_paths(cfg)
    script_path = p['tunnel_script']
    if not script_path.exists():
        script_path.parent.ensuredir()
        script_path.write_text(tunnel_script(cfg).render(), encoding='utf-8')
        script_path.chmod(0o755)
        log.debug('Wrote tunnel script {}', script_path)

    plist_path = p['launch_agent']
    body = launch_agent(cfg).render()
    if not plist_path.exists() or plist_path.read_bytes() != body:
        plist_path.parent.ensuredir()
        plist_path.write_bytes(body)
        log.debug('Wrote launch agent {}', plist_path)

    if tunnel_loaded(cfg):
        log.debug('Tunnel agent already loaded: {}', launch_agent_label(cfg))
        return
    try:
        run_cmd(['launchctl', 'load', str(plist_path)], check=True, capture=True)
    except CmdError as ex:
        raise ProvisioningFailedError(
            'register docker socket tunnel', ex.result.summary
        ) from ex
    log.info('Docker socket tunnel loaded: {}', p['docker_socket'])


def unregister_tunnel(cfg: LimaboxConfig) -> None:
    plist_path = instance_paths(cfg)['launch_agent']
    if not plist_path.exists():
        return
    run_cmd(['launchctl', 'unload', str(plist_path)], check=False, capture=True)
    log.info('Docker socket tunnel unloaded: {}', launch_agent_label(cfg))

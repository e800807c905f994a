"""Runtime helpers for limactl: instance state, guest exec, and file copy."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from .config import LimaboxConfig
from .util import CmdResult, run_cmd

log = logger

LIVENESS_SCRIPT = 'true'


@dataclass(frozen=True)
class VMState:
    exists: bool
    running: bool
    # limactl says Running but the guest did not answer.
    unresponsive: bool = False

    @property
    def phase(self) -> str:
        if not self.exists:
            return 'absent'
        if self.unresponsive:
            return 'unresponsive'
        return 'running' if self.running else 'stopped'


def limactl_cmd(*args: str) -> list[str]:
    return ['limactl', *args]


def guest_cmd(cfg: LimaboxConfig, script: str) -> list[str]:
    return limactl_cmd('shell', cfg.vm.name, '--', 'bash', '-lc', script)


def list_instances() -> list[dict]:
    res = run_cmd(limactl_cmd('list', '--json'), check=False, capture=True)
    if res.code != 0:
        log.debug('limactl list failed: {}', res.stderr.strip())
        return []
    # limactl prints one JSON object per line rather than an array.
    out: list[dict] = []
    for line in res.stdout.strip().splitlines():
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(entry, dict):
            out.append(entry)
    return out


def instance_info(cfg: LimaboxConfig) -> dict | None:
    for entry in list_instances():
        if entry.get('name') == cfg.vm.name:
            return entry
    return None


def guest_exec(
    cfg: LimaboxConfig,
    script: str,
    *,
    check: bool = False,
    capture: bool = True,
) -> CmdResult:
    return run_cmd(guest_cmd(cfg, script), check=check, capture=capture)


def vm_state(cfg: LimaboxConfig) -> VMState:
    """Derive the VM state from limactl plus a liveness command in the guest."""
    info = instance_info(cfg)
    if info is None:
        return VMState(exists=False, running=False)
    if str(info.get('status', '')).lower() != 'running':
        return VMState(exists=True, running=False)
    alive = guest_exec(cfg, LIVENESS_SCRIPT).code == 0
    if not alive:
        log.warning(
            'limactl reports VM {} as Running, but the guest did not answer; '
            'treating it as not running',
            cfg.vm.name,
        )
    return VMState(exists=True, running=alive, unresponsive=not alive)


def create_instance(cfg: LimaboxConfig, template: Path) -> None:
    run_cmd(
        limactl_cmd('start', '--tty=false', f'--name={cfg.vm.name}', str(template)),
        check=True,
        capture=True,
    )


def start_instance(cfg: LimaboxConfig) -> None:
    run_cmd(
        limactl_cmd('start', '--tty=false', cfg.vm.name), check=True, capture=True
    )


def stop_instance(cfg: LimaboxConfig) -> None:
    run_cmd(limactl_cmd('stop', cfg.vm.name), check=True, capture=True)


def delete_instance(cfg: LimaboxConfig) -> None:
    run_cmd(
        limactl_cmd('delete', '--force', cfg.vm.name), check=True, capture=True
    )


def restart_instance(cfg: LimaboxConfig) -> None:
    log.info('Restarting VM {} to apply guest changes', cfg.vm.name)
    stop_instance(cfg)
    start_instance(cfg)


def copy_from_guest(cfg: LimaboxConfig, guest_path: str, local_path: Path) -> Path:
    run_cmd(
        limactl_cmd('copy', f'{cfg.vm.name}:{guest_path}', str(local_path)),
        check=True,
        capture=True,
    )
    return local_path

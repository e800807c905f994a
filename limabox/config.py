"""Configuration dataclasses, validation, and CLI override merging."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from .errors import ConfigInvalidError
from .util import expand

DEFAULT_INSTANCE_NAME = 'limabox'
DEFAULT_SSH_PORT = 41122

_NAME_PAT = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._-]*$')


@dataclass
class VMConfig:
    name: str = DEFAULT_INSTANCE_NAME
    cpus: int = 2
    memory_gib: float = 4
    disk_gib: float = 60
    ssh_port: int = DEFAULT_SSH_PORT
    home_mount: str = '~'
    kubernetes: bool = False


@dataclass
class PathsConfig:
    config_dir: str = '~/.limabox'
    lima_home: str = '~/.lima'
    docker_socket: str = '/var/run/docker.sock'
    kubeconfig: str = '~/.kube/config'
    launch_agents_dir: str = '~/Library/LaunchAgents'


@dataclass
class LimaboxConfig:
    vm: VMConfig = field(default_factory=VMConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    verbosity: int = 1

    def expanded_paths(self) -> 'LimaboxConfig':
        self.paths.config_dir = expand(self.paths.config_dir)
        self.paths.lima_home = expand(self.paths.lima_home)
        self.paths.docker_socket = expand(self.paths.docker_socket)
        self.paths.kubeconfig = expand(self.paths.kubeconfig)
        self.paths.launch_agents_dir = expand(self.paths.launch_agents_dir)
        self.vm.home_mount = expand(self.vm.home_mount)
        return self


def _coerce_number(raw: object, *, key: str, integer: bool) -> int | float:
    if isinstance(raw, bool):
        raise ConfigInvalidError(f'--{key} must be numeric, got {raw!r}')
    if isinstance(raw, (int, float)):
        value = raw
    else:
        text = str(raw).strip()
        try:
            value = int(text) if integer else float(text)
        except ValueError:
            raise ConfigInvalidError(
                f'--{key} must be {"an integer" if integer else "numeric"}, got {raw!r}'
            ) from None
    if integer and int(value) != value:
        raise ConfigInvalidError(f'--{key} must be an integer, got {raw!r}')
    if not integer and float(value).is_integer():
        value = int(value)
    return int(value) if integer else value


def validate_config(cfg: LimaboxConfig) -> None:
    vm = cfg.vm
    if not _NAME_PAT.match(vm.name or ''):
        raise ConfigInvalidError(
            f'Instance name {vm.name!r} must match [A-Za-z0-9][A-Za-z0-9._-]*'
        )
    if not isinstance(vm.cpus, int) or isinstance(vm.cpus, bool) or vm.cpus < 1:
        raise ConfigInvalidError(f'cpu must be an integer >= 1, got {vm.cpus!r}')
    if not isinstance(vm.memory_gib, (int, float)) or vm.memory_gib <= 0:
        raise ConfigInvalidError(f'memory must be > 0 GiB, got {vm.memory_gib!r}')
    if not isinstance(vm.disk_gib, (int, float)) or vm.disk_gib <= 0:
        raise ConfigInvalidError(f'disk must be > 0 GiB, got {vm.disk_gib!r}')
    if not isinstance(vm.ssh_port, int) or not 1 <= vm.ssh_port <= 65535:
        raise ConfigInvalidError(f'ssh_port out of range: {vm.ssh_port!r}')


def apply_overrides(
    cfg: LimaboxConfig,
    *,
    cpu: object = None,
    memory: object = None,
    disk: object = None,
    kubernetes: bool | None = None,
) -> bool:
    """Merge CLI flags into ``cfg``.

    Every value is coerced before ``cfg`` is touched, so a bad flag leaves the
    config unchanged. Returns True if cpu, memory or disk differ from what
    ``cfg`` held before.
    """
    updates: dict[str, int | float] = {}
    if cpu is not None:
        updates['cpus'] = _coerce_number(cpu, key='cpu', integer=True)
    if memory is not None:
        updates['memory_gib'] = _coerce_number(memory, key='memory', integer=False)
    if disk is not None:
        updates['disk_gib'] = _coerce_number(disk, key='disk', integer=False)

    changed = any(getattr(cfg.vm, k) != v for k, v in updates.items())
    before = (cfg.vm.cpus, cfg.vm.memory_gib, cfg.vm.disk_gib)
    for k, v in updates.items():
        setattr(cfg.vm, k, v)
    try:
        validate_config(cfg)
    except ConfigInvalidError:
        cfg.vm.cpus, cfg.vm.memory_gib, cfg.vm.disk_gib = before
        raise
    if kubernetes:
        cfg.vm.kubernetes = True
    return changed

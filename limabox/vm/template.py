"""Typed model of the Lima instance definition and its YAML rendering."""

from __future__ import annotations

from dataclasses import dataclass, field

import yaml

from ..config import LimaboxConfig, validate_config
from ..errors import ConfigInvalidError

UBUNTU_IMAGES = (
    (
        'https://cloud-images.ubuntu.com/releases/22.04/release/'
        'ubuntu-22.04-server-cloudimg-amd64.img',
        'x86_64',
    ),
    (
        'https://cloud-images.ubuntu.com/releases/22.04/release/'
        'ubuntu-22.04-server-cloudimg-arm64.img',
        'aarch64',
    ),
)


def _gib(value: int | float) -> str:
    if float(value).is_integer():
        return f'{int(value)}GiB'
    return f'{value:g}GiB'


@dataclass
class Mount:
    location: str
    writable: bool = True


@dataclass
class LimaTemplate:
    cpus: int
    memory_gib: float
    disk_gib: float
    ssh_port: int
    mounts: list[Mount] = field(default_factory=list)
    legacy_bios: bool = False
    images: tuple[tuple[str, str], ...] = UBUNTU_IMAGES

    def validate(self) -> None:
        if not isinstance(self.cpus, int) or self.cpus < 1:
            raise ConfigInvalidError(f'cpus must be >= 1, got {self.cpus!r}')
        if self.memory_gib <= 0 or self.disk_gib <= 0:
            raise ConfigInvalidError(
                f'memory/disk must be positive (memory={self.memory_gib!r}, disk={self.disk_gib!r})'
            )
        if not 1 <= self.ssh_port <= 65535:
            raise ConfigInvalidError(f'ssh port out of range: {self.ssh_port!r}')
        for mount in self.mounts:
            if not mount.location:
                raise ConfigInvalidError('mount location must not be empty')

    def as_dict(self) -> dict:
        return {
            'images': [
                {'location': loc, 'arch': arch} for loc, arch in self.images
            ],
            'cpus': self.cpus,
            'memory': _gib(self.memory_gib),
            'disk': _gib(self.disk_gib),
            'mounts': [
                {'location': m.location, 'writable': m.writable}
                for m in self.mounts
            ],
            'ssh': {'localPort': self.ssh_port, 'loadDotSSHPubKeys': False},
            'firmware': {'legacyBIOS': self.legacy_bios},
            # Docker is installed by limabox; keep lima's own containerd off.
            'containerd': {'system': False, 'user': False},
        }

    def render(self) -> str:
        self.validate()
        return yaml.safe_dump(self.as_dict(), sort_keys=False)


def lima_template(cfg: LimaboxConfig) -> LimaTemplate:
    validate_config(cfg)
    mounts = [Mount(cfg.vm.home_mount)] if cfg.vm.home_mount else []
    return LimaTemplate(
        cpus=cfg.vm.cpus,
        memory_gib=cfg.vm.memory_gib,
        disk_gib=cfg.vm.disk_gib,
        ssh_port=cfg.vm.ssh_port,
        mounts=mounts,
    )


def materialize(cfg: LimaboxConfig) -> str:
    """Render the Lima YAML document for ``cfg``."""
    return lima_template(cfg).render()

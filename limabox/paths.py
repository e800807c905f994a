"""Per-instance file locations and provision markers."""

from __future__ import annotations

import ubelt as ub

from .config import LimaboxConfig

MARKER_DOCKER_GROUP = 'docker-group'
MARKER_KUBECONFIG = 'kubeconfig'


def launch_agent_label(cfg: LimaboxConfig) -> str:
    return f'io.limabox.{cfg.vm.name}.docker-socket'


def instance_paths(cfg: LimaboxConfig) -> dict[str, ub.Path]:
    cfg = cfg.expanded_paths()
    name = cfg.vm.name
    instance_dir = ub.Path(cfg.paths.config_dir) / name
    lima_dir = ub.Path(cfg.paths.lima_home) / name
    agents_dir = ub.Path(cfg.paths.launch_agents_dir)
    return {
        'instance_dir': instance_dir,
        'settings': instance_dir / 'settings.toml',
        'lima_template': instance_dir / 'lima.yaml',
        'lima_config': lima_dir / 'lima.yaml',
        'lima_identity': ub.Path(cfg.paths.lima_home) / '_config' / 'user',
        'docker_socket': instance_dir / 'docker.sock',
        'host_docker_socket': ub.Path(cfg.paths.docker_socket),
        'tunnel_script': instance_dir / 'socket.sh',
        'tunnel_log': instance_dir / 'socket.log',
        'launch_agent': agents_dir / f'{launch_agent_label(cfg)}.plist',
        'markers': instance_dir / 'markers',
        'kubeconfig_raw': instance_dir / 'kubeconfig.raw.yaml',
        'kubeconfig_new': instance_dir / 'kubeconfig.yaml',
        'host_kubeconfig': ub.Path(cfg.paths.kubeconfig),
    }


def _marker_path(cfg: LimaboxConfig, marker: str) -> ub.Path:
    return instance_paths(cfg)['markers'] / marker


def has_marker(cfg: LimaboxConfig, marker: str) -> bool:
    return _marker_path(cfg, marker).exists()


def write_marker(cfg: LimaboxConfig, marker: str) -> ub.Path:
    fpath = _marker_path(cfg, marker)
    fpath.parent.ensuredir()
    fpath.write_text(ub.timestamp() + '\n', encoding='utf-8')
    return fpath


def clear_marker(cfg: LimaboxConfig, marker: str) -> None:
    _marker_path(cfg, marker).delete()

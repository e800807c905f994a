"""Persisted per-instance settings remembered between invocations."""

from __future__ import annotations

import tomllib
from dataclasses import asdict
from pathlib import Path

from loguru import logger

from .config import LimaboxConfig
from .paths import instance_paths

log = logger

# Only the VM section is persisted; paths always come from defaults/flags.
_PERSISTED_VM_KEYS = (
    'cpus',
    'memory_gib',
    'disk_gib',
    'ssh_port',
    'home_mount',
    'kubernetes',
)


def settings_path(cfg: LimaboxConfig) -> Path:
    return Path(instance_paths(cfg)['settings'])


def _toml_escape(s: str) -> str:
    return s.replace('\\', '\\\\').replace('"', '\\"')


def _emit_toml_kv(lines: list[str], key: str, val: object) -> None:
    if isinstance(val, bool):
        lines.append(f'{key} = {"true" if val else "false"}')
    elif isinstance(val, (int, float)):
        lines.append(f'{key} = {val}')
    else:
        lines.append(f'{key} = "{_toml_escape(str(val))}"')


def load_settings(cfg: LimaboxConfig, path: Path | None = None) -> bool:
    """Overlay previously saved settings onto ``cfg``. Returns True if found."""
    fpath = path or settings_path(cfg)
    if not fpath.exists():
        return False
    raw = tomllib.loads(fpath.read_text(encoding='utf-8'))
    body = raw.get('vm', {})
    if isinstance(body, dict):
        for k in _PERSISTED_VM_KEYS:
            if k in body:
                setattr(cfg.vm, k, body[k])
    if 'verbosity' in raw:
        cfg.verbosity = int(raw['verbosity'])
    log.debug('Loaded settings for {} from {}', cfg.vm.name, fpath)
    return True


def save_settings(cfg: LimaboxConfig, path: Path | None = None) -> Path:
    fpath = path or settings_path(cfg)
    fpath.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = []
    if cfg.verbosity != 1:
        lines.append(f'verbosity = {int(cfg.verbosity)}')
        lines.append('')
    lines.append('[vm]')
    vm = asdict(cfg.vm)
    for k in _PERSISTED_VM_KEYS:
        _emit_toml_kv(lines, k, vm[k])
    fpath.write_text('\n'.join(lines).rstrip() + '\n', encoding='utf-8')
    return fpath

"""Options and helpers shared by every limabox command."""

from __future__ import annotations

import sys
from typing import Callable

import scriptconfig as scfg
from loguru import logger

from ..config import DEFAULT_INSTANCE_NAME, LimaboxConfig, validate_config
from ..errors import LimaboxError
from ..host import KUBERNETES_CMDS, REQUIRED_CMDS, require_commands
from ..store import load_settings

log = logger


class _BaseCommand(scfg.DataConfig):
    """Base options shared by all commands."""

    name = scfg.Value(
        DEFAULT_INSTANCE_NAME, help='Instance (VM) name to operate on.'
    )
    verbose = scfg.Value(
        0,
        short_alias=['v'],
        isflag='counter',
        help='Increase verbosity (-v, -vv).',
    )
    yes = scfg.Value(
        False,
        isflag=True,
        help='Answer yes to confirmation prompts.',
    )


def _load_cfg(name: str | None) -> LimaboxConfig:
    """Build the per-invocation config: defaults, then saved settings."""
    cfg = LimaboxConfig()
    cfg.vm.name = str(name or DEFAULT_INSTANCE_NAME).strip()
    validate_config(cfg)
    cfg.expanded_paths()
    load_settings(cfg)
    return cfg


def _require_host_tools(cfg: LimaboxConfig) -> None:
    cmds = list(REQUIRED_CMDS)
    if cfg.vm.kubernetes:
        cmds += KUBERNETES_CMDS
    require_commands(cmds)


def _confirmer(yes: bool) -> Callable[[str], bool]:
    def confirm(question: str) -> bool:
        if yes:
            return True
        if not sys.stdin.isatty():
            raise LimaboxError(
                'Confirmation required, but stdin is not interactive. '
                'Re-run with --yes.'
            )
        ans = input(f'{question} [y/N]: ').strip().lower()
        return ans in {'y', 'yes'}

    return confirm


__all__ = [name for name in globals() if not name.startswith('__')]

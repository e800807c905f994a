"""Top-level modal CLI wiring, argv normalization, and logging setup."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import scriptconfig as scfg
from loguru import logger

from ..config import DEFAULT_INSTANCE_NAME, PathsConfig
from ..errors import UserDeclinedError
from ..status import collect_status, collect_versions, render_status, render_versions
from ..util import expand, shell_join
from ._common import _BaseCommand, _load_cfg, log
from .kubernetes import KubernetesModalCLI
from .vm import DeleteCLI, SSHCLI, StartCLI, StopCLI


class StatusCLI(_BaseCommand):
    """Report docker and kubernetes health inside the VM and from the host."""

    detail = scfg.Value(
        False, isflag=True, help='Include raw probe output.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.name)
        report = collect_status(cfg)
        print(render_status(report, detail=bool(args.detail)))
        if not report.ok:
            log.debug('Failed checks: {}', report.failed)
            return 1
        return 0


class VersionCLI(_BaseCommand):
    """Print limabox, host tool, and in-VM component versions."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.name)
        print(render_versions(collect_versions(cfg)))
        return 0


class LimaboxModalCLI(scfg.ModalCLI):
    """Docker and kubernetes in a Lima VM, exposed to the host as local tools."""

    start = StartCLI
    stop = StopCLI
    delete = DeleteCLI
    ssh = SSHCLI
    status = StatusCLI
    version = VersionCLI
    kubernetes = KubernetesModalCLI


def main(argv: list[str] | None = None) -> None:
    verbosity = 1
    if argv is None:
        argv = sys.argv[1:]
    argv = _normalize_argv(argv)
    name = _option_value(argv, '--name') or DEFAULT_INSTANCE_NAME
    try:
        verbosity = _load_cfg(name).verbosity
    except Exception:
        verbosity = 1

    explicit_verbose = _count_verbose(argv)
    _setup_logging(explicit_verbose, verbosity, log_file=default_log_file())

    try:
        rc = LimaboxModalCLI.main(argv=argv, _noexit=True)
    except UserDeclinedError:
        print('Aborted.')
        sys.exit(0)
    except Exception as ex:
        print(f'ERROR: {ex}', file=sys.stderr)
        log.opt(exception=ex).debug('Unhandled limabox error')
        sys.exit(1)

    if any(flag in argv for flag in ('-h', '--help')):
        sys.exit(0)
    if isinstance(rc, int):
        sys.exit(rc)
    sys.exit(0)


def default_log_file() -> Path:
    return Path(expand(PathsConfig().config_dir)) / 'limabox.log'


def _setup_logging(
    args_verbose: int, cfg_verbosity: int, *, log_file: Path | None = None
) -> None:
    logger.remove()
    effective_verbosity = args_verbose if args_verbose > 0 else cfg_verbosity
    level = 'WARNING'
    if effective_verbosity == 1:
        level = 'INFO'
    elif effective_verbosity >= 2:
        level = 'DEBUG'
    colorize = sys.stderr.isatty() and os.getenv('NO_COLOR') is None
    logger.add(
        sys.stderr,
        level=level,
        colorize=colorize,
        format='<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>',
    )
    if log_file is not None:
        # Full command output always lands in the file sink.
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_file),
            level='DEBUG',
            rotation='5 MB',
            retention=3,
            format='{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}',
        )
    log.debug(
        'Logging configured at {} (effective_verbosity={}, colorize={}, log_file={})',
        level,
        effective_verbosity,
        colorize,
        log_file,
    )


def _option_value(argv: list[str], flag: str) -> str | None:
    for i, item in enumerate(argv):
        if item == flag and i + 1 < len(argv):
            return argv[i + 1]
        if item.startswith(flag + '='):
            return item.split('=', 1)[1]
    return None


def _normalize_argv(argv: list[str]) -> list[str]:
    """Normalize hyphenated flag spellings and free-form ssh arguments."""
    argv = [
        '--with_kubernetes' if item == '--with-kubernetes' else item
        for item in argv
    ]
    if len(argv) >= 1 and argv[0] == 'k8s':
        argv = ['kubernetes', *argv[1:]]
    if len(argv) >= 2 and argv[0] == 'ssh':
        rest = argv[1:]
        if '--' in rest:
            idx = rest.index('--')
            return ['ssh', *rest[:idx], '--command', shell_join(rest[idx + 1 :])]
        if not rest[0].startswith('-'):
            return ['ssh', '--command', shell_join(rest)]
    return argv


def _count_verbose(argv: list[str]) -> int:
    count = 0
    for item in argv:
        if item == '--verbose':
            count += 1
        elif item.startswith('-') and not item.startswith('--'):
            short = item[1:]
            if short and set(short) <= {'v'}:
                count += len(short)
    return count

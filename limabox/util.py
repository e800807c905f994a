"""Shared helpers for subprocess execution, paths, and command formatting."""

from __future__ import annotations

import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Optional, Sequence

from loguru import logger

log = logger


@dataclass(frozen=True)
class CmdResult:
    code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.code == 0

    @property
    def summary(self) -> str:
        """Last non-empty line of stderr (or stdout), truncated for messages."""
        lines = [ln.strip() for ln in (self.stderr or self.stdout).splitlines()]
        lines = [ln for ln in lines if ln]
        return lines[-1][-200:] if lines else f'exit code {self.code}'


class CmdError(RuntimeError):
    def __init__(self, cmd: Sequence[str] | str, result: CmdResult):
        self.cmd = cmd
        self.result = result
        super().__init__(
            f'Command failed (code={result.code}): {cmd}\n{result.stderr}'.strip()
        )


def shell_join(cmd: Sequence[str]) -> str:
    return ' '.join(shlex.quote(c) for c in cmd)


def run_cmd(
    cmd: Sequence[str],
    *,
    sudo: bool = False,
    sudo_interactive: bool = False,
    check: bool = True,
    capture: bool = True,
    text: bool = True,
    input_text: Optional[str] = None,
    env: Optional[dict[str, str]] = None,
) -> CmdResult:
    """Run an external command and log it (and its captured output).

    With ``sudo`` the command is prefixed by non-interactive ``sudo -n``;
    ``sudo_interactive`` allows sudo to prompt for the host password.
    """
    original_cmd = cmd
    if (sudo or sudo_interactive) and os.geteuid() != 0:
        if sudo_interactive:
            cmd = ['sudo', *cmd]
        else:
            # Non-interactive sudo: fail fast if password/TTY is required.
            cmd = ['sudo', '-n', *cmd]
        log.opt(depth=1).debug(
            'Running with sudo: {}', shell_join(original_cmd)
        )
    log.opt(depth=1).debug('RUN: {}', shell_join(cmd))
    try:
        p = subprocess.run(
            cmd,
            input=input_text if input_text is not None else None,
            capture_output=capture,
            text=text,
            env=env,
        )
    except FileNotFoundError as ex:
        res = CmdResult(127, '', str(ex))
        if check:
            log.opt(depth=1).error('Command not found: {}', cmd[0])
            raise CmdError(cmd, res) from ex
        return res
    res = CmdResult(p.returncode, p.stdout or '', p.stderr or '')
    if capture and (res.stdout.strip() or res.stderr.strip()):
        log.opt(depth=1).debug(
            'OUTPUT cmd={} stdout={} stderr={}',
            shell_join(cmd),
            res.stdout.strip(),
            res.stderr.strip(),
        )
    if check and p.returncode != 0:
        log.opt(depth=1).error(
            'Command failed code={} cmd={} stderr={} stdout={}',
            p.returncode,
            shell_join(cmd),
            res.stderr.strip(),
            res.stdout.strip(),
        )
        raise CmdError(cmd, res)
    if p.returncode == 0:
        log.opt(depth=1).debug('Command ok code=0 cmd={}', shell_join(cmd))
    return res


def which(cmd: str) -> Optional[str]:
    from shutil import which as _which

    return _which(cmd)


def expand(path: str) -> str:
    return os.path.expandvars(os.path.expanduser(path))

"""Host dependency checks."""

from __future__ import annotations

from loguru import logger

from .errors import DependencyMissingError
from .util import which

log = logger

REQUIRED_CMDS = ['limactl', 'ssh', 'launchctl']
KUBERNETES_CMDS = ['kubectl']

REMEDIATION = {
    'limactl': 'brew install lima',
    'ssh': 'install an OpenSSH client',
    'launchctl': 'launchd is required (macOS host)',
    'kubectl': 'brew install kubectl',
    'docker': 'brew install docker',
}


def require_commands(cmds: list[str]) -> None:
    missing = [c for c in cmds if which(c) is None]
    if not missing:
        return
    hints = '; '.join(f'{c}: {REMEDIATION.get(c, "install it")}' for c in missing)
    log.debug('Missing host commands: {}', missing)
    raise DependencyMissingError(
        f'Missing required command(s): {", ".join(missing)}. Fix: {hints}'
    )

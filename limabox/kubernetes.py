"""Idempotent provisioning of a single-node minikube cluster inside the VM."""

from __future__ import annotations

from typing import Callable

from loguru import logger

from .config import LimaboxConfig
from .errors import ConfigInvalidError, ProvisioningFailedError, UserDeclinedError
from .kubeconfig import provision_kubeconfig, teardown_kubeconfig
from .lima import guest_cmd, guest_exec
from .util import run_cmd

log = logger

INSTALLED_PROBE = 'command -v minikube'
STATUS_PROBE = 'sudo minikube status'
# driver=none runs the cluster on the VM's own OS instead of nesting a VM.
START_SCRIPT = (
    'sudo sysctl -w fs.protected_regular=0 >/dev/null; '
    'sudo minikube start --driver=none'
)
STOP_SCRIPT = 'sudo minikube stop'
DELETE_SCRIPT = 'sudo minikube delete'
DASHBOARD_SCRIPT = 'sudo minikube dashboard --url'
VERSION_SCRIPT = 'minikube version --short'
INSTALL_SCRIPT = (
    'set -e; '
    'ARCH=$(dpkg --print-architecture); '
    'sudo apt-get update -y; '
    'sudo DEBIAN_FRONTEND=noninteractive apt-get install -y conntrack socat; '
    'KVER=$(curl -fsSL https://dl.k8s.io/release/stable.txt); '
    'curl -fsSL -o /tmp/kubectl "https://dl.k8s.io/release/$KVER/bin/linux/$ARCH/kubectl"; '
    'sudo install -m 0755 /tmp/kubectl /usr/local/bin/kubectl; '
    'curl -fsSL -o /tmp/minikube "https://storage.googleapis.com/minikube/releases/latest/minikube-linux-$ARCH"; '
    'sudo install -m 0755 /tmp/minikube /usr/local/bin/minikube; '
    'rm -f /tmp/kubectl /tmp/minikube'
)


def is_installed(cfg: LimaboxConfig) -> bool:
    return guest_exec(cfg, INSTALLED_PROBE).code == 0


def is_running(cfg: LimaboxConfig) -> bool:
    return guest_exec(cfg, STATUS_PROBE).code == 0


def install(cfg: LimaboxConfig) -> None:
    log.info('Installing kubernetes (minikube) in VM {}', cfg.vm.name)
    res = guest_exec(cfg, INSTALL_SCRIPT)
    if res.code != 0:
        raise ProvisioningFailedError('install kubernetes', res.summary)


def start(cfg: LimaboxConfig) -> None:
    if not is_running(cfg):
        log.info('Starting kubernetes cluster in VM {}', cfg.vm.name)
        res = guest_exec(cfg, START_SCRIPT)
        if res.code != 0:
            raise ProvisioningFailedError('start kubernetes', res.summary)
    else:
        log.debug('Kubernetes already running in {}', cfg.vm.name)
    provision_kubeconfig(cfg)


def provision(cfg: LimaboxConfig) -> bool:
    """Install minikube if missing, then start it. Returns True on first install."""
    first_run = False
    if not is_installed(cfg):
        install(cfg)
        first_run = True
        log.info(
            'First kubernetes start downloads cluster images; this can take '
            'several minutes. Later starts are fast.'
        )
    start(cfg)
    return first_run


def stop(cfg: LimaboxConfig) -> None:
    if not is_running(cfg):
        log.debug('Kubernetes not running in {}; nothing to stop', cfg.vm.name)
        return
    res = guest_exec(cfg, STOP_SCRIPT)
    if res.code != 0:
        raise ProvisioningFailedError('stop kubernetes')
    log.info('Kubernetes stopped in VM {}', cfg.vm.name)


def teardown(cfg: LimaboxConfig) -> None:
    if is_installed(cfg):
        guest_exec(cfg, DELETE_SCRIPT)
        log.info('Kubernetes cluster deleted in VM {}', cfg.vm.name)
    # Only touches the host kubeconfig, so order relative to delete is loose.
    teardown_kubeconfig(cfg)


def reset(cfg: LimaboxConfig, *, confirm: Callable[[str], bool]) -> None:
    from .vm.lifecycle import assert_running

    if not confirm(
        f'Reset kubernetes in {cfg.vm.name!r}? All cluster resources will be lost.'
    ):
        raise UserDeclinedError('kubernetes reset declined')
    assert_running(cfg)
    if not cfg.vm.kubernetes:
        raise ConfigInvalidError(
            f'Kubernetes is not enabled for {cfg.vm.name!r}. '
            'Run: limabox kubernetes start'
        )
    teardown(cfg)
    provision(cfg)


def dashboard(cfg: LimaboxConfig) -> int:
    if not is_installed(cfg):
        raise ProvisioningFailedError(
            'kubernetes dashboard', 'kubernetes is not installed; run: limabox kubernetes start'
        )
    # Blocks while the dashboard proxy serves; output goes to the terminal.
    return run_cmd(guest_cmd(cfg, DASHBOARD_SCRIPT), check=False, capture=False).code


def guest_version(cfg: LimaboxConfig) -> str:
    res = guest_exec(cfg, VERSION_SCRIPT)
    return res.stdout.strip() if res.code == 0 else ''

"""VM lifecycle: create/start, stop, delete, and the running-VM guard.

State is re-derived from limactl on every call (absent, stopped, running);
nothing is cached between invocations, so re-running a command after a
partial failure resumes where the idempotency checks say it should.
"""

from __future__ import annotations

from typing import Callable

from loguru import logger

from .. import docker, kubernetes
from ..config import LimaboxConfig, validate_config
from ..errors import NotRunningError, ProvisioningFailedError, UserDeclinedError
from ..kubeconfig import teardown_kubeconfig
from ..lima import (
    VMState,
    create_instance,
    delete_instance,
    limactl_cmd,
    start_instance,
    stop_instance,
    vm_state,
)
from ..paths import (
    MARKER_DOCKER_GROUP,
    clear_marker,
    instance_paths,
)
from ..tunnel import unregister_tunnel
from ..util import CmdError, run_cmd
from .template import materialize

log = logger


def assert_running(cfg: LimaboxConfig) -> VMState:
    state = vm_state(cfg)
    if not state.running:
        raise NotRunningError(cfg.vm.name)
    return state


def _write_template(cfg: LimaboxConfig, key: str) -> None:
    fpath = instance_paths(cfg)[key]
    text = materialize(cfg)
    fpath.parent.ensuredir()
    fpath.write_text(text, encoding='utf-8')
    log.debug('Wrote VM definition {}', fpath)


def _limactl_step(
    step: str, func: Callable[[LimaboxConfig], None], cfg: LimaboxConfig
) -> None:
    try:
        func(cfg)
    except CmdError as ex:
        raise ProvisioningFailedError(step, ex.result.summary) from ex


def _forget_guest_state(cfg: LimaboxConfig) -> None:
    """Drop markers and host entries that describe a VM that no longer exists."""
    clear_marker(cfg, MARKER_DOCKER_GROUP)
    # Also clears the kubeconfig marker; stale entries would win the merge.
    teardown_kubeconfig(cfg)


def _provision(cfg: LimaboxConfig) -> None:
    docker.provision_docker(cfg)
    if cfg.vm.kubernetes:
        kubernetes.provision(cfg)
    else:
        log.debug('Kubernetes disabled for {}', cfg.vm.name)


def start_vm(cfg: LimaboxConfig, *, config_changed: bool = False) -> bool:
    """Create or boot the VM, then provision it.

    Returns False when the VM was already running (nothing was done).
    """
    cfg = cfg.expanded_paths()
    validate_config(cfg)
    name = cfg.vm.name
    state = vm_state(cfg)
    log.debug('VM {} is {}', name, state.phase)
    if state.running:
        log.warning('VM {} is already running; start flags are ignored', name)
        return False

    if not state.exists:
        log.info(
            'Creating VM {} (cpus={}, memory={}GiB, disk={}GiB)',
            name,
            cfg.vm.cpus,
            cfg.vm.memory_gib,
            cfg.vm.disk_gib,
        )
        _forget_guest_state(cfg)
        _write_template(cfg, 'lima_template')
        try:
            create_instance(cfg, instance_paths(cfg)['lima_template'])
        except CmdError as ex:
            raise ProvisioningFailedError('create VM', ex.result.summary) from ex
    else:
        if config_changed:
            log.info('VM resources changed; rewriting definition for {}', name)
            _write_template(cfg, 'lima_config')
        log.info('Starting VM {}', name)
        _limactl_step('start VM', start_instance, cfg)

    _provision(cfg)
    log.info('VM {} is running and provisioned', name)
    return True


def stop_vm(cfg: LimaboxConfig) -> None:
    name = cfg.vm.name
    state = vm_state(cfg)
    if not state.exists:
        raise NotRunningError(name)
    if state.unresponsive:
        log.warning(
            'VM {} does not answer; skipping guest shutdown steps and '
            'stopping it through limactl',
            name,
        )
        unregister_tunnel(cfg)
        _limactl_step('stop VM', stop_instance, cfg)
        return
    if not state.running:
        log.info('VM {} is already stopped', name)
        return
    if cfg.vm.kubernetes and kubernetes.is_installed(cfg):
        kubernetes.stop(cfg)
    docker.stop_docker(cfg)
    unregister_tunnel(cfg)
    log.info('Stopping VM {}', name)
    _limactl_step('stop VM', stop_instance, cfg)


def delete_vm(cfg: LimaboxConfig, *, confirm: Callable[[str], bool]) -> None:
    name = cfg.vm.name
    if not confirm(f'Delete VM {name!r} and all of its data?'):
        raise UserDeclinedError('delete declined')
    state = vm_state(cfg)
    log.debug('Deleting VM {} ({})', name, state.phase)
    if state.running:
        kubernetes.teardown(cfg)
    else:
        teardown_kubeconfig(cfg)
    docker.teardown_docker(cfg)
    if state.running:
        _limactl_step('stop VM', stop_instance, cfg)
    if state.exists:
        _limactl_step('delete VM', delete_instance, cfg)
        log.info('VM {} deleted', name)
    else:
        log.info('VM {} does not exist; cleaned up local state', name)
    instance_paths(cfg)['instance_dir'].delete()


def ssh_vm(cfg: LimaboxConfig, command: str = '') -> int:
    assert_running(cfg)
    cmd = limactl_cmd('shell', cfg.vm.name)
    if command:
        cmd += ['--', 'bash', '-lc', command]
    return run_cmd(cmd, check=False, capture=False).code

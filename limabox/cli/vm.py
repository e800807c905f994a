"""CLI commands for the VM lifecycle: start, stop, delete, and ssh."""

from __future__ import annotations

import scriptconfig as scfg

from ..config import apply_overrides
from ..store import save_settings
from ..vm import delete_vm, ssh_vm, start_vm, stop_vm
from ._common import (
    _BaseCommand,
    _confirmer,
    _load_cfg,
    _require_host_tools,
    log,
)


class StartCLI(_BaseCommand):
    """Create (or boot) the VM and provision docker, optionally kubernetes."""

    with_kubernetes = scfg.Value(
        False, isflag=True, help='Also provision and start kubernetes.'
    )
    cpu = scfg.Value(None, help='Number of CPUs (default 2, or last used).')
    memory = scfg.Value(None, help='Memory in GiB (default 4, or last used).')
    disk = scfg.Value(None, help='Disk size in GiB (default 60, or last used).')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.name)
        changed = apply_overrides(
            cfg,
            cpu=args.cpu,
            memory=args.memory,
            disk=args.disk,
            kubernetes=bool(args.with_kubernetes) or None,
        )
        _require_host_tools(cfg)
        if start_vm(cfg, config_changed=changed):
            save_settings(cfg)
            print(f'✅ {cfg.vm.name} is running. Docker socket: {cfg.paths.docker_socket}')
        return 0


class StopCLI(_BaseCommand):
    """Stop docker, the socket tunnel, and the VM."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.name)
        _require_host_tools(cfg)
        stop_vm(cfg)
        return 0


class DeleteCLI(_BaseCommand):
    """Delete the VM, its kubernetes context, and all local state."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.name)
        _require_host_tools(cfg)
        delete_vm(cfg, confirm=_confirmer(bool(args.yes)))
        log.debug('Delete finished for {}', cfg.vm.name)
        print(f'✅ {cfg.vm.name} deleted.')
        return 0


class SSHCLI(_BaseCommand):
    """Open a shell in the VM, or run a command in it."""

    command = scfg.Value('', help='Command to run inside the VM.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.name)
        return ssh_vm(cfg, str(args.command or ''))

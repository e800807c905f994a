"""CLI commands for the in-VM kubernetes cluster."""

from __future__ import annotations

import scriptconfig as scfg

from .. import kubernetes
from ..store import save_settings
from ..vm import assert_running
from ._common import _BaseCommand, _confirmer, _load_cfg, _require_host_tools


class KubeStartCLI(_BaseCommand):
    """Install (if needed) and start kubernetes, then merge its kubeconfig."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.name)
        cfg.vm.kubernetes = True
        _require_host_tools(cfg)
        assert_running(cfg)
        kubernetes.provision(cfg)
        save_settings(cfg)
        print(f'✅ kubernetes is running; kubectl context: {cfg.vm.name}')
        return 0


class KubeStopCLI(_BaseCommand):
    """Stop the kubernetes cluster, leaving the VM running."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.name)
        assert_running(cfg)
        kubernetes.stop(cfg)
        return 0


class KubeDashboardCLI(_BaseCommand):
    """Print the kubernetes dashboard URL and keep its proxy running."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.name)
        assert_running(cfg)
        return kubernetes.dashboard(cfg)


class KubeResetCLI(_BaseCommand):
    """Delete the cluster and its kubeconfig entries, then provision again."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.name)
        _require_host_tools(cfg)
        kubernetes.reset(cfg, confirm=_confirmer(bool(args.yes)))
        return 0


class KubernetesModalCLI(scfg.ModalCLI):
    """Manage kubernetes inside the VM."""

    start = KubeStartCLI
    stop = KubeStopCLI
    dashboard = KubeDashboardCLI
    reset = KubeResetCLI

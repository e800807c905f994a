from __future__ import annotations

import pytest

from limabox import kubernetes
from limabox.config import LimaboxConfig
from limabox.errors import (
    ConfigInvalidError,
    NotRunningError,
    ProvisioningFailedError,
    UserDeclinedError,
)
from limabox.kubeconfig import FLATTEN_SCRIPT
from limabox.paths import MARKER_KUBECONFIG, has_marker


def test_first_provision_installs_and_starts(cfg: LimaboxConfig, fake_host) -> None:
    fake_host.boot()
    assert kubernetes.provision(cfg) is True
    assert fake_host.guest.minikube_installed
    assert fake_host.guest.cluster_running
    assert has_marker(cfg, MARKER_KUBECONFIG)
    assert '--driver=none' in kubernetes.START_SCRIPT


def test_second_provision_is_quiet(cfg: LimaboxConfig, fake_host) -> None:
    fake_host.boot()
    kubernetes.provision(cfg)
    fake_host.reset_calls()
    assert kubernetes.provision(cfg) is False
    assert fake_host.guest_mutations == []


def test_restart_after_vm_reboot_skips_kubeconfig(cfg: LimaboxConfig, fake_host) -> None:
    fake_host.boot()
    kubernetes.provision(cfg)
    fake_host.guest.cluster_running = False
    fake_host.reset_calls()
    kubernetes.provision(cfg)
    assert kubernetes.START_SCRIPT in fake_host.guest_scripts
    assert kubernetes.INSTALL_SCRIPT not in fake_host.guest_scripts
    assert FLATTEN_SCRIPT not in fake_host.guest_scripts


def test_install_failure(cfg: LimaboxConfig, fake_host) -> None:
    fake_host.boot()
    fake_host.fail_scripts.add(kubernetes.INSTALL_SCRIPT)
    with pytest.raises(ProvisioningFailedError, match='install kubernetes'):
        kubernetes.provision(cfg)
    assert not fake_host.guest.cluster_running


def test_stop_is_noop_when_not_running(cfg: LimaboxConfig, fake_host) -> None:
    fake_host.boot()
    kubernetes.stop(cfg)
    assert kubernetes.STOP_SCRIPT not in fake_host.guest_scripts


def test_teardown_deletes_cluster_and_context(cfg: LimaboxConfig, fake_host) -> None:
    fake_host.boot()
    kubernetes.provision(cfg)
    kubernetes.teardown(cfg)
    assert kubernetes.DELETE_SCRIPT in fake_host.guest_scripts
    assert not fake_host.guest.cluster_running
    assert not has_marker(cfg, MARKER_KUBECONFIG)


def test_teardown_when_never_installed(cfg: LimaboxConfig, fake_host) -> None:
    fake_host.boot()
    kubernetes.teardown(cfg)
    assert kubernetes.DELETE_SCRIPT not in fake_host.guest_scripts


def test_reset_declined_touches_nothing(cfg: LimaboxConfig, fake_host) -> None:
    fake_host.boot()
    with pytest.raises(UserDeclinedError):
        kubernetes.reset(cfg, confirm=lambda q: False)
    assert fake_host.calls == []


def test_reset_requires_running_vm(cfg: LimaboxConfig, fake_host) -> None:
    cfg.vm.kubernetes = True
    with pytest.raises(NotRunningError):
        kubernetes.reset(cfg, confirm=lambda q: True)


def test_reset_requires_kubernetes_enabled(cfg: LimaboxConfig, fake_host) -> None:
    fake_host.boot()
    with pytest.raises(ConfigInvalidError):
        kubernetes.reset(cfg, confirm=lambda q: True)
    assert fake_host.guest_mutations == []


def test_reset_reprovisions(cfg: LimaboxConfig, fake_host) -> None:
    fake_host.boot()
    cfg.vm.kubernetes = True
    kubernetes.provision(cfg)
    fake_host.reset_calls()
    kubernetes.reset(cfg, confirm=lambda q: True)
    scripts = fake_host.guest_scripts
    assert scripts.index(kubernetes.DELETE_SCRIPT) < scripts.index(
        kubernetes.START_SCRIPT
    )
    assert FLATTEN_SCRIPT in scripts
    assert fake_host.guest.cluster_running
    assert has_marker(cfg, MARKER_KUBECONFIG)


def test_dashboard_requires_install(cfg: LimaboxConfig, fake_host) -> None:
    fake_host.boot()
    with pytest.raises(ProvisioningFailedError):
        kubernetes.dashboard(cfg)

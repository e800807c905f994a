"""Probe and rendering logic for status and version reporting."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from loguru import logger

from . import __version__, docker, kubernetes
from .config import LimaboxConfig
from .errors import NotRunningError
from .lima import limactl_cmd
from .util import run_cmd, which
from .vm.lifecycle import assert_running

log = logger


@dataclass(frozen=True)
class ProbeOutcome:
    ok: bool | None
    detail: str
    diag: str = ''


@dataclass
class StatusReport:
    name: str
    checks: list[tuple[str, ProbeOutcome]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(out.ok is not False for _, out in self.checks)

    @property
    def failed(self) -> list[str]:
        return [label for label, out in self.checks if out.ok is False]


def status_line(ok: bool | None, label: str, detail: str = '') -> str:
    icon = '✅' if ok is True else ('➖' if ok is None else '❌')
    suffix = f' - {detail}' if detail else ''
    return f'{icon} {label}{suffix}'


def _bool_probe(ok: bool, yes: str, no: str) -> ProbeOutcome:
    return ProbeOutcome(ok, yes if ok else no)


def probe_docker_guest_installed(cfg: LimaboxConfig) -> ProbeOutcome:
    return _bool_probe(docker.is_installed(cfg), 'installed', 'not installed')


def probe_docker_guest_running(cfg: LimaboxConfig) -> ProbeOutcome:
    return _bool_probe(docker.is_running(cfg), 'running', 'not running')


def probe_docker_host_installed(cfg: LimaboxConfig) -> ProbeOutcome:
    path = which('docker')
    return ProbeOutcome(bool(path), path or 'docker client not found on host')


def probe_docker_host_reachable(cfg: LimaboxConfig) -> ProbeOutcome:
    if which('docker') is None:
        return ProbeOutcome(False, 'docker client not found on host')
    res = run_cmd(['docker', 'version'], check=False, capture=True)
    diag = (res.stdout + '\n' + res.stderr).strip()
    return ProbeOutcome(
        res.code == 0,
        f'via {cfg.paths.docker_socket}' if res.code == 0 else 'daemon unreachable',
        diag,
    )


def probe_kube_guest_installed(cfg: LimaboxConfig) -> ProbeOutcome:
    return _bool_probe(kubernetes.is_installed(cfg), 'installed', 'not installed')


def probe_kube_guest_running(cfg: LimaboxConfig) -> ProbeOutcome:
    return _bool_probe(kubernetes.is_running(cfg), 'running', 'not running')


def probe_kube_host_reachable(cfg: LimaboxConfig) -> ProbeOutcome:
    if which('kubectl') is None:
        return ProbeOutcome(False, 'kubectl not found on host')
    res = run_cmd(
        ['kubectl', '--context', cfg.vm.name, 'cluster-info'],
        check=False,
        capture=True,
    )
    diag = (res.stdout + '\n' + res.stderr).strip()
    return ProbeOutcome(
        res.code == 0,
        f'context {cfg.vm.name}' if res.code == 0 else 'cluster unreachable',
        diag,
    )


def status_checks(
    cfg: LimaboxConfig,
) -> list[tuple[str, Callable[[LimaboxConfig], ProbeOutcome]]]:
    checks = [
        ('Docker installed in VM', probe_docker_guest_installed),
        ('Docker running in VM', probe_docker_guest_running),
        ('Docker client on host', probe_docker_host_installed),
        ('Docker reachable from host', probe_docker_host_reachable),
    ]
    if cfg.vm.kubernetes:
        checks += [
            ('Kubernetes installed in VM', probe_kube_guest_installed),
            ('Kubernetes running in VM', probe_kube_guest_running),
            ('Kubernetes reachable from host', probe_kube_host_reachable),
        ]
    return checks


def run_checks(
    cfg: LimaboxConfig,
    checks: list[tuple[str, Callable[[LimaboxConfig], ProbeOutcome]]],
) -> StatusReport:
    """Evaluate every check; one failing or raising check never skips the rest."""
    report = StatusReport(name=cfg.vm.name)
    for label, probe in checks:
        try:
            out = probe(cfg)
        except Exception as ex:
            log.debug('Status probe {!r} raised: {}', label, ex)
            out = ProbeOutcome(False, f'probe error: {ex}')
        report.checks.append((label, out))
    return report


def collect_status(cfg: LimaboxConfig) -> StatusReport:
    assert_running(cfg)
    return run_checks(cfg, status_checks(cfg))


def render_status(report: StatusReport, *, detail: bool = False) -> str:
    lines = [f'🧭 limabox status: {report.name}', '']
    for label, out in report.checks:
        lines.append(status_line(out.ok, label, out.detail))
        if detail and out.diag:
            lines.append('```text')
            lines.append(out.diag)
            lines.append('```')
    lines.append('')
    total = len(report.checks)
    passed = sum(1 for _, out in report.checks if out.ok is not False)
    lines.append(f'📊 {passed}/{total} checks passed')
    return '\n'.join(lines)


def _first_line(text: str) -> str:
    lines = text.strip().splitlines()
    return lines[0].strip() if lines else ''


def _host_tool_version(cmd: list[str]) -> str:
    if which(cmd[0]) is None:
        return 'not installed'
    res = run_cmd(cmd, check=False, capture=True)
    if res.code != 0:
        return 'unknown'
    return _first_line(res.stdout) or 'unknown'


def collect_versions(cfg: LimaboxConfig) -> list[tuple[str, str]]:
    versions = [
        ('limabox', __version__),
        ('limactl', _host_tool_version(limactl_cmd('--version'))),
        ('docker client', _host_tool_version(['docker', '--version'])),
        (
            'kubectl client',
            _host_tool_version(['kubectl', 'version', '--client']),
        ),
    ]
    try:
        assert_running(cfg)
    except NotRunningError as ex:
        log.debug('Skipping guest versions: {}', ex)
        versions.append(('VM', 'not running'))
        return versions
    versions.append(('docker engine (VM)', docker.guest_version(cfg) or 'not installed'))
    if cfg.vm.kubernetes:
        versions.append(
            ('minikube (VM)', kubernetes.guest_version(cfg) or 'not installed')
        )
    return versions


def render_versions(versions: list[tuple[str, str]]) -> str:
    width = max(len(k) for k, _ in versions)
    return '\n'.join(f'{k.ljust(width)}  {v}' for k, v in versions)

"""Shared fixtures: a scriptable stand-in for limactl, the guest, launchctl and kubectl."""

from __future__ import annotations

import json
import os
import shutil
import textwrap
from dataclasses import dataclass, field
from pathlib import Path

import pytest
import yaml

from limabox import docker, kubeconfig, kubernetes
from limabox.config import LimaboxConfig
from limabox.lima import LIVENESS_SCRIPT
from limabox.util import CmdError, CmdResult

PATCHED_MODULES = (
    'limabox.lima',
    'limabox.docker',
    'limabox.tunnel',
    'limabox.kubeconfig',
    'limabox.kubernetes',
    'limabox.vm.lifecycle',
    'limabox.status',
)

GUEST_PROBES = {
    LIVENESS_SCRIPT,
    docker.INSTALLED_PROBE,
    docker.RUNNING_PROBE,
    docker.GROUP_PROBE,
    docker.VERSION_SCRIPT,
    kubernetes.INSTALLED_PROBE,
    kubernetes.STATUS_PROBE,
    kubernetes.VERSION_SCRIPT,
}

MINIKUBE_KUBECONFIG = textwrap.dedent(
    """
    apiVersion: v1
    clusters:
    - cluster:
        certificate-authority-data: Q0E=
        extensions:
        - extension:
            provider: minikube.sigs.k8s.io
            version: v1.32.0
          name: cluster_info
        server: https://192.168.5.15:8443
      name: minikube
    contexts:
    - context:
        cluster: minikube
        namespace: default
        user: minikube
      name: minikube
    current-context: minikube
    kind: Config
    preferences: {}
    users:
    - name: minikube
      user:
        client-certificate-data: Q0VSVA==
        client-key-data: S0VZ
    """
).lstrip()


def kubeconfig_text(*names: str, current: str = '') -> str:
    doc = {
        'apiVersion': 'v1',
        'kind': 'Config',
        'clusters': [
            {'name': n, 'cluster': {'server': f'https://{n}.example:6443'}}
            for n in names
        ],
        'users': [{'name': n, 'user': {'token': f'tok-{n}'}} for n in names],
        'contexts': [
            {'name': n, 'context': {'cluster': n, 'user': n}} for n in names
        ],
        'current-context': current,
    }
    return yaml.safe_dump(doc, sort_keys=False)


def _load_yaml(path: str) -> dict:
    p = Path(path)
    if not p.exists():
        return {}
    return yaml.safe_load(p.read_text(encoding='utf-8')) or {}


def fake_kubectl(args: list[str], env: dict[str, str]) -> tuple[int, str, str]:
    """Tiny kubectl stand-in implementing the config subcommands we use."""
    paths = [p for p in env.get('KUBECONFIG', '').split(os.pathsep) if p]
    if args[:3] == ['config', 'view', '--flatten']:
        merged: dict = {
            'apiVersion': 'v1',
            'kind': 'Config',
            'clusters': [],
            'contexts': [],
            'users': [],
            'current-context': '',
        }
        for path in paths:
            doc = _load_yaml(path)
            for section in ('clusters', 'contexts', 'users'):
                seen = {item['name'] for item in merged[section]}
                for item in doc.get(section) or []:
                    # First file in KUBECONFIG wins on duplicate names.
                    if item['name'] not in seen:
                        merged[section].append(item)
            if not merged['current-context'] and doc.get('current-context'):
                merged['current-context'] = doc['current-context']
        return 0, yaml.safe_dump(merged, sort_keys=False), ''
    if args[:2] == ['config', 'use-context']:
        doc = _load_yaml(paths[0])
        names = {c['name'] for c in doc.get('contexts') or []}
        if args[2] not in names:
            return 1, '', f'error: no context exists with the name: "{args[2]}"'
        doc['current-context'] = args[2]
        Path(paths[0]).write_text(yaml.safe_dump(doc), encoding='utf-8')
        return 0, f'Switched to context "{args[2]}".', ''
    if args[:2] == ['config', 'unset']:
        key = args[2]
        doc = _load_yaml(paths[0])
        if key == 'current-context':
            doc['current-context'] = ''
        else:
            section, _, name = key.partition('.')
            items = doc.get(section) or []
            keep = [item for item in items if item['name'] != name]
            if len(keep) == len(items):
                return 1, '', f'error: current map key "{name}" is invalid'
            doc[section] = keep
        Path(paths[0]).write_text(yaml.safe_dump(doc), encoding='utf-8')
        return 0, f'Property "{key}" unset.', ''
    if args[:2] == ['version', '--client']:
        return 0, 'Client Version: v1.29.0\n', ''
    if args[:1] == ['--context']:
        return 0, 'Kubernetes control plane is running\n', ''
    return 1, '', f'unsupported kubectl args: {args}'


@dataclass
class FakeGuest:
    docker_installed: bool = False
    docker_running: bool = False
    in_docker_group: bool = False
    group_pending: bool = False
    minikube_installed: bool = False
    cluster_running: bool = False
    files: dict[str, str] = field(default_factory=dict)


class FakeHost:
    """Records every command and answers like the real tools would."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.exists = False
        self.running = False
        self.guest = FakeGuest()
        self.loaded_agents: set[str] = set()
        self.calls: list[list[str]] = []
        self.fail_scripts: set[str] = set()
        self.fail_tools: set[str] = set()
        self.fail_limactl: set[str] = set()

    def __call__(
        self,
        cmd,
        *,
        sudo=False,
        sudo_interactive=False,
        check=True,
        capture=True,
        text=True,
        input_text=None,
        env=None,
    ) -> CmdResult:
        cmd = [str(c) for c in cmd]
        self.calls.append(cmd)
        if cmd[0] in self.fail_tools:
            code, out, err = 1, '', 'Permission denied'
        elif cmd[0] == 'limactl' and cmd[1] in self.fail_limactl:
            code, out, err = 1, '', f'FATA[0000] {cmd[1]} failed\nexit status 1\n'
        else:
            code, out, err = self._dispatch(cmd, env or {})
        res = CmdResult(code, out, err)
        if check and code != 0:
            raise CmdError(cmd, res)
        return res

    # -- inspection helpers --------------------------------------------

    def reset_calls(self) -> None:
        self.calls.clear()

    @property
    def guest_scripts(self) -> list[str]:
        return [
            c[-1]
            for c in self.calls
            if c[:2] == ['limactl', 'shell'] and c[-2:-1] == ['-lc']
        ]

    @property
    def guest_mutations(self) -> list[str]:
        return [s for s in self.guest_scripts if s not in GUEST_PROBES]

    def limactl_calls(self, sub: str) -> list[list[str]]:
        return [c for c in self.calls if c[:2] == ['limactl', sub]]

    def tool_calls(self, tool: str) -> list[list[str]]:
        return [c for c in self.calls if c[0] == tool]

    # -- dispatch --------------------------------------------------------

    def _dispatch(self, cmd: list[str], env: dict) -> tuple[int, str, str]:
        tool = cmd[0]
        if tool == 'limactl':
            return self._limactl(cmd[1:])
        if tool == 'launchctl':
            return self._launchctl(cmd[1:])
        if tool == 'kubectl':
            return fake_kubectl(cmd[1:], env)
        if tool == 'rm':
            for raw in cmd[2:]:
                p = Path(raw)
                if p.is_symlink() or p.is_file():
                    p.unlink()
                elif p.is_dir():
                    shutil.rmtree(p)
            return 0, '', ''
        if tool == 'ln':
            target, link = Path(cmd[-2]), Path(cmd[-1])
            if link.is_symlink() or link.exists():
                link.unlink()
            link.symlink_to(target)
            return 0, '', ''
        if tool == 'docker':
            if self.running and self.guest.docker_running:
                return 0, 'Server: Docker Engine\n', ''
            return 1, '', 'Cannot connect to the Docker daemon'
        return 127, '', f'unexpected command: {cmd}'

    def _limactl(self, args: list[str]) -> tuple[int, str, str]:
        if args == ['list', '--json']:
            if not self.exists:
                return 0, '', ''
            status = 'Running' if self.running else 'Stopped'
            return 0, json.dumps({'name': self.name, 'status': status}) + '\n', ''
        if args[:1] == ['start']:
            self.exists = True
            self.running = True
            if self.guest.group_pending:
                self.guest.in_docker_group = True
                self.guest.group_pending = False
            return 0, '', ''
        if args == ['stop', self.name]:
            self.running = False
            self.guest.cluster_running = False
            return 0, '', ''
        if args == ['delete', '--force', self.name]:
            self.exists = False
            self.running = False
            self.guest = FakeGuest()
            return 0, '', ''
        if args[:2] == ['shell', self.name]:
            if not self.running:
                return 1, '', 'instance is not running'
            if args[-2:-1] == ['-lc']:
                return self._guest(args[-1])
            return 0, '', ''
        if args[:1] == ['copy']:
            src = args[1].split(':', 1)[1]
            if src not in self.guest.files:
                return 1, '', f'no such file: {src}'
            Path(args[2]).write_text(self.guest.files[src], encoding='utf-8')
            return 0, '', ''
        if args == ['--version']:
            return 0, 'limactl version 0.20.1\n', ''
        return 1, '', f'unsupported limactl args: {args}'

    def _launchctl(self, args: list[str]) -> tuple[int, str, str]:
        if args[0] == 'list':
            return (0, '', '') if args[1] in self.loaded_agents else (113, '', '')
        label = Path(args[1]).stem
        if args[0] == 'load':
            self.loaded_agents.add(label)
            return 0, '', ''
        if args[0] == 'unload':
            self.loaded_agents.discard(label)
            return 0, '', ''
        return 1, '', f'unsupported launchctl args: {args}'

    def _guest(self, script: str) -> tuple[int, str, str]:
        g = self.guest
        if script in self.fail_scripts:
            return 1, '', 'E: simulated failure'
        flag = {
            LIVENESS_SCRIPT: True,
            docker.INSTALLED_PROBE: g.docker_installed,
            docker.RUNNING_PROBE: g.docker_running,
            docker.GROUP_PROBE: g.in_docker_group,
            kubernetes.INSTALLED_PROBE: g.minikube_installed,
            kubernetes.STATUS_PROBE: g.cluster_running,
        }
        if script in flag:
            return (0, '', '') if flag[script] else (1, '', '')
        if script == docker.INSTALL_SCRIPT:
            g.docker_installed = True
        elif script == docker.GROUP_ADD_SCRIPT:
            g.group_pending = True
        elif script == docker.START_SCRIPT:
            g.docker_running = True
        elif script == docker.STOP_SCRIPT:
            g.docker_running = False
        elif script == docker.VERSION_SCRIPT:
            return 0, '24.0.7\n', ''
        elif script == kubernetes.INSTALL_SCRIPT:
            g.minikube_installed = True
        elif script == kubernetes.START_SCRIPT:
            g.cluster_running = True
        elif script in (kubernetes.STOP_SCRIPT, kubernetes.DELETE_SCRIPT):
            g.cluster_running = False
        elif script == kubernetes.VERSION_SCRIPT:
            return 0, 'v1.32.0\n', ''
        elif script == kubeconfig.FLATTEN_SCRIPT:
            g.files[kubeconfig.GUEST_KUBECONFIG] = MINIKUBE_KUBECONFIG
        elif script == kubeconfig.GUEST_CLEANUP_SCRIPT:
            g.files.pop(kubeconfig.GUEST_KUBECONFIG, None)
        # Anything else is a user command (ssh passthrough); it succeeds.
        return 0, '', ''

    def boot(self) -> 'FakeHost':
        self.exists = True
        self.running = True
        return self


@pytest.fixture
def cfg(tmp_path: Path) -> LimaboxConfig:
    cfg = LimaboxConfig()
    cfg.paths.config_dir = str(tmp_path / 'config')
    cfg.paths.lima_home = str(tmp_path / 'lima')
    cfg.paths.docker_socket = str(tmp_path / 'run' / 'docker.sock')
    cfg.paths.kubeconfig = str(tmp_path / 'kube' / 'config')
    cfg.paths.launch_agents_dir = str(tmp_path / 'LaunchAgents')
    (tmp_path / 'run').mkdir()
    return cfg


@pytest.fixture
def fake_host(monkeypatch, cfg: LimaboxConfig) -> FakeHost:
    host = FakeHost(cfg.vm.name)
    for mod in PATCHED_MODULES:
        monkeypatch.setattr(f'{mod}.run_cmd', host)
    return host

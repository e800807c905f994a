"""Merge the in-VM cluster credentials into the host kubeconfig and undo it.

The guest's kubeconfig is exported, its API endpoint is pointed at host
loopback (lima forwards guest ports there), and the default ``minikube``
cluster/user/context names are renamed to the instance name. The renamed
document is then merged with the host kubeconfig by ``kubectl config view
--flatten`` over a two-entry ``KUBECONFIG`` search path, so duplicate-name
conflict resolution stays kubectl's contract. Distinct names come from the
rename.

The whole merge is one-shot per instance, guarded by a provision marker.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

import ubelt as ub
import yaml
from loguru import logger

from .config import LimaboxConfig
from .errors import ProvisioningFailedError
from .lima import copy_from_guest, guest_exec
from .paths import MARKER_KUBECONFIG, clear_marker, has_marker, instance_paths, write_marker
from .util import CmdError, run_cmd

log = logger

DEFAULT_NAME = 'minikube'
LOOPBACK_HOST = '127.0.0.1'
GUEST_KUBECONFIG = '/tmp/limabox-kubeconfig.yaml'
FLATTEN_SCRIPT = f'sudo kubectl config view --flatten > {GUEST_KUBECONFIG}'
GUEST_CLEANUP_SCRIPT = f'rm -f {GUEST_KUBECONFIG}'

# Identifiers that contain the default name but must survive the rename.
# Not exhaustive: any future identifier sharing the substring collides too.
RESERVED_IDENTIFIERS = ('minikube.sigs.k8s.io',)

_SECTIONS = (('clusters', 'cluster'), ('users', 'user'), ('contexts', 'context'))


@dataclass
class KubeconfigDocument:
    clusters: dict[str, dict] = field(default_factory=dict)
    users: dict[str, dict] = field(default_factory=dict)
    contexts: dict[str, dict] = field(default_factory=dict)
    current_context: str = ''
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict | None) -> 'KubeconfigDocument':
        raw = dict(raw or {})
        doc = cls()
        for section, key in _SECTIONS:
            target: dict[str, dict] = getattr(doc, section)
            for item in raw.pop(section, None) or []:
                name = str(item.get('name', ''))
                if name in target:
                    raise ProvisioningFailedError(
                        'parse kubeconfig', f'duplicate {key} name {name!r}'
                    )
                target[name] = item.get(key) or {}
        doc.current_context = str(raw.pop('current-context', '') or '')
        doc.extra = raw
        return doc

    @classmethod
    def from_yaml(cls, text: str) -> 'KubeconfigDocument':
        return cls.from_dict(yaml.safe_load(text) or {})

    def to_dict(self) -> dict:
        out = {'apiVersion': 'v1', 'kind': 'Config'}
        out.update(self.extra)
        for section, key in _SECTIONS:
            out[section] = [
                {'name': name, key: body}
                for name, body in getattr(self, section).items()
            ]
        out['current-context'] = self.current_context
        return out

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False)

    def validate(self) -> None:
        if self.current_context and self.current_context not in self.contexts:
            raise ProvisioningFailedError(
                'merge kubeconfig',
                f'current-context {self.current_context!r} has no matching context',
            )


def rename_identifiers(
    text: str,
    old: str,
    new: str,
    *,
    reserved: tuple[str, ...] = RESERVED_IDENTIFIERS,
) -> str:
    """Replace every ``old`` with ``new``, then restore reserved identifiers.

    Example:
        >>> rename_identifiers('minikube minikube.sigs.k8s.io', 'minikube', 'dev')
        'dev minikube.sigs.k8s.io'
    """
    out = text.replace(old, new)
    for ident in reserved:
        if old in ident:
            out = out.replace(ident.replace(old, new), ident)
    return out


def _loopback_url(server: str) -> str:
    parts = urlsplit(server)
    if not parts.hostname:
        return server
    netloc = LOOPBACK_HOST if parts.port is None else f'{LOOPBACK_HOST}:{parts.port}'
    return urlunsplit(parts._replace(netloc=netloc))


def rewrite_kubeconfig(text: str, name: str, *, old: str = DEFAULT_NAME) -> str:
    doc = KubeconfigDocument.from_yaml(text)
    for cluster in doc.clusters.values():
        if cluster.get('server'):
            cluster['server'] = _loopback_url(cluster['server'])
    return rename_identifiers(doc.to_yaml(), old, name)


def _kube_env(*paths: Path) -> dict[str, str]:
    env = dict(os.environ)
    env['KUBECONFIG'] = os.pathsep.join(str(p) for p in paths)
    return env


def merge_kubeconfigs(host: Path, new: Path) -> str:
    paths = [host, new] if host.exists() else [new]
    res = run_cmd(
        ['kubectl', 'config', 'view', '--flatten'],
        env=_kube_env(*paths),
        check=True,
        capture=True,
    )
    return res.stdout


def write_private(fpath: Path, data: bytes) -> None:
    """Write credentials to a file that is owner-only from the moment it exists."""
    fd = os.open(fpath, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, 'wb') as file:
        # O_CREAT mode only applies to new files.
        os.fchmod(file.fileno(), 0o600)
        file.write(data)


def backup_kubeconfig(host: Path) -> Path | None:
    if not host.exists():
        return None
    backup = host.with_name(f'{host.name}.{ub.timestamp()}.bak')
    write_private(backup, host.read_bytes())
    log.info('Backed up {} to {}', host, backup)
    return backup


def provision_kubeconfig(cfg: LimaboxConfig) -> bool:
    if has_marker(cfg, MARKER_KUBECONFIG):
        log.debug('kubeconfig already merged for {}; skipping', cfg.vm.name)
        return False
    name = cfg.vm.name
    p = instance_paths(cfg)
    p['instance_dir'].ensuredir()

    res = guest_exec(cfg, FLATTEN_SCRIPT)
    if res.code != 0:
        raise ProvisioningFailedError('export kubeconfig', res.summary)
    try:
        copy_from_guest(cfg, GUEST_KUBECONFIG, p['kubeconfig_raw'])
    except CmdError as ex:
        raise ProvisioningFailedError(
            'copy kubeconfig from VM', ex.result.summary
        ) from ex

    raw = p['kubeconfig_raw'].read_text(encoding='utf-8')
    write_private(
        p['kubeconfig_new'], rewrite_kubeconfig(raw, name).encode('utf-8')
    )

    host = p['host_kubeconfig']
    try:
        merged = merge_kubeconfigs(host, p['kubeconfig_new'])
    except CmdError as ex:
        raise ProvisioningFailedError('merge kubeconfig', ex.result.summary) from ex
    doc = KubeconfigDocument.from_yaml(merged)
    if name not in doc.contexts:
        raise ProvisioningFailedError(
            'merge kubeconfig', f'context {name!r} missing from merged document'
        )

    backup_kubeconfig(host)
    host.parent.ensuredir()
    write_private(host, merged.encode('utf-8'))
    try:
        run_cmd(
            ['kubectl', 'config', 'use-context', name],
            env=_kube_env(host),
            check=True,
            capture=True,
        )
    except CmdError as ex:
        raise ProvisioningFailedError(
            'switch kubectl context', ex.result.summary
        ) from ex
    KubeconfigDocument.from_yaml(host.read_text(encoding='utf-8')).validate()

    write_marker(cfg, MARKER_KUBECONFIG)
    p['kubeconfig_raw'].delete()
    p['kubeconfig_new'].delete()
    guest_exec(cfg, GUEST_CLEANUP_SCRIPT)
    log.info('kubectl context {!r} merged into {}', name, host)
    return True


def teardown_kubeconfig(cfg: LimaboxConfig) -> None:
    """Remove this instance's cluster, user and context from the host kubeconfig."""
    clear_marker(cfg, MARKER_KUBECONFIG)
    name = cfg.vm.name
    host = instance_paths(cfg)['host_kubeconfig']
    if not host.exists():
        return
    env = _kube_env(host)
    try:
        current = KubeconfigDocument.from_yaml(
            host.read_text(encoding='utf-8')
        ).current_context
    except (yaml.YAMLError, ProvisioningFailedError) as ex:
        log.warning('Could not parse {}: {}', host, ex)
        current = ''
    if current == name:
        run_cmd(
            ['kubectl', 'config', 'unset', 'current-context'],
            env=env,
            check=False,
            capture=True,
        )
    for key in (f'users.{name}', f'contexts.{name}', f'clusters.{name}'):
        # Absent keys make kubectl exit nonzero; that is fine here.
        run_cmd(
            ['kubectl', 'config', 'unset', key], env=env, check=False, capture=True
        )
    log.debug('Removed kubectl entries for {} from {}', name, host)

"""VM operation exports for lifecycle and template helpers."""

from __future__ import annotations

from .lifecycle import (
    assert_running,
    delete_vm,
    ssh_vm,
    start_vm,
    stop_vm,
)
from .template import LimaTemplate, Mount, lima_template, materialize

__all__ = [
    'LimaTemplate',
    'Mount',
    'assert_running',
    'delete_vm',
    'lima_template',
    'materialize',
    'ssh_vm',
    'start_vm',
    'stop_vm',
]

"""
Git mirror synchronization service with webhook support.

:author: Christopher O'Brien <obriencj@preoccupied.net>
:license: GNU General Public License v3
:ai-assistant: Auto via Cursor
"""

from preoccupied.gitmirror.app import app
from preoccupied.gitmirror.config import get_config, get_repo_config
from preoccupied.gitmirror.engine import MirrorEngine
from preoccupied.gitmirror.errors import BindError, ConfigError, GitMirrorError, VcsError
from preoccupied.gitmirror.models import FileDiff
from preoccupied.gitmirror.observers import LogObserver, MirrorObserver
from preoccupied.gitmirror.webhook import TriggerListener


__all__ = [
    'BindError', 'ConfigError', 'FileDiff', 'GitMirrorError', 'LogObserver',
    'MirrorEngine', 'MirrorObserver', 'TriggerListener', 'VcsError',
    'app', 'get_config', 'get_repo_config',
]


# The end.

"""
Value types shared between the git layer, the sync engine, and the
management API.

:author: Christopher O'Brien <obriencj@preoccupied.net>
:license: GNU General Public License v3
:ai-assistant: Auto via Cursor
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, SecretStr


class Credentials(BaseModel):
    """
    Username and password for a remote that requires authentication
    """

    username: str
    password: SecretStr

    model_config = {'frozen': True}


class FileDiff(BaseModel):
    """
    File-level difference between two revisions of a mirror. A changed
    file appears in both lists, since an in-place modification is modeled
    as a removal of the old path plus an addition of the new path.
    """

    added: Tuple[str, ...] = ()
    removed: Tuple[str, ...] = ()

    model_config = {'frozen': True}


    def __bool__(self) -> bool:
        return bool(self.added or self.removed)


class SyncState(str, Enum):
    """
    Phase of the current sync cycle of an engine
    """

    IDLE = 'idle'
    FETCHING = 'fetching'
    DIFFING = 'diffing'
    RESETTING = 'resetting'
    NOTIFYING = 'notifying'


class MirrorStatus(BaseModel):
    """
    Snapshot of an engine's state, as reported by the management API
    """

    name: str
    path: str
    remote: str
    head: Optional[str] = None
    state: SyncState = SyncState.IDLE
    last_sync: Optional[datetime] = None
    last_diff: Optional[FileDiff] = None
    last_error: Optional[str] = None
    observers: int = 0


# The end.

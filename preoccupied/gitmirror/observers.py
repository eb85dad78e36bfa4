"""
Observer interface for mirror changes, and a logging observer.

:author: Christopher O'Brien <obriencj@preoccupied.net>
:license: GNU General Public License v3
:ai-assistant: Auto via Cursor
"""

import inspect
import logging
from pathlib import Path
from typing import Any, Callable, List, Protocol, runtime_checkable

from .models import FileDiff


logger = logging.getLogger(__name__)


@runtime_checkable
class MirrorObserver(Protocol):
    """
    Something interested in the files of a mirror. Either method may be
    a coroutine function.
    """

    def on_initial_files(self, root_path: Path, files: List[str]) -> Any:
        """
        Called once, when the observer is added to an engine whose mirror
        already tracks files
        """


    def on_diff(self, root_path: Path, diff: FileDiff) -> Any:
        """
        Called after every sync cycle that changed at least one file
        """


async def invoke(callback: Callable[..., Any], *args: Any) -> None:
    """
    Call an observer method, awaiting it if it is asynchronous
    """

    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class LogObserver:
    """
    Logs the baseline and every change of the mirrors it observes
    """

    def __init__(self, name: str, log: logging.Logger = logger):
        self.name = name
        self.log = log


    def on_initial_files(self, root_path: Path, files: List[str]) -> None:
        self.log.info(f"Repository '{self.name}' at {root_path} tracks {len(files)} files")


    def on_diff(self, root_path: Path, diff: FileDiff) -> None:
        self.log.info(f"Repository '{self.name}' at {root_path} changed:"
                      f" {len(diff.added)} added, {len(diff.removed)} removed")
        for path in diff.removed:
            self.log.debug(f'  - {path}')
        for path in diff.added:
            self.log.debug(f'  + {path}')


# The end.

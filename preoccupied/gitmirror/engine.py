"""
The sync engine: keeps one local mirror current with its remote, and
reports file-level changes to registered observers.

:author: Christopher O'Brien <obriencj@preoccupied.net>
:license: GNU General Public License v3
:ai-assistant: Auto via Cursor
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from .config import RepoConfig
from .errors import ConfigError, VcsError
from .git import GitMirror
from .models import FileDiff, MirrorStatus, SyncState
from .observers import MirrorObserver, invoke
from .webhook import TriggerListener


logger = logging.getLogger(__name__)


class MirrorEngine:
    """
    Owns the mirror of a single remote repository.

    ``await open()`` brings the mirror up to date, cloning it on first
    use. ``await listen()`` starts the webhook listener, whose payloads
    are handled by on_trigger. Sync cycles are serialized; a trigger that
    arrives during a cycle waits for it to finish.
    """

    def __init__(self, config: RepoConfig, mirror: Optional[GitMirror] = None):
        self.config = config
        self.name = config.name
        self.path = Path(config.path)
        self.mirror = mirror if mirror is not None else config.mirror()
        self.listener = TriggerListener(config.webhook_port, self.on_trigger)

        self.state = SyncState.IDLE
        self.head: Optional[str] = None
        self.last_sync: Optional[datetime] = None
        self.last_diff: Optional[FileDiff] = None
        self.last_error: Optional[str] = None

        self._observers: List[MirrorObserver] = []
        self._lock = asyncio.Lock()
        self._owner: Optional[asyncio.Task] = None


    def __repr__(self):
        return f'MirrorEngine(name={self.name!r}, path={str(self.path)!r})'


    async def __aenter__(self) -> 'MirrorEngine':
        return await self.open()


    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


    @asynccontextmanager
    async def _exclusive(self):
        # re-entrant for the task already holding the lock, so that an
        # observer may add another observer from within a notification
        task = asyncio.current_task()
        if task is not None and task is self._owner:
            yield
            return

        async with self._lock:
            self._owner = task
            try:
                yield
            finally:
                self._owner = None


    async def open(self) -> 'MirrorEngine':
        """
        Clone the mirror if it doesn't exist yet, otherwise bring it up to
        date with the remote. Raises ConfigError if the configured path is
        not a directory, and VcsError if git fails.
        """

        if not self.path.is_dir():
            raise ConfigError(f"Path for repository '{self.name}' is not a directory: {self.path}")

        try:
            async with self._exclusive():
                if not self.mirror.exists():
                    logger.info(f"Repository '{self.name}' does not exist at {self.path}, cloning")
                    await self.mirror.clone()
                    logger.info(f"Cloning '{self.name}' completed")

                else:
                    logger.info(f"Repository '{self.name}' exists at {self.path}, checking for updates")
                    await self.mirror.fetch()
                    if await self.mirror.commit_id('FETCH_HEAD') is not None:
                        await self.mirror.hard_reset('FETCH_HEAD')
                    logger.info(f"Updating '{self.name}' completed")

                # None until the remote has its first commit
                self.head = await self.mirror.commit_id('HEAD')
                self.last_sync = datetime.now(timezone.utc)

        except Exception:
            await self.close()
            raise

        return self


    async def listen(self) -> None:
        """
        Start accepting webhook triggers. Raises BindError if the port is
        unavailable.
        """

        await self.listener.start()


    async def close(self) -> None:
        await self.listener.stop()


    async def tracked_files(self) -> List[str]:
        return await self.mirror.list_tracked_files()


    async def add_observer(self, observer: MirrorObserver) -> None:
        """
        Register an observer. If the mirror already tracks files, the
        observer is given them through on_initial_files before this
        returns.
        """

        async with self._exclusive():
            if any(obs is observer for obs in self._observers):
                return

            files = await self.mirror.list_tracked_files()
            self._observers.append(observer)

            if files:
                await invoke(observer.on_initial_files, self.path, files)


    def remove_observer(self, observer: MirrorObserver) -> None:
        """
        Deregister an observer. A notification pass already under way is
        not affected.
        """

        self._observers = [obs for obs in self._observers if obs is not observer]


    @property
    def observers(self) -> List[MirrorObserver]:
        return list(self._observers)


    async def on_trigger(self, payload: Union[bytes, str]) -> Optional[FileDiff]:
        """
        Webhook entry point. Payloads that do not contain the configured
        token are rejected. Sync failures are logged rather than raised.

        Returns the diff of a completed cycle, or None if the trigger was
        rejected or the cycle failed.
        """

        logger.info(f"Webhook triggered for repository '{self.name}' at {self.path}")

        if isinstance(payload, str):
            payload = payload.encode('utf-8', 'surrogateescape')

        # a plain shared-secret check, anywhere in the payload
        if self.config.webhook_token.encode('utf-8') not in payload:
            logger.error(f"Webhook for repository '{self.name}' did not include the token")
            return None

        try:
            return await self.sync()

        except VcsError as e:
            logger.error(f"Error updating repository '{self.name}': {e}")

        except Exception as e:
            logger.error(f"Error updating repository '{self.name}': {e}", exc_info=True)

        return None


    async def sync(self) -> FileDiff:
        """
        Fetch the remote, diff the current head against the fetched head,
        hard-reset onto the fetched head, and notify observers if anything
        changed. If git fails the mirror is left as it was and the error
        propagates.
        """

        async with self._exclusive():
            try:
                self.state = SyncState.FETCHING
                await self.mirror.fetch()

                self.state = SyncState.DIFFING
                fetched = await self.mirror.commit_id('FETCH_HEAD')
                if fetched is None:
                    # the remote is still empty
                    diff = FileDiff()

                else:
                    base = await self.mirror.commit_id('HEAD')
                    if base is None:
                        base = await self.mirror.empty_tree()
                    diff = await self.mirror.diff_trees(base, 'FETCH_HEAD')

                    self.state = SyncState.RESETTING
                    await self.mirror.hard_reset('FETCH_HEAD')

            except Exception as e:
                self.state = SyncState.IDLE
                self.last_error = str(e)
                raise

            self.head = fetched
            self.last_sync = datetime.now(timezone.utc)
            self.last_diff = diff
            self.last_error = None

            logger.info(f"Finished updating repository '{self.name}' to {(fetched or 'empty')[:12]}"
                        f" ({len(diff.added)} added, {len(diff.removed)} removed)")

            try:
                if diff:
                    self.state = SyncState.NOTIFYING
                    await self._notify(diff)
            finally:
                self.state = SyncState.IDLE

            return diff


    async def _notify(self, diff: FileDiff) -> None:
        # observers added or removed during the pass take effect next cycle
        for observer in list(self._observers):
            try:
                await invoke(observer.on_diff, self.path, diff)
            except Exception as e:
                logger.error(f"Observer {observer!r} failed handling changes to"
                             f" repository '{self.name}': {e}", exc_info=True)


    def status(self) -> MirrorStatus:
        return MirrorStatus(
            name=self.name,
            path=str(self.path),
            remote=self.config.remote,
            head=self.head,
            state=self.state,
            last_sync=self.last_sync,
            last_diff=self.last_diff,
            last_error=self.last_error,
            observers=len(self._observers),
        )


# The end.

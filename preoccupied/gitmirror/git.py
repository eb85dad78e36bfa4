"""
Thin asynchronous wrapper around the git command line, providing the
handful of operations the sync engine needs from a version-control
engine: clone, fetch, tree-to-tree diff, hard reset, and listing of
tracked files.

:author: Christopher O'Brien <obriencj@preoccupied.net>
:license: GNU General Public License v3
:ai-assistant: Auto via Cursor
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
from urllib.parse import quote, urlsplit, urlunsplit

from .errors import VcsError
from .models import Credentials, FileDiff


logger = logging.getLogger(__name__)


REDACTED = '***'


def redact(text: str, secrets: Sequence[str] = ()) -> str:
    """
    Replace every occurrence of each secret in text
    """

    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)
    return text


async def run(
        *args: str,
        cwd: Optional[str] = None,
        secrets: Sequence[str] = ()) -> bytes:
    """
    Run a command to completion and return its stdout. A non-zero exit
    raises VcsError carrying the command's stderr. Any of the given
    secrets are scrubbed from the logged command and from the error.
    """

    command = tuple(redact(arg, secrets) for arg in args)
    logger.debug(f'Running {command} in {cwd}')

    # never let git sit waiting on a password prompt
    env = dict(os.environ, GIT_TERMINAL_PROMPT='0')

    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            cwd=cwd,
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE
        )
    except OSError as e:
        raise VcsError(f'Unable to run {args[0]}: {e}', command) from e

    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        message = stderr.decode('utf-8', 'replace').strip()
        if not message:
            message = f'{command[0]} exited with status {process.returncode}'
        raise VcsError(redact(message, secrets), command, process.returncode)

    return stdout


async def git_version() -> str:
    """
    Version string of the installed git, eg. 'git version 2.39.5'
    """

    out = await run('git', '--version')
    return out.decode('utf-8', 'replace').strip()


def authenticated_url(url: str, credentials: Optional[Credentials]) -> str:
    """
    Embed credentials into an http(s) URL. Other URL forms (ssh, local
    paths) are returned unchanged.
    """

    if credentials is None:
        return url

    parts = urlsplit(url)
    if parts.scheme not in ('http', 'https'):
        return url

    host = parts.netloc.rpartition('@')[2]
    user = quote(credentials.username, safe='')
    password = quote(credentials.password.get_secret_value(), safe='')
    return urlunsplit(parts._replace(netloc=f'{user}:{password}@{host}'))


def _split_nul(output: bytes) -> List[str]:
    return [os.fsdecode(field) for field in output.split(b'\0') if field]


def parse_diff_tree(output: bytes) -> FileDiff:
    """
    Parse the output of ``git diff-tree -r -z --no-renames``. Each entry is
    a metadata field ``:oldmode newmode oldid newid status`` followed by
    the path. An all-zero object id means the blob is absent on that side.
    """

    added: List[str] = []
    removed: List[str] = []

    fields = iter(_split_nul(output))
    for meta in fields:
        path = next(fields)
        _old_mode, _new_mode, old_id, new_id, _status = meta.lstrip(':').split(' ')

        if not old_id.strip('0'):
            added.append(path)
        elif not new_id.strip('0'):
            removed.append(path)
        else:
            removed.append(path)
            added.append(path)

    return FileDiff(added=tuple(added), removed=tuple(removed))


class GitMirror:
    """
    A local clone of a single remote repository at a fixed path.
    """

    def __init__(
            self,
            path: str,
            remote: str,
            credentials: Optional[Credentials] = None,
            branch: Optional[str] = None):

        self.path = Path(path)
        self.remote = remote
        self.credentials = credentials
        self.branch = branch


    def __repr__(self):
        return f'GitMirror(path={str(self.path)!r}, remote={self.remote!r})'


    @property
    def url(self) -> str:
        """
        The remote URL with credentials embedded, if any
        """

        return authenticated_url(self.remote, self.credentials)


    def secrets(self) -> Tuple[str, ...]:
        if self.credentials is None:
            return ()
        password = self.credentials.password.get_secret_value()
        return (quote(password, safe=''), password)


    async def git(self, *args: str) -> bytes:
        return await run('git', *args, cwd=str(self.path), secrets=self.secrets())


    def exists(self) -> bool:
        """
        Whether a repository already exists at our path, either a work
        tree with a .git entry or a bare repository. Parent directories
        are not searched.
        """

        if (self.path / '.git').exists():
            return True

        # the same test git applies when deciding a directory is a gitdir
        return ((self.path / 'HEAD').is_file()
                and (self.path / 'objects').is_dir()
                and (self.path / 'refs').is_dir())


    async def clone(self) -> None:
        """
        Clone the remote into our path. The stored origin URL never
        includes credentials; those are only supplied per operation.
        """

        logger.info(f'Cloning {self.remote} to {self.path}')

        args = ['git', 'clone', '--quiet']
        if self.branch:
            args.extend(('--branch', self.branch))
        args.extend(('--', self.url, str(self.path)))
        await run(*args, secrets=self.secrets())

        if self.credentials is not None:
            await self.git('remote', 'set-url', 'origin', self.remote)


    async def fetch(self) -> None:
        """
        Fetch the remote's latest state into FETCH_HEAD, leaving the
        working tree alone.
        """

        logger.info(f'Fetching {self.remote} into {self.path}')

        source = self.url if self.credentials is not None else 'origin'
        args = ['fetch', '--quiet', source]
        if self.branch:
            args.append(self.branch)
        await self.git(*args)


    async def diff_trees(self, old: str = 'HEAD', new: str = 'FETCH_HEAD') -> FileDiff:
        out = await self.git('diff-tree', '-r', '-z', '--no-renames', old, new)
        return parse_diff_tree(out)


    async def hard_reset(self, to: str = 'FETCH_HEAD') -> None:
        await self.git('reset', '--quiet', '--hard', to)


    async def list_tracked_files(self) -> List[str]:
        """
        Every path in the index, in index order
        """

        return _split_nul(await self.git('ls-files', '-z'))


    async def rev_parse(self, ref: str = 'HEAD') -> str:
        out = await self.git('rev-parse', '--verify', f'{ref}^{{commit}}')
        return out.decode('ascii').strip()


    async def commit_id(self, ref: str = 'HEAD') -> Optional[str]:
        """
        The commit ref points at, or None if it doesn't resolve. HEAD is
        unborn after cloning an empty repository, and fetching an empty
        remote leaves no FETCH_HEAD.
        """

        try:
            out = await self.git('rev-parse', '--verify', '--quiet', f'{ref}^{{commit}}')
        except VcsError as e:
            if e.returncode == 1:
                return None
            raise
        return out.decode('ascii').strip()


    async def empty_tree(self) -> str:
        """
        Object id of the empty tree, for diffing against an unborn HEAD
        """

        out = await self.git('hash-object', '-t', 'tree', os.devnull)
        return out.decode('ascii').strip()


# The end.

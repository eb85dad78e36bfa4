"""
FastAPI application hosting the gitmirror service. Its lifespan brings
up one mirror engine and webhook listener per configured repository, and
it exposes a small management API over them.

:author: Christopher O'Brien <obriencj@preoccupied.net>
:license: GNU General Public License v3
:ai-assistant: Auto via Cursor
"""

import logging
from contextlib import asynccontextmanager
from typing import Dict, List

from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Request

from .config import get_config
from .engine import MirrorEngine
from .git import git_version
from .models import MirrorStatus
from .observers import LogObserver


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def app_startup() -> Dict[str, MirrorEngine]:
    """
    Open and start listening on every configured repository. Any failure
    closes whatever was already opened and propagates.
    """

    try:
        config = get_config()
    except Exception as e:
        logger.error(f'Failed to load configuration: {e}', exc_info=True)
        raise

    logger.info(f'Using {await git_version()}')

    engines: Dict[str, MirrorEngine] = {}
    try:
        for repo_name, repo in config.repos.items():
            logger.info(f"Opening repository '{repo_name}'...")
            engine = engines[repo_name] = MirrorEngine(repo)
            await engine.open()
            await engine.add_observer(LogObserver(repo_name))
            await engine.listen()
            logger.info(f"Repository '{repo_name}' is ready")

    except Exception as e:
        logger.error(f'Failed to start repositories: {e}')
        await app_shutdown(engines)
        raise

    return engines


async def app_shutdown(engines: Dict[str, MirrorEngine]) -> None:
    for engine in engines.values():
        await engine.close()


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    """
    Lifespan event handler for the app
    """

    logger.info('Starting up...')

    app.state.engines = await app_startup()

    try:
        yield
    finally:

        logger.info('Shutting down...')
        await app_shutdown(app.state.engines)


app = FastAPI(lifespan=app_lifespan)


def get_engine(request: Request, name: str) -> MirrorEngine:
    engines = getattr(request.app.state, 'engines', {})
    if name not in engines:
        raise HTTPException(status_code=404, detail=f"Repository '{name}' not found")
    return engines[name]


@app.get('/repos')
async def list_repos(request: Request) -> List[MirrorStatus]:
    """
    Status of every repository
    """

    engines = getattr(request.app.state, 'engines', {})
    return [engine.status() for engine in engines.values()]


@app.get('/repos/{name}')
async def repo_status(request: Request, name: str) -> MirrorStatus:
    """
    Status of a specific repository by name
    """

    return get_engine(request, name).status()


@app.post('/sync/{name}', status_code=202)
async def sync(
        request: Request,
        name: str,
        background_tasks: BackgroundTasks,
        x_sync_token: str = Header(None)):
    """
    Trigger a sync of a specific repository by name. The token is checked
    the same way as a webhook payload, and the reply is the same whether
    or not it matched. Rejections and failures are only logged.
    """

    engine = get_engine(request, name)
    background_tasks.add_task(engine.on_trigger, x_sync_token or '')

    return {'status': 'accepted', 'repo': name}


# The end.

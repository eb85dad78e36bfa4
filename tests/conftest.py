"""
Shared pytest fixtures for gitmirror tests.

:author: Christopher O'Brien <obriencj@preoccupied.net>
:license: GNU General Public License v3
:ai-assistant: Auto via Cursor
"""

import os
import shutil
import subprocess
import tempfile

import pytest

import preoccupied.gitmirror.config as config_module
from preoccupied.gitmirror.config import RootConfig, RepoConfig, GlobalConfig


GIT_IDENTITY = (
    '-c', 'user.name=Test User',
    '-c', 'user.email=test@example.com',
    '-c', 'commit.gpgsign=false',
)


requires_git = pytest.mark.skipif(shutil.which('git') is None, reason='git is not installed')


@pytest.fixture
def temp_dir():
    """
    Create a temporary directory for tests.
    """

    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def repo_config(temp_dir):
    """
    Create a RepoConfig whose path is an existing, empty directory.
    """

    path = os.path.join(temp_dir, 'mirror')
    os.mkdir(path)

    return RepoConfig(
        name='test-repo',
        webhook_port=0,
        webhook_token='secret123',
        remote='https://example.com/test/repo.git',
        path=path,
    )


@pytest.fixture
def mock_config(repo_config):
    """
    Create a RootConfig holding repo_config.
    """

    return RootConfig(
        global_=GlobalConfig(),
        repos={'test-repo': repo_config}
    )


@pytest.fixture
def mock_env_vars(monkeypatch):
    """
    Clear environment variables and the cached configuration for testing.
    """

    env_vars_to_clear = [
        'CONFIG_PATH',
        'GITMIRROR_WEBHOOK_TOKEN',
        'GITMIRROR_USERNAME',
        'GITMIRROR_PASSWORD',
        'GITMIRROR_REPO_NAME',
        'GITMIRROR_REPO_PATH',
        'GITMIRROR_REPO_REMOTE',
        'GITMIRROR_REPO_BRANCH',
        'GITMIRROR_REPO_WEBHOOK_PORT',
    ]

    for var in env_vars_to_clear:
        monkeypatch.delenv(var, raising=False)

    config_module.reset_config()
    yield monkeypatch
    config_module.reset_config()


class Upstream:
    """
    A throwaway upstream repository to clone and fetch from.
    """

    def __init__(self, path):
        self.path = path
        os.makedirs(path)
        self.git('init', '--quiet')


    def git(self, *args):
        return subprocess.run(
            ('git', *GIT_IDENTITY, *args),
            cwd=self.path,
            check=True,
            capture_output=True,
        ).stdout.decode()


    def write(self, name, content='data\n'):
        filename = os.path.join(self.path, name)
        os.makedirs(os.path.dirname(filename), exist_ok=True)
        with open(filename, 'w') as f:
            f.write(content)
        self.git('add', name)


    def remove(self, name):
        self.git('rm', '--quiet', name)


    def commit(self, message='update'):
        self.git('commit', '--quiet', '--allow-empty', '-m', message)
        return self.head()


    def head(self):
        return self.git('rev-parse', 'HEAD').strip()


@pytest.fixture
def upstream(temp_dir):
    """
    An upstream repository at revision R1, tracking a.txt and b.txt.
    """

    repo = Upstream(os.path.join(temp_dir, 'upstream'))
    repo.write('a.txt', 'alpha\n')
    repo.write('b.txt', 'beta\n')
    repo.commit('R1')
    return repo


@pytest.fixture
def upstream_config(upstream, temp_dir):
    """
    A RepoConfig mirroring the upstream fixture into an empty directory.
    """

    path = os.path.join(temp_dir, 'local')
    os.mkdir(path)

    return RepoConfig(
        name='cards',
        webhook_port=0,
        webhook_token='secret123',
        remote=upstream.path,
        path=path,
    )


# The end.

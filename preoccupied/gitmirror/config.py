"""
Configuration models and loading for the gitmirror service.

:author: Christopher O'Brien <obriencj@preoccupied.net>
:license: GNU General Public License v3
:ai-assistant: Auto via Cursor
"""

import logging
import os
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, model_validator

from .git import GitMirror
from .models import Credentials


logger = logging.getLogger(__name__)


CONFIG_PATH = os.environ.get('CONFIG_PATH', '/config/config.yaml')


_config: Optional['RootConfig'] = None


class GlobalConfig(BaseModel):
    """
    Global configuration settings, used as defaults by every repository
    """

    webhook_token: Optional[str] = None
    credentials: Optional[Credentials] = None


class RepoConfig(BaseModel):
    """
    Repository configuration
    """

    name: str
    webhook_port: int = Field(alias='webhookPort', ge=0, le=65535)
    webhook_token: str = Field(alias='webhookToken', min_length=1)
    remote: str
    path: str
    branch: Optional[str] = None
    credentials: Optional[Credentials] = None

    model_config = {'frozen': True, 'populate_by_name': True}


    def mirror(self) -> GitMirror:
        """
        The local mirror described by this configuration
        """

        return GitMirror(
            path=self.path,
            remote=self.remote,
            credentials=self.credentials,
            branch=self.branch,
        )


class RootConfig(BaseModel):
    """
    Root configuration model
    """

    global_: GlobalConfig = Field(alias='global', default_factory=GlobalConfig)
    repos: Dict[str, RepoConfig] = Field(default_factory=dict)

    model_config = {'populate_by_name': True}


    @model_validator(mode='before')
    def apply_global_defaults(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply global config defaults to repos that don't have them set.
        """

        if not isinstance(v, dict):
            return v

        fixed = {}
        glbl = v.get('global', v.get('global_')) or {}
        if isinstance(glbl, dict):
            glbl = GlobalConfig.model_validate(glbl)
        fixed['global'] = glbl

        repos = fixed['repos'] = dict(v.get('repos') or {})
        for repo_name, repo in repos.items():
            if not isinstance(repo, dict):
                continue

            repo = repos[repo_name] = repo.copy()
            repo.setdefault('name', repo_name)

            if 'webhookToken' not in repo and glbl.webhook_token is not None:
                repo.setdefault('webhook_token', glbl.webhook_token)
            if glbl.credentials is not None:
                repo.setdefault('credentials', glbl.credentials)

        return fixed


    @model_validator(mode='after')
    def check_unique_mirrors(self) -> 'RootConfig':
        """
        Two mirrors may not share a webhook port or a local path
        """

        ports = {}
        paths = {}
        for repo in self.repos.values():
            other = ports.setdefault(repo.webhook_port, repo.name)
            if repo.webhook_port and other != repo.name:
                raise ValueError(f"Repositories '{other}' and '{repo.name}'"
                                 f" share webhook port {repo.webhook_port}")

            key = os.path.normpath(repo.path)
            other = paths.setdefault(key, repo.name)
            if other != repo.name:
                raise ValueError(f"Repositories '{other}' and '{repo.name}'"
                                 f" share path {repo.path}")

        return self


def _config_from_env() -> Dict[str, Any]:
    """
    Build configuration dictionary from GITMIRROR_* environment variables.
    """

    # the token and credentials are global settings. They apply to the ENV
    # repository if one is configured, and are the baseline for any repo
    # loaded from the config file
    global_config = {}

    value = os.environ.get('GITMIRROR_WEBHOOK_TOKEN')
    if value is not None:
        global_config['webhook_token'] = value

    username = os.environ.get('GITMIRROR_USERNAME')
    password = os.environ.get('GITMIRROR_PASSWORD')
    if username is not None and password is not None:
        global_config['credentials'] = {'username': username, 'password': password}

    repo_config = {}
    pairs = (
        ('GITMIRROR_REPO_NAME', 'name'),
        ('GITMIRROR_REPO_PATH', 'path'),
        ('GITMIRROR_REPO_REMOTE', 'remote'),
        ('GITMIRROR_REPO_BRANCH', 'branch'),
        ('GITMIRROR_REPO_WEBHOOK_PORT', 'webhook_port'))

    for env_var, config_key in pairs:
        value = os.environ.get(env_var)
        if value is not None:
            repo_config[config_key] = value

    if repo_config:
        repo_config.setdefault('name', 'default')

    result = {'global': global_config}
    if repo_config:
        result['repos'] = {repo_config['name']: repo_config}
    return result


def get_config() -> 'RootConfig':
    """
    Get the global config object. It is loaded once, on first use.
    """

    global _config

    if _config is None:
        env_config = _config_from_env()

        if os.path.exists(CONFIG_PATH):
            with open(CONFIG_PATH, 'r') as f:
                config_data = yaml.safe_load(f) or {}
            config_data['global'] = dict(config_data.get('global') or {}, **env_config['global'])
            config_data['repos'] = dict(config_data.get('repos') or {}, **env_config.get('repos', {}))
        else:
            config_data = env_config

        _config = RootConfig.model_validate(config_data)
        logger.info(f'Loaded configuration with {len(_config.repos)} repositories')

    return _config


def get_repo_config(repo_name: str) -> Optional[RepoConfig]:
    """
    Get the repository configuration for the given repository name.
    """

    return get_config().repos.get(repo_name)


def reset_config() -> None:
    """
    Forget the loaded configuration, so the next get_config() reloads it
    """

    global _config
    _config = None


# The end.

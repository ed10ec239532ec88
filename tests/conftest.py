"""Pytest configuration and fixtures.

Sets deployment environment variables before any module reads Settings,
so local .env files or shell variables do not leak into the tests.
"""

import os

os.environ.setdefault("PROJECT_NAME", "rps")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("HANDLERS_ROOT", "handlers")

import pytest

from common.config import Settings
from topology.graph import Topology
from topology.policies import Permission


@pytest.fixture
def settings():
    """Settings isolated from the process environment and .env file."""
    return Settings(_env_file=None, project_name="rps", environment="test")


@pytest.fixture
def topology():
    """An empty topology."""
    return Topology("test")


@pytest.fixture
def game_tables(topology):
    """Users and games tables declared on the ``topology`` fixture."""
    users = topology.declare_table("users", partition_key="userId")
    games = topology.declare_table("games", partition_key="gameId", sort_key="timestamp")
    return users, games


@pytest.fixture
def game_function(topology, game_tables):
    """A function bound to both game tables with read-write grants."""
    users, games = game_tables
    return topology.declare_function(
        "game",
        code="handlers/game",
        environment={
            "USERS_TABLE": users.ref("name"),
            "GAMES_TABLE": games.ref("name"),
        },
        grants=[(users, Permission.READ_WRITE), (games, Permission.READ_WRITE)],
    )

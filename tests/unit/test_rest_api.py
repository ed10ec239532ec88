"""Unit tests for the REST API surface and its routing tree."""

import pytest

from topology.errors import DanglingReference, PolicyViolation, RouteConflict
from topology.graph import Topology
from topology.policies import CorsPolicy


@pytest.fixture
def auth_function(topology, game_tables):
    users, _ = game_tables
    return topology.declare_function(
        "auth", code="handlers/auth", environment={"USERS_TABLE": users.ref("name")}
    )


@pytest.fixture
def api(topology):
    return topology.declare_rest_api("arena-api", description="REST API for RPS Battle Arena")


class TestGameRoutes:
    """The three routes of the game service."""

    def test_three_distinct_routes_resolve(self, topology, api, auth_function, game_function):
        """Test POST /auth, GET /stats/{userId} and GET /leaderboard."""
        topology.add_rest_route(api, "/auth", "POST", auth_function)
        topology.add_rest_route(api, "/stats/{userId}", "GET", game_function)
        topology.add_rest_route(api, "/leaderboard", "GET", game_function)

        routes = {(r.path, r.method): r.target for r in api.routes}
        assert routes == {
            ("/auth", "POST"): auth_function,
            ("/stats/{userId}", "GET"): game_function,
            ("/leaderboard", "GET"): game_function,
        }
        assert set(api.root.children) == {"auth", "stats", "leaderboard"}
        assert list(api.root.children["stats"].children) == ["{userId}"]
        assert api.targets == [auth_function, game_function]
        assert len(game_function.environment) == 2


class TestRoutingTree:
    """Tests for path segment deduplication."""

    def test_shared_segment_is_one_node(self, topology, api, game_function):
        """Test that /stats is reused by deeper routes and other methods."""
        topology.add_rest_route(api, "/stats", "GET", game_function)
        topology.add_rest_route(api, "/stats/{userId}", "GET", game_function)
        topology.add_rest_route(api, "/stats", "POST", game_function)

        stats = api.root.children["stats"]
        assert list(api.root.children) == ["stats"]
        assert set(stats.methods) == {"GET", "POST"}
        assert stats.children["{userId}"].path == "/stats/{userId}"
        assert len(api.routes) == 3

    def test_paths_are_normalized(self, topology, api, game_function):
        """Test that leading and trailing slashes do not create new nodes."""
        route = topology.add_rest_route(api, "stats/{userId}/", "get", game_function)

        assert route.path == "/stats/{userId}"
        assert route.method == "GET"
        assert api.root.find(["stats", "{userId}"]).methods["GET"] is route

    def test_root_path(self, api):
        """Test the root node's path."""
        assert api.root.path == "/"
        assert api.root.parent is None


class TestRouteConflicts:
    """Tests for conflicting route declarations."""

    def test_same_path_and_method_conflicts(self, topology, api, auth_function, game_function):
        """Test that a (path, method) pair binds one target only."""
        topology.add_rest_route(api, "/leaderboard", "GET", game_function)

        with pytest.raises(RouteConflict, match="GET /leaderboard"):
            topology.add_rest_route(api, "/leaderboard/", "GET", auth_function)

        assert len(api.routes) == 1
        assert api.routes[0].target is game_function

    def test_different_placeholder_names_conflict(self, topology, api, game_function):
        """Test that one level cannot carry two differently named placeholders."""
        topology.add_rest_route(api, "/stats/{userId}", "GET", game_function)

        with pytest.raises(RouteConflict, match=r"\{id\}"):
            topology.add_rest_route(api, "/stats/{id}", "DELETE", game_function)
        assert list(api.root.children["stats"].children) == ["{userId}"]

    def test_unsupported_method_is_rejected(self, topology, api, game_function):
        """Test that OPTIONS is reserved for the CORS preflight."""
        with pytest.raises(PolicyViolation, match="OPTIONS"):
            topology.add_rest_route(api, "/leaderboard", "OPTIONS", game_function)
        with pytest.raises(PolicyViolation, match="CONNECT"):
            topology.add_rest_route(api, "/leaderboard", "CONNECT", game_function)

    @pytest.mark.parametrize("path", ["/", "", "/stats/{user id}", "/files/{proxy+}/meta"])
    def test_malformed_paths_are_rejected(self, topology, api, game_function, path):
        """Test that paths need valid literal or placeholder segments."""
        with pytest.raises(PolicyViolation):
            topology.add_rest_route(api, path, "GET", game_function)
        assert api.root.children == {}

    def test_greedy_placeholder_as_last_segment(self, topology, api, game_function):
        """Test that a greedy placeholder is accepted at the end of a path."""
        route = topology.add_rest_route(api, "/files/{proxy+}", "ANY", game_function)
        assert route.path == "/files/{proxy+}"

    def test_undeclared_target_is_dangling(self, topology, api):
        """Test that a route target must be a declared function."""
        foreign = Topology("other").declare_function("game", code="handlers/game")
        with pytest.raises(DanglingReference, match="function 'game'"):
            topology.add_rest_route(api, "/leaderboard", "GET", foreign)

    def test_undeclared_api_is_dangling(self, topology, game_function):
        """Test that the API must be declared in this topology."""
        foreign_api = Topology("other").declare_rest_api("arena-api")
        with pytest.raises(DanglingReference):
            topology.add_rest_route(foreign_api, "/leaderboard", "GET", game_function)


class TestCorsPolicy:
    """Tests for the per-API CORS policy."""

    def test_default_policy(self, api):
        """Test that the default policy allows any origin."""
        assert api.cors == CorsPolicy()
        assert api.cors.allow_origins == ("*",)
        assert "Authorization" in api.cors.allow_headers

    def test_policy_from_mapping(self, topology):
        """Test that list values are accepted for tuple fields."""
        api = topology.declare_rest_api(
            "arena-api", cors={"allow_origins": ["https://arena.example.com"], "max_age": 600}
        )
        assert api.cors.allow_origins == ("https://arena.example.com",)
        assert api.cors.max_age == 600

    def test_empty_origins_are_rejected(self, topology):
        """Test that a CORS policy needs at least one origin."""
        with pytest.raises(PolicyViolation, match="allow_origins"):
            topology.declare_rest_api("arena-api", cors={"allow_origins": []})

    def test_negative_max_age_is_rejected(self, topology):
        """Test that preflight caching must be non-negative."""
        with pytest.raises(PolicyViolation, match="max_age"):
            topology.declare_rest_api("arena-api", cors={"max_age": -1})

    def test_invalid_stage_name_is_rejected(self, topology):
        """Test that stage names are validated."""
        with pytest.raises(PolicyViolation, match="stage name"):
            topology.declare_rest_api("arena-api", stage_name="prod stage")

    @pytest.mark.parametrize("stage_name", ["v1", "prod_2", "blue-green"])
    def test_valid_stage_names(self, topology, stage_name):
        """Test that REST stage names allow letters, digits, hyphens and underscores."""
        api = topology.declare_rest_api("arena-api", stage_name=stage_name)
        assert api.stage_name == stage_name

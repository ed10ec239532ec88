"""Unit tests for user pool, client and identity pool declarations."""

import pytest

from topology.errors import DanglingReference, DuplicateName, PolicyViolation
from topology.graph import Topology
from topology.policies import PasswordPolicy


class TestDeclareUserPool:
    """Tests for Topology.declare_user_pool."""

    def test_defaults(self, topology):
        """Test the default aliases, verification and password policy."""
        pool = topology.declare_user_pool("players")

        assert pool.sign_in_aliases == ("email", "username")
        assert pool.auto_verified_attributes == ("email",)
        assert pool.self_sign_up is True
        assert pool.password_policy.min_length == 8
        assert pool.password_policy.require_uppercase is True
        assert pool.password_policy.require_digits is True

    def test_password_policy_from_mapping(self, topology):
        """Test that a password policy can be given as a mapping."""
        pool = topology.declare_user_pool(
            "players", password_policy={"min_length": 12, "require_symbols": True}
        )
        assert pool.password_policy.min_length == 12
        assert pool.password_policy.require_symbols is True

    def test_password_shorter_than_platform_floor_is_rejected(self, topology):
        """Test that a minimum length below 6 is rejected at declaration."""
        with pytest.raises(PolicyViolation, match="min_length"):
            topology.declare_user_pool("players", password_policy={"min_length": 4})
        assert topology.get("user_pool", "players") is None

    def test_password_longer_than_platform_ceiling_is_rejected(self, topology):
        """Test that a minimum length above 99 is rejected."""
        with pytest.raises(PolicyViolation, match="min_length"):
            topology.declare_user_pool("players", password_policy={"min_length": 100})

    def test_unvalidated_policy_instance_is_rechecked(self, topology):
        """Test that a policy built without validation is still bounds-checked."""
        policy = PasswordPolicy.model_construct(min_length=3)
        with pytest.raises(PolicyViolation, match="min_length"):
            topology.declare_user_pool("players", password_policy=policy)

    def test_unsupported_sign_in_alias_is_rejected(self, topology):
        """Test that only email, username and phone aliases are allowed."""
        with pytest.raises(PolicyViolation, match="sign-in aliases"):
            topology.declare_user_pool("players", sign_in_aliases=("email", "nickname"))

    def test_sign_in_aliases_required(self, topology):
        """Test that at least one alias is required."""
        with pytest.raises(PolicyViolation, match="at least one"):
            topology.declare_user_pool("players", sign_in_aliases=())

    def test_duplicate_pool_is_rejected(self, topology):
        """Test that pool names are unique."""
        topology.declare_user_pool("players")
        with pytest.raises(DuplicateName):
            topology.declare_user_pool("players")


class TestDeclareUserPoolClient:
    """Tests for Topology.declare_user_pool_client."""

    def test_client_references_its_pool(self, topology):
        """Test that a client is bound to exactly one declared pool."""
        pool = topology.declare_user_pool("players")
        client = topology.declare_user_pool_client("web", user_pool=pool)

        assert client.user_pool is pool
        assert client.auth_flows == ("user_password", "user_srp")
        assert client.generate_secret is False
        assert client.dependencies() == (pool,)

    def test_client_for_foreign_pool_is_dangling(self, topology):
        """Test that a pool declared in another topology does not resolve."""
        foreign_pool = Topology("other").declare_user_pool("players")
        with pytest.raises(DanglingReference, match="not declared in topology 'test'"):
            topology.declare_user_pool_client("web", user_pool=foreign_pool)

    def test_client_without_pool_is_dangling(self, topology):
        """Test that a missing pool handle is a dangling reference."""
        with pytest.raises(DanglingReference, match="expected a user_pool handle"):
            topology.declare_user_pool_client("web", user_pool=None)

    def test_unknown_auth_flow_is_rejected(self, topology):
        """Test that auth flows are validated."""
        pool = topology.declare_user_pool("players")
        with pytest.raises(PolicyViolation, match="auth flows"):
            topology.declare_user_pool_client("web", user_pool=pool, auth_flows=("magic_link",))


class TestDeclareIdentityPool:
    """Tests for Topology.declare_identity_pool."""

    def test_bridges_each_client_to_its_pool(self, topology):
        """Test that providers pair every client with its own pool."""
        pool = topology.declare_user_pool("players")
        client = topology.declare_user_pool_client("web", user_pool=pool)

        bridge = topology.declare_identity_pool("identities", clients=[client])

        assert bridge.clients == (client,)
        assert bridge.providers == [(client, pool)]
        assert bridge.allow_unauthenticated is False

    def test_requires_at_least_one_client(self, topology):
        """Test that a bridge cannot precede every client."""
        topology.declare_user_pool("players")
        with pytest.raises(DanglingReference, match="at least one"):
            topology.declare_identity_pool("identities", clients=[])

    def test_foreign_client_is_dangling(self, topology):
        """Test that clients must belong to this topology."""
        other = Topology("other")
        foreign_client = other.declare_user_pool_client(
            "web", user_pool=other.declare_user_pool("players")
        )
        with pytest.raises(DanglingReference):
            topology.declare_identity_pool("identities", clients=[foreign_client])
        assert topology.get("identity_pool", "identities") is None

    @pytest.mark.parametrize("name", ["rps+identities", "rps.identities", "rps@identities", "rps,ids"])
    def test_name_allows_only_word_characters(self, topology, name):
        """Test that identity pool names are limited to word characters, spaces and hyphens."""
        pool = topology.declare_user_pool("players")
        client = topology.declare_user_pool_client("web", user_pool=pool)

        with pytest.raises(PolicyViolation, match="identity_pool name"):
            topology.declare_identity_pool(name, clients=[client])

    def test_hyphenated_name_is_accepted(self, topology):
        """Test that hyphens are accepted since they are rewritten on creation."""
        pool = topology.declare_user_pool("players")
        client = topology.declare_user_pool_client("web", user_pool=pool)

        bridge = topology.declare_identity_pool("rps-test identities", clients=[client])
        assert bridge.name == "rps-test identities"

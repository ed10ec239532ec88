"""Unit tests for the Pulumi components, run against mocked resource providers."""

import json

import pulumi
import pytest


class GameStackMocks(pulumi.runtime.Mocks):
    """Echo inputs back and synthesize the computed attributes the components read."""

    def new_resource(self, args: pulumi.runtime.MockResourceArgs):
        outputs = dict(args.inputs)
        outputs.setdefault("name", args.name)
        outputs.setdefault("arn", f"arn:aws:mock:us-east-1:123456789012:{args.name}")
        outputs["invokeArn"] = f"arn:aws:apigateway:mock:lambda:path/{args.name}/invocations"
        outputs["executionArn"] = f"arn:aws:execute-api:us-east-1:123456789012:{args.name}"
        outputs["rootResourceId"] = f"{args.name}-root"
        outputs["endpoint"] = f"cognito-idp.us-east-1.amazonaws.com/{args.name}"
        outputs["domainName"] = f"{args.name}.cloudfront.net"
        outputs["websiteEndpoint"] = f"{args.name}.s3-website-us-east-1.amazonaws.com"
        outputs["bucketRegionalDomainName"] = f"{args.name}.s3.us-east-1.amazonaws.com"
        if args.typ.startswith("aws:apigatewayv2"):
            outputs["invokeUrl"] = f"wss://{args.name}.execute-api.us-east-1.amazonaws.com/prod"
        else:
            outputs["invokeUrl"] = f"https://{args.name}.execute-api.us-east-1.amazonaws.com/prod"
        return [f"{args.name}-id", outputs]

    def call(self, args: pulumi.runtime.MockCallArgs):
        return {}


pulumi.runtime.set_mocks(GameStackMocks(), preview=False)

from common.config import Settings  # noqa: E402
from components.function import FunctionComponent  # noqa: E402
from components.rest_api import RestApiComponent, cors_origin_template, resource_slug  # noqa: E402
from components.stack import StackProvisioner, provision  # noqa: E402
from components.storage import TableComponent  # noqa: E402
from components.websocket import WebSocketComponent, route_slug  # noqa: E402
from topology.game_stack import declare_game_stack  # noqa: E402
from topology.graph import MANAGE_CONNECTIONS_ACTION, Topology  # noqa: E402
from topology.handles import WebSocketApiHandle  # noqa: E402
from topology.policies import CorsPolicy  # noqa: E402


class TestTableComponent:
    """Tests for the DynamoDB table component."""

    @pulumi.runtime.test
    def test_table_attributes(self):
        """Test that the table exposes its physical name."""
        topology = Topology("components")
        table = topology.declare_table("rps-test-users", partition_key="userId")
        component = TableComponent("users", table=table)

        def check(name):
            assert name == "rps-test-users"

        return component.attributes["name"].apply(check)

    @pulumi.runtime.test
    def test_table_billing_mode(self):
        """Test that the table is created on demand."""
        topology = Topology("components")
        table = topology.declare_table("rps-test-games", partition_key="gameId", sort_key="timestamp")
        component = TableComponent("games", table=table)

        def check(args):
            billing_mode, range_key = args
            assert billing_mode == "PAY_PER_REQUEST"
            assert range_key == "timestamp"

        return pulumi.Output.all(component.table.billing_mode, component.table.range_key).apply(check)


class TestFunctionComponent:
    """Tests for the Lambda function component."""

    @pulumi.runtime.test
    def test_function_name_and_runtime(self):
        """Test that the function keeps its declared name and runtime."""
        topology = Topology("components")
        function = topology.declare_function("rps-test-game", code="handlers/game")
        component = FunctionComponent("game", function=function, environment={"STAGE": "test"})

        def check(args):
            name, runtime = args
            assert name == "rps-test-game"
            assert runtime == "nodejs22.x"

        return pulumi.Output.all(component.attributes["name"], component.function.runtime).apply(
            check
        )

    @pulumi.runtime.test
    def test_add_statement_numbers_policies(self):
        """Test that appended statements become separate role policies."""
        topology = Topology("components")
        function = topology.declare_function("rps-test-ws", code="handlers/websocket")
        component = FunctionComponent("ws", function=function)
        first = component.add_statement(["execute-api:ManageConnections"], ["arn:stage/*"])
        second = component.add_statement(["dynamodb:GetItem"], ["arn:table"])

        def check(names):
            assert names == ["ws-statement-0", "ws-statement-1"]

        return pulumi.Output.all(first.name, second.name).apply(check)


class TestRestApiComponent:
    """Tests for the REST API component."""

    @pulumi.runtime.test
    def test_url_is_stage_invoke_url(self):
        """Test that the url attribute is the deployed stage URL."""
        topology = Topology("components")
        function = topology.declare_function("rps-test-game", code="handlers/game")
        api = topology.declare_rest_api("rps-test-api")
        topology.add_rest_route(api, "/stats/{userId}", "GET", function)
        target = FunctionComponent("rest-game", function=function)
        component = RestApiComponent("rest", api=api, targets={function.name: target})

        def check(url):
            assert url.startswith("https://")
            assert url.endswith("/prod")

        return component.attributes["url"].apply(check)

    def test_resource_names_are_unique_per_path(self):
        """Test that an underscore segment and nested segments get different names."""
        topology = Topology("components")
        function = topology.declare_function("rps-test-paths", code="handlers/game")
        api = topology.declare_rest_api("rps-test-paths-api")
        topology.add_rest_route(api, "/a_b", "GET", function)
        topology.add_rest_route(api, "/a/b", "GET", function)
        topology.add_rest_route(api, "/a/{b}", "POST", function)

        slugs = [resource_slug(node) for node in api.root.walk()]
        assert len(slugs) == 5
        assert len(set(slugs)) == len(slugs)
        assert slugs[0] == "root"

    def test_single_origin_needs_no_template(self):
        """Test that one allowed origin is returned as a static header."""
        assert cors_origin_template(CorsPolicy()) == ""

    def test_multiple_origins_are_echoed(self):
        """Test that several origins select the request Origin."""
        cors = CorsPolicy(allow_origins=("https://a.example.com", "https://b.example.com"))
        template = cors_origin_template(cors)

        assert '$origin == "https://a.example.com"' in template
        assert "Access-Control-Allow-Origin = $origin" in template


class TestWebSocketComponent:
    """Tests for the WebSocket API component."""

    @pulumi.runtime.test
    def test_stage_callback_url(self):
        """Test that the callback URL is the https form of the stage URL."""
        topology = Topology("components")
        function = topology.declare_function("rps-test-ws", code="handlers/websocket")
        api = topology.declare_websocket_api("rps-test-websocket-api")
        for route_key in ("$connect", "$disconnect"):
            topology.add_websocket_route(api, route_key, function)
        topology.declare_websocket_stage("prod", api)
        target = FunctionComponent("socket-fn", function=function)
        component = WebSocketComponent("socket", api=api, targets={function.name: target})

        def check(args):
            url, callback_url = args
            assert url.startswith("wss://")
            assert callback_url == url.replace("wss://", "https://", 1)

        return pulumi.Output.all(
            component.stage_attributes["url"], component.stage_attributes["callback_url"]
        ).apply(check)

    @pulumi.runtime.test
    def test_routes_are_created_per_key(self):
        """Test that every route key gets its own route resource."""
        topology = Topology("components")
        function = topology.declare_function("rps-test-ws2", code="handlers/websocket")
        api = topology.declare_websocket_api("rps-test-websocket-api-2")
        for route_key in ("$connect", "$disconnect", "make_move"):
            topology.add_websocket_route(api, route_key, function)
        target = FunctionComponent("socket2-fn", function=function)
        component = WebSocketComponent("socket2", api=api, targets={function.name: target})

        assert set(component.routes) == {"$connect", "$disconnect", "make_move"}
        assert component.stage is None
        assert component.stage_attributes == {}

    def test_route_slugs_keep_reserved_keys_apart(self):
        """Test that reserved keys and same-named actions do not share a name."""
        assert route_slug("$connect") == "lifecycle-connect"
        assert route_slug("connect") == "action-connect"
        assert route_slug("$default") != route_slug("default")

    @pulumi.runtime.test
    def test_reserved_and_action_routes_have_distinct_urns(self):
        """Test that $connect and connect become two separate route resources."""
        topology = Topology("components")
        function = topology.declare_function("rps-test-ws3", code="handlers/websocket")
        api = topology.declare_websocket_api("rps-test-websocket-api-3")
        for route_key in ("$connect", "$disconnect", "connect"):
            topology.add_websocket_route(api, route_key, function)
        target = FunctionComponent("socket3-fn", function=function)
        component = WebSocketComponent("socket3", api=api, targets={function.name: target})

        def check(urns):
            assert len(set(urns)) == 3

        return pulumi.Output.all(*[route.urn for route in component.routes.values()]).apply(check)


class TestProvision:
    """Tests for materializing the complete game deployment."""

    def test_unsealed_topology_is_rejected(self):
        """Test that the provisioner only accepts sealed topologies."""
        with pytest.raises(ValueError, match="must be sealed"):
            StackProvisioner(Topology("open"), environment="test")

    @pulumi.runtime.test
    def test_game_stack_outputs(self):
        """Test that every recorded output is exported with a resolved value."""
        settings = Settings(_env_file=None, project_name="rps", environment="test")
        outputs = provision(declare_game_stack(settings), environment="test", tags={"Project": "rps"})

        assert set(outputs) == {
            "rest_api_url",
            "websocket_api_url",
            "website_url",
            "user_pool_id",
            "user_pool_client_id",
        }

        def check(args):
            rest_url, websocket_url, website_url = args
            assert rest_url.startswith("https://")
            assert websocket_url.startswith("wss://")
            assert website_url == "https://rps-test-cdn-distribution.cloudfront.net"

        return pulumi.Output.all(
            outputs["rest_api_url"], outputs["websocket_api_url"], outputs["website_url"]
        ).apply(check)

    @pulumi.runtime.test
    def test_connection_management_reaches_role_policy(self):
        """Test that the websocket function's role may manage connections on its stage only."""
        settings = Settings(_env_file=None, project_name="rps", environment="conn")
        topology = declare_game_stack(settings.model_copy(update={"include_frontend": False}))
        provisioner = StackProvisioner(topology, environment="conn")
        provisioner.run()

        websocket = topology.get("function", "rps-conn-websocket")
        (api,) = topology.of_kind(WebSocketApiHandle)
        (policy,) = provisioner.components[websocket.key].statement_policies
        stage_arn = provisioner.attributes[api.stage.key]["arn"]

        def check(args):
            document, arn = args
            (statement,) = json.loads(document)["Statement"]
            assert statement["Effect"] == "Allow"
            assert statement["Action"] == [MANAGE_CONNECTIONS_ACTION]
            assert statement["Resource"] == [f"{arn}/*"]

        return pulumi.Output.all(policy.policy, stage_arn).apply(check)

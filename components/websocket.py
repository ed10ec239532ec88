"""WebSocket API Gateway Component for real-time matchmaking and moves."""

import pulumi
import pulumi_aws as aws

from components.function import FunctionComponent
from topology.handles import WebSocketApiHandle


class WebSocketComponent(pulumi.ComponentResource):
    """WebSocket API Gateway routing lifecycle and action keys to Lambda.

    The route key of an inbound message is selected from its body
    (``$request.body.action`` by default). Each routed function gets one
    proxy integration and an invoke permission. The stage, when declared,
    is created here too; its ARN scopes the connection-management grant.
    """

    def __init__(
        self,
        name: str,
        api: WebSocketApiHandle,
        targets: dict[str, FunctionComponent],
        tags: dict | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("rpsarena:websocket:API", name, None, opts)

        self.tags = tags or {}
        child_opts = pulumi.ResourceOptions(parent=self)

        # WebSocket API
        self.api = aws.apigatewayv2.Api(
            f"{name}-ws-api",
            name=api.name,
            description=api.description or None,
            protocol_type="WEBSOCKET",
            route_selection_expression=api.route_selection_expression,
            tags=self.tags,
            opts=child_opts,
        )

        # Integration per routed function
        self.integrations: dict[str, aws.apigatewayv2.Integration] = {}
        for function in api.targets:
            self.integrations[function.name] = aws.apigatewayv2.Integration(
                f"{name}-ws-integration-{function.name}",
                api_id=self.api.id,
                integration_type="AWS_PROXY",
                integration_uri=targets[function.name].function.invoke_arn,
                opts=child_opts,
            )

            # Permission for API Gateway to invoke Lambda
            aws.lambda_.Permission(
                f"{name}-ws-permission-{function.name}",
                action="lambda:InvokeFunction",
                function=targets[function.name].function.name,
                principal="apigateway.amazonaws.com",
                source_arn=pulumi.Output.concat(self.api.execution_arn, "/*/*"),
                opts=child_opts,
            )

        # Routes
        self.routes: dict[str, aws.apigatewayv2.Route] = {}
        for route_key, route in api.routes.items():
            self.routes[route_key] = aws.apigatewayv2.Route(
                f"{name}-ws-route-{route_slug(route_key)}",
                api_id=self.api.id,
                route_key=route_key,
                target=pulumi.Output.concat(
                    "integrations/", self.integrations[route.target.name].id
                ),
                opts=child_opts,
            )

        self.attributes = {
            "id": self.api.id,
            "execution_arn": self.api.execution_arn,
        }

        self.stage = None
        self.stage_attributes: dict[str, pulumi.Output] = {}
        if api.stage is not None:
            self._create_stage(name, api)

        self.register_outputs({**self.attributes, **self.stage_attributes})

    def _create_stage(self, name: str, api: WebSocketApiHandle) -> None:
        deployment_id = None
        if not api.stage.auto_deploy:
            deployment_id = aws.apigatewayv2.Deployment(
                f"{name}-ws-deployment",
                api_id=self.api.id,
                triggers={"routes": ",".join(sorted(api.routes))},
                opts=pulumi.ResourceOptions(
                    parent=self, depends_on=list(self.routes.values())
                ),
            ).id

        self.stage = aws.apigatewayv2.Stage(
            f"{name}-ws-stage",
            api_id=self.api.id,
            name=api.stage.name,
            auto_deploy=api.stage.auto_deploy,
            deployment_id=deployment_id,
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

        # Management API endpoint (for posting to connections)
        callback_url = self.stage.invoke_url.apply(
            lambda url: url.replace("wss://", "https://", 1) if url else url
        )

        self.stage_attributes = {
            "url": self.stage.invoke_url,
            "arn": self.stage.execution_arn,
            "callback_url": callback_url,
        }


def route_slug(route_key: str) -> str:
    """Resource name part for a route key.

    Reserved and application keys get separate prefixes, so ``$connect``
    and ``connect`` do not collide.
    """
    if route_key.startswith("$"):
        return f"lifecycle-{route_key[1:]}"
    return f"action-{route_key}"

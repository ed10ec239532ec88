"""REST API Component using API Gateway (REST API v1) and Lambda proxy integrations."""

import hashlib
import json

import pulumi
import pulumi_aws as aws

from components.function import FunctionComponent
from topology.handles import RestApiHandle
from topology.policies import CorsPolicy
from topology.routes import RestResource, is_placeholder


class RestApiComponent(pulumi.ComponentResource):
    """API Gateway REST API built from a declared path tree.

    Every path node becomes an API Gateway resource, every bound method a
    Lambda proxy integration, and every node with methods gets the API's
    CORS preflight (a MOCK OPTIONS method).
    """

    def __init__(
        self,
        name: str,
        api: RestApiHandle,
        targets: dict[str, FunctionComponent],
        tags: dict | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        """
        Create the REST API, its deployment and stage.

        Args:
            name: Resource name prefix
            api: Declared REST API with its routing tree
            targets: Function components keyed by declared function name
            tags: Common tags to apply
            opts: Pulumi resource options
        """
        super().__init__("rpsarena:api:RestApi", name, None, opts)

        self.tags = tags or {}
        self.cors = api.cors
        child_opts = pulumi.ResourceOptions(parent=self)

        self.api = aws.apigateway.RestApi(
            f"{name}-api",
            name=api.name,
            description=api.description or None,
            tags=self.tags,
            opts=child_opts,
        )

        # =====================================================================
        # Resource tree, methods and integrations
        # =====================================================================
        resource_ids: dict[int, pulumi.Output[str]] = {}
        integrations: list[pulumi.Resource] = []
        for node in api.root.walk():
            slug = resource_slug(node)
            if node.parent is None:
                resource_id = self.api.root_resource_id
            else:
                resource_id = aws.apigateway.Resource(
                    f"{name}-resource-{slug}",
                    rest_api=self.api.id,
                    parent_id=resource_ids[id(node.parent)],
                    path_part=node.path_part,
                    opts=child_opts,
                ).id
            resource_ids[id(node)] = resource_id

            for method, route in node.methods.items():
                target = targets[route.target.name]
                api_method = aws.apigateway.Method(
                    f"{name}-{method.lower()}-{slug}",
                    rest_api=self.api.id,
                    resource_id=resource_id,
                    http_method=method,
                    authorization="NONE",
                    opts=child_opts,
                )
                integrations.append(
                    aws.apigateway.Integration(
                        f"{name}-{method.lower()}-{slug}-integration",
                        rest_api=self.api.id,
                        resource_id=resource_id,
                        http_method=api_method.http_method,
                        integration_http_method="POST",
                        type="AWS_PROXY",
                        uri=target.function.invoke_arn,
                        opts=child_opts,
                    )
                )

            if node.methods:
                integrations.extend(self._cors_preflight(name, slug, resource_id))

        # =====================================================================
        # Deployment and stage
        # =====================================================================
        route_table = sorted(f"{r.method} {r.path} {r.target.name}" for r in api.routes)
        self.deployment = aws.apigateway.Deployment(
            f"{name}-deployment",
            rest_api=self.api.id,
            # Redeploy whenever the routing table or CORS policy changes
            triggers={
                "redeployment": hashlib.sha1(
                    json.dumps([route_table, self.cors.model_dump(mode="json")]).encode()
                ).hexdigest()
            },
            opts=pulumi.ResourceOptions(parent=self, depends_on=integrations),
        )

        self.stage = aws.apigateway.Stage(
            f"{name}-stage",
            rest_api=self.api.id,
            deployment=self.deployment.id,
            stage_name=api.stage_name,
            tags=self.tags,
            opts=child_opts,
        )

        # Permission for API Gateway to invoke each target
        for function_name in dict.fromkeys(route.target.name for route in api.routes):
            aws.lambda_.Permission(
                f"{name}-invoke-{function_name}",
                action="lambda:InvokeFunction",
                function=targets[function_name].function.name,
                principal="apigateway.amazonaws.com",
                source_arn=pulumi.Output.concat(self.api.execution_arn, "/*/*"),
                opts=child_opts,
            )

        self.url = self.stage.invoke_url

        self.attributes = {
            "id": self.api.id,
            "url": self.url,
            "execution_arn": self.api.execution_arn,
        }
        self.register_outputs(self.attributes)

    def _cors_preflight(
        self, name: str, slug: str, resource_id: pulumi.Input[str]
    ) -> list[pulumi.Resource]:
        """OPTIONS method answering the preflight with the API's CORS policy."""
        child_opts = pulumi.ResourceOptions(parent=self)
        headers = cors_response_headers(self.cors)

        options = aws.apigateway.Method(
            f"{name}-options-{slug}",
            rest_api=self.api.id,
            resource_id=resource_id,
            http_method="OPTIONS",
            authorization="NONE",
            opts=child_opts,
        )
        integration = aws.apigateway.Integration(
            f"{name}-options-{slug}-integration",
            rest_api=self.api.id,
            resource_id=resource_id,
            http_method=options.http_method,
            type="MOCK",
            request_templates={"application/json": '{"statusCode": 204}'},
            opts=child_opts,
        )
        response = aws.apigateway.MethodResponse(
            f"{name}-options-{slug}-response",
            rest_api=self.api.id,
            resource_id=resource_id,
            http_method=options.http_method,
            status_code="204",
            response_parameters={header: True for header in headers},
            opts=child_opts,
        )
        integration_response = aws.apigateway.IntegrationResponse(
            f"{name}-options-{slug}-integration-response",
            rest_api=self.api.id,
            resource_id=resource_id,
            http_method=options.http_method,
            status_code=response.status_code,
            response_parameters=headers,
            response_templates={"application/json": cors_origin_template(self.cors)},
            opts=pulumi.ResourceOptions(parent=self, depends_on=[integration]),
        )
        return [integration, integration_response]


def cors_response_headers(cors: CorsPolicy) -> dict[str, str]:
    """Static preflight response headers, as API Gateway header mappings."""
    return {
        "method.response.header.Access-Control-Allow-Headers": f"'{','.join(cors.allow_headers)}'",
        "method.response.header.Access-Control-Allow-Methods": f"'{','.join(cors.allow_methods)}'",
        "method.response.header.Access-Control-Allow-Origin": f"'{cors.allow_origins[0]}'",
        "method.response.header.Access-Control-Max-Age": f"'{cors.max_age}'",
    }


def cors_origin_template(cors: CorsPolicy) -> str:
    """Response template echoing the request Origin when it is one of several allowed.

    Access-Control-Allow-Origin carries a single origin, so with more than
    one allowed origin the matching one is selected per request.
    """
    if len(cors.allow_origins) == 1:
        return ""
    condition = " || ".join(f'$origin == "{origin}"' for origin in cors.allow_origins)
    return "\n".join(
        [
            '#set($origin = $input.params().header.get("Origin"))',
            '#if($origin == "")',
            '#set($origin = $input.params().header.get("origin"))',
            "#end",
            f"#if({condition})",
            "#set($context.responseOverride.header.Access-Control-Allow-Origin = $origin)",
            "#end",
        ]
    )


def resource_slug(node: RestResource) -> str:
    """Resource name part for a path node, unique per path.

    The readable part drops the separators, so a short digest of the full
    path tells apart paths such as ``/a_b`` and ``/a/b``.
    """
    if node.parent is None:
        return "root"
    parts = []
    for part in node.path.strip("/").split("/"):
        if is_placeholder(part):
            part = part.strip("{}").replace("+", "-greedy") + "-param"
        parts.append(part)
    digest = hashlib.sha1(node.path.encode()).hexdigest()[:8]
    return f"{'_'.join(parts)}-{digest}"

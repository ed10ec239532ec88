"""Materialization of a sealed topology into Pulumi components.

Handles are turned into components in materialization order; ``Ref``s are
resolved to the ``Output`` of the referenced component's attribute. Policy
statements appended to functions after their declaration are attached in a
second pass, once every component exists.
"""

import logging

import pulumi

from components.cognito import CognitoComponent, IdentityPoolComponent, UserPoolClientComponent
from components.frontend import DistributionComponent, WebsiteBucketComponent
from components.function import FunctionComponent
from components.rest_api import RestApiComponent
from components.storage import TableComponent
from components.websocket import WebSocketComponent
from topology.graph import Topology
from topology.handles import (
    BucketHandle,
    DistributionHandle,
    FunctionHandle,
    Handle,
    IdentityPoolHandle,
    Ref,
    RestApiHandle,
    TableHandle,
    UserPoolClientHandle,
    UserPoolHandle,
    WebSocketApiHandle,
    WebSocketStageHandle,
)
from topology.policies import actions_for

logger = logging.getLogger(__name__)

# Sub-resource patterns covered by a data grant besides the resource itself
GRANT_SUFFIXES = {
    "table": "/index/*",
    "bucket": "/*",
}


class StackProvisioner:
    """Creates one component per declared handle of a sealed topology."""

    def __init__(self, topology: Topology, environment: str, tags: dict | None = None):
        if not topology.sealed:
            raise ValueError(f"Topology '{topology.name}' must be sealed before provisioning")
        self.topology = topology
        self.environment = environment
        self.tags = tags or {}
        self.components: dict[tuple[str, str], pulumi.ComponentResource] = {}
        self.attributes: dict[tuple[str, str], dict[str, pulumi.Output]] = {}

    def resolve(self, value: str | Ref) -> pulumi.Input[str]:
        """Resolve a literal or ``Ref`` to a Pulumi input."""
        if not isinstance(value, Ref):
            return value
        output = self.attributes[value.handle.key][value.attribute]
        if value.prefix or value.suffix:
            return pulumi.Output.concat(value.prefix, output, value.suffix)
        return output

    def run(self) -> dict[str, pulumi.Output]:
        """Create every component and return the resolved stack outputs."""
        builders = {
            TableHandle: self._table,
            UserPoolHandle: self._user_pool,
            UserPoolClientHandle: self._user_pool_client,
            IdentityPoolHandle: self._identity_pool,
            FunctionHandle: self._function,
            RestApiHandle: self._rest_api,
            WebSocketApiHandle: self._websocket_api,
            WebSocketStageHandle: self._websocket_stage,
            BucketHandle: self._bucket,
            DistributionHandle: self._distribution,
        }
        for handle in self.topology.materialization_order():
            logger.info(f"Provisioning {handle.kind} '{handle.name}'")
            builders[type(handle)](handle)

        # Second phase: statements scoped to resources declared after the function
        for function in self.topology.of_kind(FunctionHandle):
            component = self.components[function.key]
            for statement in function.statements:
                component.add_statement(
                    actions=list(statement.actions),
                    resources=[self.resolve(r) for r in statement.resources],
                    effect=statement.effect,
                )

        return {
            name: pulumi.Output.from_input(self.resolve(entry.value))
            for name, entry in self.topology.outputs.items()
        }

    def _store(self, handle: Handle, component: pulumi.ComponentResource) -> None:
        self.components[handle.key] = component
        self.attributes[handle.key] = component.attributes

    def _table(self, table: TableHandle) -> None:
        self._store(table, TableComponent(table.name, table=table, tags=self.tags))

    def _user_pool(self, user_pool: UserPoolHandle) -> None:
        self._store(user_pool, CognitoComponent(user_pool.name, user_pool=user_pool, tags=self.tags))

    def _user_pool_client(self, client: UserPoolClientHandle) -> None:
        component = UserPoolClientComponent(
            client.name,
            client=client,
            user_pool_id=self.resolve(client.user_pool.ref("id")),
        )
        self._store(client, component)

    def _identity_pool(self, identity_pool: IdentityPoolHandle) -> None:
        providers = [
            (self.resolve(client.ref("id")), self.resolve(pool.ref("endpoint")))
            for client, pool in identity_pool.providers
        ]
        component = IdentityPoolComponent(
            identity_pool.name,
            identity_pool=identity_pool,
            providers=providers,
            tags=self.tags,
        )
        self._store(identity_pool, component)

    def _function(self, function: FunctionHandle) -> None:
        environment = {key: self.resolve(value) for key, value in function.environment.items()}
        grant_statements = []
        for grant in function.grants:
            arn = self.resolve(grant.resource.ref("arn"))
            grant_statements.append(
                {
                    "Effect": "Allow",
                    "Action": list(actions_for(grant.resource.kind, grant.permission)),
                    "Resource": [
                        arn,
                        pulumi.Output.concat(arn, GRANT_SUFFIXES[grant.resource.kind]),
                    ],
                }
            )
        component = FunctionComponent(
            function.name,
            function=function,
            environment=environment,
            grant_statements=grant_statements,
            tags=self.tags,
        )
        self._store(function, component)

    def _targets(self, functions: list[FunctionHandle]) -> dict[str, FunctionComponent]:
        return {function.name: self.components[function.key] for function in functions}

    def _rest_api(self, api: RestApiHandle) -> None:
        component = RestApiComponent(
            api.name,
            api=api,
            targets=self._targets(api.targets),
            tags=self.tags,
        )
        self._store(api, component)

    def _websocket_api(self, api: WebSocketApiHandle) -> None:
        component = WebSocketComponent(
            api.name,
            api=api,
            targets=self._targets(api.targets),
            tags=self.tags,
        )
        self._store(api, component)

    def _websocket_stage(self, stage: WebSocketStageHandle) -> None:
        # Created by the API's component
        component = self.components[stage.api.key]
        self.components[stage.key] = component
        self.attributes[stage.key] = component.stage_attributes

    def _bucket(self, bucket: BucketHandle) -> None:
        self._store(bucket, WebsiteBucketComponent(bucket.name, bucket=bucket, tags=self.tags))

    def _distribution(self, distribution: DistributionHandle) -> None:
        component = DistributionComponent(
            distribution.name,
            distribution=distribution,
            origin=self.components[distribution.origin.key],
            environment=self.environment,
            tags=self.tags,
        )
        self._store(distribution, component)


def provision(
    topology: Topology, environment: str, tags: dict | None = None
) -> dict[str, pulumi.Output]:
    """Seal ``topology`` and create its resources.

    Returns:
        Stack outputs keyed by their recorded name.

    Raises:
        TopologyError: If the graph is invalid; nothing is created in that case.
    """
    topology.seal()
    return StackProvisioner(topology, environment, tags).run()

"""Handles for declared resources and references to their attributes.

A handle is the record a ``Topology`` hands back for every declaration.
Later declarations use handles (or ``Ref``s to one of their attributes)
to wire resources together; the topology checks that every handle it is
given was declared by it.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar

from topology.errors import DanglingReference
from topology.policies import (
    CapacityMode,
    CorsPolicy,
    PasswordPolicy,
    Permission,
    RemovalPolicy,
)
from topology.routes import RestResource, RestRoute, WebSocketRoute


@dataclass(frozen=True)
class Ref:
    """An attribute of a declared resource, optionally wrapped in literal text.

    The attribute only has a value once the provisioning engine creates the
    resource; ``prefix`` and ``suffix`` are concatenated around it.
    """

    handle: "Handle"
    attribute: str
    prefix: str = ""
    suffix: str = ""

    def __str__(self) -> str:
        return f"{self.prefix}${{{self.handle.kind}.{self.handle.name}.{self.attribute}}}{self.suffix}"


@dataclass(eq=False)
class Handle:
    """Base class for declared resources. Compared by identity."""

    kind: ClassVar[str] = "resource"
    attributes: ClassVar[tuple[str, ...]] = ()

    name: str
    owner: Any = field(default=None, repr=False, kw_only=True)

    @property
    def key(self) -> tuple[str, str]:
        return (self.kind, self.name)

    def ref(self, attribute: str, prefix: str = "", suffix: str = "") -> Ref:
        """Reference one of this resource's runtime attributes.

        Raises:
            DanglingReference: If the resource never exposes ``attribute``.
        """
        if attribute not in self.attributes:
            available = ", ".join(self.attributes) or "none"
            raise DanglingReference(
                f"{self.kind} '{self.name}' has no attribute '{attribute}' "
                f"(available: {available})"
            )
        return Ref(self, attribute, prefix, suffix)

    def dependencies(self) -> tuple["Handle", ...]:
        """Handles this declaration references and must follow."""
        return ()


@dataclass(eq=False)
class TableHandle(Handle):
    kind: ClassVar[str] = "table"
    attributes: ClassVar[tuple[str, ...]] = ("name", "arn")

    partition_key: str
    sort_key: str | None = None
    ttl_attribute: str | None = None
    capacity_mode: CapacityMode = CapacityMode.ON_DEMAND
    removal_policy: RemovalPolicy = RemovalPolicy.DESTROY


@dataclass(eq=False)
class UserPoolHandle(Handle):
    kind: ClassVar[str] = "user_pool"
    attributes: ClassVar[tuple[str, ...]] = ("id", "arn", "endpoint")

    sign_in_aliases: tuple[str, ...]
    password_policy: PasswordPolicy
    auto_verified_attributes: tuple[str, ...] = ()
    self_sign_up: bool = True
    removal_policy: RemovalPolicy = RemovalPolicy.DESTROY


@dataclass(eq=False)
class UserPoolClientHandle(Handle):
    kind: ClassVar[str] = "user_pool_client"
    attributes: ClassVar[tuple[str, ...]] = ("id",)

    user_pool: UserPoolHandle
    auth_flows: tuple[str, ...]
    generate_secret: bool = False

    def dependencies(self) -> tuple[Handle, ...]:
        return (self.user_pool,)


@dataclass(eq=False)
class IdentityPoolHandle(Handle):
    """Federated identity bridge exchanging user pool tokens for cloud credentials."""

    kind: ClassVar[str] = "identity_pool"
    attributes: ClassVar[tuple[str, ...]] = ("id",)

    clients: tuple[UserPoolClientHandle, ...]
    allow_unauthenticated: bool = False
    removal_policy: RemovalPolicy = RemovalPolicy.DESTROY

    @property
    def providers(self) -> list[tuple[UserPoolClientHandle, UserPoolHandle]]:
        return [(client, client.user_pool) for client in self.clients]

    def dependencies(self) -> tuple[Handle, ...]:
        return self.clients


@dataclass(frozen=True)
class Grant:
    """Data access on a table or bucket, granted to a function."""

    function: "FunctionHandle"
    resource: Handle
    permission: Permission

    def dependencies(self) -> tuple[Handle, ...]:
        return (self.function, self.resource)


@dataclass(frozen=True)
class PolicyStatement:
    """Free-form permission statement appended to a function's role."""

    actions: tuple[str, ...]
    resources: tuple[str | Ref, ...]
    effect: str = "Allow"

    def refs(self) -> list[Ref]:
        return [r for r in self.resources if isinstance(r, Ref)]


@dataclass(eq=False)
class FunctionHandle(Handle):
    kind: ClassVar[str] = "function"
    attributes: ClassVar[tuple[str, ...]] = ("name", "arn", "invoke_arn")

    code: str
    handler: str
    runtime: str
    timeout: int
    memory_size: int
    environment: dict[str, str | Ref] = field(default_factory=dict)
    grants: list[Grant] = field(default_factory=list)
    statements: list[PolicyStatement] = field(default_factory=list)

    def dependencies(self) -> tuple[Handle, ...]:
        return tuple(v.handle for v in self.environment.values() if isinstance(v, Ref))

    def has_grant(self, resource: Handle, permission: Permission) -> bool:
        return any(g.resource is resource and g.permission is permission for g in self.grants)


@dataclass(eq=False)
class RestApiHandle(Handle):
    kind: ClassVar[str] = "rest_api"
    attributes: ClassVar[tuple[str, ...]] = ("id", "url", "execution_arn")

    cors: CorsPolicy
    description: str = ""
    stage_name: str = "prod"
    root: RestResource = field(default_factory=RestResource.root)

    @property
    def routes(self) -> list[RestRoute]:
        return [route for node in self.root.walk() for route in node.methods.values()]

    @property
    def targets(self) -> list["FunctionHandle"]:
        return list(dict.fromkeys(route.target for route in self.routes))


@dataclass(eq=False)
class WebSocketApiHandle(Handle):
    kind: ClassVar[str] = "websocket_api"
    attributes: ClassVar[tuple[str, ...]] = ("id", "execution_arn")

    description: str = ""
    route_selection_expression: str = "$request.body.action"
    routes: dict[str, WebSocketRoute] = field(default_factory=dict)
    stage: "WebSocketStageHandle | None" = None

    @property
    def targets(self) -> list["FunctionHandle"]:
        return list(dict.fromkeys(route.target for route in self.routes.values()))


@dataclass(eq=False)
class WebSocketStageHandle(Handle):
    """Deployed, addressable instance of a WebSocket API."""

    kind: ClassVar[str] = "websocket_stage"
    attributes: ClassVar[tuple[str, ...]] = ("url", "arn", "callback_url")

    api: WebSocketApiHandle
    auto_deploy: bool = True

    @property
    def key(self) -> tuple[str, str]:
        # Stage names are scoped to their API.
        return (self.kind, f"{self.api.name}/{self.name}")

    def dependencies(self) -> tuple[Handle, ...]:
        return (self.api,)


@dataclass(eq=False)
class BucketHandle(Handle):
    kind: ClassVar[str] = "bucket"
    attributes: ClassVar[tuple[str, ...]] = (
        "name",
        "arn",
        "website_endpoint",
        "regional_domain_name",
    )

    index_document: str = "index.html"
    error_document: str = "error.html"
    public_read: bool = True
    removal_policy: RemovalPolicy = RemovalPolicy.DESTROY


@dataclass(eq=False)
class DistributionHandle(Handle):
    kind: ClassVar[str] = "distribution"
    attributes: ClassVar[tuple[str, ...]] = ("id", "domain_name")

    origin: BucketHandle
    viewer_protocol_policy: str = "redirect-to-https"
    default_root_object: str = "index.html"

    def dependencies(self) -> tuple[Handle, ...]:
        return (self.origin,)


@dataclass(frozen=True)
class OutputEntry:
    name: str
    value: Ref
    description: str = ""

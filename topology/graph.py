"""Resource-dependency graph for a deployment.

Resources are declared in program order. Each declaration may only
reference handles this topology already holds, so construction order is
a valid dependency order. The one exception is a function's free-form
policy statements, which may be appended once a resource declared after
the function (typically a WebSocket stage) exists; those are checked
against the final graph when the topology is sealed.
"""

import logging
import re
from collections.abc import Iterable
from graphlib import CycleError, TopologicalSorter

from topology.errors import (
    DanglingReference,
    DuplicateName,
    PolicyViolation,
    RouteConflict,
    TopologyError,
)
from topology.handles import (
    BucketHandle,
    DistributionHandle,
    FunctionHandle,
    Grant,
    Handle,
    IdentityPoolHandle,
    OutputEntry,
    PolicyStatement,
    Ref,
    RestApiHandle,
    TableHandle,
    UserPoolClientHandle,
    UserPoolHandle,
    WebSocketApiHandle,
    WebSocketStageHandle,
)
from topology.policies import (
    CapacityMode,
    CorsPolicy,
    FunctionLimits,
    PasswordPolicy,
    Permission,
    RemovalPolicy,
    build_policy,
    coerce_policy,
)
from topology.routes import (
    LIFECYCLE_ROUTE_KEYS,
    RESERVED_ROUTE_KEYS,
    REST_METHODS,
    RestRoute,
    WebSocketRoute,
    split_path,
)

logger = logging.getLogger(__name__)

# Platform naming rules per resource kind
NAME_PATTERNS = {
    "table": re.compile(r"^[A-Za-z0-9_.-]{3,255}$"),
    "user_pool": re.compile(r"^[\w\s+=,.@-]{1,128}$"),
    "user_pool_client": re.compile(r"^[\w\s+=,.@-]{1,128}$"),
    # Hyphens are rewritten to underscores when the pool is created
    "identity_pool": re.compile(r"^[\w -]{1,128}$"),
    "function": re.compile(r"^[A-Za-z0-9_-]{1,64}$"),
    "rest_api": re.compile(r"^.{1,128}$"),
    "rest_stage": re.compile(r"^[A-Za-z0-9_-]{1,128}$"),
    "websocket_api": re.compile(r"^.{1,128}$"),
    "websocket_stage": re.compile(r"^[A-Za-z0-9_-]{1,128}$"),
    "bucket": re.compile(r"^[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]$"),
    "distribution": re.compile(r"^[A-Za-z0-9_-]{1,128}$"),
}

SIGN_IN_ALIASES = ("email", "username", "phone")
VERIFIABLE_ATTRIBUTES = ("email", "phone_number")

AUTH_FLOWS = {
    "user_password": "ALLOW_USER_PASSWORD_AUTH",
    "user_srp": "ALLOW_USER_SRP_AUTH",
    "admin_user_password": "ALLOW_ADMIN_USER_PASSWORD_AUTH",
    "custom": "ALLOW_CUSTOM_AUTH",
}

VIEWER_PROTOCOL_POLICIES = ("allow-all", "https-only", "redirect-to-https")

MANAGE_CONNECTIONS_ACTION = "execute-api:ManageConnections"

_ENV_KEY = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Topology:
    """Append-only graph of resource declarations for one deployment.

    Every ``declare_*``/``add_*`` method validates its input against the
    graph built so far and raises a ``TopologyError`` subclass on the first
    problem, leaving the graph unchanged. ``seal`` validates the final graph
    and freezes it; only a sealed topology can be provisioned.
    """

    def __init__(self, name: str):
        self.name = name
        self._handles: dict[tuple[str, str], Handle] = {}
        self._sequence: list = []
        self._outputs: dict[str, OutputEntry] = {}
        self._sealed = False

    # -----------------------------------------------------------------
    # Introspection
    # -----------------------------------------------------------------

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def handles(self) -> list[Handle]:
        """Declared resources in construction order."""
        return [node for node in self._sequence if isinstance(node, Handle)]

    @property
    def outputs(self) -> dict[str, OutputEntry]:
        return dict(self._outputs)

    def get(self, kind: str, name: str) -> Handle | None:
        return self._handles.get((kind, name))

    def of_kind(self, handle_type: type[Handle]) -> list[Handle]:
        return [h for h in self.handles if isinstance(h, handle_type)]

    def is_declared(self, handle: Handle) -> bool:
        return (
            isinstance(handle, Handle)
            and handle.owner is self
            and self._handles.get(handle.key) is handle
        )

    # -----------------------------------------------------------------
    # Bookkeeping
    # -----------------------------------------------------------------

    def _check_open(self) -> None:
        if self._sealed:
            raise TopologyError(f"Topology '{self.name}' is sealed; no further declarations")

    def _check_name(self, kind: str, key: tuple[str, str], name: str) -> None:
        if key in self._handles:
            raise DuplicateName(f"{kind} '{name}' is already declared")
        pattern = NAME_PATTERNS.get(kind)
        if not name or (pattern and not pattern.match(name)):
            raise PolicyViolation(f"Invalid {kind} name '{name}'")

    def _register(self, handle: Handle) -> Handle:
        handle.owner = self
        self._handles[handle.key] = handle
        self._sequence.append(handle)
        logger.debug(f"Declared {handle.kind} '{handle.name}'")
        return handle

    def _require(self, handle, expected: type[Handle] | tuple, role: str) -> None:
        if not isinstance(handle, expected):
            if isinstance(expected, tuple):
                wanted = " or ".join(t.kind for t in expected)
            else:
                wanted = expected.kind
            raise DanglingReference(f"{role}: expected a {wanted} handle, got {handle!r}")
        if not self.is_declared(handle):
            raise DanglingReference(
                f"{role}: {handle.kind} '{handle.name}' is not declared in topology '{self.name}'"
            )

    def _check_ref(self, ref: Ref, role: str) -> None:
        self._require(ref.handle, Handle, role)
        if ref.attribute not in ref.handle.attributes:
            raise DanglingReference(
                f"{role}: {ref.handle.kind} '{ref.handle.name}' has no attribute '{ref.attribute}'"
            )
        if isinstance(ref.handle, RestApiHandle) and ref.attribute == "url" and not ref.handle.routes:
            raise DanglingReference(
                f"{role}: rest_api '{ref.handle.name}' has no routes, so it has no deployed url"
            )

    # -----------------------------------------------------------------
    # Storage
    # -----------------------------------------------------------------

    def declare_table(
        self,
        name: str,
        partition_key: str,
        sort_key: str | None = None,
        ttl_attribute: str | None = None,
        capacity_mode: CapacityMode | str = CapacityMode.ON_DEMAND,
        removal_policy: RemovalPolicy | str = RemovalPolicy.DESTROY,
    ) -> TableHandle:
        """Declare a keyed table with on-demand capacity.

        Args:
            name: Table name, unique among tables.
            partition_key: Name of the string partition key attribute.
            sort_key: Optional string sort key attribute.
            ttl_attribute: Optional attribute holding an epoch expiry time.
            capacity_mode: Must be on-demand.
            removal_policy: Teardown disposition.

        Raises:
            DuplicateName: If a table with this name exists.
            PolicyViolation: On a missing key or unsupported capacity mode.
        """
        self._check_open()
        self._check_name(TableHandle.kind, (TableHandle.kind, name), name)
        if not partition_key:
            raise PolicyViolation(f"table '{name}': partition key is required")
        if sort_key is not None and (not sort_key or sort_key == partition_key):
            raise PolicyViolation(f"table '{name}': sort key must differ from the partition key")
        if ttl_attribute is not None and ttl_attribute in (partition_key, sort_key):
            raise PolicyViolation(f"table '{name}': ttl attribute cannot be a key attribute")
        capacity = _enum(CapacityMode, capacity_mode, f"table '{name}' capacity mode")
        if capacity is not CapacityMode.ON_DEMAND:
            raise PolicyViolation(f"table '{name}': only on-demand capacity is supported")

        return self._register(
            TableHandle(
                name=name,
                partition_key=partition_key,
                sort_key=sort_key,
                ttl_attribute=ttl_attribute,
                capacity_mode=capacity,
                removal_policy=_enum(RemovalPolicy, removal_policy, f"table '{name}' removal policy"),
            )
        )

    # -----------------------------------------------------------------
    # Identity
    # -----------------------------------------------------------------

    def declare_user_pool(
        self,
        name: str,
        sign_in_aliases: Iterable[str] = ("email", "username"),
        password_policy: PasswordPolicy | dict | None = None,
        auto_verified_attributes: Iterable[str] = ("email",),
        self_sign_up: bool = True,
        removal_policy: RemovalPolicy | str = RemovalPolicy.DESTROY,
    ) -> UserPoolHandle:
        """Declare the user directory that owns credentials."""
        self._check_open()
        self._check_name(UserPoolHandle.kind, (UserPoolHandle.kind, name), name)
        aliases = tuple(dict.fromkeys(sign_in_aliases))
        if not aliases:
            raise PolicyViolation(f"user_pool '{name}': at least one sign-in alias is required")
        unknown = [a for a in aliases if a not in SIGN_IN_ALIASES]
        if unknown:
            raise PolicyViolation(f"user_pool '{name}': unsupported sign-in aliases {unknown}")
        verified = tuple(dict.fromkeys(auto_verified_attributes))
        unknown = [a for a in verified if a not in VERIFIABLE_ATTRIBUTES]
        if unknown:
            raise PolicyViolation(f"user_pool '{name}': cannot auto-verify {unknown}")
        policy = coerce_policy(PasswordPolicy, password_policy, f"user_pool '{name}'")

        return self._register(
            UserPoolHandle(
                name=name,
                sign_in_aliases=aliases,
                password_policy=policy,
                auto_verified_attributes=verified,
                self_sign_up=self_sign_up,
                removal_policy=_enum(RemovalPolicy, removal_policy, f"user_pool '{name}' removal policy"),
            )
        )

    def declare_user_pool_client(
        self,
        name: str,
        user_pool: UserPoolHandle,
        auth_flows: Iterable[str] = ("user_password", "user_srp"),
        generate_secret: bool = False,
    ) -> UserPoolClientHandle:
        """Register an application against a declared user pool."""
        self._check_open()
        self._check_name(UserPoolClientHandle.kind, (UserPoolClientHandle.kind, name), name)
        self._require(user_pool, UserPoolHandle, f"user_pool_client '{name}'")
        flows = tuple(dict.fromkeys(auth_flows))
        unknown = [f for f in flows if f not in AUTH_FLOWS]
        if unknown:
            raise PolicyViolation(f"user_pool_client '{name}': unsupported auth flows {unknown}")

        return self._register(
            UserPoolClientHandle(
                name=name,
                user_pool=user_pool,
                auth_flows=flows,
                generate_secret=generate_secret,
            )
        )

    def declare_identity_pool(
        self,
        name: str,
        clients: Iterable[UserPoolClientHandle],
        allow_unauthenticated: bool = False,
        removal_policy: RemovalPolicy | str = RemovalPolicy.DESTROY,
    ) -> IdentityPoolHandle:
        """Declare a federated identity bridge over one or more pool clients."""
        self._check_open()
        self._check_name(IdentityPoolHandle.kind, (IdentityPoolHandle.kind, name), name)
        clients = tuple(dict.fromkeys(clients))
        if not clients:
            raise DanglingReference(
                f"identity_pool '{name}': requires at least one declared user_pool_client"
            )
        for client in clients:
            self._require(client, UserPoolClientHandle, f"identity_pool '{name}'")

        handle = IdentityPoolHandle(
            name=name,
            clients=clients,
            allow_unauthenticated=allow_unauthenticated,
            removal_policy=_enum(RemovalPolicy, removal_policy, f"identity_pool '{name}' removal policy"),
        )
        return self._register(handle)

    # -----------------------------------------------------------------
    # Compute
    # -----------------------------------------------------------------

    def declare_function(
        self,
        name: str,
        code: str,
        handler: str = "index.handler",
        environment: dict[str, str | Ref] | None = None,
        timeout: int = 30,
        grants: Iterable[tuple[Handle, Permission | str]] = (),
        runtime: str = "nodejs22.x",
        memory_size: int = 128,
    ) -> FunctionHandle:
        """Declare a function with its environment bindings and baseline grants.

        Environment values are literal strings or ``Ref``s to attributes of
        resources already in this topology.

        Raises:
            DuplicateName: If a function with this name exists.
            DanglingReference: If a binding or grant names an undeclared resource.
            PolicyViolation: If timeout, memory or an environment key is invalid.
        """
        self._check_open()
        self._check_name(FunctionHandle.kind, (FunctionHandle.kind, name), name)
        owner = f"function '{name}'"
        if not code:
            raise PolicyViolation(f"{owner}: code location is required")
        if not handler:
            raise PolicyViolation(f"{owner}: handler is required")
        limits = build_policy(FunctionLimits, owner, timeout=timeout, memory_size=memory_size)

        bindings: dict[str, str | Ref] = {}
        for key, value in (environment or {}).items():
            if not _ENV_KEY.match(key) or key.startswith("AWS_"):
                raise PolicyViolation(f"{owner}: invalid environment key '{key}'")
            if isinstance(value, Ref):
                self._check_ref(value, f"{owner} binding {key}")
            elif not isinstance(value, str):
                raise PolicyViolation(f"{owner}: environment value for '{key}' must be a string or Ref")
            bindings[key] = value

        requested = []
        for resource, permission in grants:
            requested.append(self._check_grant(owner, resource, permission))

        function = FunctionHandle(
            name=name,
            code=code,
            handler=handler,
            runtime=runtime,
            timeout=limits.timeout,
            memory_size=limits.memory_size,
            environment=bindings,
        )
        self._register(function)
        for resource, permission in requested:
            self._add_grant(function, resource, permission)
        return function

    def _check_grant(
        self, owner: str, resource: Handle, permission: Permission | str
    ) -> tuple[Handle, Permission]:
        self._require(resource, (TableHandle, BucketHandle), f"{owner} grant")
        return resource, _enum(Permission, permission, f"{owner} grant permission")

    def _add_grant(self, function: FunctionHandle, resource: Handle, permission: Permission) -> Grant:
        for existing in function.grants:
            if existing.resource is resource and existing.permission is permission:
                logger.debug(
                    f"function '{function.name}' already has {permission.value} on "
                    f"{resource.kind} '{resource.name}'"
                )
                return existing
        grant = Grant(function=function, resource=resource, permission=permission)
        function.grants.append(grant)
        self._sequence.append(grant)
        logger.debug(
            f"Granted {permission.value} on {resource.kind} '{resource.name}' "
            f"to function '{function.name}'"
        )
        return grant

    def grant(
        self, function: FunctionHandle, resource: Handle, permission: Permission | str
    ) -> Grant:
        """Grant a function data access on a table or bucket. Idempotent."""
        self._check_open()
        self._require(function, FunctionHandle, "grant")
        resource, permission = self._check_grant(f"function '{function.name}'", resource, permission)
        return self._add_grant(function, resource, permission)

    def add_to_role_policy(
        self, function: FunctionHandle, statement: PolicyStatement
    ) -> PolicyStatement:
        """Append a free-form statement to a function's permissions.

        Any ``Ref`` among the statement's resources must already resolve.
        Appending an identical statement twice has no effect.
        """
        self._check_open()
        self._require(function, FunctionHandle, "policy statement")
        owner = f"function '{function.name}' policy statement"
        if not statement.actions or not statement.resources:
            raise PolicyViolation(f"{owner}: actions and resources are required")
        if statement.effect not in ("Allow", "Deny"):
            raise PolicyViolation(f"{owner}: invalid effect '{statement.effect}'")
        for ref in statement.refs():
            self._check_ref(ref, owner)

        if statement in function.statements:
            return statement
        function.statements.append(statement)
        logger.debug(f"Added {list(statement.actions)} to function '{function.name}'")
        return statement

    def allow_connection_management(
        self,
        function: FunctionHandle,
        target: WebSocketStageHandle | WebSocketApiHandle,
    ) -> PolicyStatement:
        """Let a function push messages to connections open on a WebSocket stage.

        This is the second phase of the function's permissions: the scope is
        the stage's resolved ARN, so the stage must already exist.

        Raises:
            DanglingReference: If the stage (or the API's stage) is not declared yet.
        """
        self._check_open()
        self._require(function, FunctionHandle, "connection management grant")
        if isinstance(target, WebSocketApiHandle):
            self._require(target, WebSocketApiHandle, "connection management grant")
            if target.stage is None:
                raise DanglingReference(
                    f"websocket_api '{target.name}' has no stage; declare one before "
                    f"granting connection management to function '{function.name}'"
                )
            target = target.stage
        self._require(target, WebSocketStageHandle, "connection management grant")
        statement = PolicyStatement(
            actions=(MANAGE_CONNECTIONS_ACTION,),
            resources=(target.ref("arn", suffix="/*"),),
        )
        return self.add_to_role_policy(function, statement)

    # -----------------------------------------------------------------
    # REST API
    # -----------------------------------------------------------------

    def declare_rest_api(
        self,
        name: str,
        cors: CorsPolicy | dict | None = None,
        description: str = "",
        stage_name: str = "prod",
    ) -> RestApiHandle:
        self._check_open()
        self._check_name(RestApiHandle.kind, (RestApiHandle.kind, name), name)
        if not NAME_PATTERNS["rest_stage"].match(stage_name or ""):
            raise PolicyViolation(f"rest_api '{name}': invalid stage name '{stage_name}'")
        policy = coerce_policy(CorsPolicy, cors, f"rest_api '{name}' cors")
        return self._register(
            RestApiHandle(name=name, cors=policy, description=description, stage_name=stage_name)
        )

    def add_rest_route(
        self,
        api: RestApiHandle,
        path: str,
        method: str,
        target: FunctionHandle,
    ) -> RestRoute:
        """Bind ``method path`` on a REST API to a function.

        Path segments are shared between routes: ``/stats/{userId}`` and
        ``/stats`` use the same ``stats`` node.

        Raises:
            DanglingReference: If the API or target is not declared.
            RouteConflict: If ``(path, method)`` is already bound.
            PolicyViolation: On an unsupported method or malformed path.
        """
        self._check_open()
        self._require(api, RestApiHandle, "rest route")
        self._require(target, FunctionHandle, f"rest route on '{api.name}'")
        method = method.upper()
        if method not in REST_METHODS:
            raise PolicyViolation(f"rest_api '{api.name}': unsupported method '{method}'")
        parts = split_path(path)
        normalized = "/" + "/".join(parts)

        existing = api.root.find(parts)
        if existing is not None and method in existing.methods:
            bound = existing.methods[method].target
            raise RouteConflict(
                f"rest_api '{api.name}': {method} {normalized} is already bound to "
                f"function '{bound.name}'"
            )
        api.root.check_placeholders(parts)

        node = api.root.ensure(parts)
        route = RestRoute(api=api, path=normalized, method=method, target=target)
        node.methods[method] = route
        self._sequence.append(route)
        logger.debug(f"Routed {method} {normalized} on '{api.name}' to function '{target.name}'")
        return route

    # -----------------------------------------------------------------
    # WebSocket API
    # -----------------------------------------------------------------

    def declare_websocket_api(
        self,
        name: str,
        description: str = "",
        route_selection_expression: str = "$request.body.action",
    ) -> WebSocketApiHandle:
        self._check_open()
        self._check_name(WebSocketApiHandle.kind, (WebSocketApiHandle.kind, name), name)
        if not route_selection_expression.startswith("$request."):
            raise PolicyViolation(
                f"websocket_api '{name}': invalid route selection expression "
                f"'{route_selection_expression}'"
            )
        return self._register(
            WebSocketApiHandle(
                name=name,
                description=description,
                route_selection_expression=route_selection_expression,
            )
        )

    def add_websocket_route(
        self, api: WebSocketApiHandle, route_key: str, target: FunctionHandle
    ) -> WebSocketRoute:
        """Bind a lifecycle or application route key to a function.

        Raises:
            DanglingReference: If the API or target is not declared.
            RouteConflict: If the key is already bound on this API.
            PolicyViolation: On an empty key or an unknown ``$`` key.
        """
        self._check_open()
        self._require(api, WebSocketApiHandle, "websocket route")
        self._require(target, FunctionHandle, f"websocket route on '{api.name}'")
        if not route_key or not route_key.strip():
            raise PolicyViolation(f"websocket_api '{api.name}': route key is required")
        if route_key.startswith("$") and route_key not in RESERVED_ROUTE_KEYS:
            raise PolicyViolation(f"websocket_api '{api.name}': unknown reserved route key '{route_key}'")
        if route_key in api.routes:
            bound = api.routes[route_key].target
            raise RouteConflict(
                f"websocket_api '{api.name}': route '{route_key}' is already bound to "
                f"function '{bound.name}'"
            )

        route = WebSocketRoute(api=api, route_key=route_key, target=target)
        api.routes[route_key] = route
        self._sequence.append(route)
        logger.debug(f"Routed '{route_key}' on '{api.name}' to function '{target.name}'")
        return route

    def declare_websocket_stage(
        self, name: str, api: WebSocketApiHandle, auto_deploy: bool = True
    ) -> WebSocketStageHandle:
        """Declare the deployed, addressable stage of a WebSocket API."""
        self._check_open()
        self._require(api, WebSocketApiHandle, f"websocket_stage '{name}'")
        if api.stage is not None:
            raise DuplicateName(
                f"websocket_api '{api.name}' already has stage '{api.stage.name}'"
            )
        stage = WebSocketStageHandle(name=name, api=api, auto_deploy=auto_deploy)
        self._check_name(WebSocketStageHandle.kind, stage.key, name)
        api.stage = stage
        return self._register(stage)

    # -----------------------------------------------------------------
    # Static hosting
    # -----------------------------------------------------------------

    def declare_website_bucket(
        self,
        name: str,
        index_document: str = "index.html",
        error_document: str = "error.html",
        public_read: bool = True,
        removal_policy: RemovalPolicy | str = RemovalPolicy.DESTROY,
    ) -> BucketHandle:
        self._check_open()
        self._check_name(BucketHandle.kind, (BucketHandle.kind, name), name)
        if not index_document:
            raise PolicyViolation(f"bucket '{name}': index document is required")
        return self._register(
            BucketHandle(
                name=name,
                index_document=index_document,
                error_document=error_document,
                public_read=public_read,
                removal_policy=_enum(RemovalPolicy, removal_policy, f"bucket '{name}' removal policy"),
            )
        )

    def declare_distribution(
        self,
        name: str,
        origin: BucketHandle,
        viewer_protocol_policy: str = "redirect-to-https",
        default_root_object: str = "index.html",
    ) -> DistributionHandle:
        self._check_open()
        self._check_name(DistributionHandle.kind, (DistributionHandle.kind, name), name)
        self._require(origin, BucketHandle, f"distribution '{name}'")
        if viewer_protocol_policy not in VIEWER_PROTOCOL_POLICIES:
            raise PolicyViolation(
                f"distribution '{name}': invalid viewer protocol policy '{viewer_protocol_policy}'"
            )
        return self._register(
            DistributionHandle(
                name=name,
                origin=origin,
                viewer_protocol_policy=viewer_protocol_policy,
                default_root_object=default_root_object,
            )
        )

    # -----------------------------------------------------------------
    # Outputs
    # -----------------------------------------------------------------

    def record_output(
        self,
        name: str,
        value: Ref | Handle,
        description: str = "",
        attribute: str | None = None,
    ) -> OutputEntry:
        """Record a named stack output.

        ``value`` is a ``Ref`` or a handle together with ``attribute``. A name
        that is already recorded is overwritten.

        Raises:
            DanglingReference: If the referenced resource has not resolved.
        """
        self._check_open()
        if not name:
            raise PolicyViolation("Output name is required")
        if isinstance(value, Handle):
            self._require(value, Handle, f"output '{name}'")
            if attribute is None:
                raise PolicyViolation(f"output '{name}': attribute is required for a handle value")
            value = value.ref(attribute)
        if not isinstance(value, Ref):
            raise PolicyViolation(f"output '{name}': value must reference a declared resource")
        self._check_ref(value, f"output '{name}'")

        if name in self._outputs:
            logger.warning(f"Output '{name}' recorded twice; keeping the latest value")
        entry = OutputEntry(name=name, value=value, description=description)
        self._outputs[name] = entry
        return entry

    # -----------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------

    def dependency_graph(self) -> dict:
        """Map every declaration to the declarations it references."""
        return {node: set(node.dependencies()) for node in self._sequence}

    def validate(self) -> None:
        """Check the complete graph.

        Raises:
            DanglingReference: If a reference points outside the graph or forward
                in construction order, or the graph contains a cycle.
            PolicyViolation: If a REST API has no routes or a WebSocket API lacks
                a lifecycle route.
        """
        position = {id(node): index for index, node in enumerate(self._sequence)}
        for index, node in enumerate(self._sequence):
            for dependency in node.dependencies():
                if not self.is_declared(dependency):
                    raise DanglingReference(
                        f"{_describe(node)} references undeclared {dependency.kind} '{dependency.name}'"
                    )
                if position[id(dependency)] >= index:
                    raise DanglingReference(
                        f"{_describe(node)} references {dependency.kind} '{dependency.name}' "
                        f"declared after it"
                    )

        try:
            TopologicalSorter(self.dependency_graph()).prepare()
        except CycleError as e:
            raise DanglingReference(f"Dependency cycle: {e.args[1]}") from e

        for function in self.of_kind(FunctionHandle):
            for statement in function.statements:
                for ref in statement.refs():
                    self._check_ref(ref, f"function '{function.name}' policy statement")

        for api in self.of_kind(RestApiHandle):
            if not api.routes:
                raise PolicyViolation(f"rest_api '{api.name}' has no routes to deploy")

        for api in self.of_kind(WebSocketApiHandle):
            missing = [key for key in LIFECYCLE_ROUTE_KEYS if key not in api.routes]
            if missing:
                raise PolicyViolation(f"websocket_api '{api.name}' is missing routes {missing}")

        for entry in self._outputs.values():
            self._check_ref(entry.value, f"output '{entry.name}'")

    def seal(self) -> "Topology":
        """Validate the graph and refuse further declarations."""
        if not self._sealed:
            self.validate()
            self._sealed = True
            logger.info(
                f"Sealed topology '{self.name}': {len(self.handles)} resources, "
                f"{len(self._outputs)} outputs"
            )
        return self

    def materialization_order(self) -> list[Handle]:
        """Handles ordered so that each one follows everything it needs at creation.

        APIs are created with their full routing table, so they follow
        every function they route to, even one declared after the API.
        """
        graph: dict[Handle, set[Handle]] = {}
        for handle in self.handles:
            needs = set(handle.dependencies())
            if isinstance(handle, FunctionHandle):
                needs.update(grant.resource for grant in handle.grants)
            elif isinstance(handle, (RestApiHandle, WebSocketApiHandle)):
                needs.update(handle.targets)
            graph[handle] = needs
        return list(TopologicalSorter(graph).static_order())


def _enum(enum_type, value, what: str):
    try:
        return enum_type(value)
    except ValueError as e:
        raise PolicyViolation(f"Invalid {what}: {value!r}") from e


def _describe(node) -> str:
    if isinstance(node, Handle):
        return f"{node.kind} '{node.name}'"
    if isinstance(node, Grant):
        return f"grant on function '{node.function.name}'"
    if isinstance(node, RestRoute):
        return f"route {node.method} {node.path} on '{node.api.name}'"
    if isinstance(node, WebSocketRoute):
        return f"route '{node.route_key}' on '{node.api.name}'"
    return repr(node)

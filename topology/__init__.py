"""Resource-dependency model for the RPS Battle Arena deployment.

- Topology: append-only graph of declarations with construction-time checks
- Handles/Ref: declared resources and references to their runtime attributes
- Routes: REST path tree and WebSocket route keys
"""

from topology.errors import (
    DanglingReference,
    DuplicateName,
    PolicyViolation,
    RouteConflict,
    TopologyError,
)
from topology.graph import Topology
from topology.handles import (
    BucketHandle,
    DistributionHandle,
    FunctionHandle,
    Grant,
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
from topology.policies import CorsPolicy, PasswordPolicy, Permission, RemovalPolicy

__all__ = [
    "BucketHandle",
    "CorsPolicy",
    "DanglingReference",
    "DistributionHandle",
    "DuplicateName",
    "FunctionHandle",
    "Grant",
    "IdentityPoolHandle",
    "OutputEntry",
    "PasswordPolicy",
    "Permission",
    "PolicyStatement",
    "PolicyViolation",
    "Ref",
    "RemovalPolicy",
    "RestApiHandle",
    "RouteConflict",
    "TableHandle",
    "Topology",
    "TopologyError",
    "UserPoolClientHandle",
    "UserPoolHandle",
    "WebSocketApiHandle",
    "WebSocketStageHandle",
]

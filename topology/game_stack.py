"""Declaration of the RPS Battle Arena deployment.

Construction order:
- Tables: users, games (keyed by game + timestamp), connections (TTL)
- Cognito user pool and web client, optionally an identity pool
- Functions: auth, game, websocket
- REST API: POST /auth, GET /stats/{userId}, GET /leaderboard
- WebSocket API: $connect, $disconnect, join_queue, make_move + stage
- Connection management grant for the websocket function
- Website bucket + CDN distribution (optional)
- Outputs
"""

import logging

from common.config import Settings
from topology.graph import Topology
from topology.policies import Permission

logger = logging.getLogger(__name__)

WEBSOCKET_ACTIONS = ("join_queue", "make_move")


def declare_game_stack(settings: Settings) -> Topology:
    """Declare every resource of the game service and seal the result."""
    prefix = settings.resource_prefix
    topology = Topology(prefix)
    logger.info(f"Declaring topology '{prefix}' (frontend={settings.include_frontend})")

    # =================================================================
    # Storage
    # =================================================================
    users = topology.declare_table(
        f"{prefix}-users",
        partition_key="userId",
        removal_policy=settings.removal_policy,
    )
    games = topology.declare_table(
        f"{prefix}-games",
        partition_key="gameId",
        sort_key="timestamp",
        removal_policy=settings.removal_policy,
    )
    connections = topology.declare_table(
        f"{prefix}-connections",
        partition_key="connectionId",
        ttl_attribute="ttl",
        removal_policy=settings.removal_policy,
    )

    # =================================================================
    # Identity
    # =================================================================
    user_pool = topology.declare_user_pool(
        f"{prefix}-user-pool",
        sign_in_aliases=("email", "username"),
        password_policy={
            "min_length": settings.password_min_length,
            "require_lowercase": True,
            "require_uppercase": True,
            "require_digits": True,
        },
        removal_policy=settings.removal_policy,
    )
    client = topology.declare_user_pool_client(
        f"{prefix}-web",
        user_pool=user_pool,
        auth_flows=("user_password", "user_srp"),
    )
    identity_pool = (
        topology.declare_identity_pool(
            f"{prefix}-identities",
            clients=[client],
            removal_policy=settings.removal_policy,
        )
        if settings.identity_bridge
        else None
    )

    # =================================================================
    # Compute
    # =================================================================
    function_defaults = {
        "handler": settings.lambda_handler,
        "runtime": settings.lambda_runtime,
        "timeout": settings.lambda_timeout_seconds,
        "memory_size": settings.lambda_memory_mb,
    }
    auth_fn = topology.declare_function(
        f"{prefix}-auth",
        code=settings.handler_code("auth"),
        environment={
            "USERS_TABLE": users.ref("name"),
            "USER_POOL_ID": user_pool.ref("id"),
            "USER_POOL_CLIENT_ID": client.ref("id"),
        },
        grants=[(users, Permission.READ_WRITE)],
        **function_defaults,
    )
    game_fn = topology.declare_function(
        f"{prefix}-game",
        code=settings.handler_code("game"),
        environment={
            "USERS_TABLE": users.ref("name"),
            "GAMES_TABLE": games.ref("name"),
        },
        grants=[(users, Permission.READ_WRITE), (games, Permission.READ_WRITE)],
        **function_defaults,
    )
    websocket_fn = topology.declare_function(
        f"{prefix}-websocket",
        code=settings.handler_code("websocket"),
        environment={
            "CONNECTIONS_TABLE": connections.ref("name"),
            "GAMES_TABLE": games.ref("name"),
            "USERS_TABLE": users.ref("name"),
        },
        grants=[
            (users, Permission.READ_WRITE),
            (games, Permission.READ_WRITE),
            (connections, Permission.READ_WRITE),
        ],
        **function_defaults,
    )

    # =================================================================
    # REST API
    # =================================================================
    rest_api = topology.declare_rest_api(
        f"{prefix}-api",
        cors={
            "allow_origins": settings.cors_origins,
            "allow_methods": ("GET", "POST", "PUT", "DELETE", "OPTIONS"),
            "allow_headers": ("Content-Type", "Authorization"),
        },
        description=f"REST API for {settings.app_name}",
        stage_name=settings.rest_stage_name,
    )
    topology.add_rest_route(rest_api, "/auth", "POST", auth_fn)
    topology.add_rest_route(rest_api, "/stats/{userId}", "GET", game_fn)
    topology.add_rest_route(rest_api, "/leaderboard", "GET", game_fn)

    # =================================================================
    # WebSocket API
    # =================================================================
    websocket_api = topology.declare_websocket_api(
        f"{prefix}-websocket-api",
        description=f"WebSocket API for {settings.app_name} real-time communication",
    )
    for route_key in ("$connect", "$disconnect", *WEBSOCKET_ACTIONS):
        topology.add_websocket_route(websocket_api, route_key, websocket_fn)
    stage = topology.declare_websocket_stage(
        settings.websocket_stage_name, websocket_api, auto_deploy=True
    )

    # The websocket function pushes results to players on this stage only
    topology.allow_connection_management(websocket_fn, stage)

    # =================================================================
    # Static hosting
    # =================================================================
    distribution = None
    if settings.include_frontend:
        bucket = topology.declare_website_bucket(
            f"{prefix}-frontend",
            index_document="index.html",
            error_document="error.html",
            public_read=True,
            removal_policy=settings.removal_policy,
        )
        distribution = topology.declare_distribution(
            f"{prefix}-cdn",
            origin=bucket,
            viewer_protocol_policy="redirect-to-https",
        )

    # =================================================================
    # Outputs
    # =================================================================
    topology.record_output("rest_api_url", rest_api.ref("url"), "REST API URL")
    topology.record_output("websocket_api_url", stage.ref("url"), "WebSocket API URL")
    if distribution is not None:
        topology.record_output(
            "website_url",
            distribution.ref("domain_name", prefix="https://"),
            "Website URL",
        )
    topology.record_output("user_pool_id", user_pool.ref("id"), "Cognito User Pool ID")
    topology.record_output("user_pool_client_id", client.ref("id"), "Cognito User Pool Client ID")
    if identity_pool is not None:
        topology.record_output(
            "identity_pool_id", identity_pool.ref("id"), "Cognito Identity Pool ID"
        )

    return topology.seal()

"""RPS Battle Arena Infrastructure - Main Entry Point.

This module declares the game service topology and provisions it on AWS
using Pulumi with a serverless architecture.

Architecture:
- Storage: DynamoDB tables for users, games and live connections
- Auth: AWS Cognito user pool + web client (optional identity pool)
- Compute: AWS Lambda handlers for auth, game stats and WebSocket events
- API: API Gateway REST API + WebSocket API
- Frontend: S3 website bucket + CloudFront CDN (optional)
"""

import logging

import pulumi

from common.config import get_settings
from components.stack import provision
from topology.game_stack import declare_game_stack

# Get configuration
config = pulumi.Config()
environment = pulumi.get_stack()  # dev, staging, or prod

# Stack config overrides environment/.env settings
overrides = {
    "environment": environment,
    "handlers_root": config.get("handlers_root"),
    "include_frontend": config.get_bool("include_frontend"),
    "identity_bridge": config.get_bool("identity_bridge"),
    "removal_policy": config.get("removal_policy"),
    "websocket_stage_name": config.get("websocket_stage_name"),
    "log_level": config.get("log_level"),
}
settings = get_settings().model_copy(
    update={key: value for key, value in overrides.items() if value is not None}
)

logging.basicConfig(level=settings.log_level.upper(), format="%(levelname)s: %(message)s")

# Common tags for all resources
common_tags = {
    "Project": settings.project_name,
    "Environment": environment,
    "ManagedBy": "pulumi",
}

# =============================================================================
# Declaration pass - fails before anything is created
# =============================================================================
topology = declare_game_stack(settings)

# =============================================================================
# Provisioning
# =============================================================================
outputs = provision(topology, environment=environment, tags=common_tags)

# =============================================================================
# Stack Outputs
# =============================================================================
for name, value in outputs.items():
    pulumi.export(name, value)

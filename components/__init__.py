"""Components package for Pulumi infrastructure.

Serverless Architecture:
- TableComponent: DynamoDB tables
- CognitoComponent / UserPoolClientComponent / IdentityPoolComponent: Authentication
- FunctionComponent: Lambda handlers with their IAM roles
- RestApiComponent: API Gateway REST API
- WebSocketComponent: API Gateway WebSocket API and stage
- WebsiteBucketComponent / DistributionComponent: S3 + CloudFront static hosting
"""

from components.cognito import CognitoComponent, IdentityPoolComponent, UserPoolClientComponent
from components.frontend import DistributionComponent, WebsiteBucketComponent
from components.function import FunctionComponent
from components.rest_api import RestApiComponent
from components.stack import StackProvisioner, provision
from components.storage import TableComponent
from components.websocket import WebSocketComponent

__all__ = [
    "CognitoComponent",
    "DistributionComponent",
    "FunctionComponent",
    "IdentityPoolComponent",
    "RestApiComponent",
    "StackProvisioner",
    "TableComponent",
    "UserPoolClientComponent",
    "WebSocketComponent",
    "WebsiteBucketComponent",
    "provision",
]

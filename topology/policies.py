"""Bounded settings attached to declarations.

Values that the platform constrains (password length, function timeout,
CORS preflight caching) are modelled with pydantic so that an out-of-range
value is rejected while the graph is being declared.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from topology.errors import PolicyViolation


class RemovalPolicy(str, Enum):
    """What the provisioning engine does with a resource on stack teardown."""

    DESTROY = "destroy"
    RETAIN = "retain"


class CapacityMode(str, Enum):
    ON_DEMAND = "PAY_PER_REQUEST"
    PROVISIONED = "PROVISIONED"


class Permission(str, Enum):
    """Access level granted to a function on a storage resource."""

    READ = "read"
    WRITE = "write"
    READ_WRITE = "read-write"


# Mirrors the action sets of the usual table/bucket "grant data" helpers.
TABLE_READ_ACTIONS = (
    "dynamodb:BatchGetItem",
    "dynamodb:GetRecords",
    "dynamodb:GetShardIterator",
    "dynamodb:Query",
    "dynamodb:GetItem",
    "dynamodb:Scan",
    "dynamodb:ConditionCheckItem",
    "dynamodb:DescribeTable",
)
TABLE_WRITE_ACTIONS = (
    "dynamodb:BatchWriteItem",
    "dynamodb:PutItem",
    "dynamodb:UpdateItem",
    "dynamodb:DeleteItem",
    "dynamodb:DescribeTable",
)
BUCKET_READ_ACTIONS = ("s3:GetObject*", "s3:GetBucket*", "s3:List*")
BUCKET_WRITE_ACTIONS = ("s3:PutObject", "s3:PutObjectLegalHold", "s3:DeleteObject*", "s3:Abort*")


def actions_for(kind: str, permission: Permission) -> tuple[str, ...]:
    """Return the IAM actions a grant of ``permission`` on a ``kind`` resource implies."""
    if kind == "table":
        read, write = TABLE_READ_ACTIONS, TABLE_WRITE_ACTIONS
    elif kind == "bucket":
        read, write = BUCKET_READ_ACTIONS, BUCKET_WRITE_ACTIONS
    else:
        raise PolicyViolation(f"Cannot grant data access on a {kind}")

    if permission is Permission.READ:
        return read
    if permission is Permission.WRITE:
        return write
    return tuple(dict.fromkeys(read + write))


class PasswordPolicy(BaseModel):
    """User pool password requirements."""

    model_config = ConfigDict(frozen=True)

    min_length: int = Field(default=8, ge=6, le=99)
    require_lowercase: bool = True
    require_uppercase: bool = True
    require_digits: bool = True
    require_symbols: bool = False
    temporary_password_validity_days: int = Field(default=7, ge=1, le=365)


class CorsPolicy(BaseModel):
    """CORS preflight response applied uniformly to every route of a REST API."""

    model_config = ConfigDict(frozen=True)

    allow_origins: tuple[str, ...] = Field(default=("*",), min_length=1)
    allow_methods: tuple[str, ...] = Field(
        default=("GET", "POST", "PUT", "DELETE", "OPTIONS"), min_length=1
    )
    allow_headers: tuple[str, ...] = ("Content-Type", "Authorization")
    max_age: int = Field(default=300, ge=0, le=86400)


class FunctionLimits(BaseModel):
    model_config = ConfigDict(frozen=True)

    timeout: int = Field(default=30, ge=1, le=900)
    memory_size: int = Field(default=128, ge=128, le=10240)


def build_policy(model: type[BaseModel], owner: str, **values) -> BaseModel:
    """Instantiate a bounded model, converting validation failures to PolicyViolation.

    Args:
        model: The pydantic model class to build.
        owner: Name of the declaration the values belong to, used in the error.
        **values: Field values.

    Raises:
        PolicyViolation: If any value falls outside the model's bounds.
    """
    try:
        return model(**values)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or model.__name__
        raise PolicyViolation(f"{owner}: invalid {field}: {first['msg']}") from e


def coerce_policy(model: type[BaseModel], value, owner: str) -> BaseModel:
    """Accept an instance of ``model``, a mapping of its fields, or None for defaults."""
    if value is None:
        return build_policy(model, owner)
    if isinstance(value, model):
        # Instances built with model_construct skip bounds checks.
        return build_policy(model, owner, **value.model_dump())
    if isinstance(value, dict):
        return build_policy(model, owner, **value)
    raise PolicyViolation(f"{owner}: expected {model.__name__}, got {type(value).__name__}")

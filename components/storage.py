"""Storage Component - DynamoDB tables for the game service."""

import pulumi
import pulumi_aws as aws

from topology.handles import TableHandle
from topology.policies import RemovalPolicy


class TableComponent(pulumi.ComponentResource):
    """On-demand DynamoDB table with a string key schema and optional TTL."""

    def __init__(
        self,
        name: str,
        table: TableHandle,
        tags: dict | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("rpsarena:storage:Table", name, None, opts)

        self.tags = tags or {}

        key_attributes = [aws.dynamodb.TableAttributeArgs(name=table.partition_key, type="S")]
        if table.sort_key:
            key_attributes.append(aws.dynamodb.TableAttributeArgs(name=table.sort_key, type="S"))

        self.table = aws.dynamodb.Table(
            f"{name}-table",
            name=table.name,
            billing_mode=table.capacity_mode.value,
            hash_key=table.partition_key,
            range_key=table.sort_key,
            attributes=key_attributes,
            # Records whose TTL attribute is in the past are expired by DynamoDB
            ttl=aws.dynamodb.TableTtlArgs(attribute_name=table.ttl_attribute, enabled=True)
            if table.ttl_attribute
            else None,
            tags={**self.tags, "Name": table.name},
            opts=pulumi.ResourceOptions(
                parent=self,
                retain_on_delete=table.removal_policy is RemovalPolicy.RETAIN,
            ),
        )

        self.attributes = {
            "name": self.table.name,
            "arn": self.table.arn,
        }
        self.register_outputs(self.attributes)

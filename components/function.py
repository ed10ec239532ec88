"""Function Component - Lambda request handlers for the game service."""

import json

import pulumi
import pulumi_aws as aws

from topology.handles import FunctionHandle


class FunctionComponent(pulumi.ComponentResource):
    """Lambda function with its own execution role.

    Data grants are attached as one inline policy at creation. Statements
    whose resources only exist after the function (e.g. a WebSocket stage)
    are added afterwards with ``add_statement``.
    """

    def __init__(
        self,
        name: str,
        function: FunctionHandle,
        environment: dict[str, pulumi.Input[str]] | None = None,
        grant_statements: list[dict] | None = None,
        tags: dict | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("rpsarena:compute:Function", name, None, opts)

        self.tags = tags or {}
        self.name = name
        self.statement_policies: list[aws.iam.RolePolicy] = []

        # IAM Role for Lambda
        self.role = aws.iam.Role(
            f"{name}-role",
            assume_role_policy=json.dumps(
                {
                    "Version": "2012-10-17",
                    "Statement": [
                        {
                            "Action": "sts:AssumeRole",
                            "Principal": {"Service": "lambda.amazonaws.com"},
                            "Effect": "Allow",
                        }
                    ],
                }
            ),
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

        # Basic Lambda execution policy
        aws.iam.RolePolicyAttachment(
            f"{name}-basic-exec",
            role=self.role.name,
            policy_arn="arn:aws:iam::aws:policy/service-role/AWSLambdaBasicExecutionRole",
            opts=pulumi.ResourceOptions(parent=self),
        )

        # Table / bucket data access
        self.grants_policy = None
        if grant_statements:
            self.grants_policy = aws.iam.RolePolicy(
                f"{name}-grants",
                role=self.role.id,
                policy=pulumi.Output.json_dumps(
                    {"Version": "2012-10-17", "Statement": grant_statements}
                ),
                opts=pulumi.ResourceOptions(parent=self),
            )

        # CloudWatch Logs
        self.log_group = aws.cloudwatch.LogGroup(
            f"{name}-logs",
            name=f"/aws/lambda/{function.name}",
            retention_in_days=14,
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

        depends_on = [self.log_group]
        if self.grants_policy is not None:
            depends_on.append(self.grants_policy)

        self.function = aws.lambda_.Function(
            f"{name}-func",
            name=function.name,
            runtime=function.runtime,
            handler=function.handler,
            role=self.role.arn,
            code=pulumi.FileArchive(function.code),
            timeout=function.timeout,
            memory_size=function.memory_size,
            environment=aws.lambda_.FunctionEnvironmentArgs(variables=environment)
            if environment
            else None,
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self, depends_on=depends_on),
        )

        self.attributes = {
            "name": self.function.name,
            "arn": self.function.arn,
            "invoke_arn": self.function.invoke_arn,
        }
        self.register_outputs(self.attributes)

    def add_statement(
        self,
        actions: list[str],
        resources: list[pulumi.Input[str]],
        effect: str = "Allow",
    ) -> aws.iam.RolePolicy:
        """Attach one more inline statement to the function's role."""
        policy = aws.iam.RolePolicy(
            f"{self.name}-statement-{len(self.statement_policies)}",
            role=self.role.id,
            policy=pulumi.Output.json_dumps(
                {
                    "Version": "2012-10-17",
                    "Statement": [
                        {
                            "Effect": effect,
                            "Action": actions,
                            "Resource": resources,
                        }
                    ],
                }
            ),
            opts=pulumi.ResourceOptions(parent=self),
        )
        self.statement_policies.append(policy)
        return policy

"""Cognito Components - Authentication for RPS Battle Arena.

Creates:
- User Pool (owns credentials)
- User Pool Client (the web app's registration against the pool)
- Identity Pool (optional bridge from pool tokens to AWS credentials)
"""

import json

import pulumi
import pulumi_aws as aws

from topology.graph import AUTH_FLOWS
from topology.handles import IdentityPoolHandle, UserPoolClientHandle, UserPoolHandle
from topology.policies import RemovalPolicy


class CognitoComponent(pulumi.ComponentResource):
    """AWS Cognito User Pool for authentication."""

    def __init__(
        self,
        name: str,
        user_pool: UserPoolHandle,
        tags: dict | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("rpsarena:auth:Cognito", name, None, opts)

        self.tags = tags or {}
        retain = user_pool.removal_policy is RemovalPolicy.RETAIN
        policy = user_pool.password_policy
        aliases = ["phone_number" if a == "phone" else a for a in user_pool.sign_in_aliases]

        # With "username" allowed, email/phone are aliases of a chosen username;
        # otherwise they are the username itself.
        if "username" in aliases:
            alias_attributes = [a for a in aliases if a != "username"] or None
            username_attributes = None
        else:
            alias_attributes = None
            username_attributes = aliases

        recovery = []
        if "email" in user_pool.auto_verified_attributes:
            recovery.append(
                aws.cognito.UserPoolAccountRecoverySettingRecoveryMechanismArgs(
                    name="verified_email",
                    priority=1,
                )
            )

        # User Pool
        self.user_pool = aws.cognito.UserPool(
            f"{name}-user-pool",
            name=user_pool.name,
            alias_attributes=alias_attributes,
            username_attributes=username_attributes,
            auto_verified_attributes=list(user_pool.auto_verified_attributes),
            # Self sign-up
            admin_create_user_config=aws.cognito.UserPoolAdminCreateUserConfigArgs(
                allow_admin_create_user_only=not user_pool.self_sign_up,
            ),
            # Password policy
            password_policy=aws.cognito.UserPoolPasswordPolicyArgs(
                minimum_length=policy.min_length,
                require_lowercase=policy.require_lowercase,
                require_numbers=policy.require_digits,
                require_symbols=policy.require_symbols,
                require_uppercase=policy.require_uppercase,
                temporary_password_validity_days=policy.temporary_password_validity_days,
            ),
            # Account recovery
            account_recovery_setting=aws.cognito.UserPoolAccountRecoverySettingArgs(
                recovery_mechanisms=recovery,
            )
            if recovery
            else None,
            mfa_configuration="OFF",
            deletion_protection="ACTIVE" if retain else "INACTIVE",
            tags={**self.tags, "Name": user_pool.name},
            opts=pulumi.ResourceOptions(parent=self, retain_on_delete=retain),
        )

        self.attributes = {
            "id": self.user_pool.id,
            "arn": self.user_pool.arn,
            "endpoint": self.user_pool.endpoint,
        }
        self.register_outputs(self.attributes)


class UserPoolClientComponent(pulumi.ComponentResource):
    """Public (secretless) app client registered against a user pool."""

    def __init__(
        self,
        name: str,
        client: UserPoolClientHandle,
        user_pool_id: pulumi.Input[str],
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("rpsarena:auth:UserPoolClient", name, None, opts)

        explicit_auth_flows = [AUTH_FLOWS[flow] for flow in client.auth_flows]
        explicit_auth_flows.append("ALLOW_REFRESH_TOKEN_AUTH")

        self.client = aws.cognito.UserPoolClient(
            f"{name}-client",
            name=client.name,
            user_pool_id=user_pool_id,
            generate_secret=client.generate_secret,
            explicit_auth_flows=explicit_auth_flows,
            # Prevent user existence errors (security)
            prevent_user_existence_errors="ENABLED",
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.attributes = {"id": self.client.id}
        self.register_outputs(self.attributes)


class IdentityPoolComponent(pulumi.ComponentResource):
    """Cognito Identity Pool exchanging user pool tokens for AWS credentials."""

    def __init__(
        self,
        name: str,
        identity_pool: IdentityPoolHandle,
        providers: list[tuple[pulumi.Input[str], pulumi.Input[str]]],
        tags: dict | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        """
        Create the identity pool and its role attachment.

        Args:
            name: Resource name prefix
            identity_pool: Declared identity pool
            providers: (client id, user pool endpoint) pairs to federate
            tags: Common tags to apply
            opts: Pulumi resource options
        """
        super().__init__("rpsarena:auth:IdentityPool", name, None, opts)

        self.tags = tags or {}
        retain = identity_pool.removal_policy is RemovalPolicy.RETAIN

        self.identity_pool = aws.cognito.IdentityPool(
            f"{name}-identity-pool",
            # Identity pool names only allow word characters and spaces
            identity_pool_name=identity_pool.name.replace("-", "_"),
            allow_unauthenticated_identities=identity_pool.allow_unauthenticated,
            cognito_identity_providers=[
                aws.cognito.IdentityPoolCognitoIdentityProviderArgs(
                    client_id=client_id,
                    provider_name=provider_name,
                    server_side_token_check=False,
                )
                for client_id, provider_name in providers
            ],
            tags={**self.tags, "Name": identity_pool.name},
            opts=pulumi.ResourceOptions(parent=self, retain_on_delete=retain),
        )

        roles = {"authenticated": self._federated_role(name, "authenticated").arn}
        if identity_pool.allow_unauthenticated:
            roles["unauthenticated"] = self._federated_role(name, "unauthenticated").arn

        self.role_attachment = aws.cognito.IdentityPoolRoleAttachment(
            f"{name}-roles",
            identity_pool_id=self.identity_pool.id,
            roles=roles,
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.attributes = {"id": self.identity_pool.id}
        self.register_outputs(self.attributes)

    def _federated_role(self, name: str, amr: str) -> aws.iam.Role:
        """IAM role assumable by identities of this pool with the given amr claim."""
        return aws.iam.Role(
            f"{name}-{amr}-role",
            assume_role_policy=self.identity_pool.id.apply(
                lambda pool_id: json.dumps(
                    {
                        "Version": "2012-10-17",
                        "Statement": [
                            {
                                "Effect": "Allow",
                                "Principal": {"Federated": "cognito-identity.amazonaws.com"},
                                "Action": "sts:AssumeRoleWithWebIdentity",
                                "Condition": {
                                    "StringEquals": {
                                        "cognito-identity.amazonaws.com:aud": pool_id
                                    },
                                    "ForAnyValue:StringLike": {
                                        "cognito-identity.amazonaws.com:amr": amr
                                    },
                                },
                            }
                        ],
                    }
                )
            ),
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

"""Frontend Infrastructure Components - S3 website bucket + CloudFront.

This module creates the infrastructure for delivering the client app:
- S3 bucket configured for static website hosting
- CloudFront distribution for CDN and HTTPS

A public-read bucket is served through its website endpoint; a private
bucket is served through Origin Access Control instead.
"""

import json

import pulumi
import pulumi_aws as aws

from topology.handles import BucketHandle, DistributionHandle
from topology.policies import RemovalPolicy


class WebsiteBucketComponent(pulumi.ComponentResource):
    """S3 bucket with website hosting for the static client."""

    def __init__(
        self,
        name: str,
        bucket: BucketHandle,
        tags: dict | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("rpsarena:frontend:WebsiteBucket", name, None, opts)

        self.tags = tags or {}
        self.public_read = bucket.public_read
        child_opts = pulumi.ResourceOptions(parent=self)
        destroy = bucket.removal_policy is RemovalPolicy.DESTROY

        # =====================================================================
        # S3 Bucket - Static File Storage
        # =====================================================================
        self.bucket = aws.s3.BucketV2(
            f"{name}-bucket",
            bucket=bucket.name,
            # Empty the bucket on teardown so it can be deleted
            force_destroy=destroy,
            tags={**self.tags, "Name": bucket.name},
            opts=pulumi.ResourceOptions(parent=self, retain_on_delete=not destroy),
        )

        self.website = aws.s3.BucketWebsiteConfigurationV2(
            f"{name}-website",
            bucket=self.bucket.id,
            index_document=aws.s3.BucketWebsiteConfigurationV2IndexDocumentArgs(
                suffix=bucket.index_document,
            ),
            error_document=aws.s3.BucketWebsiteConfigurationV2ErrorDocumentArgs(
                key=bucket.error_document,
            )
            if bucket.error_document
            else None,
            opts=child_opts,
        )

        self.bucket_public_access_block = aws.s3.BucketPublicAccessBlock(
            f"{name}-bucket-public-access-block",
            bucket=self.bucket.id,
            block_public_acls=True,
            block_public_policy=not bucket.public_read,
            ignore_public_acls=True,
            restrict_public_buckets=not bucket.public_read,
            opts=child_opts,
        )

        if bucket.public_read:
            self.bucket_policy = aws.s3.BucketPolicy(
                f"{name}-bucket-policy",
                bucket=self.bucket.id,
                policy=self.bucket.arn.apply(_public_read_policy),
                opts=pulumi.ResourceOptions(
                    parent=self,
                    depends_on=[self.bucket_public_access_block],
                ),
            )

        self.attributes = {
            "name": self.bucket.bucket,
            "arn": self.bucket.arn,
            "website_endpoint": self.website.website_endpoint,
            "regional_domain_name": self.bucket.bucket_regional_domain_name,
        }
        self.register_outputs(self.attributes)


class DistributionComponent(pulumi.ComponentResource):
    """CloudFront distribution in front of a website bucket."""

    def __init__(
        self,
        name: str,
        distribution: DistributionHandle,
        origin: WebsiteBucketComponent,
        environment: str,
        tags: dict | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        """
        Create the CDN distribution.

        Args:
            name: Resource name prefix
            distribution: Declared distribution
            origin: Component of the distribution's origin bucket
            environment: Environment name (dev, staging, prod)
            tags: Common tags to apply
            opts: Pulumi resource options
        """
        super().__init__("rpsarena:frontend:Distribution", name, None, opts)

        self.tags = tags or {}
        child_opts = pulumi.ResourceOptions(parent=self)
        origin_id = f"s3-{distribution.origin.name}"

        if origin.public_read:
            # Website endpoints only speak HTTP
            origin_args = aws.cloudfront.DistributionOriginArgs(
                domain_name=origin.website.website_endpoint,
                origin_id=origin_id,
                custom_origin_config=aws.cloudfront.DistributionOriginCustomOriginConfigArgs(
                    http_port=80,
                    https_port=443,
                    origin_protocol_policy="http-only",
                    origin_ssl_protocols=["TLSv1.2"],
                ),
            )
        else:
            self.oac = aws.cloudfront.OriginAccessControl(
                f"{name}-oac",
                name=f"{distribution.name}-oac",
                description=f"OAC for {distribution.origin.name}",
                origin_access_control_origin_type="s3",
                signing_behavior="always",
                signing_protocol="sigv4",
                opts=child_opts,
            )
            origin_args = aws.cloudfront.DistributionOriginArgs(
                domain_name=origin.bucket.bucket_regional_domain_name,
                origin_id=origin_id,
                origin_access_control_id=self.oac.id,
            )

        self.distribution = aws.cloudfront.Distribution(
            f"{name}-distribution",
            enabled=True,
            is_ipv6_enabled=True,
            comment=f"{distribution.name} ({environment})",
            default_root_object=distribution.default_root_object,
            price_class=self._get_price_class(environment),
            origins=[origin_args],
            default_cache_behavior=aws.cloudfront.DistributionDefaultCacheBehaviorArgs(
                allowed_methods=["GET", "HEAD", "OPTIONS"],
                cached_methods=["GET", "HEAD"],
                target_origin_id=origin_id,
                viewer_protocol_policy=distribution.viewer_protocol_policy,
                compress=True,
                cache_policy_id=self._get_cache_policy(),
            ),
            restrictions=aws.cloudfront.DistributionRestrictionsArgs(
                geo_restriction=aws.cloudfront.DistributionRestrictionsGeoRestrictionArgs(
                    restriction_type="none",
                ),
            ),
            # CloudFront default certificate (*.cloudfront.net)
            viewer_certificate=aws.cloudfront.DistributionViewerCertificateArgs(
                cloudfront_default_certificate=True,
            ),
            tags={**self.tags, "Name": distribution.name},
            opts=child_opts,
        )

        if not origin.public_read:
            aws.s3.BucketPolicy(
                f"{name}-origin-policy",
                bucket=origin.bucket.id,
                policy=pulumi.Output.all(origin.bucket.arn, self.distribution.arn).apply(
                    lambda args: _cloudfront_read_policy(args[0], args[1])
                ),
                opts=pulumi.ResourceOptions(
                    parent=self,
                    depends_on=[origin.bucket_public_access_block],
                ),
            )

        self.attributes = {
            "id": self.distribution.id,
            "domain_name": self.distribution.domain_name,
        }
        self.register_outputs(self.attributes)

    def _get_cache_policy(self) -> str:
        """Get CloudFront managed cache policy ID."""
        # Managed-CachingOptimized policy
        return "658327ea-f89d-4fab-a63d-7e88639e58f6"

    def _get_price_class(self, environment: str) -> str:
        """Get CloudFront price class based on environment."""
        if environment == "prod":
            return "PriceClass_All"
        # US, Canada, Europe only outside production
        return "PriceClass_100"


def _public_read_policy(bucket_arn: str) -> str:
    return json.dumps(
        {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Sid": "PublicReadGetObject",
                    "Effect": "Allow",
                    "Principal": "*",
                    "Action": "s3:GetObject",
                    "Resource": f"{bucket_arn}/*",
                }
            ],
        }
    )


def _cloudfront_read_policy(bucket_arn: str, distribution_arn: str) -> str:
    return json.dumps(
        {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Sid": "AllowCloudFrontServicePrincipal",
                    "Effect": "Allow",
                    "Principal": {"Service": "cloudfront.amazonaws.com"},
                    "Action": "s3:GetObject",
                    "Resource": f"{bucket_arn}/*",
                    "Condition": {"StringEquals": {"AWS:SourceArn": distribution_arn}},
                }
            ],
        }
    )

"""S3/R2 storage for uploaded estimate documents using boto3."""

import logging
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from ..errors import InvalidInput
from ..models import EstimateDocument
from .base import DocumentSource

logger = logging.getLogger(__name__)

UPLOADS_PREFIX = "/uploads/"


class S3Client(DocumentSource):
    """S3-compatible document store client (supports Cloudflare R2)."""

    def __init__(
        self,
        endpoint_url: str,
        bucket_name: str,
        access_key_id: str,
        secret_access_key: str,
        s3_client=None,
    ):
        """Initialize S3 client.

        Args:
            endpoint_url: S3 endpoint URL (for R2: https://<account>.r2.cloudflarestorage.com)
            bucket_name: S3 bucket name
            access_key_id: AWS access key ID
            secret_access_key: AWS secret access key
            s3_client: Pre-built boto3 client (tests)
        """
        self.bucket_name = bucket_name
        self.s3_client = s3_client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )
        logger.info(f"S3 client initialized for bucket: {bucket_name}")

    @staticmethod
    def key_from_reference(reference: str) -> str:
        """Object key for a document reference.

        Public upload URLs (``https://.../uploads/<key>``) are reduced to
        the part after ``/uploads/``; anything else is used as the key.
        """
        if UPLOADS_PREFIX in reference:
            return reference.split(UPLOADS_PREFIX, 1)[1]
        return reference.lstrip("/")

    def object_exists(self, key: str) -> bool:
        """Check if object exists in S3."""
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "404":
                return False
            else:
                logger.error(f"Error checking object existence: {e}")
                raise

    def fetch_document(self, reference: str) -> EstimateDocument:
        """Download an uploaded document.

        Args:
            reference: Object key or public upload URL

        Returns:
            EstimateDocument with the stored ContentType

        Raises:
            InvalidInput: If the object does not exist
        """
        key = self.key_from_reference(reference)
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
            data = response["Body"].read()
        except ClientError as e:
            if e.response["Error"]["Code"] in ("404", "NoSuchKey"):
                raise InvalidInput(f"Document not found: {key}") from e
            logger.error(f"Error downloading document {key}: {e}")
            raise

        content_type: Optional[str] = response.get("ContentType")
        logger.debug(f"Downloaded document: {key} ({len(data)} bytes)")
        return EstimateDocument(
            reference=reference,
            content_type=content_type or "application/octet-stream",
            data=data,
        )

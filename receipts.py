"""
Receipt attachments: storage keys and the object-store client.

Receipts are written to a single publicly readable bucket through any
S3-compatible endpoint. The URL handed to clients is derived from the key on
every read, so moving the bucket needs no data migration.
"""

from __future__ import annotations

import enum
import json
import re
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional
from urllib.parse import quote

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from config import storage_credentials
from errors import UploadError
from logging_config import get_logger

log = get_logger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
FALLBACK_FILENAME = "receipt"

_DISALLOWED_RE = re.compile(r"[^a-z0-9.\-]+")
_DASH_RUN_RE = re.compile(r"-+")
_DASH_AROUND_DOT_RE = re.compile(r"-*\.-*")

_BUCKET_MISSING_CODES = {"NoSuchBucket"}
_BUCKET_EXISTS_CODES = {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}
# Stores without public access blocks (MinIO and most S3-compatible servers).
_NO_ACCESS_BLOCK_CODES = {"NoSuchPublicAccessBlockConfiguration", "NotImplemented", "XNotImplemented"}


def sanitize_filename(name: str) -> str:
	"""Reduce ``name`` to lowercase ``[a-z0-9.-]`` with single, inner dashes only.

	Dashes touching a dot are dropped so extensions stay clean.

	>>> sanitize_filename("My Photo (1).PNG")
	'my-photo-1.png'
	"""
	cleaned = _DISALLOWED_RE.sub("-", (name or "").lower())
	cleaned = _DASH_RUN_RE.sub("-", cleaned)
	cleaned = _DASH_AROUND_DOT_RE.sub(".", cleaned)
	return cleaned.strip("-")


def build_storage_key(original_filename: Optional[str], now_ms: Optional[int] = None) -> str:
	# The millisecond prefix keeps the key non-empty even when sanitizing yields "".
	if now_ms is None:
		now_ms = int(time.time() * 1000)
	return f"{now_ms}-{sanitize_filename(original_filename or FALLBACK_FILENAME)}"


class UploadStatus(enum.Enum):
	OK = "ok"
	BUCKET_MISSING = "bucket_missing"
	FAILED = "failed"


@dataclass(frozen=True)
class UploadResult:
	status: UploadStatus
	message: Optional[str] = None

	@classmethod
	def success(cls) -> "UploadResult":
		return cls(UploadStatus.OK)

	@classmethod
	def bucket_missing(cls, message: str) -> "UploadResult":
		return cls(UploadStatus.BUCKET_MISSING, message)

	@classmethod
	def failed(cls, message: str) -> "UploadResult":
		return cls(UploadStatus.FAILED, message)

	@property
	def succeeded(self) -> bool:
		return self.status is UploadStatus.OK


def _client_error_message(exc: ClientError) -> str:
	error = exc.response.get("Error", {})
	return error.get("Message") or error.get("Code") or str(exc)


def public_read_policy(bucket: str) -> str:
	return json.dumps(
		{
			"Version": "2012-10-17",
			"Statement": [
				{
					"Sid": "PublicReadReceipts",
					"Effect": "Allow",
					"Principal": "*",
					"Action": "s3:GetObject",
					"Resource": f"arn:aws:s3:::{bucket}/*",
				}
			],
		}
	)


class S3AttachmentStore:
	"""Receipt bucket on an S3-compatible object store."""

	def __init__(self, client: Any, bucket: str, public_base_url: Optional[str] = None) -> None:
		self._client = client
		self.bucket = bucket
		self._public_base_url = public_base_url.rstrip("/") if public_base_url else None

	def upload(self, key: str, data: bytes, content_type: str) -> UploadResult:
		try:
			# IfNoneMatch makes the write fail instead of replacing an existing key.
			self._client.put_object(
				Bucket=self.bucket,
				Key=key,
				Body=data,
				ContentType=content_type or DEFAULT_CONTENT_TYPE,
				IfNoneMatch="*",
			)
		except ClientError as exc:
			code = exc.response.get("Error", {}).get("Code")
			if code in _BUCKET_MISSING_CODES:
				return UploadResult.bucket_missing(_client_error_message(exc))
			return UploadResult.failed(_client_error_message(exc))
		except BotoCoreError as exc:
			return UploadResult.failed(str(exc))
		return UploadResult.success()

	def create_bucket(self) -> UploadResult:
		"""Create the bucket and make its objects publicly readable.

		Read access comes from a bucket policy; an already existing bucket still
		gets the policy.
		"""
		params: dict = {"Bucket": self.bucket}
		region = getattr(self._client.meta, "region_name", None)
		if region and region != "us-east-1":
			params["CreateBucketConfiguration"] = {"LocationConstraint": region}
		try:
			try:
				self._client.create_bucket(**params)
			except ClientError as exc:
				if exc.response.get("Error", {}).get("Code") not in _BUCKET_EXISTS_CODES:
					raise
			try:
				# New AWS buckets block public policies until this is lifted.
				self._client.delete_public_access_block(Bucket=self.bucket)
			except ClientError as exc:
				if exc.response.get("Error", {}).get("Code") not in _NO_ACCESS_BLOCK_CODES:
					raise
			self._client.put_bucket_policy(Bucket=self.bucket, Policy=public_read_policy(self.bucket))
		except ClientError as exc:
			return UploadResult.failed(_client_error_message(exc))
		except BotoCoreError as exc:
			return UploadResult.failed(str(exc))
		return UploadResult.success()

	def resolve_public_url(self, key: Optional[str]) -> Optional[str]:
		if not key or not self._public_base_url:
			return None
		return f"{self._public_base_url}/{quote(self.bucket)}/{quote(key)}"


def upload_with_fallback(store: Any, key: str, data: bytes, content_type: Optional[str]) -> str:
	"""Upload ``data`` under ``key``, creating the bucket once if it is missing.

	Returns the key on success and raises :class:`UploadError` otherwise.
	"""
	content_type = content_type or DEFAULT_CONTENT_TYPE
	result = store.upload(key, data, content_type)
	if result.status is UploadStatus.BUCKET_MISSING:
		log.warning("bucket %r missing, creating it and retrying upload of %s", store.bucket, key)
		created = store.create_bucket()
		if not created.succeeded:
			raise UploadError(created.message or "bucket creation failed")
		result = store.upload(key, data, content_type)
	if not result.succeeded:
		raise UploadError(result.message or "upload failed")
	return key


def build_attachment_store(config: Mapping[str, Any]) -> S3AttachmentStore:
	tier, access_key_id, secret_key = storage_credentials(config)
	endpoint = config.get("STORAGE_ENDPOINT_URL")
	client = boto3.client(
		"s3",
		endpoint_url=endpoint,
		region_name=config.get("STORAGE_REGION") or "us-east-1",
		aws_access_key_id=access_key_id,
		aws_secret_access_key=secret_key,
		config=BotoConfig(s3={"addressing_style": "path"}),
	)
	log.info("receipt storage: bucket=%s endpoint=%s credentials=%s", config.get("RECEIPTS_BUCKET"), endpoint, tier)
	return S3AttachmentStore(
		client,
		config.get("RECEIPTS_BUCKET") or "receipts",
		public_base_url=config.get("STORAGE_PUBLIC_URL") or endpoint,
	)

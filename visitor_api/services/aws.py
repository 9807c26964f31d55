from __future__ import annotations

import json
from typing import Any

import boto3
from botocore.config import Config

from ..config import settings

_ENDPOINT_SERVICES = {"s3"}


def boto3_client(service: str) -> Any:
    kwargs: dict[str, Any] = {"region_name": settings.aws.region, "config": Config(retries={"max_attempts": 3})}
    if settings.aws.access_key_id and settings.aws.secret_access_key:
        kwargs["aws_access_key_id"] = settings.aws.access_key_id
        kwargs["aws_secret_access_key"] = settings.aws.secret_access_key
    if settings.aws.s3_endpoint_url and service in _ENDPOINT_SERVICES:
        kwargs["endpoint_url"] = settings.aws.s3_endpoint_url
    return boto3.client(service, **kwargs)


def has_static_credentials() -> bool:
    return bool(settings.aws.access_key_id and settings.aws.secret_access_key)


def invoke_function(function_name: str, payload: dict[str, Any], client: Any | None = None) -> dict[str, Any]:
    """Synchronously invoke a Lambda and return its decoded JSON response."""
    lambda_client = client or boto3_client("lambda")
    response = lambda_client.invoke(
        FunctionName=function_name,
        InvocationType="RequestResponse",
        Payload=json.dumps(payload).encode("utf-8"),
    )
    body = response.get("Payload")
    raw = body.read() if body is not None else b""
    decoded: dict[str, Any] = {}
    if raw:
        parsed = json.loads(raw)
        decoded = parsed if isinstance(parsed, dict) else {"result": parsed}
    if response.get("FunctionError"):
        decoded.setdefault("error", response["FunctionError"])
    return decoded

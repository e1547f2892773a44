"""AWS credential providers."""

from aws_invoker.credentials.cache import CachingCredentialsProvider
from aws_invoker.credentials.providers import (
    Boto3CredentialsProvider,
    CredentialsProvider,
    CredentialTuple,
    StaticCredentialsProvider,
)

__all__ = [
    "Boto3CredentialsProvider",
    "CachingCredentialsProvider",
    "CredentialTuple",
    "CredentialsProvider",
    "StaticCredentialsProvider",
]

"""Data-driven invocation of AWS service operations."""

from aws_invoker.client import Client
from aws_invoker.credentials import (
    Boto3CredentialsProvider,
    CachingCredentialsProvider,
    CredentialTuple,
    StaticCredentialsProvider,
)
from aws_invoker.descriptor import ServiceDescriptor, load_descriptor, parse_descriptor
from aws_invoker.domain.anomalies import InvocationOutput, is_anomaly
from aws_invoker.engine import invoke
from aws_invoker.errors import InvokerError, UnknownOperation
from aws_invoker.retry import RetryPolicy

__version__ = "0.1.0"

__all__ = [
    "Boto3CredentialsProvider",
    "CachingCredentialsProvider",
    "Client",
    "CredentialTuple",
    "InvocationOutput",
    "InvokerError",
    "RetryPolicy",
    "ServiceDescriptor",
    "StaticCredentialsProvider",
    "UnknownOperation",
    "__version__",
    "invoke",
    "is_anomaly",
    "load_descriptor",
    "parse_descriptor",
]

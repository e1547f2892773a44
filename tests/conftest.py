from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from typing import Any

import pytest

from aws_invoker.config import Settings, clear_settings_cache
from aws_invoker.descriptor import ServiceDescriptor, parse_descriptor
from aws_invoker.domain.requests import HttpResponse, RequestSkeleton

_ENV_VARS = (
    "AWS_REGION",
    "AWS_DEFAULT_REGION",
    "AWS_PROFILE",
    "AWS_ENDPOINT_URL",
    "AWS_USE_FIPS_ENDPOINT",
    "AWS_USE_DUALSTACK_ENDPOINT",
    "AWS_INVOKER_MAX_RETRIES",
    "AWS_INVOKER_BASE_DELAY",
    "AWS_INVOKER_MAX_BACKOFF",
    "AWS_INVOKER_ATTEMPT_TIMEOUT",
    "AWS_INVOKER_VALIDATE_REQUESTS",
    "AWS_INVOKER_CREDENTIAL_REFRESH_BUFFER",
    "LOG_LEVEL",
    "LOG_FILE",
)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def _close_default_event_loop() -> None:
    yield
    policy = asyncio.get_event_loop_policy()
    local = getattr(policy, "_local", None)
    loop = getattr(local, "_loop", None) if local is not None else None
    if loop is not None and not loop.is_running() and not loop.is_closed():
        with contextlib.suppress(Exception):
            loop.close()
    if loop is not None:
        with contextlib.suppress(Exception):
            policy.set_event_loop(None)


class FakeTransport:
    """Scripted transport: each entry is an ``HttpResponse``, an exception or a callable."""

    def __init__(self, script: list[Any]) -> None:
        self.script = list(script)
        self.requests: list[RequestSkeleton] = []
        self.closed = False

    async def send(self, request: RequestSkeleton) -> HttpResponse:
        self.requests.append(request)
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            result = step(request)
            if asyncio.iscoroutine(result):
                result = await result
            return result
        return step

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def make_transport() -> Callable[..., FakeTransport]:
    def factory(*script: Any) -> FakeTransport:
        return FakeTransport(list(script))

    return factory


@pytest.fixture
def settings() -> Settings:
    return Settings()


S3_API: dict[str, Any] = {
    "metadata": {
        "protocol": "rest-xml",
        "endpointPrefix": "s3",
        "signingName": "s3",
        "apiVersion": "2006-03-01",
        "serviceId": "S3",
        "globalEndpoint": "s3.amazonaws.com",
    },
    "operations": {
        "GetObject": {
            "name": "GetObject",
            "http": {"method": "GET", "requestUri": "/{Bucket}/{Key+}"},
            "input": {"shape": "GetObjectRequest"},
            "output": {"shape": "GetObjectOutput"},
            "errors": [{"shape": "NoSuchKey"}],
        },
        "HeadObject": {
            "name": "HeadObject",
            "http": {"method": "HEAD", "requestUri": "/{Bucket}/{Key+}"},
            "input": {"shape": "GetObjectRequest"},
            "output": {"shape": "HeadObjectOutput"},
        },
        "PutObject": {
            "name": "PutObject",
            "http": {"method": "PUT", "requestUri": "/{Bucket}/{Key+}"},
            "input": {"shape": "PutObjectRequest"},
            "output": {"shape": "PutObjectOutput"},
        },
        "ListObjectsV2": {
            "name": "ListObjectsV2",
            "http": {"method": "GET", "requestUri": "/{Bucket}?list-type=2"},
            "input": {"shape": "ListObjectsV2Request"},
            "output": {"shape": "ListObjectsV2Output"},
        },
        "PutBucketTagging": {
            "name": "PutBucketTagging",
            "http": {"method": "PUT", "requestUri": "/{Bucket}?tagging"},
            "input": {"shape": "PutBucketTaggingRequest"},
            "httpChecksumRequired": True,
        },
    },
    "shapes": {
        "GetObjectRequest": {
            "type": "structure",
            "required": ["Bucket", "Key"],
            "members": {
                "Bucket": {"shape": "BucketName", "location": "uri", "locationName": "Bucket"},
                "Key": {"shape": "ObjectKey", "location": "uri", "locationName": "Key"},
                "Range": {"shape": "String", "location": "header", "locationName": "Range"},
                "IfModifiedSince": {
                    "shape": "Timestamp",
                    "location": "header",
                    "locationName": "If-Modified-Since",
                },
                "VersionId": {"shape": "String", "location": "querystring", "locationName": "versionId"},
            },
        },
        "GetObjectOutput": {
            "type": "structure",
            "members": {
                "Body": {"shape": "StreamingBody"},
                "ContentLength": {"shape": "Long", "location": "header", "locationName": "Content-Length"},
                "ETag": {"shape": "String", "location": "header", "locationName": "ETag"},
                "LastModified": {"shape": "Timestamp", "location": "header", "locationName": "Last-Modified"},
                "Metadata": {"shape": "Metadata", "location": "headers", "locationName": "x-amz-meta-"},
            },
            "payload": "Body",
        },
        "HeadObjectOutput": {
            "type": "structure",
            "members": {
                "ContentLength": {"shape": "Long", "location": "header", "locationName": "Content-Length"},
            },
        },
        "PutObjectRequest": {
            "type": "structure",
            "required": ["Bucket", "Key"],
            "members": {
                "Body": {"shape": "StreamingBody"},
                "Bucket": {"shape": "BucketName", "location": "uri", "locationName": "Bucket"},
                "Key": {"shape": "ObjectKey", "location": "uri", "locationName": "Key"},
                "ContentType": {"shape": "String", "location": "header", "locationName": "Content-Type"},
                "Metadata": {"shape": "Metadata", "location": "headers", "locationName": "x-amz-meta-"},
            },
            "payload": "Body",
        },
        "PutObjectOutput": {
            "type": "structure",
            "members": {"ETag": {"shape": "String", "location": "header", "locationName": "ETag"}},
        },
        "ListObjectsV2Request": {
            "type": "structure",
            "required": ["Bucket"],
            "members": {
                "Bucket": {"shape": "BucketName", "location": "uri", "locationName": "Bucket"},
                "Prefix": {"shape": "String", "location": "querystring", "locationName": "prefix"},
                "MaxKeys": {"shape": "Integer", "location": "querystring", "locationName": "max-keys"},
            },
        },
        "ListObjectsV2Output": {
            "type": "structure",
            "members": {
                "Name": {"shape": "BucketName"},
                "KeyCount": {"shape": "Integer"},
                "IsTruncated": {"shape": "Boolean"},
                "Contents": {"shape": "ObjectList"},
            },
        },
        "ObjectList": {"type": "list", "member": {"shape": "Object"}, "flattened": True},
        "Object": {
            "type": "structure",
            "members": {
                "Key": {"shape": "ObjectKey"},
                "Size": {"shape": "Long"},
                "LastModified": {"shape": "Timestamp"},
            },
        },
        "PutBucketTaggingRequest": {
            "type": "structure",
            "required": ["Bucket", "Tagging"],
            "members": {
                "Bucket": {"shape": "BucketName", "location": "uri", "locationName": "Bucket"},
                "Tagging": {
                    "shape": "Tagging",
                    "locationName": "Tagging",
                    "xmlNamespace": {"uri": "http://s3.amazonaws.com/doc/2006-03-01/"},
                },
            },
            "payload": "Tagging",
        },
        "Tagging": {
            "type": "structure",
            "required": ["TagSet"],
            "members": {"TagSet": {"shape": "TagSet"}},
        },
        "TagSet": {"type": "list", "member": {"shape": "Tag", "locationName": "Tag"}},
        "Tag": {
            "type": "structure",
            "required": ["Key", "Value"],
            "members": {"Key": {"shape": "String"}, "Value": {"shape": "String"}},
        },
        "NoSuchKey": {"type": "structure", "members": {}, "exception": True},
        "BucketName": {"type": "string"},
        "ObjectKey": {"type": "string", "min": 1},
        "String": {"type": "string"},
        "Integer": {"type": "integer"},
        "Long": {"type": "long"},
        "Boolean": {"type": "boolean"},
        "Timestamp": {"type": "timestamp"},
        "StreamingBody": {"type": "blob", "streaming": True},
        "Metadata": {"type": "map", "key": {"shape": "String"}, "value": {"shape": "String"}},
    },
}


LAMBDA_API: dict[str, Any] = {
    "metadata": {
        "protocol": "rest-json",
        "endpointPrefix": "lambda",
        "signingName": "lambda",
        "apiVersion": "2015-03-31",
    },
    "operations": {
        "GetFunction": {
            "name": "GetFunction",
            "http": {"method": "GET", "requestUri": "/2015-03-31/functions/{FunctionName}", "responseCode": 200},
            "input": {"shape": "GetFunctionRequest"},
            "output": {"shape": "GetFunctionResponse"},
            "errors": [{"shape": "ResourceNotFoundException"}, {"shape": "TooManyRequestsException"}],
        },
        "Invoke": {
            "name": "Invoke",
            "http": {"method": "POST", "requestUri": "/2015-03-31/functions/{FunctionName}/invocations"},
            "input": {"shape": "InvocationRequest"},
            "output": {"shape": "InvocationResponse"},
        },
        "TagResource": {
            "name": "TagResource",
            "http": {"method": "POST", "requestUri": "/2017-03-31/tags/{ARN}", "responseCode": 204},
            "input": {"shape": "TagResourceRequest"},
        },
        "ListFunctions": {
            "name": "ListFunctions",
            "http": {"method": "GET", "requestUri": "/2015-03-31/functions/"},
            "input": {"shape": "ListFunctionsRequest"},
            "output": {"shape": "ListFunctionsResponse"},
        },
    },
    "shapes": {
        "GetFunctionRequest": {
            "type": "structure",
            "required": ["FunctionName"],
            "members": {
                "FunctionName": {"shape": "String", "location": "uri", "locationName": "FunctionName"},
                "Qualifier": {"shape": "String", "location": "querystring", "locationName": "Qualifier"},
            },
        },
        "GetFunctionResponse": {
            "type": "structure",
            "members": {
                "Configuration": {"shape": "FunctionConfiguration"},
                "Tags": {"shape": "Tags"},
            },
        },
        "FunctionConfiguration": {
            "type": "structure",
            "members": {
                "FunctionName": {"shape": "String"},
                "MemorySize": {"shape": "Integer"},
                "LastModified": {"shape": "String"},
            },
        },
        "InvocationRequest": {
            "type": "structure",
            "required": ["FunctionName"],
            "members": {
                "FunctionName": {"shape": "String", "location": "uri", "locationName": "FunctionName"},
                "InvocationType": {
                    "shape": "String",
                    "location": "header",
                    "locationName": "X-Amz-Invocation-Type",
                },
                "Payload": {"shape": "Blob"},
            },
            "payload": "Payload",
        },
        "InvocationResponse": {
            "type": "structure",
            "members": {
                "StatusCode": {"shape": "Integer", "location": "statusCode"},
                "FunctionError": {
                    "shape": "String",
                    "location": "header",
                    "locationName": "X-Amz-Function-Error",
                },
                "Payload": {"shape": "Blob"},
            },
            "payload": "Payload",
        },
        "TagResourceRequest": {
            "type": "structure",
            "required": ["Resource", "Tags"],
            "members": {
                "Resource": {"shape": "String", "location": "uri", "locationName": "ARN"},
                "Tags": {"shape": "Tags"},
            },
        },
        "ListFunctionsRequest": {
            "type": "structure",
            "members": {
                "Marker": {"shape": "String", "location": "querystring", "locationName": "Marker"},
                "MaxItems": {"shape": "Integer", "location": "querystring", "locationName": "MaxItems"},
            },
        },
        "ListFunctionsResponse": {
            "type": "structure",
            "members": {
                "Functions": {"shape": "FunctionList"},
                "NextMarker": {"shape": "String"},
            },
        },
        "FunctionList": {"type": "list", "member": {"shape": "FunctionConfiguration"}},
        "Tags": {"type": "map", "key": {"shape": "String"}, "value": {"shape": "String"}},
        "ResourceNotFoundException": {
            "type": "structure",
            "members": {"Type": {"shape": "String"}, "Message": {"shape": "String"}},
            "error": {"httpStatusCode": 404},
            "exception": True,
        },
        "TooManyRequestsException": {
            "type": "structure",
            "members": {
                "retryAfterSeconds": {"shape": "String", "location": "header", "locationName": "Retry-After"},
                "Reason": {"shape": "String"},
            },
            "error": {"httpStatusCode": 429},
            "exception": True,
        },
        "String": {"type": "string"},
        "Integer": {"type": "integer"},
        "Blob": {"type": "blob"},
    },
}


DYNAMODB_API: dict[str, Any] = {
    "metadata": {
        "protocol": "json",
        "jsonVersion": "1.0",
        "targetPrefix": "DynamoDB_20120810",
        "endpointPrefix": "dynamodb",
        "signingName": "dynamodb",
        "apiVersion": "2012-08-10",
    },
    "operations": {
        "ListTables": {
            "name": "ListTables",
            "http": {"method": "POST", "requestUri": "/"},
            "input": {"shape": "ListTablesInput"},
            "output": {"shape": "ListTablesOutput"},
        },
        "DescribeTable": {
            "name": "DescribeTable",
            "http": {"method": "POST", "requestUri": "/"},
            "input": {"shape": "DescribeTableInput"},
            "output": {"shape": "DescribeTableOutput"},
            "errors": [{"shape": "ResourceNotFoundException"}],
        },
        "PutItem": {
            "name": "PutItem",
            "http": {"method": "POST", "requestUri": "/"},
            "input": {"shape": "PutItemInput"},
            "output": {"shape": "PutItemOutput"},
        },
    },
    "shapes": {
        "ListTablesInput": {
            "type": "structure",
            "members": {
                "ExclusiveStartTableName": {"shape": "TableName"},
                "Limit": {"shape": "ListTablesInputLimit"},
            },
        },
        "ListTablesInputLimit": {"type": "integer", "max": 100, "min": 1},
        "ListTablesOutput": {
            "type": "structure",
            "members": {
                "TableNames": {"shape": "TableNameList"},
                "LastEvaluatedTableName": {"shape": "TableName"},
            },
        },
        "TableNameList": {"type": "list", "member": {"shape": "TableName"}},
        "TableName": {"type": "string", "max": 255, "min": 3},
        "DescribeTableInput": {
            "type": "structure",
            "required": ["TableName"],
            "members": {"TableName": {"shape": "TableName"}},
        },
        "DescribeTableOutput": {
            "type": "structure",
            "members": {"Table": {"shape": "TableDescription"}},
        },
        "TableDescription": {
            "type": "structure",
            "members": {
                "TableName": {"shape": "TableName"},
                "TableStatus": {"shape": "TableStatus"},
                "CreationDateTime": {"shape": "Date"},
                "ItemCount": {"shape": "Long"},
            },
        },
        "TableStatus": {"type": "string", "enum": ["CREATING", "ACTIVE", "DELETING"]},
        "Date": {"type": "timestamp"},
        "Long": {"type": "long"},
        "ResourceNotFoundException": {
            "type": "structure",
            "members": {"message": {"shape": "ErrorMessage"}},
            "exception": True,
        },
        "ErrorMessage": {"type": "string"},
        "PutItemInput": {
            "type": "structure",
            "required": ["TableName", "Item"],
            "members": {
                "TableName": {"shape": "TableName"},
                "Item": {"shape": "PutItemInputAttributeMap"},
                "ReturnValues": {"shape": "ReturnValue"},
            },
        },
        "PutItemInputAttributeMap": {
            "type": "map",
            "key": {"shape": "AttributeName"},
            "value": {"shape": "AttributeValue"},
        },
        "AttributeName": {"type": "string"},
        "AttributeValue": {
            "type": "structure",
            "members": {
                "S": {"shape": "StringAttributeValue"},
                "N": {"shape": "NumberAttributeValue"},
                "B": {"shape": "BinaryAttributeValue"},
                "L": {"shape": "ListAttributeValue"},
                "M": {"shape": "MapAttributeValue"},
            },
            "union": True,
        },
        "StringAttributeValue": {"type": "string"},
        "NumberAttributeValue": {"type": "string"},
        "BinaryAttributeValue": {"type": "blob"},
        "ListAttributeValue": {"type": "list", "member": {"shape": "AttributeValue"}},
        "MapAttributeValue": {
            "type": "map",
            "key": {"shape": "AttributeName"},
            "value": {"shape": "AttributeValue"},
        },
        "PutItemOutput": {"type": "structure", "members": {}},
        "ReturnValue": {"type": "string", "enum": ["NONE", "ALL_OLD"]},
    },
}


IAM_API: dict[str, Any] = {
    "metadata": {
        "protocol": "query",
        "endpointPrefix": "iam",
        "signingName": "iam",
        "apiVersion": "2010-05-08",
        "globalEndpoint": "iam.amazonaws.com",
        "xmlNamespace": "https://iam.amazonaws.com/doc/2010-05-08/",
    },
    "operations": {
        "ListUsers": {
            "name": "ListUsers",
            "http": {"method": "POST", "requestUri": "/"},
            "input": {"shape": "ListUsersRequest"},
            "output": {"shape": "ListUsersResponse", "resultWrapper": "ListUsersResult"},
        },
        "GetUser": {
            "name": "GetUser",
            "http": {"method": "POST", "requestUri": "/"},
            "input": {"shape": "GetUserRequest"},
            "output": {"shape": "GetUserResponse", "resultWrapper": "GetUserResult"},
            "errors": [{"shape": "NoSuchEntityException"}],
        },
        "TagUser": {
            "name": "TagUser",
            "http": {"method": "POST", "requestUri": "/"},
            "input": {"shape": "TagUserRequest"},
        },
    },
    "shapes": {
        "ListUsersRequest": {
            "type": "structure",
            "members": {
                "PathPrefix": {"shape": "pathPrefixType"},
                "Marker": {"shape": "markerType"},
                "MaxItems": {"shape": "maxItemsType"},
            },
        },
        "ListUsersResponse": {
            "type": "structure",
            "required": ["Users"],
            "members": {
                "Users": {"shape": "userListType"},
                "IsTruncated": {"shape": "booleanType"},
                "Marker": {"shape": "markerType"},
            },
        },
        "GetUserRequest": {"type": "structure", "members": {"UserName": {"shape": "userNameType"}}},
        "GetUserResponse": {
            "type": "structure",
            "required": ["User"],
            "members": {"User": {"shape": "User"}},
        },
        "TagUserRequest": {
            "type": "structure",
            "required": ["UserName", "Tags"],
            "members": {
                "UserName": {"shape": "userNameType"},
                "Tags": {"shape": "tagListType"},
            },
        },
        "userListType": {"type": "list", "member": {"shape": "User"}},
        "User": {
            "type": "structure",
            "members": {
                "UserName": {"shape": "userNameType"},
                "UserId": {"shape": "idType"},
                "CreateDate": {"shape": "dateType"},
            },
        },
        "tagListType": {"type": "list", "member": {"shape": "Tag"}},
        "Tag": {
            "type": "structure",
            "required": ["Key", "Value"],
            "members": {"Key": {"shape": "tagKeyType"}, "Value": {"shape": "tagValueType"}},
        },
        "NoSuchEntityException": {
            "type": "structure",
            "members": {"message": {"shape": "noSuchEntityMessage"}},
            "error": {"code": "NoSuchEntity", "httpStatusCode": 404, "senderFault": True},
            "exception": True,
        },
        "pathPrefixType": {"type": "string"},
        "markerType": {"type": "string"},
        "maxItemsType": {"type": "integer", "min": 1, "max": 1000},
        "booleanType": {"type": "boolean"},
        "userNameType": {"type": "string"},
        "idType": {"type": "string"},
        "dateType": {"type": "timestamp"},
        "tagKeyType": {"type": "string"},
        "tagValueType": {"type": "string"},
        "noSuchEntityMessage": {"type": "string"},
    },
}


EC2_API: dict[str, Any] = {
    "metadata": {
        "protocol": "ec2",
        "endpointPrefix": "ec2",
        "signingName": "ec2",
        "apiVersion": "2016-11-15",
    },
    "operations": {
        "DescribeInstances": {
            "name": "DescribeInstances",
            "http": {"method": "POST", "requestUri": "/"},
            "input": {"shape": "DescribeInstancesRequest"},
            "output": {"shape": "DescribeInstancesResult"},
        },
        "RunInstances": {
            "name": "RunInstances",
            "http": {"method": "POST", "requestUri": "/"},
            "input": {"shape": "RunInstancesRequest"},
            "output": {"shape": "Reservation"},
        },
    },
    "shapes": {
        "DescribeInstancesRequest": {
            "type": "structure",
            "members": {
                "Filters": {"shape": "FilterList", "locationName": "Filter"},
                "InstanceIds": {"shape": "InstanceIdStringList", "locationName": "InstanceId"},
                "DryRun": {"shape": "Boolean", "locationName": "dryRun"},
                "MaxResults": {"shape": "Integer"},
            },
        },
        "FilterList": {"type": "list", "member": {"shape": "Filter", "locationName": "Filter"}},
        "Filter": {
            "type": "structure",
            "members": {
                "Name": {"shape": "String"},
                "Values": {"shape": "ValueStringList", "locationName": "Value"},
            },
        },
        "ValueStringList": {"type": "list", "member": {"shape": "String", "locationName": "item"}},
        "InstanceIdStringList": {
            "type": "list",
            "member": {"shape": "String", "locationName": "InstanceId"},
        },
        "DescribeInstancesResult": {
            "type": "structure",
            "members": {
                "Reservations": {"shape": "ReservationList", "locationName": "reservationSet"},
                "NextToken": {"shape": "String", "locationName": "nextToken"},
            },
        },
        "ReservationList": {"type": "list", "member": {"shape": "Reservation", "locationName": "item"}},
        "Reservation": {
            "type": "structure",
            "members": {
                "ReservationId": {"shape": "String", "locationName": "reservationId"},
                "Instances": {"shape": "InstanceList", "locationName": "instancesSet"},
            },
        },
        "InstanceList": {"type": "list", "member": {"shape": "Instance", "locationName": "item"}},
        "Instance": {
            "type": "structure",
            "members": {
                "InstanceId": {"shape": "String", "locationName": "instanceId"},
                "LaunchTime": {"shape": "DateTime", "locationName": "launchTime"},
            },
        },
        "RunInstancesRequest": {
            "type": "structure",
            "required": ["MaxCount", "MinCount"],
            "members": {
                "ImageId": {"shape": "String"},
                "MaxCount": {"shape": "Integer"},
                "MinCount": {"shape": "Integer"},
                "ClientToken": {"shape": "String", "idempotencyToken": True, "locationName": "clientToken"},
            },
        },
        "String": {"type": "string"},
        "Integer": {"type": "integer"},
        "Boolean": {"type": "boolean"},
        "DateTime": {"type": "timestamp"},
    },
}


@pytest.fixture
def s3_service() -> ServiceDescriptor:
    return parse_descriptor(S3_API)


@pytest.fixture
def lambda_service() -> ServiceDescriptor:
    return parse_descriptor(LAMBDA_API)


@pytest.fixture
def dynamodb_service() -> ServiceDescriptor:
    return parse_descriptor(DYNAMODB_API)


@pytest.fixture
def iam_service() -> ServiceDescriptor:
    return parse_descriptor(IAM_API)


@pytest.fixture
def ec2_service() -> ServiceDescriptor:
    return parse_descriptor(EC2_API)


@pytest.fixture
def dynamodb_api() -> dict[str, Any]:
    return DYNAMODB_API

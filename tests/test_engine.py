"""End-to-end invocation tests over a scripted transport."""

from __future__ import annotations

import asyncio
import json

import pytest

from aws_invoker import Client, RetryPolicy, StaticCredentialsProvider, invoke, is_anomaly
from aws_invoker.domain.anomalies import CATEGORY_KEY, ERROR_CODE_KEY, SOURCE_KEY, STATUS_KEY
from aws_invoker.domain.requests import HttpResponse
from aws_invoker.engine import USER_AGENT, VALIDATION_KEY
from aws_invoker.errors import CredentialsError, TransportError, UnknownOperation

from conftest import DYNAMODB_API, IAM_API, S3_API

LIST_TABLES_OK = HttpResponse(200, {"x-amzn-requestid": "req-1"}, b'{"TableNames": ["orders", "users"]}')
UNAVAILABLE = HttpResponse(503, {}, b"")


class _FailingProvider:
    async def fetch(self):
        raise CredentialsError("credentials expired")


class _SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _client(api, transport, settings, **kwargs) -> Client:
    kwargs.setdefault("region", "us-east-1")
    kwargs.setdefault("credentials_provider", StaticCredentialsProvider("AKID", "SECRET"))
    return Client(api, transport=transport, settings=settings, **kwargs)


class TestSuccessfulInvocation:
    @pytest.mark.asyncio
    async def test_signed_request_and_metadata(self, make_transport, settings) -> None:
        transport = make_transport(LIST_TABLES_OK)
        client = _client(DYNAMODB_API, transport, settings)

        result = await client.invoke("ListTables", {"Limit": 10})

        assert not is_anomaly(result)
        assert result == {"TableNames": ["orders", "users"]}
        assert result.metadata["attempts"] == 1
        assert result.metadata["http_response"].status == 200

        sent = transport.requests[0]
        assert sent is result.metadata["http_request"]
        assert sent.host == "dynamodb.us-east-1.amazonaws.com"
        assert sent.headers["X-Amz-Target"] == "DynamoDB_20120810.ListTables"
        assert sent.headers["Authorization"].startswith(
            "AWS4-HMAC-SHA256 Credential=AKID/"
        )
        assert "/us-east-1/dynamodb/aws4_request" in sent.headers["Authorization"]
        assert sent.headers["User-Agent"] == USER_AGENT
        assert json.loads(sent.body) == {"Limit": 10}

    @pytest.mark.asyncio
    async def test_module_level_invoke(self, make_transport, settings) -> None:
        client = _client(DYNAMODB_API, make_transport(LIST_TABLES_OK), settings)
        result = await invoke(client, "ListTables")
        assert result["TableNames"] == ["orders", "users"]

    @pytest.mark.asyncio
    async def test_endpoint_override(self, make_transport, settings) -> None:
        transport = make_transport(LIST_TABLES_OK)
        client = _client(DYNAMODB_API, transport, settings, endpoint_override="http://localhost:4566")

        await client.invoke("ListTables")

        sent = transport.requests[0]
        assert (sent.scheme, sent.host, sent.port) == ("http", "localhost", 4566)
        assert "/us-east-1/dynamodb/aws4_request" in sent.headers["Authorization"]

    @pytest.mark.parametrize(
        "override",
        [
            {"protocol": "http", "hostname": "localhost", "port": 4566, "path": "/base"},
            "http://localhost:4566/base",
        ],
    )
    @pytest.mark.asyncio
    async def test_endpoint_override_path_is_kept(self, make_transport, settings, override) -> None:
        transport = make_transport(LIST_TABLES_OK)
        client = _client(DYNAMODB_API, transport, settings, endpoint_override=override)

        await client.invoke("ListTables")

        sent = transport.requests[0]
        assert (sent.scheme, sent.host, sent.port) == ("http", "localhost", 4566)
        assert sent.path == "/base"

    @pytest.mark.asyncio
    async def test_global_endpoint_for_iam(self, make_transport, settings) -> None:
        body = (
            b"<ListUsersResponse><ListUsersResult><IsTruncated>false</IsTruncated>"
            b"<Users/></ListUsersResult></ListUsersResponse>"
        )
        transport = make_transport(HttpResponse(200, {}, body))
        client = _client(IAM_API, transport, settings, region="eu-west-1")

        result = await client.invoke("ListUsers")

        assert not is_anomaly(result)
        assert transport.requests[0].host == "iam.amazonaws.com"
        assert "/us-east-1/iam/aws4_request" in transport.requests[0].headers["Authorization"]


class TestRetries:
    @pytest.mark.asyncio
    async def test_retries_unavailable_then_succeeds(self, make_transport, settings) -> None:
        sleeper = _SleepRecorder()
        transport = make_transport(UNAVAILABLE, UNAVAILABLE, UNAVAILABLE, LIST_TABLES_OK)
        client = _client(
            DYNAMODB_API, transport, settings, retry_policy=RetryPolicy(max_retries=5), sleep=sleeper
        )

        result = await client.invoke("ListTables")

        assert not is_anomaly(result)
        assert result.metadata["attempts"] == 4
        assert sleeper.delays == pytest.approx([0.1, 0.2, 0.4])
        assert len(transport.requests) == 4

    @pytest.mark.asyncio
    async def test_each_attempt_is_signed_afresh(self, make_transport, settings) -> None:
        transport = make_transport(UNAVAILABLE, LIST_TABLES_OK)
        client = _client(DYNAMODB_API, transport, settings, sleep=_SleepRecorder())

        await client.invoke("ListTables")

        first, second = transport.requests
        assert first is not second
        assert "Authorization" in first.headers
        assert "Authorization" in second.headers

    @pytest.mark.asyncio
    async def test_exhausted_retries_return_last_anomaly(self, make_transport, settings) -> None:
        transport = make_transport(UNAVAILABLE)
        client = _client(
            DYNAMODB_API, transport, settings, retry_policy=RetryPolicy(max_retries=3), sleep=_SleepRecorder()
        )

        result = await client.invoke("ListTables")

        assert result[CATEGORY_KEY] == "unavailable"
        assert result[STATUS_KEY] == 503
        assert result.metadata["attempts"] == 4
        assert len(transport.requests) == 4

    @pytest.mark.asyncio
    async def test_not_found_is_not_retried(self, make_transport, settings) -> None:
        body = b'{"__type": "com.amazonaws.dynamodb.v20120810#ResourceNotFoundException", "message": "gone"}'
        sleeper = _SleepRecorder()
        transport = make_transport(HttpResponse(400, {}, body))
        client = _client(DYNAMODB_API, transport, settings, sleep=sleeper)

        result = await client.invoke("DescribeTable", {"TableName": "orders"})

        assert result[ERROR_CODE_KEY] == "ResourceNotFoundException"
        assert result.metadata["attempts"] == 1
        assert sleeper.delays == []

    @pytest.mark.asyncio
    async def test_http_404_is_not_retried(self, make_transport, settings) -> None:
        transport = make_transport(HttpResponse(404, {}, b""))
        client = _client(S3_API, transport, settings, sleep=_SleepRecorder())

        result = await client.invoke("HeadObject", {"Bucket": "bucket", "Key": "missing"})

        assert result[CATEGORY_KEY] == "not-found"
        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self, make_transport, settings) -> None:
        transport = make_transport(TransportError("connection reset", "interrupted"), LIST_TABLES_OK)
        client = _client(DYNAMODB_API, transport, settings, sleep=_SleepRecorder())

        result = await client.invoke("ListTables")

        assert not is_anomaly(result)
        assert result.metadata["attempts"] == 2

    @pytest.mark.asyncio
    async def test_embedded_error_in_200_is_retried(self, make_transport, settings) -> None:
        error = b"<ErrorResponse><Error><Code>InternalError</Code><Message>oops</Message></Error></ErrorResponse>"
        ok = (
            b"<ListUsersResponse><ListUsersResult><IsTruncated>true</IsTruncated>"
            b"<Marker>next</Marker></ListUsersResult></ListUsersResponse>"
        )
        transport = make_transport(HttpResponse(200, {}, error), HttpResponse(200, {}, ok))
        client = _client(IAM_API, transport, settings, sleep=_SleepRecorder())

        result = await client.invoke("ListUsers")

        assert result["Marker"] == "next"
        assert result.metadata["attempts"] == 2


class TestDeadlines:
    @pytest.mark.asyncio
    async def test_deadline_stops_retrying(self, make_transport, settings) -> None:
        sleeper = _SleepRecorder()
        transport = make_transport(UNAVAILABLE)
        client = _client(
            DYNAMODB_API, transport, settings, retry_policy=RetryPolicy(base_delay=0.1), sleep=sleeper
        )

        result = await client.invoke("ListTables", timeout=0.05)

        assert result[CATEGORY_KEY] == "interrupted"
        assert result[SOURCE_KEY] == "timeout"
        assert result["anomaly/last"][STATUS_KEY] == 503
        assert result.metadata["attempts"] == 1
        assert sleeper.delays == []

    @pytest.mark.asyncio
    async def test_attempt_timeout(self, make_transport, settings) -> None:
        async def slow(request):
            await asyncio.sleep(1)
            return LIST_TABLES_OK

        client = _client(
            DYNAMODB_API,
            make_transport(slow),
            settings,
            retry_policy=RetryPolicy(max_retries=0),
            attempt_timeout=0.01,
        )

        result = await client.invoke("ListTables")

        assert result[CATEGORY_KEY] == "interrupted"
        assert result[SOURCE_KEY] == "timeout"
        assert result.metadata["attempts"] == 1

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, make_transport, settings) -> None:
        started = asyncio.Event()

        async def hang(request):
            started.set()
            await asyncio.Event().wait()

        transport = make_transport(hang)
        client = _client(DYNAMODB_API, transport, settings)
        task = asyncio.create_task(client.invoke("ListTables"))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(transport.requests) == 1


class TestLocalFailures:
    @pytest.mark.asyncio
    async def test_missing_required_parameter(self, make_transport, settings) -> None:
        transport = make_transport(HttpResponse(200, {}, b""))
        client = _client(S3_API, transport, settings)

        result = await client.invoke("GetObject", {"Key": "k"})

        assert result[CATEGORY_KEY] == "incorrect"
        assert result[SOURCE_KEY] == "marshalling"
        assert "Bucket" in result["anomaly/message"]
        assert result.metadata["attempts"] == 0
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_non_ascii_header_is_an_anomaly(self, make_transport, settings) -> None:
        transport = make_transport(HttpResponse(200, {}, b""))
        client = _client(S3_API, transport, settings)

        result = await client.invoke("PutObject", {"Bucket": "b", "Key": "k", "Metadata": {"author": "José"}})

        assert result[CATEGORY_KEY] == "incorrect"
        assert result[SOURCE_KEY] == "marshalling"
        assert "author" in result["anomaly/message"]
        assert result.metadata["attempts"] == 0
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_overly_nested_parameters_are_an_anomaly(self, make_transport, settings) -> None:
        transport = make_transport(LIST_TABLES_OK)
        client = _client(DYNAMODB_API, transport, settings)
        value: dict = {"S": "leaf"}
        for _ in range(80):
            value = {"L": [value]}

        result = await client.invoke("PutItem", {"TableName": "t", "Item": {"pk": value}})

        assert result[CATEGORY_KEY] == "incorrect"
        assert "nesting exceeds" in result["anomaly/message"]
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_validation_errors_are_attached(self, make_transport, settings) -> None:
        transport = make_transport(LIST_TABLES_OK)
        client = _client(DYNAMODB_API, transport, settings, validate_requests=True)

        result = await client.invoke("ListTables", {"Limit": 0})

        assert result[CATEGORY_KEY] == "incorrect"
        assert result[VALIDATION_KEY]["invalid"][0]["type"] == "minimum_violation"
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_credentials_failure(self, make_transport, settings) -> None:
        transport = make_transport(LIST_TABLES_OK)
        client = _client(DYNAMODB_API, transport, settings, credentials_provider=_FailingProvider())

        result = await client.invoke("ListTables")

        assert result[CATEGORY_KEY] == "fault"
        assert result[SOURCE_KEY] == "credentials"
        assert result.metadata["attempts"] == 1
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_missing_region(self, make_transport, settings) -> None:
        transport = make_transport(LIST_TABLES_OK)
        client = _client(DYNAMODB_API, transport, settings, region=None)

        result = await client.invoke("ListTables")

        assert result[CATEGORY_KEY] == "fault"
        assert result[SOURCE_KEY] == "endpoint"
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_unknown_operation_raises(self, make_transport, settings) -> None:
        client = _client(DYNAMODB_API, make_transport(LIST_TABLES_OK), settings)
        with pytest.raises(UnknownOperation):
            await client.invoke("DropEverything")


class TestClient:
    def test_operation_names(self, make_transport, settings) -> None:
        client = _client(DYNAMODB_API, make_transport(LIST_TABLES_OK), settings)
        assert client.operation_names() == ["DescribeTable", "ListTables", "PutItem"]
        assert repr(client) == "Client(service='dynamodb', region='us-east-1', protocol='json')"

    def test_region_falls_back_to_settings(self, make_transport, monkeypatch) -> None:
        monkeypatch.setenv("AWS_REGION", "eu-central-1")
        client = Client(
            DYNAMODB_API,
            transport=make_transport(LIST_TABLES_OK),
            credentials_provider=StaticCredentialsProvider("AKID", "SECRET"),
        )
        assert client.region == "eu-central-1"

    @pytest.mark.asyncio
    async def test_borrowed_transport_is_left_open(self, make_transport, settings) -> None:
        transport = make_transport(LIST_TABLES_OK)
        async with _client(DYNAMODB_API, transport, settings) as client:
            pass
        assert client.closed
        assert not transport.closed

"""
Tests for the prediction service client error translation
"""
import asyncio

import httpx
import pytest

from uniguide.exceptions import (
    PredictionApiError,
    PredictionResponseError,
    PredictionTimeoutError,
    PredictionValidationError,
)


def call(client, method="POST", path="/predict/l2/batch", json=None):
    async def run():
        async with client:
            return await client.request(method, path, json=json)
    return asyncio.run(run())


def test_returns_decoded_body(make_client):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[{"ma_xet_tuyen": "BKA01", "score": 25.0}])

    body = call(make_client(handler), json={"items": []})

    assert body == [{"ma_xet_tuyen": "BKA01", "score": 25.0}]
    assert str(seen[0].url) == "http://predict.test:8000/predict/l2/batch"
    assert seen[0].headers["content-type"] == "application/json"


def test_422_becomes_validation_error(make_client):
    detail = [{"loc": ["body", "items", 0, "hoc_phi"], "msg": "field required", "type": "missing"}]
    client = make_client(lambda request: httpx.Response(422, json={"detail": detail}))

    with pytest.raises(PredictionValidationError) as exc_info:
        call(client)

    assert exc_info.value.detail == detail
    assert "body.items.0.hoc_phi - field required" in str(exc_info.value)
    assert exc_info.value.retryable is False


def test_unparseable_422_becomes_api_error(make_client):
    client = make_client(lambda request: httpx.Response(422, text="not json"))

    with pytest.raises(PredictionApiError) as exc_info:
        call(client)
    assert exc_info.value.status_code == 422
    assert exc_info.value.retryable is False


@pytest.mark.parametrize("status_code,retryable", [
    (500, True),
    (503, True),
    (429, True),
    (400, False),
    (404, False),
])
def test_http_errors(make_client, status_code, retryable):
    client = make_client(lambda request: httpx.Response(status_code, text="upstream says no"))

    with pytest.raises(PredictionApiError) as exc_info:
        call(client)

    assert exc_info.value.status_code == status_code
    assert exc_info.value.retryable is retryable
    assert "upstream says no" in str(exc_info.value)


def test_timeout(make_client):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(PredictionTimeoutError) as exc_info:
        call(make_client(handler))
    assert exc_info.value.retryable is True


def test_connection_failure_is_retryable(make_client):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PredictionApiError) as exc_info:
        call(make_client(handler))
    assert exc_info.value.status_code is None
    assert exc_info.value.retryable is True


def test_invalid_json_body(make_client):
    client = make_client(lambda request: httpx.Response(200, text="<html>oops</html>"))

    with pytest.raises(PredictionResponseError):
        call(client)


def test_health_check(make_client):
    up = make_client(lambda request: httpx.Response(200, json={"status": "ok"}))
    down = make_client(lambda request: httpx.Response(503, text="down"))

    assert asyncio.run(up.health_check()) is True
    assert asyncio.run(down.health_check()) is False

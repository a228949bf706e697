"""Tests du client fournisseur (httpx MockTransport) et de la réparation JSON."""

import json
import time

import httpx
import pytest

from natalstore.domain.entities import ProviderConfig
from natalstore.domain.errors import MalformedProviderResponseError, ProviderUnavailableError
from natalstore.infra.provider_client import ProviderClient, parse_artifact, repair_json

CONFIG = ProviderConfig(api_url="http://provider.test/", api_key="secret-key")


def test_repair_json_returns_first_balanced_prefix() -> None:
    assert repair_json('{"a": {"b": 1}} trailing') == {"a": {"b": 1}}
    assert repair_json('noise {"a": 1}{"b"') == {"a": 1}


def test_repair_json_fails_fast() -> None:
    with pytest.raises(MalformedProviderResponseError):
        repair_json('{"a": {"b": 1}')
    with pytest.raises(MalformedProviderResponseError):
        repair_json("no json here")


def test_repair_json_brace_inside_string() -> None:
    # premier point de coupe illisible, le suivant se parse
    assert repair_json('{"a": "}{", "b": 1} tail') == {"a": "}{", "b": 1}


def test_repair_json_large_tail_is_linear() -> None:
    start = time.perf_counter()
    with pytest.raises(MalformedProviderResponseError):
        repair_json('{"a" 1}' + "x" * 1_000_000)
    with pytest.raises(MalformedProviderResponseError):
        repair_json('{"a" 1}' + "{}" * 200_000)
    assert repair_json('{"a": 1}' + "x}" * 200_000) == {"a": 1}
    assert time.perf_counter() - start < 2.0


def test_parse_artifact_rejects_empty_and_non_objects() -> None:
    with pytest.raises(MalformedProviderResponseError):
        parse_artifact("  ")
    with pytest.raises(MalformedProviderResponseError):
        parse_artifact("[1, 2]")
    assert parse_artifact('{"julian_day": 1.5}xx') == {"julian_day": 1.5}


@pytest.mark.asyncio
async def test_fetch_posts_birth_params_with_bearer(birth) -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"julian_day": 2448025.85})

    client = ProviderClient(timeout=5, transport=httpx.MockTransport(handler))
    data = await client.fetch(birth, CONFIG)
    assert data == {"julian_day": 2448025.85}
    assert seen["url"] == "http://provider.test/calculate"
    assert seen["auth"] == "Bearer secret-key"
    assert seen["body"] == {
        "date": "1990-05-14",
        "time": "08:30",
        "latitude": 12.97,
        "longitude": 77.59,
    }


@pytest.mark.asyncio
async def test_fetch_timeout_is_unavailable(birth) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = ProviderClient(timeout=1, transport=httpx.MockTransport(handler))
    with pytest.raises(ProviderUnavailableError):
        await client.fetch(birth, CONFIG)


@pytest.mark.asyncio
async def test_fetch_non_2xx_is_unavailable(birth) -> None:
    client = ProviderClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
    )
    with pytest.raises(ProviderUnavailableError) as exc:
        await client.fetch(birth, CONFIG)
    assert exc.value.details == {"status": 500}


@pytest.mark.asyncio
async def test_fetch_connect_error_is_unavailable(birth) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = ProviderClient(transport=httpx.MockTransport(handler))
    with pytest.raises(ProviderUnavailableError):
        await client.fetch(birth, CONFIG)


@pytest.mark.asyncio
async def test_fetch_unrepairable_body_is_malformed(birth) -> None:
    client = ProviderClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, text='{"a": [1, 2'))
    )
    with pytest.raises(MalformedProviderResponseError):
        await client.fetch(birth, CONFIG)

# ============================================================
# Module : natalstore/infra/provider_client.py
# Objet  : Client HTTP du fournisseur de calcul (thème brut).
# Invariants :
#  - Timeout borné sur chaque appel, aucune relance interne.
#  - Une seule tentative de réparation JSON, sinon erreur fatale.
# ============================================================
"""Client du fournisseur de calcul externe et réparation des réponses JSON tronquées."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any

import httpx
import structlog

from natalstore.app.metrics import PROVIDER_JSON_REPAIRS, PROVIDER_LATENCY, PROVIDER_REQUESTS
from natalstore.core.http_constants import DEFAULT_TIMEOUT
from natalstore.domain.entities import BirthParams, ProviderConfig
from natalstore.domain.errors import MalformedProviderResponseError, ProviderUnavailableError

log = structlog.get_logger(__name__)

_DECODER = json.JSONDecoder()


def repair_json(text: str) -> Any:
    """Parse `text`, ou à défaut le premier préfixe équilibré en accolades qui se parse.

    Le balayage démarre à la première `{`; seule une `}` qui ramène la profondeur à zéro est
    un point de coupe, et une profondeur négative arrête le balayage. Un préfixe équilibré ne
    se parse que s'il coïncide avec le premier objet décodé par `raw_decode`: un seul décodage,
    coût linéaire. Les accolades contenues dans des chaînes ne sont pas distinguées.
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    trimmed = text.strip()
    start = trimmed.find("{")
    if start == -1:
        raise MalformedProviderResponseError("No JSON object found in provider response")
    candidate = trimmed[start:]
    try:
        value, end = _DECODER.raw_decode(candidate)
    except json.JSONDecodeError as exc:
        raise MalformedProviderResponseError(
            "Could not repair malformed provider response"
        ) from exc
    depth = 0
    for i, ch in enumerate(candidate[:end]):
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth < 0:
                break
            if depth == 0 and i + 1 == end:
                return value
    raise MalformedProviderResponseError("Could not repair malformed provider response")


def parse_artifact(text: str) -> dict[str, Any]:
    """Décode la réponse brute en artefact (objet JSON non vide)."""
    if not text or not text.strip():
        raise MalformedProviderResponseError("Empty response from provider")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        log.warning("provider_json_invalid_attempting_repair", size=len(text))
        try:
            data = repair_json(text)
        except MalformedProviderResponseError:
            PROVIDER_JSON_REPAIRS.labels(result="failed").inc()
            raise
        PROVIDER_JSON_REPAIRS.labels(result="repaired").inc()
    if not isinstance(data, dict):
        raise MalformedProviderResponseError("Provider response is not a JSON object")
    return data


class ProviderClient:
    """Client asynchrone du fournisseur (POST `{api_url}/calculate`).

    Paramètres:
    - timeout: délai maximal par appel (secondes).
    - transport: transport httpx optionnel (tests: `httpx.MockTransport`).
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = httpx.Timeout(timeout, connect=min(timeout, 5.0))
        self._transport = transport

    async def fetch(self, birth: BirthParams, config: ProviderConfig) -> dict[str, Any]:
        """Calcule le thème brut pour `birth` chez le fournisseur du tenant."""
        url = f"{config.api_url.rstrip('/')}/calculate"
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        payload = birth.model_dump(exclude_none=True)
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post(url, json=payload, headers=headers)
                resp.raise_for_status()
        except httpx.TimeoutException as exc:
            PROVIDER_REQUESTS.labels(outcome="timeout").inc()
            log.error("provider_timeout", url=url)
            raise ProviderUnavailableError("Calculation provider timed out") from exc
        except httpx.HTTPStatusError as exc:
            PROVIDER_REQUESTS.labels(outcome="http_error").inc()
            log.error("provider_http_error", url=url, status=exc.response.status_code)
            raise ProviderUnavailableError(
                f"Calculation provider returned HTTP {exc.response.status_code}",
                details={"status": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            PROVIDER_REQUESTS.labels(outcome="unreachable").inc()
            log.error("provider_unreachable", url=url, error=str(exc))
            raise ProviderUnavailableError("Calculation provider is unavailable") from exc
        finally:
            PROVIDER_LATENCY.observe(time.perf_counter() - start)

        PROVIDER_REQUESTS.labels(outcome="ok").inc()
        log.info("provider_fetched", url=url, date=birth.date, time=birth.time)
        return await asyncio.to_thread(parse_artifact, resp.text)

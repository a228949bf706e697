"""Tests de la chaîne de recherche à deux niveaux."""

from __future__ import annotations

import pytest

from natalstore.infra.cache import InMemoryRootIdCache
from natalstore.services.lookup_chain import EntityStoreTier, LookupChain, Tier1CacheTier
from natalstore.services.normalizer import Normalizer

FP = "b" * 64


@pytest.mark.asyncio
async def test_first_hit_short_circuits_and_reports_misses(store, birth, raw_artifact) -> None:
    cache = InMemoryRootIdCache()
    tier1 = Tier1CacheTier(cache)
    chain = LookupChain([tier1, EntityStoreTier(store)])
    assert await chain.lookup("t1", FP) is None

    root = await Normalizer(store).ingest("t1", FP, birth, raw_artifact)
    hit = await chain.lookup("t1", FP)
    assert hit.root_id == root.id and hit.tier == "entity_store"
    assert hit.misses == [tier1]

    await chain.populate("t1", FP, hit.root_id, hit.misses)
    hit = await chain.lookup("t1", FP)
    assert hit.tier == "tier1" and hit.misses == []


@pytest.mark.asyncio
async def test_cache_tier_never_answers_for_another_tenant(store) -> None:
    cache = InMemoryRootIdCache()
    chain = LookupChain([Tier1CacheTier(cache), EntityStoreTier(store)])
    await chain.populate("t1", FP, "root-1")
    assert (await chain.lookup("t1", FP)).root_id == "root-1"
    assert await chain.lookup("t2", FP) is None

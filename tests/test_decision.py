"""
Test the SERVE / FORWARD / PASS_THROUGH decision table
"""

import pytest

from mimic.interception.decision import Action
from mimic.interception.responder import build_substituted_response


async def test_no_target_passes_through(engine):
    decision = await engine.decide(None)

    assert decision.action is Action.PASS_THROUGH
    assert decision.reason == "no target"


async def test_unmapped_url_forwards_to_itself(engine):
    decision = await engine.decide("https://unmapped.example.com/x")

    assert decision.action is Action.FORWARD
    assert decision.target == "https://unmapped.example.com/x"
    assert decision.mapping is None
    assert decision.is_redirect is False


async def test_mapping_with_content_is_served(engine, service):
    mapping = service.create_or_overwrite(regex_pattern=r"cdn\.example\.com/.*\.js$")
    service.set_content(mapping.id, b"function main() { return 1; }")

    decision = await engine.decide("https://cdn.example.com/static/app.js")

    assert decision.action is Action.SERVE
    assert decision.mapping.id == mapping.id
    assert decision.mapping.content == b"function main() { return 1; }"


async def test_concrete_url_without_content_forwards_to_pattern(engine, service):
    mapping = service.create_or_overwrite(pattern="https://api.example.com/users")

    decision = await engine.decide("https://api.example.com/users")

    assert decision.action is Action.FORWARD
    assert decision.target == "https://api.example.com/users"
    assert decision.mapping.id == mapping.id
    assert decision.reason == "mapped target"


@pytest.mark.parametrize("kwargs", [
    {"pattern": "https://api.example.com/*"},
    {"regex_pattern": r"api\.example\.com"},
])
async def test_mapping_without_target_passes_through(engine, service, kwargs):
    """Neither a glob nor a regex names a destination"""
    service.create_or_overwrite(**kwargs)

    decision = await engine.decide("https://api.example.com/users")

    assert decision.action is Action.PASS_THROUGH
    assert decision.target is None
    assert decision.mapping is not None


async def test_empty_content_is_not_served(engine, service):
    mapping = service.create_or_overwrite(pattern="https://api.example.com/users")
    service.set_content(mapping.id, b"")

    decision = await engine.decide("https://api.example.com/users")

    assert decision.action is Action.FORWARD, "Empty content must never be served"


async def test_stats_count_actions(engine, service):
    mapping = service.create_or_overwrite(pattern="https://a.example.com/")
    service.set_content(mapping.id, b"ok")

    await engine.decide("https://a.example.com/")
    await engine.decide("https://b.example.com/")
    await engine.decide(None)

    assert engine.get_stats() == {"serve": 1, "forward": 1, "pass_through": 1}


async def test_cdn_script_served_as_javascript(engine, service):
    """A served console.log body goes out as JavaScript"""
    mapping = service.create_or_overwrite(regex_pattern=r"^https://cdn\.example\.com/.*\.js$")
    service.set_content(mapping.id, "console.log(1)")

    decision = await engine.decide("https://cdn.example.com/app.js")
    response = build_substituted_response(decision.mapping)

    assert decision.action is Action.SERVE
    assert response.headers["Content-Type"] == "application/javascript; charset=utf-8"
    assert response.body == b"console.log(1)"

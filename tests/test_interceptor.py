"""
Test the mitmproxy addon against synthetic flows
"""

import pytest
from mitmproxy.test import tflow

from mimic.interception.interceptor import MimicInterceptor


@pytest.fixture
def addon(engine):
    return MimicInterceptor(engine)


def _flow(url, resp=False):
    flow = tflow.tflow(resp=resp)
    flow.request.url = url
    return flow


async def test_serves_mapped_content_without_upstream(addon, service):
    mapping = service.create_or_overwrite(pattern="http://mimic.test/app.js")
    service.set_content(mapping.id, b"const answer = 42;")
    flow = _flow("http://mimic.test/app.js")

    await addon.request(flow)

    assert flow.response is not None, "SERVE should answer in the request hook"
    assert flow.response.status_code == 200
    assert flow.response.content == b"const answer = 42;"
    assert flow.response.headers["content-type"] == "application/javascript; charset=utf-8"
    assert flow.response.headers["content-length"] == "18"
    assert flow.metadata["mimic_decision"] == "serve"
    assert addon.get_stats()["served"] == 1


async def test_unmapped_flow_is_left_alone(addon):
    flow = _flow("http://elsewhere.test/")

    await addon.request(flow)

    assert flow.response is None
    assert flow.request.pretty_url == "http://elsewhere.test/"
    assert flow.metadata["mimic_decision"] == "forward"


async def test_regex_without_content_passes_through(addon, service):
    service.create_or_overwrite(regex_pattern=r"mimic\.test")
    flow = _flow("http://mimic.test/page")

    await addon.request(flow)

    assert flow.response is None
    assert flow.metadata["mimic_decision"] == "pass_through"
    assert addon.get_stats()["passed_through"] == 1


async def test_response_phase_substitution_keeps_upstream_headers(engine, service):
    """Deferred SERVE swaps the body but keeps non-framing upstream headers"""
    addon = MimicInterceptor(engine, substitute_on_response=True)
    mapping = service.create_or_overwrite(pattern="http://mimic.test/data")
    service.set_content(mapping.id, b'{"mimic": true}')
    flow = _flow("http://mimic.test/data", resp=True)
    original_response = flow.response

    await addon.request(flow)
    assert flow.response is original_response, "Request hook must not answer when deferring"
    assert flow.metadata["mimic_mapping_id"] == mapping.id

    await addon.response(flow)

    assert flow.response.status_code == 200
    assert flow.response.content == b'{"mimic": true}'
    assert flow.response.headers["content-type"] == "application/json"
    assert flow.response.headers["content-length"] == str(len(b'{"mimic": true}'))
    assert flow.response.headers["header-response"] == "svalue"


async def test_response_hook_ignores_undecided_flows(addon):
    flow = _flow("http://mimic.test/", resp=True)
    original_content = flow.response.content

    await addon.response(flow)

    assert flow.response.content == original_content

"""
Tests for services/isolation/IsolationResolver.py
Isolation key resolution for the none, session and custom modes.
"""

import asyncio
import re

import pytest

from services.isolation.IsolationResolver import (
    ISOLATION_KEY_HEADER,
    SESSION_HEADER,
    IsolationMode,
    IsolationResolver,
    generate_session_id,
    is_valid_session_id,
)
from services.isolation.SessionRegistry import SessionRegistry

HEX32 = re.compile(r"^[a-f0-9]{32}$")
VALID_ID = "0123456789abcdef0123456789abcdef"


@pytest.fixture
def registry(helper_config):
    return SessionRegistry(helper_config=helper_config)


class TestSessionIdFormat:
    def test_generated_ids_are_32_lowercase_hex(self):
        for _ in range(20):
            assert HEX32.match(generate_session_id())

    @pytest.mark.parametrize("value", [
        None,
        "",
        "0123456789ABCDEF0123456789ABCDEF",
        "0123456789abcdef0123456789abcde",
        "0123456789abcdef0123456789abcdef0",
        "0123456789abcdef0123456789abcdeg",
        "../../etc/passwd",
        " 0123456789abcdef0123456789abcdef",
    ])
    def test_invalid_ids(self, value):
        assert not is_valid_session_id(value)

    def test_valid_id(self):
        assert is_valid_session_id(VALID_ID)


class TestNoneMode:
    async def test_always_shared(self, helper_config):
        resolver = IsolationResolver(helper_config=helper_config, mode="none")

        result = await resolver.resolve({SESSION_HEADER: VALID_ID, ISOLATION_KEY_HEADER: "tenant-a"})

        assert result.key is None
        assert result.response_headers == {}


class TestSessionMode:
    async def test_valid_header_is_reused_and_echoed(self, helper_config, registry):
        resolver = IsolationResolver(helper_config=helper_config, mode=IsolationMode.SESSION, session_registry=registry)

        result = await resolver.resolve({SESSION_HEADER: VALID_ID})

        assert result.key == VALID_ID
        assert result.response_headers == {SESSION_HEADER: VALID_ID}
        assert registry.get(VALID_ID) is not None

    @pytest.mark.parametrize("header", [None, "", "not-a-session", VALID_ID.upper()])
    async def test_missing_or_invalid_header_gets_new_key(self, helper_config, registry, header):
        resolver = IsolationResolver(helper_config=helper_config, mode="session", session_registry=registry)
        headers = {} if header is None else {SESSION_HEADER: header}

        result = await resolver.resolve(headers)

        assert HEX32.match(result.key)
        assert result.key != header
        assert result.response_headers == {SESSION_HEADER: result.key}
        assert result.key in registry

    async def test_concurrent_requests_without_header_get_distinct_keys(self, helper_config, registry):
        resolver = IsolationResolver(helper_config=helper_config, mode="session", session_registry=registry)

        results = await asyncio.gather(*[resolver.resolve({}) for _ in range(50)])

        keys = {result.key for result in results}
        assert len(keys) == 50
        assert len(registry) == 50

    def test_session_mode_requires_registry(self, helper_config):
        with pytest.raises(ValueError):
            IsolationResolver(helper_config=helper_config, mode="session")


class TestCustomMode:
    async def test_asserted_key_wins_over_header(self, helper_config, registry):
        resolver = IsolationResolver(helper_config=helper_config, mode="custom", session_registry=registry)

        result = await resolver.resolve({ISOLATION_KEY_HEADER: "from-header"}, asserted_key="from-auth")

        assert result.key == "from-auth"

    async def test_header_is_used_unvalidated_and_not_echoed(self, helper_config, registry):
        resolver = IsolationResolver(helper_config=helper_config, mode="custom", session_registry=registry)

        result = await resolver.resolve({ISOLATION_KEY_HEADER: "Tenant 42 / EU"})

        assert result.key == "Tenant 42 / EU"
        assert result.response_headers == {}
        assert len(registry) == 0

    async def test_no_key_means_shared(self, helper_config):
        resolver = IsolationResolver(helper_config=helper_config, mode="custom")

        result = await resolver.resolve({})

        assert result.key is None

    def test_unknown_mode_is_rejected(self, helper_config):
        with pytest.raises(ValueError):
            IsolationResolver(helper_config=helper_config, mode="tenant")

"""Tests for shared helpers: JSON extraction, canonical JSON, retries."""

import asyncio

import pytest

from oracle_resolver.utils import canonical_json, extract_json_object, with_retries


class TestExtractJsonObject:

    def test_plain_object(self):
        assert extract_json_object('{"a": 1}') == {"a": 1}

    def test_object_inside_prose_and_fences(self):
        text = 'Here is my answer:\n```json\n{"outcome": "YES", "confidence": 0.9}\n```\nThanks.'
        assert extract_json_object(text) == {"outcome": "YES", "confidence": 0.9}

    def test_skips_brace_that_is_not_json(self):
        text = 'Set {x} is empty, result: {"outcome": "NO"}'
        assert extract_json_object(text) == {"outcome": "NO"}

    def test_nested_object_returns_outermost(self):
        assert extract_json_object('{"a": {"b": 2}}') == {"a": {"b": 2}}

    @pytest.mark.parametrize("text", ["", "no json here", "[1, 2, 3]", "{broken"])
    def test_none_when_no_object(self, text):
        assert extract_json_object(text) is None


class TestCanonicalJson:

    def test_key_order_independent(self):
        assert canonical_json({"b": 1, "a": 2}) == canonical_json({"a": 2, "b": 1})

    def test_compact(self):
        assert canonical_json({"a": [1, 2]}) == '{"a":[1,2]}'


class TestWithRetries:

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        calls = 0

        async def flaky():
            nonlocal calls
            calls += 1
            if calls < 3:
                raise ConnectionError("boom")
            return "ok"

        assert await with_retries(flaky, attempts=3, backoff=0) == "ok"
        assert calls == 3

    @pytest.mark.asyncio
    async def test_reraises_last_error(self):
        async def always_fails():
            raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            await with_retries(always_fails, attempts=2, backoff=0)

    @pytest.mark.asyncio
    async def test_timeout_bounds_each_attempt(self):
        calls = 0

        async def slow():
            nonlocal calls
            calls += 1
            await asyncio.sleep(1)

        with pytest.raises(asyncio.TimeoutError):
            await with_retries(slow, attempts=2, timeout=0.01, backoff=0)
        assert calls == 2

    @pytest.mark.asyncio
    async def test_fatal_errors_not_retried(self):
        calls = 0

        async def reverts():
            nonlocal calls
            calls += 1
            raise LookupError("final")

        with pytest.raises(LookupError):
            await with_retries(reverts, attempts=5, backoff=0, fatal=(LookupError,))
        assert calls == 1

    @pytest.mark.asyncio
    async def test_errors_outside_retry_on_raise_immediately(self):
        calls = 0

        async def bad():
            nonlocal calls
            calls += 1
            raise KeyError("x")

        with pytest.raises(KeyError):
            await with_retries(bad, attempts=3, backoff=0, retry_on=(ConnectionError,))
        assert calls == 1

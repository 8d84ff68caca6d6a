"""
Tests for the Redis-backed collaborators.

The redis client is replaced by mocks; these tests pin down the commands
issued and how responses and errors are translated.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from contentflow.core.exceptions import TransientIOError
from contentflow.db.document_store import RedisDocumentStore
from contentflow.db.probabilistic import RedisCardinalityStore, RedisMembershipStore
from contentflow.db.pubsub import RedisPubSub
from contentflow.db.redis import check_redis_health, is_already_exists, translate_errors
from contentflow.db.stream_log import RedisStreamLog
from contentflow.db.timeseries import RedisTimeSeriesStore
from contentflow.db.vector_index import RedisVectorIndex, build_filter_expression, escape_tag


# ========================================
# Fixtures
# ========================================

@pytest.fixture
def redis():
    """Mock async Redis client with module command groups."""
    client = MagicMock()
    client.json.return_value = MagicMock()
    client.ts.return_value = MagicMock()
    client.bf.return_value = MagicMock()
    client.ft.return_value = MagicMock()
    return client


# ========================================
# Helpers
# ========================================

class TestHelpers:
    """Test error classification and filter building."""

    def test_already_exists_variants(self):
        assert is_already_exists(ResponseError("Index already exists"))
        assert is_already_exists(ResponseError("BUSYGROUP Consumer Group name already exists"))
        assert is_already_exists(ResponseError("ERR item exists"))
        assert not is_already_exists(ResponseError("unknown command"))

    def test_filter_expression_empty(self):
        assert build_filter_expression(None) == "*"
        assert build_filter_expression({}) == "*"

    def test_filter_expression_combines_all_filters(self):
        expression = build_filter_expression({"status": "flagged", "category": "review"})
        assert expression == "@status:{flagged} @category:{review}"

    def test_filter_expression_escapes(self):
        assert escape_tag("not-spam") == "not\\-spam"
        assert build_filter_expression({"category": "a b"}) == "@category:{a\\ b}"


@pytest.mark.asyncio
class TestErrorTranslation:
    """Test connectivity errors become TransientIOError."""

    @pytest.mark.parametrize("error", [RedisConnectionError("refused"), RedisTimeoutError("slow")])
    async def test_translated(self, error):
        with pytest.raises(TransientIOError) as exc_info:
            async with translate_errors("XADD content:stream"):
                raise error
        assert exc_info.value.operation == "XADD content:stream"
        assert exc_info.value.cause is error

    async def test_response_errors_pass_through(self):
        with pytest.raises(ResponseError):
            async with translate_errors("FT.CREATE"):
                raise ResponseError("syntax error")

    async def test_health_check(self, redis):
        redis.ping = AsyncMock(return_value=True)
        assert await check_redis_health(redis) is True
        redis.ping = AsyncMock(side_effect=RedisConnectionError("down"))
        assert await check_redis_health(redis) is False


# ========================================
# Streams
# ========================================

@pytest.mark.asyncio
class TestRedisStreamLog:
    """Test stream commands and response parsing."""

    async def test_append(self, redis):
        redis.xadd = AsyncMock(return_value="1-0")
        log = RedisStreamLog(redis)
        assert await log.append("content:stream", {"text": "hi"}) == "1-0"
        redis.xadd.assert_awaited_once()
        assert redis.xadd.await_args.args == ("content:stream", {"text": "hi"})

    async def test_append_connection_error(self, redis):
        redis.xadd = AsyncMock(side_effect=RedisConnectionError("refused"))
        with pytest.raises(TransientIOError):
            await RedisStreamLog(redis).append("content:stream", {"text": "hi"})

    async def test_create_group_from_start(self, redis):
        redis.xgroup_create = AsyncMock(return_value=True)
        assert await RedisStreamLog(redis).create_group("s", "g")
        redis.xgroup_create.assert_awaited_once_with("s", "g", id="0", mkstream=True)

    async def test_create_group_busygroup_ignored(self, redis):
        redis.xgroup_create = AsyncMock(
            side_effect=ResponseError("BUSYGROUP Consumer Group name already exists")
        )
        assert await RedisStreamLog(redis).create_group("s", "g") is True

    async def test_create_group_other_error_raised(self, redis):
        redis.xgroup_create = AsyncMock(side_effect=ResponseError("WRONGTYPE"))
        with pytest.raises(ResponseError):
            await RedisStreamLog(redis).create_group("s", "g")

    async def test_read_group_resp2(self, redis):
        redis.xreadgroup = AsyncMock(return_value=[
            ["content:stream", [("1-0", {"contentId": "a"}), ("2-0", {"contentId": "b"})]],
        ])
        messages = await RedisStreamLog(redis).read_group("content:stream", "g", "c", 10, 1000)
        assert [(m.id, m.fields["contentId"]) for m in messages] == [("1-0", "a"), ("2-0", "b")]
        redis.xreadgroup.assert_awaited_once_with(
            "g", "c", {"content:stream": ">"}, count=10, block=1000
        )

    async def test_read_group_resp3(self, redis):
        redis.xreadgroup = AsyncMock(return_value={
            "content:stream": [[("1-0", {"contentId": "a"})]],
        })
        messages = await RedisStreamLog(redis).read_group("content:stream", "g", "c", 10, 0)
        assert [m.id for m in messages] == ["1-0"]

    async def test_read_group_timeout_empty(self, redis):
        redis.xreadgroup = AsyncMock(return_value=None)
        assert await RedisStreamLog(redis).read_group("s", "g", "c", 10, 0) == []

    async def test_ack(self, redis):
        redis.xack = AsyncMock(return_value=1)
        log = RedisStreamLog(redis)
        assert await log.ack("s", "g", "1-0") == 1
        assert await log.ack("s", "g") == 0
        redis.xack.assert_awaited_once_with("s", "g", "1-0")

    async def test_claim_stale_skips_deleted_entries(self, redis):
        redis.xautoclaim = AsyncMock(return_value=[
            "0-0",
            [("1-0", {"contentId": "a"}), ("2-0", None)],
            ["2-0"],
        ])
        messages = await RedisStreamLog(redis).claim_stale("s", "g", "c", 60_000, 10)
        assert [m.id for m in messages] == ["1-0"]
        redis.xautoclaim.assert_awaited_once_with(
            "s", "g", "c", min_idle_time=60_000, start_id="0-0", count=10
        )


# ========================================
# Documents
# ========================================

@pytest.mark.asyncio
class TestRedisDocumentStore:
    """Test JSON document commands."""

    async def test_put_and_get(self, redis):
        redis.json.return_value.set = AsyncMock(return_value=True)
        redis.json.return_value.get = AsyncMock(return_value={"id": "a"})
        store = RedisDocumentStore(redis)

        await store.put("content:a", {"id": "a"})
        redis.json.return_value.set.assert_awaited_once_with("content:a", "$", {"id": "a"})
        assert await store.get("content:a") == {"id": "a"}

    async def test_get_missing(self, redis):
        redis.json.return_value.get = AsyncMock(return_value=None)
        assert await RedisDocumentStore(redis).get("content:x") is None

    async def test_put_if_absent_sets_ttl_in_one_transaction(self, redis):
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=[True, True])
        redis.pipeline = MagicMock(return_value=pipe)
        redis.expire = AsyncMock()

        result = await RedisDocumentStore(redis).put_if_absent("processed:a", {"isDuplicate": False}, 60)

        assert result is None
        redis.pipeline.assert_called_once_with(transaction=True)
        pipe.json.return_value.set.assert_called_once_with(
            "processed:a", "$", {"isDuplicate": False}, nx=True
        )
        pipe.expire.assert_called_once_with("processed:a", 60, nx=True)
        pipe.execute.assert_awaited_once()
        redis.expire.assert_not_awaited()

    async def test_put_if_absent_returns_existing(self, redis):
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=[None, False])
        redis.pipeline = MagicMock(return_value=pipe)
        redis.json.return_value.get = AsyncMock(return_value={"isDuplicate": True})

        result = await RedisDocumentStore(redis).put_if_absent("processed:a", {"isDuplicate": False}, 60)

        assert result == {"isDuplicate": True}

    async def test_put_if_absent_transaction_failure_is_transient(self, redis):
        pipe = MagicMock()
        pipe.execute = AsyncMock(side_effect=RedisConnectionError("reset"))
        redis.pipeline = MagicMock(return_value=pipe)

        with pytest.raises(TransientIOError):
            await RedisDocumentStore(redis).put_if_absent("processed:a", {"isDuplicate": False}, 60)

    async def test_put_if_absent_without_ttl(self, redis):
        redis.json.return_value.set = AsyncMock(return_value=True)
        redis.pipeline = MagicMock()

        result = await RedisDocumentStore(redis).put_if_absent("content:a", {"id": "a"})

        assert result is None
        redis.json.return_value.set.assert_awaited_once_with("content:a", "$", {"id": "a"}, nx=True)
        redis.pipeline.assert_not_called()


# ========================================
# Vector Index
# ========================================

@pytest.mark.asyncio
class TestRedisVectorIndex:
    """Test index creation and kNN queries."""

    async def test_create_index_already_exists(self, redis):
        redis.ft.return_value.create_index = AsyncMock(side_effect=ResponseError("Index already exists"))
        assert await RedisVectorIndex(redis, "idx", "vector:").create_index(384) is True

    async def test_create_index_unknown_command_raised(self, redis):
        redis.ft.return_value.create_index = AsyncMock(side_effect=ResponseError("unknown command 'FT.CREATE'"))
        with pytest.raises(ResponseError):
            await RedisVectorIndex(redis, "idx", "vector:").create_index(384)

    async def test_upsert_uses_vector_prefix(self, redis):
        redis.json.return_value.set = AsyncMock(return_value=True)
        await RedisVectorIndex(redis, "idx", "vector:").upsert("c1", [0.5, 0.5], {"status": "approved"})
        redis.json.return_value.set.assert_awaited_once_with(
            "vector:c1", "$", {"status": "approved", "vector": [0.5, 0.5]}
        )

    async def test_knn_query_converts_distance(self, redis):
        docs = [
            SimpleNamespace(id="vector:c1", score="0.1", text="hello", status="approved"),
            SimpleNamespace(id="vector:c2", score="0.4", text="bye", status="flagged"),
        ]
        redis.ft.return_value.search = AsyncMock(return_value=SimpleNamespace(docs=docs, total=2))

        hits = await RedisVectorIndex(redis, "idx", "vector:").knn_query(
            [0.1, 0.2], 2, {"status": "approved", "category": "review"}
        )

        assert [h.id for h in hits] == ["c1", "c2"]
        assert hits[0].score == pytest.approx(0.9)
        assert hits[1].score == pytest.approx(0.6)
        assert hits[0].attributes["text"] == "hello"

        query = redis.ft.return_value.search.await_args.args[0]
        assert query.query_string() == (
            "(@status:{approved} @category:{review})=>[KNN 2 @vector $vec AS score]"
        )
        params = redis.ft.return_value.search.await_args.kwargs["query_params"]
        assert len(params["vec"]) == 2 * 4  # float32


# ========================================
# Time Series
# ========================================

@pytest.mark.asyncio
class TestRedisTimeSeriesStore:
    """Test TS commands."""

    async def test_create_series(self, redis):
        redis.ts.return_value.create = AsyncMock(return_value=True)
        await RedisTimeSeriesStore(redis).create_series("m", 1000, {"type": "x"}, "last")
        redis.ts.return_value.create.assert_awaited_once_with(
            "m", retention_msecs=1000, labels={"type": "x"}, duplicate_policy="last"
        )

    async def test_create_series_exists(self, redis):
        redis.ts.return_value.create = AsyncMock(side_effect=ResponseError("TSDB: key already exists"))
        assert await RedisTimeSeriesStore(redis).create_series("m", 1000) is True

    async def test_range(self, redis):
        redis.ts.return_value.range = AsyncMock(return_value=[[1000, "2"], [2000, b"3.5"]])
        assert await RedisTimeSeriesStore(redis).range("m", 0, 5000) == [(1000, 2.0), (2000, 3.5)]

    async def test_range_missing_series(self, redis):
        redis.ts.return_value.range = AsyncMock(side_effect=ResponseError("TSDB: the key does not exist"))
        assert await RedisTimeSeriesStore(redis).range("m", 0, 5000) == []


# ========================================
# Probabilistic / Pub-Sub
# ========================================

@pytest.mark.asyncio
class TestProbabilisticStores:
    """Test Bloom filter, exact set and HyperLogLog commands."""

    async def test_bloom_add(self, redis):
        redis.bf.return_value.add = AsyncMock(return_value=1)
        assert await RedisMembershipStore(redis).add("content_hashes", "123") is True
        redis.bf.return_value.add.assert_awaited_once_with("content_hashes", "123")

    async def test_bloom_reserve_exists(self, redis):
        redis.bf.return_value.create = AsyncMock(side_effect=ResponseError("ERR item exists"))
        assert await RedisMembershipStore(redis).reserve("content_hashes", 0.001, 1000) is True

    async def test_exact_set_mode(self, redis):
        redis.sadd = AsyncMock(return_value=0)
        redis.sismember = AsyncMock(return_value=1)
        store = RedisMembershipStore(redis, use_bloom=False)

        assert await store.reserve("content_hashes", 0.001, 1000) is True
        assert await store.add("content_hashes", "123") is False
        assert await store.contains("content_hashes", "123") is True
        redis.sadd.assert_awaited_once_with("bloom:content_hashes", "123")

    async def test_hyperloglog(self, redis):
        redis.pfadd = AsyncMock(return_value=1)
        redis.pfcount = AsyncMock(return_value=7)
        store = RedisCardinalityStore(redis)

        await store.add("visitors:unique", ["a", "b"])
        await store.add("visitors:unique", [])
        assert await store.approx_count("visitors:unique") == 7
        redis.pfadd.assert_awaited_once_with("visitors:unique", "a", "b")

    async def test_publish_json(self, redis):
        redis.publish = AsyncMock(return_value=2)
        receivers = await RedisPubSub(redis).publish("content:processed", {"contentId": "a"})
        assert receivers == 2
        channel, data = redis.publish.await_args.args
        assert channel == "content:processed"
        assert json.loads(data) == {"contentId": "a"}


def make_pubsub(messages):
    """Mock PubSub whose listen() yields ``messages`` then ends."""
    async def listen():
        for message in messages:
            yield message

    pubsub = MagicMock()
    pubsub.subscribe = AsyncMock()
    pubsub.unsubscribe = AsyncMock()
    pubsub.aclose = AsyncMock()
    pubsub.listen = listen
    return pubsub


@pytest.mark.asyncio
class TestRedisPubSubSubscribe:
    """Test the subscriber iterator."""

    async def test_yields_only_decoded_messages(self, redis):
        pubsub = make_pubsub([
            {"type": "subscribe", "channel": "content:processed", "data": 1},
            {"type": "message", "channel": "content:processed", "data": '{"contentId": "a"}'},
            {"type": "message", "channel": "content:processed", "data": "not json"},
        ])
        redis.pubsub = MagicMock(return_value=pubsub)

        events = [event async for event in RedisPubSub(redis).subscribe("content:processed")]

        assert events == [{"contentId": "a"}]
        pubsub.subscribe.assert_awaited_once_with("content:processed")
        pubsub.unsubscribe.assert_awaited_once_with("content:processed")
        pubsub.aclose.assert_awaited_once()

    async def test_unsubscribes_when_closed_early(self, redis):
        pubsub = make_pubsub([
            {"type": "message", "channel": "content:processed", "data": '{"n": 1}'},
            {"type": "message", "channel": "content:processed", "data": '{"n": 2}'},
        ])
        redis.pubsub = MagicMock(return_value=pubsub)

        events = RedisPubSub(redis).subscribe("content:processed")
        assert await events.__anext__() == {"n": 1}
        await events.aclose()

        pubsub.unsubscribe.assert_awaited_once_with("content:processed")
        pubsub.aclose.assert_awaited_once()

"""
Unit tests for transcore/translation/transport.py: id correlation, error
augmentation and teardown.
"""

import asyncio

import pytest

from transcore.translation.exceptions import (
    EngineInitError,
    RemoteCallError,
    TransportClosedError,
)
from transcore.translation.transport import WORKER_MODULE, WorkerTransport


async def settle(rounds: int = 5):
    for _ in range(rounds):
        await asyncio.sleep(0)


class TestCorrelation:
    @pytest.mark.asyncio
    async def test_out_of_order_responses(self, make_channel):
        channel = make_channel()
        transport = WorkerTransport(channel)

        tasks = [asyncio.ensure_future(transport.call("echo", i)) for i in range(3)]
        await settle()
        assert [m["id"] for m in channel.sent] == [1, 2, 3]
        assert transport.pending_count == 3

        channel.push({"id": 3, "result": "third"})
        channel.push({"id": 1, "result": "first"})
        channel.push({"id": 2, "result": "second"})

        assert await asyncio.gather(*tasks) == ["first", "second", "third"]
        assert transport.pending_count == 0
        await transport.close()

    @pytest.mark.asyncio
    async def test_ids_never_reused(self, make_channel, worker_emulator):
        channel = make_channel(worker_emulator)
        transport = WorkerTransport(channel)

        for _ in range(4):
            await transport.call("ping")

        ids = [m["id"] for m in channel.sent]
        assert ids == sorted(set(ids))
        await transport.close()

    @pytest.mark.asyncio
    async def test_unknown_id_dropped(self, make_channel):
        channel = make_channel()
        transport = WorkerTransport(channel)

        task = asyncio.ensure_future(transport.call("ping"))
        await settle()
        channel.push({"id": 99, "result": "stray"})
        channel.push({"id": "1", "result": "wrong type"})
        channel.push({"id": 1, "result": "pong"})

        assert await task == "pong"
        assert transport.errors == []
        await transport.close()

    @pytest.mark.asyncio
    async def test_translate_message_shape(self, make_channel, worker_emulator):
        channel = make_channel(worker_emulator)
        transport = WorkerTransport(channel)

        result = await transport.translate("ja-en", "こんにちは", html=True)

        assert result == "[ja-en] こんにちは"
        assert channel.sent[-1]["name"] == "translate"
        assert channel.sent[-1]["args"] == ["ja-en", "こんにちは", {"html": True}]
        await transport.close()

    @pytest.mark.asyncio
    async def test_exports_proxy(self, make_channel, worker_emulator):
        channel = make_channel(worker_emulator)
        transport = WorkerTransport(channel)

        assert await transport.exports.load_model("ja-en", {"model": "/m"}) is True
        assert channel.sent[-1]["name"] == "load_model"
        assert not hasattr(transport.exports, "__await__")
        await transport.close()


class TestRemoteErrors:
    @pytest.mark.asyncio
    async def test_error_is_augmented(self, make_channel):
        def responder(message):
            return {
                "id": message["id"],
                "error": {"message": "model missing", "stack": "remote frame", "name": "KeyError"},
            }

        transport = WorkerTransport(make_channel(responder))

        with pytest.raises(RemoteCallError) as exc_info:
            await transport.call("translate", "ja-en", "hi")

        error = exc_info.value
        assert str(error) == "model missing (response to translate(ja-en, hi))"
        assert error.callsite == "translate(ja-en, hi)"
        assert error.remote_stack == "remote frame"
        assert error.stack.startswith("remote frame\n")
        assert "test_error_is_augmented" in error.stack
        assert error.details == {"name": "KeyError"}
        assert transport.pending_count == 0
        await transport.close()

    @pytest.mark.asyncio
    async def test_fatal_goes_to_listeners(self, make_channel):
        channel = make_channel()
        transport = WorkerTransport(channel)
        seen = []
        transport.add_error_listener(seen.append)

        def broken_listener(error):
            raise RuntimeError("listener bug")

        transport.add_error_listener(broken_listener)

        channel.push({"fatal": {"message": "segfault in engine", "stack": "frame"}})
        await settle()

        assert len(seen) == 1
        assert isinstance(seen[0], RemoteCallError)
        assert str(seen[0]) == "segfault in engine"
        assert transport.errors == seen
        assert not transport.closed
        await transport.close()


class TestTeardown:
    @pytest.mark.asyncio
    async def test_close_fails_pending_calls(self, make_channel):
        channel = make_channel()
        transport = WorkerTransport(channel)

        task = asyncio.ensure_future(transport.call("translate", "ja-en", "hi"))
        await settle()
        await transport.close()

        with pytest.raises(TransportClosedError):
            await task
        assert channel.closed
        assert transport.pending_count == 0

    @pytest.mark.asyncio
    async def test_call_after_close(self, make_channel):
        transport = WorkerTransport(make_channel())
        await transport.close()
        await transport.close()

        with pytest.raises(TransportClosedError):
            await transport.call("ping")

    @pytest.mark.asyncio
    async def test_worker_exit_fails_pending_and_reports(self, make_channel):
        channel = make_channel()
        transport = WorkerTransport(channel)
        seen = []
        transport.add_error_listener(seen.append)

        task = asyncio.ensure_future(transport.call("ping"))
        await settle()
        channel.finish()

        with pytest.raises(TransportClosedError, match="exited unexpectedly"):
            await task
        assert transport.closed
        assert len(seen) == 1
        await transport.close()


class TestSpawn:
    @pytest.mark.asyncio
    async def test_spawn_initializes(self, make_channel, worker_emulator):
        channel = make_channel(worker_emulator)

        async def factory():
            return channel

        transport = await WorkerTransport.spawn({"backend": "x:Y"}, channel_factory=factory)

        assert channel.sent[0]["name"] == "initialize"
        assert channel.sent[0]["args"] == [{"backend": "x:Y"}]
        await transport.close()

    @pytest.mark.asyncio
    async def test_remote_init_failure(self, make_channel):
        def responder(message):
            return {"id": message["id"], "error": {"message": "No module named 'bergamot'"}}

        channel = make_channel(responder)

        async def factory():
            return channel

        with pytest.raises(EngineInitError) as exc_info:
            await WorkerTransport.spawn(
                {}, expected_paths=["/models/ja-en/model.bin"], channel_factory=factory
            )

        error = exc_info.value
        assert "No module named 'bergamot'" in str(error)
        assert error.expected_paths == [WORKER_MODULE, "/models/ja-en/model.bin"]
        assert "/models/ja-en/model.bin" in str(error)
        assert channel.closed

    @pytest.mark.asyncio
    async def test_init_timeout(self, make_channel):
        channel = make_channel()

        async def factory():
            return channel

        with pytest.raises(EngineInitError, match="timeout after 0.05 seconds"):
            await WorkerTransport.spawn({}, channel_factory=factory, init_timeout=0.05)
        assert channel.closed

    @pytest.mark.asyncio
    async def test_process_cannot_start(self):
        async def factory():
            raise FileNotFoundError("python not found")

        with pytest.raises(EngineInitError, match="could not start worker process"):
            await WorkerTransport.spawn({}, channel_factory=factory)

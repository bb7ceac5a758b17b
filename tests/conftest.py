"""
Shared Test Fixtures

Provides an in-memory worker channel, a worker emulator and a sample
registry document.
"""

import asyncio
import copy
import pytest

from transcore.translation.exceptions import TransportClosedError
from transcore.translation.transport import WorkerChannel, WorkerTransport

BASE_URL = "https://models.example.com"


def _file(path: str, digest: str = "0" * 64) -> dict:
    return {"path": path, "uncompressedHash": digest}


REGISTRY_DOCUMENT = {
    "baseUrl": BASE_URL,
    "models": {
        "ja-en": [
            {
                "releaseStatus": "Nightly",
                "files": {"model": _file("nightly/jaen/model.bin.gz")},
            },
            {
                "releaseStatus": "Release",
                "files": {
                    "model": _file("jaen/model.jaen.intgemm.alphas.bin.gz"),
                    "vocab": _file("jaen/vocab.jaen.spm.gz"),
                    "lexicalShortlist": _file("jaen/lex.50.50.jaen.s2t.bin.gz"),
                },
            },
        ],
        "en-de": [
            {
                "releaseStatus": "Release Desktop",
                "files": {
                    "model": _file("ende/model.ende.intgemm.alphas.bin.gz"),
                    "srcVocab": _file("ende/srcvocab.ende.spm.gz"),
                    "trgVocab": _file("ende/trgvocab.ende.spm.gz"),
                },
            },
        ],
        "de-en": [
            {
                "releaseStatus": "Release",
                "files": {
                    "model": _file("deen/model.deen.intgemm.alphas.bin.gz"),
                    "vocab": _file("deen/vocab.deen.spm.gz"),
                },
            },
        ],
        "en-ja": [
            {
                "releaseStatus": "Release",
                "files": {
                    "model": _file("enja/model.enja.intgemm.alphas.bin.gz"),
                    "vocab": _file("enja/vocab.enja.spm.gz"),
                },
            },
        ],
    },
}


class FakeChannel(WorkerChannel):
    """In-memory worker pipe; ``responder`` plays the worker"""

    def __init__(self, responder=None):
        self.responder = responder
        self.sent = []
        self.closed = False
        self._queue = None

    @property
    def queue(self):
        # created on first use so it binds to the running test loop
        if self._queue is None:
            self._queue = asyncio.Queue()
        return self._queue

    async def send(self, message):
        if self.closed:
            raise TransportClosedError("fake channel closed")
        self.sent.append(message)
        if self.responder is not None:
            response = self.responder(message)
            if response is not None:
                self.push(response)

    def push(self, message):
        self.queue.put_nowait(message)

    def finish(self):
        """Simulate the worker process exiting"""
        self.queue.put_nowait(None)

    async def messages(self):
        while True:
            message = await self.queue.get()
            if message is None:
                return
            yield message

    async def close(self):
        self.closed = True


def emulate_worker(message):
    """Answer like a healthy worker: translations are tagged with the pair key"""
    name, args = message["name"], message["args"]
    if name == "translate":
        key, text = args[0], args[1]
        return {"id": message["id"], "result": f"[{key}] {text}"}
    return {"id": message["id"], "result": True}


class FakeTransportFactory:
    """Stands in for spawning worker processes; counts spawns"""

    def __init__(self, responder=emulate_worker):
        self.responder = responder
        self.spawned = 0
        self.transports = []
        self.calls = []

    async def __call__(self, options, expected_paths):
        self.spawned += 1
        self.calls.append((options, expected_paths))
        channel = FakeChannel(self.responder)
        transport = WorkerTransport(channel)
        await transport.initialize(options)
        self.transports.append(transport)
        return transport


@pytest.fixture
def registry_document():
    return copy.deepcopy(REGISTRY_DOCUMENT)


@pytest.fixture
def worker_emulator():
    return emulate_worker


@pytest.fixture
def make_channel():
    return FakeChannel


@pytest.fixture
def transport_factory():
    return FakeTransportFactory()


@pytest.fixture
def make_transport_factory():
    return FakeTransportFactory

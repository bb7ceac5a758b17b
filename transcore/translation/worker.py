"""
Translation Worker Process
Runs the on-device engine isolated from the host; ``transport.py`` is the
host side of the protocol.

Run:
    python -m transcore.translation.worker

Only protocol lines are written to the original stdout. Anything the engine
prints, and all logging, goes to stderr.
"""

import importlib
import json
import logging
import os
import sys
import traceback
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TextIO

logger = logging.getLogger("transcore.worker")

DEFAULT_BACKEND = "transcore.translation.worker:BergamotBackend"


def marian_config(files: Dict[str, str]) -> dict:
    """Engine configuration for one model directory"""
    if "vocab" in files:
        vocabs = [files["vocab"], files["vocab"]]
    else:
        vocabs = [files["srcvocab"], files["trgvocab"]]

    config = {
        "models": [files["model"]],
        "vocabs": vocabs,
        "beam-size": 1,
        "normalize": 1.0,
        "word-penalty": 0,
        "max-length-break": 128,
        "mini-batch-words": 1024,
        "workspace": 128,
        "max-length-factor": 2.0,
        "skip-cost": True,
        "cpu-threads": 0,
        "quiet": True,
        "quiet-translation": True,
        "gemm-precision": "int8shiftAlphaAll",
        "alignment": "soft",
    }
    if "lex" in files:
        config["shortlist"] = [files["lex"], False]
    return config


class BergamotBackend:
    """
    Neural machine translation with the bergamot-translator bindings.

    Each loaded model is addressed by its pair key ("ja-en").
    """

    def __init__(self, options: dict):
        import bergamot

        self._bergamot = bergamot
        self._service = bergamot.Service(
            bergamot.ServiceConfig(
                numWorkers=int(options.get("num_workers", 1)),
                cacheSize=int(options.get("cache_size", 0)),
                logLevel="off",
            )
        )
        self._models: Dict[str, Any] = {}

    def load_model(self, key: str, files: Dict[str, str]):
        missing = [path for path in files.values() if not Path(path).exists()]
        if missing:
            raise FileNotFoundError(f"Model files not found: {', '.join(missing)}")

        # Marian reads YAML; JSON is valid YAML
        config_path = Path(files["model"]).parent / "config.yml"
        config_path.write_text(json.dumps(marian_config(files), indent=2), encoding="utf-8")
        self._models[key] = self._service.modelFromConfigPath(str(config_path))
        logger.info("Loaded model %s", key)

    def translate(self, key: str, text: str, html: bool = False) -> str:
        model = self._models.get(key)
        if model is None:
            raise KeyError(f"Model {key} is not loaded")
        responses = self._service.translate(
            model,
            self._bergamot.VectorString([text]),
            self._bergamot.ResponseOptions(HTML=html),
        )
        return responses[0].target.text

    def unload_model(self, key: str):
        self._models.pop(key, None)


def load_backend(spec: str) -> Callable[[dict], Any]:
    """Resolve a "module:Class" backend reference"""
    module_name, _, attr = spec.partition(":")
    module = importlib.import_module(module_name)
    return getattr(module, attr or "Backend")


def serialize_error(error: BaseException) -> dict:
    return {
        "message": str(error) or error.__class__.__name__,
        "name": error.__class__.__name__,
        "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
    }


class Worker:
    """Dispatches protocol requests to the backend"""

    COMMANDS = frozenset({"initialize", "load_model", "translate", "unload_model", "ping"})

    def __init__(self):
        self.backend: Optional[Any] = None

    def initialize(self, options: dict) -> bool:
        factory = load_backend(options.get("backend") or DEFAULT_BACKEND)
        self.backend = factory(options)
        logger.info("Backend ready: %s", factory.__name__)
        return True

    def _require_backend(self) -> Any:
        if self.backend is None:
            raise RuntimeError("Worker is not initialized")
        return self.backend

    def load_model(self, key: str, files: Dict[str, str]) -> bool:
        self._require_backend().load_model(key, files)
        return True

    def translate(self, key: str, text: str, options: Optional[dict] = None) -> str:
        html = bool((options or {}).get("html", False))
        return self._require_backend().translate(key, text, html=html)

    def unload_model(self, key: str) -> bool:
        self._require_backend().unload_model(key)
        return True

    def ping(self) -> str:
        return "pong"

    def handle(self, message: dict) -> dict:
        call_id = message.get("id")
        name = message.get("name")
        args = message.get("args") or []
        try:
            if name not in self.COMMANDS:
                raise AttributeError(f"Unknown worker method: {name}")
            result = getattr(self, name)(*args)
        except Exception as e:  # noqa: BLE001 - reported back to the caller
            return {"id": call_id, "error": serialize_error(e)}
        return {"id": call_id, "result": result}


def _protocol_stream() -> TextIO:
    """Keep fd 1 for protocol lines and point everything else at stderr"""
    protocol_fd = os.dup(1)
    os.dup2(2, 1)
    sys.stdout = sys.stderr
    return os.fdopen(protocol_fd, "w", encoding="utf-8", buffering=1)


def _write(stream: TextIO, response: dict):
    try:
        line = json.dumps(response)
    except (TypeError, ValueError) as e:
        line = json.dumps({"id": response.get("id"), "error": serialize_error(e)})
    stream.write(line + "\n")
    stream.flush()


def main(stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None) -> int:
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    stdin = stdin or sys.stdin
    stdout = stdout or _protocol_stream()
    worker = Worker()

    try:
        for line in stdin:
            line = line.strip()
            if not line:
                continue
            try:
                message = json.loads(line)
            except ValueError:
                logger.warning("Ignoring malformed request: %r", line[:200])
                continue
            if not isinstance(message, dict):
                logger.warning("Ignoring non-object request: %r", line[:200])
                continue
            _write(stdout, worker.handle(message))
    except Exception as e:  # noqa: BLE001 - reported as an out-of-band failure
        _write(stdout, {"fatal": serialize_error(e)})
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations

import json
import select
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from lsprotocol.converters import get_converter
from lsprotocol.types import DefinitionParams, Position, TextDocumentIdentifier
from pygls.exceptions import JsonRpcException

from ci_operator_lsp import server
from ci_operator_lsp.invariants import require_not_none
from ci_operator_lsp.json_types import JSONObject, RpcMessage
from ci_operator_lsp.session import SessionController

DEFAULT_TIMEOUT_SECONDS = 10.0

# Watcher registrations from the server are accepted and acknowledged.
CLIENT_CAPABILITIES: JSONObject = {
    "workspace": {"didChangeWatchedFiles": {"dynamicRegistration": True}},
}

_converter = get_converter()


class LspClientError(RuntimeError):
    pass


@dataclass(frozen=True)
class DefinitionRequest:
    document: Path
    line: int
    character: int = 0

    def params(self) -> JSONObject:
        return {
            "textDocument": {"uri": self.document.resolve().as_uri()},
            "position": {"line": self.line, "character": self.character},
        }


def _workspace_folders(root: Path) -> list[JSONObject]:
    return [{"uri": root.as_uri(), "name": root.name}]


class _RpcChannel:
    """Content-Length framed JSON-RPC over a pair of byte streams."""

    def __init__(
        self,
        writer,
        reader,
        *,
        deadline_ns: int,
        notification_callback: Callable[[RpcMessage], None] | None = None,
    ) -> None:
        self._writer = writer
        self._reader = reader
        self._deadline_ns = deadline_ns
        self._notification_callback = notification_callback

    def _wait_readable(self) -> None:
        if time.monotonic_ns() >= self._deadline_ns:
            raise LspClientError("LSP response timed out")
        try:
            fd = self._reader.fileno()
        except (AttributeError, OSError, ValueError):
            # In-memory streams have no descriptor and are always readable.
            return
        timeout = max(0.0, (self._deadline_ns - time.monotonic_ns()) / 1_000_000_000)
        ready, _, _ = select.select([fd], [], [], timeout)
        if not ready:
            raise LspClientError("LSP response timed out")

    def _read(self, size: int) -> bytes:
        self._wait_readable()
        chunk = self._reader.read(size)
        if not chunk:
            raise LspClientError("LSP stream closed")
        return chunk

    def read_message(self) -> RpcMessage:
        header = b""
        while b"\r\n\r\n" not in header:
            header += self._read(1)
        length = 0
        for line in header.split(b"\r\n"):
            name, _, value = line.partition(b":")
            if name.strip().lower() == b"content-length":
                length = int(value.strip())
        if length <= 0:
            raise LspClientError("Invalid LSP Content-Length")
        body = bytearray()
        while len(body) < length:
            body.extend(self._read(length - len(body)))
        message = json.loads(body.decode("utf-8"))
        if not isinstance(message, dict):
            raise LspClientError("Invalid LSP message payload")
        return message

    def send(self, message: RpcMessage) -> None:
        payload = json.dumps(message).encode("utf-8")
        try:
            self._writer.write(f"Content-Length: {len(payload)}\r\n\r\n".encode("utf-8") + payload)
            self._writer.flush()
        except OSError as exc:
            raise LspClientError(f"LSP stream closed: {exc}") from exc

    def notify(self, method: str, params: JSONObject | None = None) -> None:
        self.send({"jsonrpc": "2.0", "method": method, "params": params or {}})

    def request(self, msg_id: int, method: str, params: JSONObject | None = None) -> RpcMessage:
        message: RpcMessage = {"jsonrpc": "2.0", "id": msg_id, "method": method}
        if params is not None:
            message["params"] = params
        self.send(message)
        while True:
            reply = self.read_message()
            if "method" in reply:
                if "id" in reply:
                    # Server-initiated request, e.g. client/registerCapability.
                    self.send({"jsonrpc": "2.0", "id": reply["id"], "result": None})
                if self._notification_callback is not None:
                    self._notification_callback(reply)
                continue
            if reply.get("id") == msg_id:
                return reply


def _error_text(reply: RpcMessage) -> str:
    error = reply.get("error")
    if isinstance(error, dict):
        return str(error.get("message", error))
    return str(error)


def _locations(result: object) -> list[JSONObject]:
    if result is None:
        return []
    if isinstance(result, dict):
        return [result]
    if isinstance(result, list) and all(isinstance(item, dict) for item in result):
        return list(result)
    raise LspClientError(f"Unexpected definition result payload: {type(result).__name__}")


def request_definition(
    request: DefinitionRequest,
    *,
    root: Path | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    process_factory: Callable[..., subprocess.Popen] = subprocess.Popen,
    notification_callback: Callable[[RpcMessage], None] | None = None,
    initialize_callback: Callable[[JSONObject], None] | None = None,
) -> list[JSONObject]:
    """Ask a freshly spawned stdio server where ``request`` points.

    The server process never outlives the call: whatever goes wrong, a child
    that has not exited is killed and reaped.
    """
    if timeout_seconds <= 0:
        raise LspClientError(f"invalid timeout: {timeout_seconds}")
    workspace = (root or Path.cwd()).resolve()
    deadline_ns = time.monotonic_ns() + int(timeout_seconds * 1_000_000_000)
    proc = process_factory(
        [sys.executable, "-m", "ci_operator_lsp.server"],
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        bufsize=0,
    )
    try:
        channel = _RpcChannel(
            require_not_none(proc.stdin, reason="server stdin pipe missing"),
            require_not_none(proc.stdout, reason="server stdout pipe missing"),
            deadline_ns=deadline_ns,
            notification_callback=notification_callback,
        )
        initialize = channel.request(
            1,
            "initialize",
            {
                "processId": None,
                "rootUri": workspace.as_uri(),
                "workspaceFolders": _workspace_folders(workspace),
                "capabilities": CLIENT_CAPABILITIES,
            },
        )
        if initialize.get("error"):
            raise LspClientError(f"initialize rejected: {_error_text(initialize)}")
        if initialize_callback is not None:
            result = initialize.get("result")
            initialize_callback(result if isinstance(result, dict) else {})
        channel.notify("initialized")
        response = channel.request(2, "textDocument/definition", request.params())
        channel.request(3, "shutdown")
        channel.notify("exit")
        remaining = max(1.0, (deadline_ns - time.monotonic_ns()) / 1_000_000_000)
        try:
            _out, err = proc.communicate(timeout=remaining)
        except subprocess.TimeoutExpired:
            proc.kill()
            _out, err = proc.communicate(timeout=1.0)
    finally:
        if proc.poll() is None:
            proc.kill()
            proc.communicate(timeout=1.0)
    if response.get("error"):
        raise LspClientError(f"LSP error: {_error_text(response)}")
    if proc.returncode not in (0, None):
        detail = err.decode("utf-8", errors="replace").strip() if err else ""
        raise LspClientError(f"LSP server failed (exit {proc.returncode}): {detail}")
    return _locations(response.get("result"))


@dataclass(frozen=True)
class InProcessServer:
    """The part of the language server the request handlers read."""

    controller: SessionController


def request_definition_direct(
    request: DefinitionRequest,
    *,
    root: Path | None = None,
    controller: SessionController | None = None,
) -> list[JSONObject]:
    """Same exchange as ``request_definition`` against in-process handlers.

    Handshake failures surface as InitializationError, as they would in the
    server before being turned into an error reply.
    """
    workspace = (root or Path.cwd()).resolve()
    ls = InProcessServer(controller=controller or SessionController())
    ls.controller.initialize(_workspace_folders(workspace))
    params = DefinitionParams(
        text_document=TextDocumentIdentifier(uri=request.document.resolve().as_uri()),
        position=Position(line=request.line, character=request.character),
    )
    try:
        locations = server.definition(ls, params)
    except JsonRpcException as exc:
        raise LspClientError(f"LSP error: {exc.message}") from exc
    return [_converter.unstructure(location) for location in locations or []]

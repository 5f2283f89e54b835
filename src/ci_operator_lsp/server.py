from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from lsprotocol.types import (
    INITIALIZE,
    INITIALIZED,
    TEXT_DOCUMENT_COMPLETION,
    TEXT_DOCUMENT_DEFINITION,
    TEXT_DOCUMENT_FORMATTING,
    TEXT_DOCUMENT_HOVER,
    WORKSPACE_DID_CHANGE_WATCHED_FILES,
    CompletionItem,
    CompletionItemKind,
    CompletionOptions,
    CompletionParams,
    DefinitionParams,
    DidChangeWatchedFilesParams,
    DidChangeWatchedFilesRegistrationOptions,
    DocumentFormattingParams,
    ErrorCodes,
    FileSystemWatcher,
    Hover,
    HoverParams,
    InitializeParams,
    InitializedParams,
    LSPErrorCodes,
    Location,
    MarkupContent,
    MarkupKind,
    Position,
    Range,
    Registration,
    RegistrationParams,
    TextEdit,
)
from pygls.exceptions import JsonRpcException
from pygls.lsp.server import LanguageServer

from ci_operator_lsp import __version__
from ci_operator_lsp.documents import FILE_SCHEME_PREFIX, read_document_lines
from ci_operator_lsp.exceptions import (
    DocumentReadError,
    InitializationError,
    NeverThrown,
    SessionNotReadyError,
)
from ci_operator_lsp.resolver import resolve_definition
from ci_operator_lsp.schema import GenerationsResponse
from ci_operator_lsp.session import Session, SessionController

logger = logging.getLogger(__name__)

SERVER_NAME = "ci-operator-lsp"
GENERATIONS_COMMAND = "ciOperator.generations"
COMPLETION_TRIGGER_CHARACTERS = ["-"]
WATCHER_REGISTRATION_ID = "ci-operator-lsp.watched-files"
WATCHED_FILE_GLOBS = (
    "**/ci-operator/config/**/*.yaml",
    "**/ci-operator/step-registry/**/*",
)

# Placeholder payloads; hover and completion have no domain logic yet.
HOVER_PLACEHOLDER_TEXT = "hello world"
COMPLETION_PLACEHOLDER_LABEL = "code"
COMPLETION_PLACEHOLDER_INSERT_TEXT = "Hello"


class CiOperatorLanguageServer(LanguageServer):
    def __init__(self, *args, controller: SessionController | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.controller = controller or SessionController()


server = CiOperatorLanguageServer(SERVER_NAME, __version__)


def _require_session(ls) -> Session:
    try:
        return ls.controller.require_session()
    except SessionNotReadyError as exc:
        raise JsonRpcException(
            code=ErrorCodes.ServerNotInitialized.value,
            message=str(exc),
        ) from exc


def _read_lines(uri: str) -> list[str]:
    try:
        return read_document_lines(uri)
    except DocumentReadError as exc:
        logger.warning("%s", exc)
        raise JsonRpcException(
            code=LSPErrorCodes.RequestFailed.value,
            message=str(exc),
            data={"path": exc.path},
        ) from exc


def _location(target: str) -> Location:
    path = Path(target)
    uri = path.as_uri() if path.is_absolute() else FILE_SCHEME_PREFIX + target
    origin = Position(line=0, character=0)
    return Location(uri=uri, range=Range(start=origin, end=origin))


def _supports_watcher_registration(capabilities) -> bool:
    workspace = getattr(capabilities, "workspace", None)
    watched = getattr(workspace, "did_change_watched_files", None)
    return bool(getattr(watched, "dynamic_registration", False))


def _log_watcher_registration(future) -> None:
    if future.cancelled():
        logger.warning("file watcher registration was cancelled")
        return
    exc = future.exception()
    if exc is not None:
        logger.warning("client rejected file watcher registration: %s", exc)
        return
    logger.info("registered file watchers %s", ", ".join(WATCHED_FILE_GLOBS))


@server.feature(INITIALIZE)
def initialize(ls: CiOperatorLanguageServer, params: InitializeParams) -> None:
    """Establish the session before pygls answers with the capabilities.

    A rejected handshake answers the request with an error and
    ``{"retry": false}``; the session stays uninitialized.
    """
    try:
        ls.controller.initialize(params.workspace_folders)
    except InitializationError as exc:
        logger.error("initialize rejected: %s", exc)
        raise JsonRpcException(
            code=ErrorCodes.InvalidParams.value,
            message=str(exc),
            data={"retry": False},
        ) from exc


@server.feature(INITIALIZED)
def initialized(ls: CiOperatorLanguageServer, params: InitializedParams) -> None:
    """Ask the client to report changes under the ci-operator trees."""
    if ls.controller.session is None:
        return
    if not _supports_watcher_registration(ls.client_capabilities):
        logger.info("client cannot register file watchers; agents keep their initial snapshot")
        return
    registration = Registration(
        id=WATCHER_REGISTRATION_ID,
        method=WORKSPACE_DID_CHANGE_WATCHED_FILES,
        register_options=DidChangeWatchedFilesRegistrationOptions(
            watchers=[FileSystemWatcher(glob_pattern=glob) for glob in WATCHED_FILE_GLOBS]
        ),
    )
    future = ls.client_register_capability(RegistrationParams(registrations=[registration]))
    future.add_done_callback(_log_watcher_registration)


@server.feature(TEXT_DOCUMENT_DEFINITION)
def definition(ls: CiOperatorLanguageServer, params: DefinitionParams) -> list[Location] | None:
    session = _require_session(ls)
    uri = params.text_document.uri
    lines = _read_lines(uri)
    try:
        targets = resolve_definition(lines, params.position.line, session.registry_root)
    except NeverThrown as exc:
        raise JsonRpcException(
            code=ErrorCodes.InvalidParams.value,
            message=exc.reason,
            data={str(key): value for key, value in exc.env.items()},
        ) from exc
    if not targets:
        logger.debug("no definition at %s:%d", uri, params.position.line)
        return None
    logger.debug("definition at %s:%d -> %s", uri, params.position.line, targets[0])
    return [_location(target) for target in targets]


@server.feature(TEXT_DOCUMENT_HOVER)
def hover(ls: CiOperatorLanguageServer, params: HoverParams) -> Hover:
    """Placeholder hover (stub); the reply does not depend on the request."""
    session = _require_session(ls)
    logger.info(
        "hover: %s:%d (config generation %d, registry generation %d)",
        params.text_document.uri,
        params.position.line,
        session.config_agent.get_generation(),
        session.registry_agent.get_generation(),
    )
    return Hover(
        contents=MarkupContent(kind=MarkupKind.PlainText, value=HOVER_PLACEHOLDER_TEXT)
    )


@server.feature(
    TEXT_DOCUMENT_COMPLETION,
    CompletionOptions(trigger_characters=COMPLETION_TRIGGER_CHARACTERS),
)
def completion(ls: CiOperatorLanguageServer, params: CompletionParams) -> list[CompletionItem]:
    """Placeholder completion (stub): a single fixed candidate."""
    _require_session(ls)
    logger.info("completion: %s:%d", params.text_document.uri, params.position.line)
    return [
        CompletionItem(
            label=COMPLETION_PLACEHOLDER_LABEL,
            kind=CompletionItemKind.Text,
            insert_text=COMPLETION_PLACEHOLDER_INSERT_TEXT,
        )
    ]


@server.feature(TEXT_DOCUMENT_FORMATTING)
def formatting(ls: CiOperatorLanguageServer, params: DocumentFormattingParams) -> list[TextEdit]:
    """Check the document is readable; formatting never changes content."""
    _require_session(ls)
    logger.info("format: %s", params.text_document.uri)
    _read_lines(params.text_document.uri)
    return []


@server.feature(WORKSPACE_DID_CHANGE_WATCHED_FILES)
def did_change_watched_files(
    ls: CiOperatorLanguageServer, params: DidChangeWatchedFilesParams
) -> None:
    session = ls.controller.session
    if session is None:
        logger.debug("ignoring %d file events before initialize", len(params.changes))
        return
    config_changed = session.config_agent.reload()
    registry_changed = session.registry_agent.reload()
    logger.info(
        "reloaded agents after %d file events: config %s (generation %d), registry %s (generation %d)",
        len(params.changes),
        "changed" if config_changed else "unchanged",
        session.config_agent.get_generation(),
        "changed" if registry_changed else "unchanged",
        session.registry_agent.get_generation(),
    )


@server.command(GENERATIONS_COMMAND)
def execute_generations(ls: CiOperatorLanguageServer, payload: dict | None = None) -> dict:
    session = _require_session(ls)
    response = GenerationsResponse(
        config=session.config_agent.get_generation(),
        registry=session.registry_agent.get_generation(),
    )
    return response.model_dump()


def start(start_fn: Callable[[], None] | None = None) -> None:
    """Start the language server; stdio unless another transport is given."""
    (start_fn or server.start_io)()


if __name__ == "__main__":  # pragma: no cover
    start()  # pragma: no cover

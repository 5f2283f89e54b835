"""Session bootstrap: one workspace root in, two agents and a registry root out.

The controller has two states. Before a successful ``initialize`` it holds no
session and only the handshake is meaningful; afterwards it holds an immutable
``Session`` for the rest of the process. The transition happens once.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote

from pydantic import ValidationError

from ci_operator_lsp.agents import ConfigAgent, ErrorHook, RegistryAgent
from ci_operator_lsp.documents import FILE_SCHEME_PREFIX
from ci_operator_lsp.exceptions import InitializationError, SessionNotReadyError
from ci_operator_lsp.schema import HandshakeDTO

logger = logging.getLogger(__name__)

CONFIG_SUBPATH = ("ci-operator", "config")
REGISTRY_SUBPATH = ("ci-operator", "step-registry")

ConfigAgentFactory = Callable[..., ConfigAgent]
RegistryAgentFactory = Callable[..., RegistryAgent]


@dataclass(frozen=True)
class WorkspaceLayout:
    root: Path
    config_root: Path
    registry_root: Path

    @classmethod
    def from_root(cls, root: Path) -> WorkspaceLayout:
        return cls(
            root=root,
            config_root=root.joinpath(*CONFIG_SUBPATH),
            registry_root=root.joinpath(*REGISTRY_SUBPATH),
        )


@dataclass(frozen=True)
class Session:
    layout: WorkspaceLayout
    config_agent: ConfigAgent
    registry_agent: RegistryAgent

    @property
    def registry_root(self) -> Path:
        return self.layout.registry_root


def workspace_root(workspace_folders: object) -> Path:
    """Validate the offered workspace folders and return the single root path."""
    try:
        handshake = HandshakeDTO.model_validate(
            {"workspace_folders": workspace_folders}, from_attributes=True
        )
    except ValidationError as exc:
        raise InitializationError(
            f"expected exactly one workspace folder with a string uri: {exc}"
        ) from exc
    uri = handshake.workspace_folders[0].uri
    root = Path(unquote(uri.removeprefix(FILE_SCHEME_PREFIX)))
    try:
        root.stat()
    except OSError as exc:
        raise InitializationError(
            f"workspace root {root} is not accessible: {exc}"
        ) from exc
    return root


class SessionController:
    def __init__(
        self,
        *,
        config_agent_factory: ConfigAgentFactory = ConfigAgent,
        registry_agent_factory: RegistryAgentFactory = RegistryAgent,
        on_agent_error: ErrorHook | None = None,
    ) -> None:
        self._config_agent_factory = config_agent_factory
        self._registry_agent_factory = registry_agent_factory
        self._on_agent_error = on_agent_error
        self._session: Session | None = None

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def ready(self) -> bool:
        return self._session is not None

    def require_session(self) -> Session:
        session = self._session
        if session is None:
            raise SessionNotReadyError("server has not been initialized")
        return session

    def initialize(self, workspace_folders: object) -> Session:
        """Run the handshake and publish the session.

        Raises InitializationError on any failure, in which case the
        controller is left exactly as it was. A second handshake is rejected
        rather than treated as a reset.
        """
        if self._session is not None:
            raise InitializationError("session already initialized")
        root = workspace_root(workspace_folders)
        layout = WorkspaceLayout.from_root(root)
        try:
            config_agent = self._config_agent_factory(
                layout.config_root, on_error=self._on_agent_error
            )
        except Exception as exc:
            raise InitializationError(f"failed to start config agent: {exc}") from exc
        try:
            registry_agent = self._registry_agent_factory(
                layout.registry_root, on_error=self._on_agent_error, flat=False
            )
        except Exception as exc:
            raise InitializationError(f"failed to start registry agent: {exc}") from exc
        session = Session(
            layout=layout,
            config_agent=config_agent,
            registry_agent=registry_agent,
        )
        self._session = session
        logger.info(
            "session ready: root=%s registry=%s (config generation %d, registry generation %d)",
            root,
            layout.registry_root,
            config_agent.get_generation(),
            registry_agent.get_generation(),
        )
        return session

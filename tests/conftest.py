from __future__ import annotations

import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
for entry in (ROOT, ROOT / "src"):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))


import pytest

from ci_operator_lsp.session import SessionController
from tests.server_helpers import DummyServer

REGISTRY_FILES = (
    "ipi/deprovision/deprovision/ipi-deprovision-deprovision-ref.yaml",
    "ipi/deprovision/deprovision/ipi-deprovision-deprovision-commands.sh",
    "ipi/aws/ipi-aws-workflow.yaml",
    "ipi/aws/pre/ipi-aws-pre-chain.yaml",
)

CONFIG_FILES = (
    "openshift/installer/openshift-installer-main.yaml",
)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "release"
    for rel in REGISTRY_FILES:
        path = root / "ci-operator" / "step-registry" / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("# registry\n", encoding="utf-8")
    for rel in CONFIG_FILES:
        path = root / "ci-operator" / "config" / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("tests: []\n", encoding="utf-8")
    return root


@pytest.fixture
def workspace_folders(workspace: Path) -> list[dict[str, str]]:
    return [{"uri": workspace.as_uri(), "name": workspace.name}]


@pytest.fixture
def controller() -> SessionController:
    return SessionController()


@pytest.fixture
def ready_server(controller: SessionController, workspace_folders) -> DummyServer:
    controller.initialize(workspace_folders)
    return DummyServer(controller)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)

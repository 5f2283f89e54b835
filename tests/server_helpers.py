from __future__ import annotations

from concurrent.futures import Future

from ci_operator_lsp.session import SessionController


class DummyServer:
    """Stand-in for the pygls server: handlers only touch ``controller``.

    Capability registrations are recorded and acknowledged immediately.
    """

    def __init__(self, controller: SessionController, client_capabilities=None) -> None:
        self.controller = controller
        self.client_capabilities = client_capabilities
        self.registrations: list = []

    def client_register_capability(self, params) -> Future:
        self.registrations.append(params)
        future: Future = Future()
        future.set_result(None)
        return future

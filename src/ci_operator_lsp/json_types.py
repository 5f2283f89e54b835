from __future__ import annotations

"""JSON value types for the wire messages the client and CLI handle.

The server side works with lsprotocol types; these aliases cover the places
where raw JSON-RPC frames or command payloads are passed around instead.
"""

from typing import TypeAlias


JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]
RpcMessage: TypeAlias = JSONObject

"""Map a cursor line in a ci-operator YAML file to a step-registry file.

This is a line-level heuristic, not a YAML parser: the line is split on its
first colon and the value on hyphens. Quoted values, multi-line scalars and
keys that contain hyphens are not understood. Everything outside this module
only depends on ``resolve_definition``/``resolve_reference``, so a real
structured parser can replace the heuristic without touching the server.
"""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ci_operator_lsp.invariants import never

logger = logging.getLogger(__name__)

YAML_EXTENSION = ".yaml"
COMMANDS_EXTENSION = ".sh"

# Reference key -> extension of the file that defines it.
REFERENCE_KEYS: dict[str, str] = {
    "workflow": YAML_EXTENSION,
    "chain": YAML_EXTENSION,
    "ref": YAML_EXTENSION,
    "commands": COMMANDS_EXTENSION,
}


@dataclass(frozen=True)
class Reference:
    key: str
    components: tuple[str, ...]
    extension: str
    target: Path


def _reference_key(fragment: str) -> str:
    # "  - ref" -> "ref"
    return fragment.strip().lstrip("-").strip()


def parse_reference(line: str) -> tuple[str, tuple[str, ...], str] | None:
    """Split one YAML line into (key, path components, extension).

    Returns None when the line does not name a registry reference.
    """
    key_fragment, colon, value_fragment = line.partition(":")
    if not colon:
        return None
    key = _reference_key(key_fragment)
    extension = REFERENCE_KEYS.get(key)
    if extension is None:
        return None
    components = value_fragment.strip().split("-")
    if key == "commands":
        # The trailing component names the script suffix, not a directory.
        components = components[:-1]
    return key, tuple(components), extension


def registry_target(
    registry_root: Path | str,
    key: str,
    components: Sequence[str],
    extension: str,
) -> Path:
    filename = "-".join([*components, key]) + extension
    # Text join: an absolute component must not replace the root.
    joined = "/".join([str(registry_root).rstrip("/"), *components, filename])
    return Path(posixpath.normpath(joined))


def resolve_reference(
    lines: Sequence[str],
    line: int,
    registry_root: Path | str,
) -> Reference | None:
    if line < 0 or line >= len(lines):
        never("definition line out of range", line=line, line_count=len(lines))
    parsed = parse_reference(lines[line])
    if parsed is None:
        return None
    key, components, extension = parsed
    target = registry_target(registry_root, key, components, extension)
    if not target.is_relative_to(posixpath.normpath(str(registry_root))):
        logger.debug("%s reference %r leaves the registry: %s", key, lines[line], target)
        return None
    return Reference(
        key=key,
        components=components,
        extension=extension,
        target=target,
    )


def resolve_definition(
    lines: Sequence[str],
    line: int,
    registry_root: Path | str,
) -> list[str]:
    """Return the definition candidates for ``line``: empty or exactly one path.

    The target is not checked for existence; callers get the path the naming
    convention points at.
    """
    reference = resolve_reference(lines, line, registry_root)
    if reference is None:
        return []
    return [str(reference.target)]

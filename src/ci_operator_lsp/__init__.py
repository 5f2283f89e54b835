"""Go-to-definition language server for ci-operator configuration files."""

from ci_operator_lsp.exceptions import NeverRaise, NeverThrown
from ci_operator_lsp.invariants import never

__all__ = ["__version__", "NeverRaise", "NeverThrown", "never"]

__version__ = "0.1.0"

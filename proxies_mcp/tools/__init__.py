from .x402 import X402ToolHandlers
from .x402_session import X402SessionToolHandlers
from .account import AccountToolHandlers
from .formatting import render_error, handles_errors

__all__ = [
    "X402ToolHandlers",
    "X402SessionToolHandlers",
    "AccountToolHandlers",
    "render_error",
    "handles_errors",
]

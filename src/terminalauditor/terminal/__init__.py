"""Pseudo-terminal bridge to the worker process."""

from .bridge import CANCEL_KEY, BridgeStartError, ExitInfo, TerminalBridge

__all__ = ["CANCEL_KEY", "BridgeStartError", "ExitInfo", "TerminalBridge"]

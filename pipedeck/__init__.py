"""Core library for pipedeck, a terminal dashboard for CI pipelines.

The modules here hold the provider adapters, the OAuth device flow and the
session state machine that the Textual front-end drives.
"""

__all__ = ["auth", "cli", "config", "domain", "errors", "git_remote", "providers"]
__version__ = "0.3.0"

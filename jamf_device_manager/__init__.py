"""
Jamf Device Manager package exposing CLI and helper modules.
"""

__all__ = [
    "auth_client",
    "auth_coordinator",
    "bulk_runner",
    "cache",
    "cli",
    "concurrency",
    "config",
    "credential_store",
    "csv_loader",
    "dashboard",
    "device_client",
    "errors",
    "logging_utils",
    "models",
    "search",
    "token_store",
    "utils",
]

"""
SnapCap Client
================

Python side of the app's client glue: endpoint resolution, a REST wrapper
and the friend data cache fed by polling and gateway pushes.
"""

from snapcap.client.api import APIError, SnapCapAPI
from snapcap.client.config import ClientConfig
from snapcap.client.sync import DataSyncService, ReconnectPolicy, format_last_seen

__all__ = [
    "APIError",
    "ClientConfig",
    "DataSyncService",
    "ReconnectPolicy",
    "SnapCapAPI",
    "format_last_seen",
]

"""sources/__init__.py"""
from .elasticsearch import BridgeError, BridgeNotConfigured, ElasticsearchBridge, ElasticsearchConfig
from .host_collector import HostCollector
from .ingest import IngestResult, ingest_batch

__all__ = [
    "BridgeError",
    "BridgeNotConfigured",
    "ElasticsearchBridge",
    "ElasticsearchConfig",
    "HostCollector",
    "IngestResult",
    "ingest_batch",
]

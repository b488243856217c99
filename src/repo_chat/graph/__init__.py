"""Memgraph access for index records."""

from repo_chat.graph.client import MemgraphClient
from repo_chat.graph.schema import GraphSchema

__all__ = ["GraphSchema", "MemgraphClient"]

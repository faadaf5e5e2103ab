"""
NATS Adapters

Provides the NATS client wrapper the ticker feed is consumed through.
"""

from dataflow.adapters.nats_client import NatsClient, NatsConfig, Topics

__all__ = ["NatsClient", "NatsConfig", "Topics"]

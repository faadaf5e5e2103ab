"""
Engine Layer

Process-level wiring of the ingestion service: configuration, the flush
scheduler and the runtime coordinator.
"""

"""
Ingestion

Feed-side entry points that put tickers onto NATS.
"""

"""
Dataflow Layer

Event I/O and aggregation core of the ingestion service. Contains:
- adapters: NATS client adapter for the ticker feed
- candle_aggregation: Tick to candlestick aggregation
- persistence: PostgreSQL store and outbound write queue
- ingestion: HTTP gateway publishing tickers onto NATS
"""

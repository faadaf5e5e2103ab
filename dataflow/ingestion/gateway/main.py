"""
Ticker Gateway

FastAPI service that receives bid/ask tickers from an exchange bridge and
publishes them, normalized, to NATS for the candle aggregator.

HTTP Endpoints:
- POST /ticker   - Receive a ticker and publish it
- GET  /health   - Health status
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional, Union

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field
import uvicorn

from dataflow.adapters.nats_client import NatsClient, NatsConfig, Topics
from schemas.market_data import Tick, TickParseError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

EXCHANGE_NAME = os.getenv("EXCHANGE_NAME", "ftxus")


class TickerRequest(BaseModel):
    """Ticker as delivered by the exchange bridge"""
    model_config = ConfigDict(populate_by_name=True)

    symbol: str
    timestamp: Union[int, float, str]
    bid: float
    ask: float
    bid_volume: float = Field(default=0.0, alias="bidVolume")
    ask_volume: float = Field(default=0.0, alias="askVolume")


nats_client: Optional[NatsClient] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for NATS connection"""
    global nats_client

    logger.info("Starting Ticker Gateway...")

    nats_client = NatsClient(NatsConfig.from_env())
    try:
        await nats_client.connect()
    except Exception as e:
        logger.warning(f"Failed to connect to NATS: {e}. Running in standalone mode.")
        nats_client = None

    yield

    if nats_client:
        await nats_client.close()
    logger.info("Ticker Gateway shutdown complete")


app = FastAPI(
    title="Candle Ingestion - Ticker Gateway",
    description="Receives exchange tickers and publishes them to NATS",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health():
    """Health status"""
    return {
        "status": "healthy",
        "service": "ticker-gateway",
        "exchange": EXCHANGE_NAME,
        "nats_connected": nats_client.is_connected if nats_client else False,
        "timestamp": datetime.now().isoformat(),
    }


@app.post("/ticker")
async def receive_ticker(data: TickerRequest):
    """
    Normalize a ticker and publish it to tickers.{exchange}.{symbol}.

    Timestamps may be epoch milliseconds or ISO-8601.
    """
    try:
        tick = Tick.from_feed(data.model_dump(by_alias=True))
    except TickParseError as e:
        raise HTTPException(status_code=422, detail=str(e))

    topic = Topics.tickers(EXCHANGE_NAME, tick.symbol)

    if nats_client and nats_client.is_connected:
        await nats_client.publish_json(topic, tick.to_json())
        published = True
    else:
        logger.debug("NATS not connected - ticker logged only")
        published = False

    logger.debug(f"Ticker {tick.symbol} bid={tick.bid} ask={tick.ask}")

    return {
        "status": "success",
        "published": published,
        "topic": topic,
        "epoch": tick.epoch,
    }


if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    host = os.getenv("HOST", "0.0.0.0")

    logger.info(f"Starting Ticker Gateway on {host}:{port}")
    logger.info(f"NATS servers: {os.getenv('NATS_SERVERS', 'nats://localhost:4222')}")

    uvicorn.run(app, host=host, port=port)

"""
shardline server — Application Factory
"""

import logging
import time

from fastapi import FastAPI

from shardline import settings

# ── 1. Configure logging ──
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("shardline-server")

_startup_time = time.time()

# ── 2. Create FastAPI app ──
app = FastAPI(title="shardline gateway core")

# ── 3. Register routers ──
from shardline.routers import gateway_api, health  # noqa: E402

app.include_router(health.router)
app.include_router(gateway_api.router)


# ── 4. Startup / shutdown ──
@app.on_event("startup")
async def startup_event():
    from shardline.gateway.setup import initialize_gateway

    try:
        await initialize_gateway()
    except Exception as e:
        logger.warning(f"Gateway failed to start, running without it: {e}")
    logger.info("=" * 60)
    logger.info("shardline listening on port %d", settings.PORT)
    logger.info("Total init time: %.2fs", time.time() - _startup_time)
    logger.info("=" * 60)


@app.on_event("shutdown")
async def shutdown_event():
    from shardline.gateway.setup import shutdown_gateway

    await shutdown_gateway()

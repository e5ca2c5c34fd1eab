from contextlib import asynccontextmanager

from fastapi import FastAPI
import uvicorn

# Importing config first makes the process exit early on missing settings
from config import CHAT_SUBSCRIPTION_QUEUE_SIZE
from db.db import init_db, close_db_connection, database_handle
from dependencies.chat import build_conversation_service
from logger.logger import logger
from repos.live_query import MongoLiveQueryFactory
from routes.routes import setup_routes
from services.realtime_hub import RealtimeSubscriptionHub
from utils.errors import register_exception_handlers

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting chat service")
    await init_db()
    db = database_handle()
    app.state.hub = RealtimeSubscriptionHub(
        MongoLiveQueryFactory(db),
        build_conversation_service(db),
        queue_size=CHAT_SUBSCRIPTION_QUEUE_SIZE
    )
    yield
    logger.info(f"Stopping chat service, {app.state.hub.active_count} live feed(s) open")
    await app.state.hub.close()
    await close_db_connection()

app = FastAPI(title="Marketplace Chat API", lifespan=lifespan)

setup_routes(app)
register_exception_handlers(app)

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)

from fastapi import FastAPI, Request
from .messages import router as message_routes

def setup_routes(app: FastAPI):
    @app.get("/")
    async def root(request: Request):
        """Liveness check with the number of open live feeds"""
        hub = getattr(request.app.state, "hub", None)
        return {
            "message": "Chat service is alive",
            "live_feeds": hub.active_count if hub is not None else 0,
        }

    # Conversations, messages, contacts and the two live feeds
    app.include_router(
        message_routes,
        prefix="/messages",
        tags=["messages"],
    )

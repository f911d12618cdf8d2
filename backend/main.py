import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routers import calendar, meetings, settings
from services.actions import ActionDispatcher
from services.config import ENV_PATH, load_config
from services.engine import MeetingEngine
from services.notifier import DesktopNotifier

load_dotenv(ENV_PATH)

logger = logging.getLogger(__name__)


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    if app.state.engine is None:
        config = load_config(app.state.env_path)
        configure_logging(config.log_level)
        engine = MeetingEngine(config)
        engine.on_reminder_due(DesktopNotifier())
        app.state.engine = engine
    if app.state.dispatcher is None:
        app.state.dispatcher = ActionDispatcher(app.state.engine)

    app.state.engine.start()
    app.state.dispatcher.start()
    logger.info("Meeting tray engine started")
    yield
    app.state.dispatcher.stop()
    app.state.engine.stop()
    logger.info("Meeting tray engine stopped")


def create_app(
    engine: MeetingEngine | None = None,
    env_path: str = ENV_PATH,
    dispatcher: ActionDispatcher | None = None,
) -> FastAPI:
    app = FastAPI(title="Meeting Tray", lifespan=lifespan)
    app.state.engine = engine
    app.state.env_path = env_path
    app.state.dispatcher = dispatcher

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(meetings.router, prefix="/api/meetings")
    app.include_router(calendar.router, prefix="/api/calendar")
    app.include_router(settings.router, prefix="/api/settings")

    @app.get("/api/health")
    async def health():
        return {"status": "healthy"}

    return app


app = create_app()


def main():
    import uvicorn

    uvicorn.run("main:app", host="127.0.0.1", port=8000)


if __name__ == "__main__":
    main()

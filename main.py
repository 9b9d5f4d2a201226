import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
from openai import AsyncOpenAI

from dal.image_file_dal import ImageFileDAL
from dal.local_storage_dal import LocalStorageDAL
from routes.image_route import router as image_router
from routes.relay_route import router as relay_router
from routes.session_route import router as session_router
from routes.workspace_ws import router as workspace_router
from services.gateway.base import ModelGateway
from services.gateway.openai_gateway import OpenAIGateway
from services.gateway.relay_gateway import RelayGateway
from services.reconciler import StreamReconciler
from services.session_store import SessionStore
from utils.database_init import AsyncDatabaseInitializer
from utils.settings import GATEWAY_RELAY, Settings

BASE_DIR = Path(__file__).resolve().parent
PUBLIC_DIR = BASE_DIR / "public"

LOGGER = logging.getLogger(__name__)


def _build_gateway(settings: Settings, client: Optional[AsyncOpenAI]) -> ModelGateway:
    if settings.gateway == GATEWAY_RELAY:
        return RelayGateway(settings.relay_url)
    return OpenAIGateway(client, model=settings.chat_model, complex_model=settings.complex_model)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the local storage database (kept across restarts, at DATABASE_DIR/app.db)
      - the OpenAI async client, when OPENAI_API_KEY is set
      - the session store and the workspace reconciler
    and attach them to `app.state`.
    """
    settings: Settings = app.state.settings

    db_initializer = AsyncDatabaseInitializer(settings.database_dir)
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer
    app.state.image_files = ImageFileDAL(db_initializer.images_dir)

    owns_client = False
    if app.state.openai_client is None:
        if settings.openai_api_key:
            try:
                app.state.openai_client = AsyncOpenAI(api_key=settings.openai_api_key)
            except Exception as exc:
                raise RuntimeError("Failed to initialize OpenAI Async client") from exc
            owns_client = True
        else:
            LOGGER.error("OPENAI_API_KEY is not set; chat and image requests will fail until it is configured")

    store = SessionStore(LocalStorageDAL(db_initializer))
    gateway = app.state.gateway_override or _build_gateway(settings, app.state.openai_client)
    workspace = StreamReconciler(store, gateway)
    await workspace.load()
    app.state.session_store = store
    app.state.workspace = workspace
    LOGGER.info("Workspace ready with %d sessions (%s gateway)", len(workspace.sessions), settings.gateway)

    try:
        yield
    finally:
        await workspace.shutdown()
        if owns_client:
            try:
                await app.state.openai_client.close()
            except Exception:  # pylint: disable=broad-exception-caught
                LOGGER.warning("OpenAI client did not close cleanly", exc_info=True)


def create_app(
    settings: Optional[Settings] = None,
    *,
    openai_client: Optional[AsyncOpenAI] = None,
    gateway: Optional[ModelGateway] = None,
    renderer_options: Optional[Dict[str, Any]] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    `openai_client`, `gateway` and `renderer_options` replace the defaults
    built at startup; tests use them to inject fakes.
    """
    app = FastAPI(title="NovaAI Workspace", lifespan=lifespan)
    app.state.settings = settings or Settings.from_env()
    app.state.openai_client = openai_client
    app.state.gateway_override = gateway
    app.state.renderer_options = renderer_options

    # Serve static assets from the public directory, if it exists.
    if PUBLIC_DIR.exists():
        app.mount("/public", StaticFiles(directory=PUBLIC_DIR), name="public")

    @app.get("/", include_in_schema=False)
    async def serve_index():
        """
        Serve the frontend index page from the public directory.
        """
        index_path = PUBLIC_DIR / "index.html"
        if not index_path.exists():
            raise HTTPException(status_code=404, detail="Frontend not found")
        return FileResponse(index_path)

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that reports storage, OpenAI client and workspace state.
        """
        state = request.app.state
        workspace = getattr(state, "workspace", None)
        return {
            "ok": True,
            "storage_initialized": hasattr(state, "db_initializer"),
            "openai_available": getattr(state, "openai_client", None) is not None,
            "gateway": state.settings.gateway,
            "generation_state": workspace.state.value if workspace else None,
        }

    app.include_router(relay_router)
    app.include_router(session_router)
    app.include_router(image_router)
    app.include_router(workspace_router)

    return app


app = create_app()


if __name__ == "__main__":
    logging.basicConfig(
        level=app.state.settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host="127.0.0.1", port=app.state.settings.port)

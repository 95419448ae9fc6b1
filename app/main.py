import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, Field

from .imagehub import proxy
from .imagehub.clients import PROVIDER_FAMILIES, ProviderRegistry, build_registry
from .imagehub.config import HubSettings
from .imagehub.credentials import CredentialStore
from .imagehub.errors import (
    ImageHubError,
    NotAuthorizedError,
    NothingToExportError,
    PreconditionError,
)
from .imagehub.export import ARCHIVE_NAME, build_archive
from .imagehub.queue import GenerationQueue
from .imagehub.session import LoginError, Session
from .imagehub.store import SettingsStore
from .storage import StorageService

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))


@dataclass
class HubServices:
    """Everything the routes need, wired once per app."""
    settings: HubSettings
    session: Session
    credentials: CredentialStore
    registry: ProviderRegistry
    queue: GenerationQueue


def build_services(settings: Optional[HubSettings] = None,
                   storage: Optional[StorageService] = None,
                   registry: Optional[ProviderRegistry] = None) -> HubServices:
    settings = settings or HubSettings.from_env()
    store = SettingsStore(storage or StorageService(), settings.settings_file)
    session = Session(store)
    credentials = CredentialStore(store)
    registry = registry or build_registry(settings)
    queue = GenerationQueue(registry, credentials, session)
    return HubServices(settings, session, credentials, registry, queue)


def get_services(request: Request) -> HubServices:
    return request.app.state.services


def error_response(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


# =============================================================================
# Request models
# =============================================================================

class LoginRequest(BaseModel):
    email: str = ""


class ThemeRequest(BaseModel):
    """Omit theme to toggle."""
    theme: Optional[str] = None


class KeyRequest(BaseModel):
    key: str = ""


class PromptsRequest(BaseModel):
    text: str = Field(default="", description="One prompt per line")


class ProviderRequest(BaseModel):
    provider: str


class StartRequest(BaseModel):
    provider: Optional[str] = None


class GenRequest(BaseModel):
    """Request body for the provider proxy."""
    provider: Optional[str] = None
    apiKey: Optional[str] = None
    prompt: Optional[str] = None
    size: str = "1024x1024"

    class Config:
        json_schema_extra = {
            "example": {
                "provider": "openai",
                "apiKey": "sk-...",
                "prompt": "A red fox in the snow",
                "size": "1024x1024"
            }
        }


router = APIRouter()


@router.get("/", response_class=HTMLResponse)
def read_root(request: Request, services: HubServices = Depends(get_services)):
    """
    Serve the dashboard.
    """
    return templates.TemplateResponse(request, "index.html", {
        "providers": services.registry.names(),
        "active_provider": services.queue.state.active_provider,
        "session": services.session.to_dict(),
        "prompt_limit": services.settings.prompt_limit,
    })


@router.get("/api/state")
def get_state(services: HubServices = Depends(get_services)):
    """
    Current queue, session and progress, polled by the dashboard.
    """
    queue = services.queue
    return {
        "queue": queue.snapshot(),
        "session": services.session.to_dict(),
        "prompt_limit": services.settings.prompt_limit,
        "key_configured": services.credentials.has(queue.state.active_provider),
    }


@router.get("/api/providers")
def list_providers(services: HubServices = Depends(get_services)):
    """
    List providers and whether an API key is saved for each.
    """
    return {
        "providers": [
            {
                "name": name,
                "family": PROVIDER_FAMILIES.get(name),
                "wired": PROVIDER_FAMILIES.get(name) is not None,
                "configured": services.credentials.has(name),
            }
            for name in services.registry.names()
        ]
    }


# =============================================================================
# Session
# =============================================================================

@router.post("/api/session/login")
def login(body: LoginRequest, services: HubServices = Depends(get_services)):
    try:
        services.session.login(body.email)
    except LoginError as e:
        return error_response(400, str(e))
    return services.session.to_dict()


@router.post("/api/session/logout")
def logout(services: HubServices = Depends(get_services)):
    services.session.logout()
    return services.session.to_dict()


@router.post("/api/session/theme")
def set_theme(body: ThemeRequest, services: HubServices = Depends(get_services)):
    try:
        if body.theme is None:
            services.session.toggle_theme()
        else:
            services.session.set_theme(body.theme)
    except ValueError as e:
        return error_response(400, str(e))
    return services.session.to_dict()


# =============================================================================
# API keys
# =============================================================================

@router.get("/api/keys/{provider}")
def get_key(provider: str, services: HubServices = Depends(get_services)):
    services.registry.get(provider)
    key = services.credentials.get(provider)
    return {"provider": provider, "configured": bool(key), "masked": services.credentials.mask(key)}


@router.put("/api/keys/{provider}")
def save_key(provider: str, body: KeyRequest, services: HubServices = Depends(get_services)):
    services.registry.get(provider)
    try:
        services.credentials.save(provider, body.key.strip())
    except ValueError as e:
        return error_response(400, str(e))
    return {"provider": provider, "configured": True, "message": f"{provider} API Key saved successfully!"}


# =============================================================================
# Queue
# =============================================================================

@router.put("/api/prompts")
def set_prompts(body: PromptsRequest, services: HubServices = Depends(get_services)):
    """
    Replace the prompt text. Ignored while a run is in progress.
    """
    rebuilt = services.queue.set_prompt_text(body.text)
    return {"rebuilt": rebuilt, "queue": services.queue.snapshot()}


@router.put("/api/provider")
def select_provider(body: ProviderRequest, services: HubServices = Depends(get_services)):
    services.queue.select_provider(body.provider)
    return {
        "provider": body.provider,
        "key_configured": services.credentials.has(body.provider),
    }


@router.post("/api/queue/start")
async def start_queue(body: Optional[StartRequest] = None, services: HubServices = Depends(get_services)):
    services.queue.start(body.provider if body else None)
    return services.queue.snapshot()


@router.post("/api/queue/pause")
async def pause_queue(services: HubServices = Depends(get_services)):
    services.queue.pause()
    return services.queue.snapshot()


@router.post("/api/queue/resume")
async def resume_queue(services: HubServices = Depends(get_services)):
    services.queue.resume()
    return services.queue.snapshot()


@router.post("/api/queue/stop")
async def stop_queue(services: HubServices = Depends(get_services)):
    services.queue.stop()
    return services.queue.snapshot()


@router.post("/api/queue/clear")
async def clear_queue(services: HubServices = Depends(get_services)):
    services.queue.clear()
    return services.queue.snapshot()


@router.post("/api/queue/items/{index}/retry", status_code=202)
async def retry_item(index: int, services: HubServices = Depends(get_services)):
    """
    Regenerate one failed item in the background.
    """
    try:
        services.queue.schedule_retry(index)
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    # Let the retry task mark the item pending before answering
    await asyncio.sleep(0)
    return services.queue.items[index].to_dict(index)


@router.get("/api/queue/items/{index}/image")
def get_item_image(index: int, services: HubServices = Depends(get_services)):
    items = services.queue.items
    if index < 0 or index >= len(items) or items[index].image_data is None:
        raise HTTPException(status_code=404, detail="Image not found")
    item = items[index]
    return Response(content=item.image_data, media_type=item.mime_type or "image/png")


@router.get("/api/export")
def export_zip(services: HubServices = Depends(get_services)):
    """
    Download every generated image as one ZIP archive.
    """
    archive = build_archive(services.queue.ok_items())
    return Response(
        content=archive,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{ARCHIVE_NAME}"'},
    )


# =============================================================================
# Provider proxy
# =============================================================================

@router.post("/api/gen", tags=["Proxy"])
def generate_via_proxy(body: GenRequest, services: HubServices = Depends(get_services)):
    """
    Forward one prompt to an upstream image API and return {dataUrl}.
    """
    result = proxy.forward(
        body.provider,
        body.apiKey,
        body.prompt,
        body.size,
        timeout=services.settings.upstream_timeout,
    )
    return JSONResponse(result.body, status_code=result.status_code)


def create_app(services: Optional[HubServices] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.services.queue.shutdown()

    app = FastAPI(
        title="Prompt to Image Hub",
        description="Bulk text-to-image generation across AI providers",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services or build_services()
    app.include_router(router)

    @app.exception_handler(NotAuthorizedError)
    async def not_authorized_handler(request: Request, exc: NotAuthorizedError):
        return error_response(401, str(exc), action="login")

    @app.exception_handler(PreconditionError)
    async def precondition_handler(request: Request, exc: PreconditionError):
        return error_response(400, str(exc))

    @app.exception_handler(NothingToExportError)
    async def nothing_to_export_handler(request: Request, exc: NothingToExportError):
        return error_response(404, str(exc))

    @app.exception_handler(ImageHubError)
    async def hub_error_handler(request: Request, exc: ImageHubError):
        return error_response(409, str(exc))

    return app


app = create_app()

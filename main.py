from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic_settings import BaseSettings, SettingsConfigDict
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote
from PIL import Image
import io
import logging
import traceback

from frame import (
    CompositionPipeline,
    FileBlobStore,
    FontLoader,
    FrameRenderer,
    GroupEditor,
    GroupRepository,
    JsonCollection,
    ThemeRegistry,
    find_orphans,
    frame_filename,
)
from frame.blob_store import BlobStore
from frame.errors import BlobNotFoundError, FrameError, RecordNotFoundError, ValidationError
from frame.models import Group, Product, Theme
from frame.api_models import (
    BackgroundColorRequest, BlobUploadResponse, FrameDataUrlResponse, FrameItemResponse,
    GroupCreateRequest, GroupUpdateRequest, OrphanReportResponse, ProductUpdateRequest,
    ThemeCreateRequest,
)

# Logging setup
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    data_dir: Path = Path("data")  # Groups, custom themes and blobs live here
    blob_dir: Optional[Path] = None  # Defaults to <data_dir>/blobs
    font_dirs: List[Path] = []  # Searched before system font paths
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@dataclass
class Services:
    blob_store: BlobStore
    themes: ThemeRegistry
    groups: GroupRepository
    editor: GroupEditor
    pipeline: CompositionPipeline


def build_services(settings: Settings) -> Services:
    blob_store = FileBlobStore(settings.blob_dir or settings.data_dir / "blobs")
    themes = ThemeRegistry(JsonCollection(settings.data_dir / "custom_themes.json", Theme))
    groups = GroupRepository(JsonCollection(settings.data_dir / "groups.json", Group))
    renderer = FrameRenderer(FontLoader(settings.font_dirs))

    return Services(
        blob_store=blob_store,
        themes=themes,
        groups=groups,
        editor=GroupEditor(blob_store, groups),
        pipeline=CompositionPipeline(blob_store, renderer=renderer),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def content_disposition(filename: str) -> str:
    """Attachment header; non-ASCII names are sent as RFC 5987 filename*."""
    ascii_name = filename.encode("ascii", "ignore").decode("ascii").replace('"', "")
    value = f'attachment; filename="{ascii_name}"'
    if ascii_name != filename:
        value += f"; filename*=utf-8''{quote(filename)}"
    return value


def sniff_media_type(data: bytes) -> str:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return Image.MIME.get(img.format, "application/octet-stream")
    except (OSError, ValueError, SyntaxError):
        return "application/octet-stream"


async def frame_error_handler(request: Request, exc: FrameError) -> JSONResponse:
    if isinstance(exc, (RecordNotFoundError, BlobNotFoundError)):
        status_code = 404
    elif isinstance(exc, ValidationError):
        status_code = 422
    else:
        status_code = 500
        logger.error(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.to_dict()})


router = APIRouter()


@router.get("/health")
async def health_check():
    return {"status": "healthy", "service": "frame-studio"}


@router.get("/")
async def root():
    return {
        "service": "Frame Studio",
        "version": "1.0.0",
        "description": "Themed product frame composer",
        "endpoints": ["/groups", "/themes", "/blobs", "/maintenance/orphans", "/health"],
    }


# ==================== THEME ENDPOINTS ====================

@router.get("/themes", response_model=List[Theme])
async def list_themes(svc: Services = Depends(get_services)):
    """Built-in themes first, then custom themes in creation order."""
    return svc.themes.list()


@router.get("/themes/{theme_id}", response_model=Theme)
async def get_theme(theme_id: str, svc: Services = Depends(get_services)):
    """Resolve a theme id. Unknown ids return the default theme."""
    return svc.themes.resolve(theme_id)


@router.post("/themes", response_model=Theme)
async def create_theme(request: ThemeCreateRequest, svc: Services = Depends(get_services)):
    return svc.themes.add(request.name, request.styles)


def _custom_theme(svc: Services, theme_id: str) -> Theme:
    theme = svc.themes.get(theme_id)
    if theme is None:
        raise HTTPException(status_code=404, detail=f"Theme not found: {theme_id}")
    if not theme.is_custom:
        raise HTTPException(status_code=403, detail=f"Built-in theme {theme_id} cannot be changed")
    return theme


@router.put("/themes/{theme_id}", response_model=Theme)
async def update_theme(theme_id: str, request: ThemeCreateRequest, svc: Services = Depends(get_services)):
    theme = _custom_theme(svc, theme_id)
    svc.themes.update(theme.model_copy(update={"name": request.name, "styles": request.styles}))
    return svc.themes.get(theme_id)


@router.delete("/themes/{theme_id}")
async def delete_theme(theme_id: str, svc: Services = Depends(get_services)):
    """Groups still pointing at a deleted theme fall back to the default."""
    _custom_theme(svc, theme_id)
    svc.themes.delete(theme_id)
    return {"status": "deleted", "id": theme_id}


# ==================== BLOB ENDPOINTS ====================

@router.post("/blobs", response_model=BlobUploadResponse)
async def upload_blob(file: UploadFile = File(...), svc: Services = Depends(get_services)):
    data = await file.read()
    blob_id = await svc.blob_store.put(data)
    logger.info(f"Stored blob {blob_id} ({len(data)} bytes)")
    return BlobUploadResponse(id=blob_id, size=len(data))


@router.get("/blobs/{blob_id}")
async def download_blob(blob_id: str, svc: Services = Depends(get_services)):
    data = await svc.blob_store.get(blob_id)
    return Response(content=data, media_type=sniff_media_type(data))


@router.delete("/blobs/{blob_id}")
async def delete_blob(blob_id: str, svc: Services = Depends(get_services)):
    """Idempotent. Does not check whether a group still references the blob."""
    await svc.blob_store.delete(blob_id)
    return {"status": "deleted", "id": blob_id}


# ==================== GROUP ENDPOINTS ====================

@router.get("/groups", response_model=List[Group])
async def list_groups(svc: Services = Depends(get_services)):
    return svc.groups.list()


@router.post("/groups", response_model=Group)
async def create_group(request: GroupCreateRequest, svc: Services = Depends(get_services)):
    return svc.editor.create_group(request.name, request.theme_id)


@router.get("/groups/{group_id}", response_model=Group)
async def get_group(group_id: str, svc: Services = Depends(get_services)):
    return svc.groups.get(group_id)


@router.patch("/groups/{group_id}", response_model=Group)
async def update_group(group_id: str, request: GroupUpdateRequest, svc: Services = Depends(get_services)):
    """Rename a group and/or change its theme. An explicit null theme clears it."""
    group = svc.groups.get(group_id)
    if request.name and request.name.strip():
        group = svc.editor.rename_group(group_id, request.name.strip())
    if "theme_id" in request.model_fields_set:
        group = svc.editor.set_theme(group_id, request.theme_id)
    return group


@router.delete("/groups/{group_id}")
async def delete_group(group_id: str, svc: Services = Depends(get_services)):
    await svc.editor.delete_group(group_id)
    return {"status": "deleted", "id": group_id}


@router.post("/groups/{group_id}/products", response_model=Product)
async def add_product(
    group_id: str,
    name: str = Form(...),
    image: UploadFile = File(...),
    svc: Services = Depends(get_services),
):
    if not name.strip():
        raise HTTPException(status_code=422, detail="Product name is required")
    data = await image.read()
    return await svc.editor.add_product(group_id, name.strip(), data)


@router.patch("/groups/{group_id}/products/{product_id}", response_model=Product)
async def update_product(
    group_id: str,
    product_id: str,
    request: ProductUpdateRequest,
    svc: Services = Depends(get_services),
):
    product = svc.editor.get_product(group_id, product_id)
    if request.name and request.name.strip():
        product = svc.editor.rename_product(group_id, product_id, request.name.strip())
    if request.is_active is not None:
        product = svc.editor.set_product_active(group_id, product_id, request.is_active)
    return product


@router.post("/groups/{group_id}/products/{product_id}/toggle", response_model=Product)
async def toggle_product(group_id: str, product_id: str, svc: Services = Depends(get_services)):
    return svc.editor.toggle_product(group_id, product_id)


@router.put("/groups/{group_id}/products/{product_id}/image", response_model=Product)
async def replace_product_image(
    group_id: str,
    product_id: str,
    image: UploadFile = File(...),
    svc: Services = Depends(get_services),
):
    data = await image.read()
    return await svc.editor.replace_product_image(group_id, product_id, data)


@router.delete("/groups/{group_id}/products/{product_id}", response_model=Group)
async def delete_product(group_id: str, product_id: str, svc: Services = Depends(get_services)):
    return await svc.editor.delete_product(group_id, product_id)


@router.put("/groups/{group_id}/background/color", response_model=Group)
async def set_background_color(
    group_id: str,
    request: BackgroundColorRequest,
    svc: Services = Depends(get_services),
):
    return await svc.editor.set_background_color(group_id, request.value)


@router.put("/groups/{group_id}/background/image", response_model=Group)
async def set_background_image(
    group_id: str,
    image: UploadFile = File(...),
    svc: Services = Depends(get_services),
):
    data = await image.read()
    return await svc.editor.set_background_image(group_id, data)


@router.delete("/groups/{group_id}/background", response_model=Group)
async def remove_background(group_id: str, svc: Services = Depends(get_services)):
    return await svc.editor.remove_background(group_id)


# ==================== FRAME ENDPOINTS ====================

@router.post("/groups/{group_id}/frame")
async def generate_frame(
    group_id: str,
    format: str = Query("png", pattern="^(png|data_url)$"),
    svc: Services = Depends(get_services),
):
    """
    Generate the frame image for a group.

    Args:
        group_id: Group to render
        format: "png" returns the image as a download,
            "data_url" returns JSON with an inline data URL

    Returns:
        PNG named {group name}-{date}.png, or FrameDataUrlResponse
    """
    group = svc.groups.get(group_id)
    theme = svc.themes.resolve(group.theme_id)

    try:
        result = await svc.pipeline.compose(group, theme)
    except FrameError:
        raise
    except Exception as e:
        tb = traceback.format_exc()
        logger.error(f"Frame generation error: {e}")
        logger.error(f"Traceback:\n{tb}")
        raise HTTPException(
            status_code=500,
            detail=f"Frame generation failed: {e}"
        )

    filename = frame_filename(group.name)

    if format == "data_url":
        width, height = result.size
        return FrameDataUrlResponse(
            filename=filename,
            data_url=result.to_data_url(),
            width=width,
            height=height,
            background=result.background.value,
            items=[
                FrameItemResponse(
                    product_id=item.product_id,
                    name=item.name,
                    x=item.cell.x,
                    y=item.cell.y,
                    status=item.status.value,
                )
                for item in result.items
            ],
            font_fallbacks=result.font_fallbacks,
        )

    return Response(
        content=result.png,
        media_type="image/png",
        headers={"Content-Disposition": content_disposition(filename)},
    )


# ==================== MAINTENANCE ENDPOINTS ====================

@router.get("/maintenance/orphans", response_model=OrphanReportResponse)
async def list_orphans(svc: Services = Depends(get_services)):
    """Blobs no group references. Nothing is deleted."""
    orphans = await find_orphans(svc.blob_store, svc.groups.list())
    return OrphanReportResponse(orphans=orphans, count=len(orphans))


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    app = FastAPI(title="Frame Studio", version="1.0.0")

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, restrict this
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.services = build_services(settings)
    app.add_exception_handler(FrameError, frame_error_handler)
    app.include_router(router)
    return app


app = create_app()

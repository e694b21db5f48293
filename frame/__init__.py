# Frame composition module
# Pure code pipeline: blob store, themes, grid layout, Pillow rendering

from .blob_store import BlobStore, FileBlobStore, MemoryBlobStore, replace_blob
from .editor import GroupEditor, find_orphans
from .errors import (
    BlobNotFoundError,
    FrameError,
    NoActiveItemsError,
    RecordNotFoundError,
    StoreError,
)
from .layout import LayoutEngine, GridLayout, CellSpec
from .models import Group, Product, Theme, ThemeStyles, FontStyle, ColorBackground, ImageBackground
from .pipeline import CompositionPipeline, CompositionResult, ItemStatus, frame_filename
from .renderer import FrameRenderer, FontLoader
from .repository import GroupRepository, JsonCollection
from .themes import ThemeRegistry, DEFAULT_THEME_ID

__all__ = [
    "BlobStore",
    "FileBlobStore",
    "MemoryBlobStore",
    "replace_blob",
    "GroupEditor",
    "find_orphans",
    "BlobNotFoundError",
    "FrameError",
    "NoActiveItemsError",
    "RecordNotFoundError",
    "StoreError",
    "LayoutEngine",
    "GridLayout",
    "CellSpec",
    "Group",
    "Product",
    "Theme",
    "ThemeStyles",
    "FontStyle",
    "ColorBackground",
    "ImageBackground",
    "CompositionPipeline",
    "CompositionResult",
    "ItemStatus",
    "frame_filename",
    "FrameRenderer",
    "FontLoader",
    "GroupRepository",
    "JsonCollection",
    "ThemeRegistry",
    "DEFAULT_THEME_ID",
]

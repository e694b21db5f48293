from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Annotated, List, Literal, Optional, Union

from .colors import parse_color


def _check_color(value: str) -> str:
    parse_color(value)
    return value


ColorStr = Annotated[str, AfterValidator(_check_color)]
BlobId = str


class Record(BaseModel):
    """Base for stored records. Accepts camelCase keys (imageId, isActive, ...)"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# ============== Themes ==============

class FontStyle(Record):
    """Font description, rendered to a CSS-style shorthand for display"""
    family: str = Field(min_length=1)
    size: int = Field(gt=0)
    weight: Literal["normal", "bold"] = "normal"
    style: Literal["normal", "italic"] = "normal"


class ThemeStyles(Record):
    background_color: ColorStr
    title_font: FontStyle
    title_color: ColorStr
    caption_font: FontStyle
    caption_color: ColorStr
    shadow_color: ColorStr


class Theme(Record):
    """Named visual style. Built-in themes have is_custom=False and never change"""
    id: str
    name: str
    is_custom: bool = False
    styles: ThemeStyles


# ============== Groups ==============

class Product(Record):
    id: str
    name: str
    image_id: BlobId
    is_active: bool = True


class ColorBackground(Record):
    type: Literal["color"] = "color"
    value: ColorStr


class ImageBackground(Record):
    type: Literal["image"] = "image"
    image_id: BlobId


Background = Annotated[Union[ColorBackground, ImageBackground], Field(discriminator="type")]


class Group(Record):
    """Named collection of products. Product order is the draw order"""
    id: str
    name: str
    products: List[Product] = Field(default_factory=list)
    background: Optional[Background] = None
    theme_id: Optional[str] = None

    @property
    def active_products(self) -> List[Product]:
        return [p for p in self.products if p.is_active]

    @property
    def blob_ids(self) -> List[BlobId]:
        """Every blob id this group references, active or not"""
        ids = [p.image_id for p in self.products]
        if isinstance(self.background, ImageBackground):
            ids.append(self.background.image_id)
        return ids

"""Text recognition output consumed by the layout parser."""

from pydantic import BaseModel, ConfigDict, Field


class BoundingBox(BaseModel):
    """Normalized bounding box (0-1) with a bottom-left origin; y grows upward."""

    model_config = ConfigDict(frozen=True)

    x: float = Field(..., description="Left edge")
    y: float = Field(..., description="Bottom edge")
    width: float = Field(..., ge=0)
    height: float = Field(..., ge=0)

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2


class TextFragment(BaseModel):
    """One recognized piece of text with its position on the image."""

    model_config = ConfigDict(frozen=True)

    text: str
    confidence: float = Field(1.0, ge=0, le=1)
    bbox: BoundingBox

    @property
    def center_x(self) -> float:
        return self.bbox.center_x

    @property
    def center_y(self) -> float:
        return self.bbox.center_y

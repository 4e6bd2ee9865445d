from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from cutout.services.gateway import QualityLevel
from cutout.services.geometry import CropRegion, CropUnit
from cutout.services.session import OutputFormat


class CropRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    x: float = Field(..., ge=0, description="Left edge, in `unit`")
    y: float = Field(..., ge=0, description="Top edge, in `unit`")
    width: float = Field(..., ge=0)
    height: float = Field(..., ge=0)
    unit: CropUnit = Field(CropUnit.PERCENT, description="'%' of the displayed image or displayed 'px'")

    def to_region(self) -> CropRegion:
        return CropRegion(x=self.x, y=self.y, width=self.width, height=self.height, unit=self.unit)


class DisplaySizeRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    width: float = Field(..., gt=0, description="Rendered width of the preview in CSS pixels")
    height: float = Field(..., gt=0)


class QualityRequest(BaseModel):
    quality: QualityLevel


class FormatRequest(BaseModel):
    output_format: OutputFormat

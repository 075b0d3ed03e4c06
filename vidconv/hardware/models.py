"""
Hardware detection models and data classes for vidconv
"""

from typing import Dict, List, Any
from dataclasses import dataclass, field
from enum import Enum


class HWAccelType(str, Enum):
    NVENC = "nvenc"
    QSV = "qsv"
    VAAPI = "vaapi"
    AMF = "amf"
    VIDEOTOOLBOX = "videotoolbox"
    SOFTWARE = "software"


# One encoder-name fragment per vendor family, as it appears in `ffmpeg -encoders`
HW_ENCODER_FRAGMENTS: Dict[HWAccelType, str] = {
    HWAccelType.NVENC: "nvenc",
    HWAccelType.QSV: "qsv",
    HWAccelType.VAAPI: "vaapi",
    HWAccelType.VIDEOTOOLBOX: "videotoolbox",
    HWAccelType.AMF: "amf",
}


@dataclass
class GpuCapabilities:
    nvenc: bool = False
    qsv: bool = False
    vaapi: bool = False
    videotoolbox: bool = False
    amf: bool = False
    encoders: List[str] = field(default_factory=list)

    def has(self, accel: HWAccelType) -> bool:
        """Whether a hardware family was detected. Software is always available."""
        if accel == HWAccelType.SOFTWARE:
            return True
        return bool(getattr(self, accel.value))

    @property
    def available(self) -> List[HWAccelType]:
        return [accel for accel in HW_ENCODER_FRAGMENTS if self.has(accel)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nvenc": self.nvenc,
            "qsv": self.qsv,
            "vaapi": self.vaapi,
            "videotoolbox": self.videotoolbox,
            "amf": self.amf,
            "encoders": self.encoders,
        }


@dataclass
class OutputFormat:
    name: str
    description: str
    extensions: List[str] = field(default_factory=list)
    demuxing: bool = False
    muxing: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "extensions": self.extensions,
            "demuxing": self.demuxing,
            "muxing": self.muxing,
        }

"""
Encoder selection logic for video encoders.
Handles encoder family detection, preset mapping and hardware fallback.
"""

import logging
from enum import Enum
from typing import List, Optional, Tuple

from ..hardware import HWAccelType, GpuCapabilities
from ..config import HardwareConfig
from .constants import (
    NVENC_PRESET_MAP,
    QSV_PRESET_MAP,
    AMF_QUALITY_MAP,
    DEFAULT_SOFTWARE_PRESET,
    SOFTWARE_FALLBACK,
)

logger = logging.getLogger(__name__)


class EncoderFamily(str, Enum):
    SOFTWARE = "software"
    NVENC = "nvenc"
    QSV = "qsv"
    VAAPI = "vaapi"
    VIDEOTOOLBOX = "videotoolbox"
    AMF = "amf"
    COPY = "copy"

    @property
    def is_hardware(self) -> bool:
        return self not in (EncoderFamily.SOFTWARE, EncoderFamily.COPY)


_FAMILY_TO_ACCEL = {
    EncoderFamily.NVENC: HWAccelType.NVENC,
    EncoderFamily.QSV: HWAccelType.QSV,
    EncoderFamily.VAAPI: HWAccelType.VAAPI,
    EncoderFamily.VIDEOTOOLBOX: HWAccelType.VIDEOTOOLBOX,
    EncoderFamily.AMF: HWAccelType.AMF,
}


def classify_encoder(encoder: str) -> EncoderFamily:
    """Determine the encoder family from the encoder name."""
    name = encoder.lower()
    if name == "copy":
        return EncoderFamily.COPY
    elif "nvenc" in name:
        return EncoderFamily.NVENC
    elif "qsv" in name:
        return EncoderFamily.QSV
    elif "vaapi" in name:
        return EncoderFamily.VAAPI
    elif "videotoolbox" in name:
        return EncoderFamily.VIDEOTOOLBOX
    elif "amf" in name:
        return EncoderFamily.AMF
    return EncoderFamily.SOFTWARE


def software_equivalent(encoder: str) -> Optional[str]:
    """Software encoder for the codec of a hardware encoder, e.g. hevc_nvenc -> libx265."""
    codec = encoder.lower().split("_", 1)[0]
    return SOFTWARE_FALLBACK.get(codec)


class EncoderSelector:
    """Resolves the encoder, preset and quality arguments for a requested video encoder."""

    def __init__(self, hw_config: HardwareConfig):
        self.hw_config = hw_config

    def resolve_encoder(
        self,
        encoder: str,
        capabilities: Optional[GpuCapabilities] = None
    ) -> Tuple[str, EncoderFamily]:
        """Return the encoder to use and its family.

        Without capabilities nothing is known about the host, so the requested
        encoder is used as-is.
        """
        family = classify_encoder(encoder)
        if capabilities is None or not family.is_hardware:
            return encoder, family

        if capabilities.has(_FAMILY_TO_ACCEL[family]):
            return encoder, family

        if not self.hw_config.fallback_to_software:
            logger.warning(f"[Encoder] {encoder} requested but {family.value} was not detected")
            return encoder, family

        fallback = software_equivalent(encoder)
        if fallback is None:
            logger.warning(f"[Encoder] No software equivalent for {encoder}, keeping it")
            return encoder, family

        logger.info(f"[Encoder] {family.value} not available, falling back to {fallback}")
        return fallback, EncoderFamily.SOFTWARE

    def preset_args(self, family: EncoderFamily, preset: Optional[str]) -> List[str]:
        """Map a preset name onto the vendor's scale."""
        if family == EncoderFamily.SOFTWARE:
            return ["-preset", preset or DEFAULT_SOFTWARE_PRESET]
        elif family == EncoderFamily.NVENC:
            value = NVENC_PRESET_MAP.get(preset, preset) if preset else self.hw_config.nvenc_preset
            return ["-preset", value]
        elif family == EncoderFamily.QSV:
            value = QSV_PRESET_MAP.get(preset, preset) if preset else self.hw_config.qsv_preset
            return ["-preset", value]
        elif family == EncoderFamily.AMF:
            value = AMF_QUALITY_MAP.get(preset, preset) if preset else self.hw_config.amf_quality
            return ["-quality", value]
        elif family in (EncoderFamily.VAAPI, EncoderFamily.VIDEOTOOLBOX, EncoderFamily.COPY):
            # No preset scale
            return []
        else:
            raise ValueError(f"Unhandled encoder family: {family}")

    def quality_args(self, family: EncoderFamily, crf: Optional[int]) -> List[str]:
        """Constant-quality arguments. CRF only ever reaches software encoders."""
        if crf is None:
            return []

        value = str(crf)
        if family == EncoderFamily.SOFTWARE:
            return ["-crf", value]
        elif family == EncoderFamily.NVENC:
            return ["-cq", value]
        elif family == EncoderFamily.QSV:
            return ["-global_quality", value]
        elif family == EncoderFamily.VAAPI:
            return ["-qp", value]
        elif family == EncoderFamily.AMF:
            return ["-rc", "cqp", "-qp_i", value, "-qp_p", value]
        elif family in (EncoderFamily.VIDEOTOOLBOX, EncoderFamily.COPY):
            return []
        else:
            raise ValueError(f"Unhandled encoder family: {family}")

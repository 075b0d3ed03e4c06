"""
Hardware encoder detection for vidconv
"""

from .models import HWAccelType, HW_ENCODER_FRAGMENTS, GpuCapabilities, OutputFormat
from .detection import (
    find_tool,
    check_tool_available,
    parse_encoders_output,
    detect_capabilities,
    get_capabilities,
    clear_capabilities_cache,
    parse_formats_output,
    list_output_formats,
)

__all__ = [
    "HWAccelType",
    "HW_ENCODER_FRAGMENTS",
    "GpuCapabilities",
    "OutputFormat",
    "find_tool",
    "check_tool_available",
    "parse_encoders_output",
    "detect_capabilities",
    "get_capabilities",
    "clear_capabilities_cache",
    "parse_formats_output",
    "list_output_formats",
]

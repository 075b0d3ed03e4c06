"""
Output filename generation from media info and movie metadata.
"""

import re
from dataclasses import dataclass
from typing import Optional

from .conversion.models import MediaInfo

DEFAULT_TEMPLATE = "{title} ({year}) [{quality}]"
DEFAULT_EXTENSION = ".mp4"
UNKNOWN_TITLE = "Unknown Title"


@dataclass
class MovieInfo:
    """A movie record as returned by a metadata lookup service."""
    title: str
    release_date: Optional[str] = None  # "YYYY-MM-DD"
    overview: str = ""

    @property
    def year(self) -> str:
        if not self.release_date:
            return ""
        return self.release_date.split("-", 1)[0]


def quality_label(height: int) -> str:
    if height >= 2160:
        return "4K"
    elif height >= 1080:
        return "1080p"
    elif height >= 720:
        return "720p"
    return "SD"


def generate_filename(
    media_info: MediaInfo,
    movie_info: Optional[MovieInfo] = None,
    template: str = DEFAULT_TEMPLATE
) -> str:
    """Fill ``{title}``, ``{year}``, ``{quality}`` and ``{codec}`` into the template.

    Placeholders that end up empty leave no stray brackets or double spaces
    behind, and ``.mp4`` is appended unless already present.
    """
    title = movie_info.title if movie_info else UNKNOWN_TITLE
    year = movie_info.year if movie_info else ""

    filename = (
        template
        .replace("{title}", title)
        .replace("{year}", year)
        .replace("{quality}", quality_label(media_info.height))
        .replace("{codec}", media_info.video_codec)
    )

    filename = re.sub(r"\(\s*\)|\[\s*\]", "", filename)
    filename = re.sub(r"\s{2,}", " ", filename).strip()

    if not filename.endswith(DEFAULT_EXTENSION):
        filename += DEFAULT_EXTENSION
    return filename

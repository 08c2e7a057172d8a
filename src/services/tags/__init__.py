"""Audio file tag writing."""

from .tag_writer import MutagenTagWriter, detect_image_mime

__all__ = ["MutagenTagWriter", "detect_image_mime"]

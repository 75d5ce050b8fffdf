"""
Image references held in session state and sent to the image model.
"""
import base64
from dataclasses import dataclass


DEFAULT_MIME_TYPE = "image/png"


@dataclass(frozen=True)
class ImageRef:
    """Raw image bytes plus their MIME type."""
    data: bytes
    mime_type: str = DEFAULT_MIME_TYPE

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        """Render as data:<mime>;base64,<payload>."""
        return f"data:{self.mime_type};base64,{self.to_base64()}"

    def __repr__(self) -> str:
        return f"ImageRef(mime_type={self.mime_type!r}, size={len(self.data)})"

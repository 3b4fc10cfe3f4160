import base64
from io import BytesIO
from pathlib import Path
from typing import Union

from PIL import Image

ImageSource = Union[bytes, Path]


def image_to_data_url(source: ImageSource, max_size: int = 1600) -> str:
    """Load a screenshot blob or file, downscale to reduce token usage, return JPEG data URL."""
    if isinstance(source, Path):
        img = Image.open(source)
    else:
        img = Image.open(BytesIO(source))
    img = img.convert("RGB")

    w, h = img.size
    if max(w, h) > max_size:
        scale = max_size / max(w, h)
        img = img.resize((int(w * scale), int(h * scale)), Image.Resampling.LANCZOS)

    buf = BytesIO()
    img.save(buf, format="JPEG", quality=85)
    b64 = base64.b64encode(buf.getvalue()).decode("utf-8")
    return f"data:image/jpeg;base64,{b64}"


def read_image(path: Union[str, Path]) -> bytes:
    return Path(path).read_bytes()

"""Custom launcher icon rendering.

The renderer is an optional capability handed to the materializer by the
composition root. Every outcome comes back as an IconResult so the caller can
branch on "rendered" vs. "keep the bundled default".
"""
import base64
import binascii
import io
import os
import re
import shutil
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import requests
from PIL import Image, ImageColor, ImageDraw, ImageOps, UnidentifiedImageError
from forge.config import ICON_FETCH_CONNECT_TIMEOUT_S, ICON_FETCH_READ_TIMEOUT_S, ICON_MAX_BYTES

# density bucket -> (launcher px, adaptive foreground px)
DENSITIES = {
    "mdpi": (48, 108),
    "hdpi": (72, 162),
    "xhdpi": (96, 216),
    "xxhdpi": (144, 324),
    "xxxhdpi": (192, 432),
}

# Adaptive icon content must stay inside the 66dp safe zone of the 108dp canvas
SAFE_ZONE_RATIO = 66 / 108

ADAPTIVE_ICON_XML = """<?xml version="1.0" encoding="utf-8"?>
<adaptive-icon xmlns:android="http://schemas.android.com/apk/res/android">
  <background android:drawable="@color/ic_launcher_background" />
  <foreground android:drawable="@mipmap/ic_launcher_foreground" />
</adaptive-icon>
"""

DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[\w-]+=[^;,]*)*)(?P<b64>;base64)?,(?P<data>.*)$", re.S)

RENDERED = "rendered"
SKIPPED = "skipped"
FAILED = "failed"

@dataclass
class IconResult:
    status: str
    reason: Optional[str] = None
    files: List[str] = field(default_factory=list)

    @property
    def rendered(self) -> bool:
        return self.status == RENDERED

    @classmethod
    def ok(cls, files: List[str]) -> "IconResult":
        return cls(RENDERED, None, files)

    @classmethod
    def skipped(cls, reason: str) -> "IconResult":
        return cls(SKIPPED, reason)

    @classmethod
    def failed(cls, reason: str) -> "IconResult":
        return cls(FAILED, reason)

class IconSourceError(Exception):
    pass

class IconLoader:
    """Resolves an icon reference (data URI or http(s) URL) to raw bytes."""

    def __init__(
        self,
        connect_timeout: float = ICON_FETCH_CONNECT_TIMEOUT_S,
        read_timeout: float = ICON_FETCH_READ_TIMEOUT_S,
        max_bytes: int = ICON_MAX_BYTES,
    ):
        self.timeout = (connect_timeout, read_timeout)
        self.max_bytes = max_bytes

    def load(self, ref: str) -> bytes:
        ref = (ref or "").strip()
        if ref.startswith("data:"):
            return self._decode_data_uri(ref)
        if ref.startswith(("http://", "https://")):
            return self._fetch(ref)
        raise IconSourceError(f"Unsupported icon reference: {ref[:40]!r}")

    def _decode_data_uri(self, ref: str) -> bytes:
        m = DATA_URI_RE.match(ref)
        if not m or not m.group("b64"):
            raise IconSourceError("Icon data URI must be base64 encoded")
        try:
            data = base64.b64decode(m.group("data"), validate=True)
        except (binascii.Error, ValueError) as e:
            raise IconSourceError(f"Icon data URI is not valid base64: {e}")
        if len(data) > self.max_bytes:
            raise IconSourceError(f"Icon larger than {self.max_bytes} bytes")
        return data

    def _fetch(self, url: str) -> bytes:
        try:
            with requests.get(url, timeout=self.timeout, stream=True) as resp:
                resp.raise_for_status()
                buf = io.BytesIO()
                for chunk in resp.iter_content(chunk_size=64 * 1024):
                    buf.write(chunk)
                    if buf.tell() > self.max_bytes:
                        raise IconSourceError(f"Icon larger than {self.max_bytes} bytes")
                return buf.getvalue()
        except requests.Timeout as e:
            raise IconSourceError(f"Timed out fetching icon: {e}")
        except requests.RequestException as e:
            raise IconSourceError(f"Could not fetch icon: {e}")

class IconRenderer(ABC):
    @abstractmethod
    def render(self, image_bytes: bytes, res_dir: str, background: str) -> IconResult:
        ...

class PillowIconRenderer(IconRenderer):
    def render(self, image_bytes: bytes, res_dir: str, background: str) -> IconResult:
        try:
            src = self._open(image_bytes)
            bg = ImageColor.getrgb(background)
            rendered = []
            for density, (launcher_px, fg_px) in DENSITIES.items():
                rendered.append((density, "ic_launcher.png", self._square(src, launcher_px, bg)))
                rendered.append((density, "ic_launcher_round.png", self._round(src, launcher_px, bg)))
                rendered.append((density, "ic_launcher_foreground.png", self._foreground(src, fg_px)))
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            return IconResult.failed(f"Could not decode icon image: {e}")

        try:
            with tempfile.TemporaryDirectory(prefix="appforge-icons-") as staging:
                staged = self._stage(rendered, staging)
                return IconResult.ok(self._install(staging, staged, res_dir))
        except OSError as e:
            return IconResult.failed(f"Could not write icon files: {e}")

    @staticmethod
    def _stage(rendered: List[Tuple], staging: str) -> List[str]:
        """Write every file under staging; returns paths relative to it, descriptors last."""
        staged = []
        for density, name, img in rendered:
            rel = os.path.join(f"mipmap-{density}", name)
            os.makedirs(os.path.join(staging, f"mipmap-{density}"), exist_ok=True)
            img.save(os.path.join(staging, rel), format="PNG")
            staged.append(rel)

        os.makedirs(os.path.join(staging, "mipmap-anydpi-v26"), exist_ok=True)
        for name in ("ic_launcher.xml", "ic_launcher_round.xml"):
            rel = os.path.join("mipmap-anydpi-v26", name)
            with open(os.path.join(staging, rel), "w", encoding="utf-8") as f:
                f.write(ADAPTIVE_ICON_XML)
            staged.append(rel)
        return staged

    @staticmethod
    def _install(staging: str, staged: List[str], res_dir: str) -> List[str]:
        """Copy staged files into res_dir; on failure the tree is put back as it was."""
        installed, created, backups = [], [], []
        try:
            for rel in staged:
                dest = os.path.join(res_dir, rel)
                os.makedirs(os.path.dirname(dest), exist_ok=True)
                if os.path.exists(dest):
                    shutil.copyfile(dest, dest + ".orig")
                    backups.append(dest)
                else:
                    created.append(dest)
                shutil.copyfile(os.path.join(staging, rel), dest + ".part")
                os.replace(dest + ".part", dest)
                installed.append(dest)
        except OSError:
            for dest in backups:
                os.replace(dest + ".orig", dest)
            for path in created + [os.path.join(res_dir, rel) + ".part" for rel in staged]:
                if os.path.exists(path):
                    os.remove(path)
            raise
        for dest in backups:
            os.remove(dest + ".orig")
        return installed

    @staticmethod
    def _open(image_bytes: bytes) -> Image.Image:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
        return img.convert("RGBA")

    @staticmethod
    def _fit(src: Image.Image, size: int) -> Image.Image:
        return ImageOps.contain(src, (size, size), Image.Resampling.LANCZOS)

    def _centered(self, src: Image.Image, canvas: int, content: int, fill: Tuple) -> Image.Image:
        out = Image.new("RGBA", (canvas, canvas), fill)
        fitted = self._fit(src, content)
        offset = ((canvas - fitted.width) // 2, (canvas - fitted.height) // 2)
        out.alpha_composite(fitted, offset)
        return out

    def _square(self, src: Image.Image, size: int, bg: Tuple) -> Image.Image:
        return self._centered(src, size, size, bg[:3] + (255,))

    def _round(self, src: Image.Image, size: int, bg: Tuple) -> Image.Image:
        square = self._square(src, size, bg)
        mask = Image.new("L", (size, size), 0)
        ImageDraw.Draw(mask).ellipse((0, 0, size - 1, size - 1), fill=255)
        out = Image.new("RGBA", (size, size), (0, 0, 0, 0))
        out.paste(square, (0, 0), mask)
        return out

    def _foreground(self, src: Image.Image, canvas: int) -> Image.Image:
        content = max(1, round(canvas * SAFE_ZONE_RATIO))
        return self._centered(src, canvas, content, (0, 0, 0, 0))

"""
Synthetic Camera Image Generator

Draws a 1280x720 frame for a simulated camera:
- Three-stop diagonal gradient from a fixed palette of dark colors
- 3 to 7 semi-transparent decorative shapes
- Timestamp line and a "Device: <id>" label at one of nine anchors

The frame is JPEG-encoded and returned with metadata describing what was
drawn, including the crop rectangle around the device label.

Usage:
    from services.image_generator import ImageGenerator

    generator = ImageGenerator()
    image = generator.generate_image("CAM-1")
    print(image.position, image.text_crop.to_dict(), image.size_bytes)
"""

import base64
import logging
import random
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np

from core.exceptions import ImageGenerationError
from core.time_utils import to_iso_timestamp

logger = logging.getLogger(__name__)

IMAGE_WIDTH = 1280
IMAGE_HEIGHT = 720
JPEG_QUALITY = 80

POSITIONS = (
    "top-left",
    "top-center",
    "top-right",
    "middle-left",
    "middle-center",
    "middle-right",
    "bottom-left",
    "bottom-center",
    "bottom-right",
)

SHAPE_TYPES = ("circle", "rectangle", "triangle")

LABEL_MARGIN = 20       # distance from the canvas edge to the label anchor
BACKING_MARGIN = 10     # backing box around the label text
CROP_PADDING = 15       # crop rectangle around the label text
SHAPE_ALPHA = 0.3

LABEL_FONT = cv2.FONT_HERSHEY_SIMPLEX
LABEL_FONT_SCALE = 1.6
LABEL_THICKNESS = 3
TIMESTAMP_FONT_SCALE = 0.6


@dataclass(frozen=True)
class NamedColor:
    """Palette entry; hex is #RRGGBB."""
    hex: str
    name: str

    @property
    def bgr(self) -> Tuple[int, int, int]:
        """Color as an OpenCV BGR tuple."""
        value = self.hex.lstrip('#')
        r, g, b = (int(value[i:i + 2], 16) for i in (0, 2, 4))
        return (b, g, r)

    def to_dict(self) -> Dict[str, str]:
        return {"hex": self.hex, "name": self.name}


PALETTE = (
    NamedColor('#2C3E50', 'dark_blue_gray'),
    NamedColor('#34495E', 'charcoal_blue'),
    NamedColor('#5D6D7E', 'steel_gray'),
    NamedColor('#566573', 'slate_gray'),
    NamedColor('#1B2631', 'midnight_blue'),
    NamedColor('#212F3D', 'dark_navy'),
    NamedColor('#283747', 'gunmetal'),
    NamedColor('#17202A', 'charcoal_black'),
    NamedColor('#425468', 'storm_gray'),
    NamedColor('#4A5568', 'cool_gray'),
)


@dataclass(frozen=True)
class TextCrop:
    """Rectangle around the device label, clamped to the image bounds."""
    left: int
    top: int
    width: int
    height: int
    position: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "left": self.left,
            "top": self.top,
            "width": self.width,
            "height": self.height,
            "position": self.position,
        }


@dataclass(frozen=True)
class ShapeInfo:
    """A decorative shape drawn on the background, kept for traceability."""
    type: str
    x: int
    y: int
    size: int
    color: NamedColor
    radius: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    base: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type,
            "x": self.x,
            "y": self.y,
            "size": self.size,
            "color": self.color.to_dict(),
        }
        for key in ("radius", "width", "height", "base"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass(frozen=True)
class GeneratedImage:
    """A rendered frame plus the metadata describing how it was drawn."""
    device_id: str
    jpeg_bytes: bytes
    position: str
    text_crop: TextCrop
    background_colors: Dict[str, NamedColor]
    shapes: List[ShapeInfo] = field(default_factory=list)
    timestamp: str = ""
    width: int = IMAGE_WIDTH
    height: int = IMAGE_HEIGHT
    format: str = "jpeg"

    @cached_property
    def base64(self) -> str:
        return base64.b64encode(self.jpeg_bytes).decode('ascii')

    @property
    def size_bytes(self) -> int:
        """Decoded size of the encoded image."""
        return len(self.jpeg_bytes)

    @property
    def dimensions(self) -> Dict[str, int]:
        return {"width": self.width, "height": self.height}

    def background_colors_dict(self) -> Dict[str, Dict[str, str]]:
        return {role: color.to_dict() for role, color in self.background_colors.items()}


class ImageGenerator:
    """
    Renders synthetic camera frames with OpenCV.

    Stateless between calls; every frame is generated fresh.
    """

    def __init__(
        self,
        width: int = IMAGE_WIDTH,
        height: int = IMAGE_HEIGHT,
        jpeg_quality: int = JPEG_QUALITY,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize the generator.

        Args:
            width: Canvas width in pixels
            height: Canvas height in pixels
            jpeg_quality: JPEG quality 0-100
            rng: Random source (a fresh random.Random when omitted)
        """
        self.width = width
        self.height = height
        self.jpeg_quality = jpeg_quality
        self._rng = rng or random.Random()

    def get_random_position(self) -> str:
        return self._rng.choice(POSITIONS)

    def get_random_color(self) -> NamedColor:
        return self._rng.choice(PALETTE)

    def get_coordinates_for_position(
        self,
        position: str,
        text_width: int,
        text_height: int,
        baseline: int = 0
    ) -> Tuple[int, int]:
        """
        Compute the text origin (bottom-left of the glyphs) for an anchor.

        Returns:
            (x, y) in pixels, as cv2.putText expects
        """
        vertical, horizontal = position.split('-')

        if horizontal == 'left':
            x = LABEL_MARGIN
        elif horizontal == 'center':
            x = (self.width - text_width) // 2
        elif horizontal == 'right':
            x = self.width - text_width - LABEL_MARGIN
        else:
            raise ValueError(f"Unknown horizontal anchor: {horizontal}")

        if vertical == 'top':
            y = LABEL_MARGIN + text_height
        elif vertical == 'middle':
            y = (self.height + text_height) // 2
        elif vertical == 'bottom':
            y = self.height - LABEL_MARGIN - baseline
        else:
            raise ValueError(f"Unknown vertical anchor: {vertical}")

        return max(0, x), max(0, y)

    def _draw_background(self, canvas: np.ndarray) -> Dict[str, NamedColor]:
        """Fill the canvas with a diagonal three-stop gradient."""
        colors = {
            "primary": self.get_random_color(),
            "secondary": self.get_random_color(),
            "accent": self.get_random_color(),
        }

        # Project each pixel onto the (0,0)->(width,height) diagonal, 0..1
        xs = np.arange(self.width, dtype=np.float32)[np.newaxis, :]
        ys = np.arange(self.height, dtype=np.float32)[:, np.newaxis]
        t = (xs * self.width + ys * self.height) / float(self.width ** 2 + self.height ** 2)

        stops = np.array([0.0, 0.5, 1.0], dtype=np.float32)
        stop_colors = np.array([c.bgr for c in colors.values()], dtype=np.float32)
        for channel in range(3):
            canvas[..., channel] = np.interp(t, stops, stop_colors[:, channel]).astype(np.uint8)

        return colors

    def _draw_shapes(self, canvas: np.ndarray) -> List[ShapeInfo]:
        """Blend 3-7 random shapes onto the canvas."""
        shapes: List[ShapeInfo] = []
        shape_count = self._rng.randint(3, 7)

        for _ in range(shape_count):
            color = self.get_random_color()
            shape_type = self._rng.choice(SHAPE_TYPES)
            x = int(self._rng.random() * self.width)
            y = int(self._rng.random() * self.height)
            size = int(self._rng.random() * 100 + 50)

            overlay = canvas.copy()
            if shape_type == "circle":
                cv2.circle(overlay, (x, y), size, color.bgr, -1, cv2.LINE_AA)
                info = ShapeInfo(shape_type, x, y, size, color, radius=size)
            elif shape_type == "rectangle":
                width, height = size, int(size * 0.7)
                cv2.rectangle(overlay, (x, y), (x + width, y + height), color.bgr, -1)
                info = ShapeInfo(shape_type, x, y, size, color, width=width, height=height)
            else:
                points = np.array([[x, y], [x + size, y + size], [x - size, y + size]], dtype=np.int32)
                cv2.fillPoly(overlay, [points], color.bgr, cv2.LINE_AA)
                info = ShapeInfo(shape_type, x, y, size, color, base=size * 2, height=size)

            cv2.addWeighted(overlay, SHAPE_ALPHA, canvas, 1 - SHAPE_ALPHA, 0, dst=canvas)
            shapes.append(info)

        return shapes

    def _fit_label(self, text: str) -> Tuple[float, int, int, int, int]:
        """Shrink the label font until the backed label fits the canvas width."""
        scale, thickness = LABEL_FONT_SCALE, LABEL_THICKNESS
        (text_width, text_height), baseline = cv2.getTextSize(text, LABEL_FONT, scale, thickness)
        max_width = self.width - 2 * (LABEL_MARGIN + BACKING_MARGIN)

        while text_width > max_width and scale > 0.2:
            scale *= 0.9
            thickness = max(1, int(round(scale * 2)))
            (text_width, text_height), baseline = cv2.getTextSize(text, LABEL_FONT, scale, thickness)

        return scale, thickness, text_width, text_height, baseline

    def _compute_crop(
        self,
        x: int,
        y: int,
        text_width: int,
        text_height: int,
        baseline: int,
        position: str
    ) -> TextCrop:
        left = max(0, x - CROP_PADDING)
        top = max(0, y - text_height - CROP_PADDING)
        right = min(self.width, x + text_width + CROP_PADDING)
        bottom = min(self.height, y + baseline + CROP_PADDING)
        return TextCrop(
            left=left,
            top=top,
            width=max(0, right - left),
            height=max(0, bottom - top),
            position=position,
        )

    def generate_image(self, device_id: str) -> GeneratedImage:
        """
        Render and encode one frame for a device.

        Args:
            device_id: Identifier stamped on the frame

        Returns:
            GeneratedImage with JPEG bytes and drawing metadata

        Raises:
            ImageGenerationError: If rendering or JPEG encoding fails
        """
        try:
            canvas = np.zeros((self.height, self.width, 3), dtype=np.uint8)
            background_colors = self._draw_background(canvas)
            shapes = self._draw_shapes(canvas)

            timestamp = to_iso_timestamp()
            cv2.putText(
                canvas, f"Timestamp: {timestamp}", (LABEL_MARGIN, self.height - 60),
                LABEL_FONT, TIMESTAMP_FONT_SCALE, (230, 230, 230), 1, cv2.LINE_AA
            )

            position = self.get_random_position()
            text = f"Device: {device_id}"
            scale, thickness, text_width, text_height, baseline = self._fit_label(text)
            x, y = self.get_coordinates_for_position(position, text_width, text_height, baseline)

            cv2.rectangle(
                canvas,
                (x - BACKING_MARGIN, y - text_height - BACKING_MARGIN),
                (x + text_width + BACKING_MARGIN, y + baseline + BACKING_MARGIN),
                (0, 0, 0),
                -1
            )
            # Outline first, then the fill on top
            cv2.putText(canvas, text, (x, y), LABEL_FONT, scale, (0, 0, 0), thickness + 3, cv2.LINE_AA)
            cv2.putText(canvas, text, (x, y), LABEL_FONT, scale, (255, 255, 255), thickness, cv2.LINE_AA)

            text_crop = self._compute_crop(x, y, text_width, text_height, baseline, position)

            ok, encoded = cv2.imencode(".jpg", canvas, [int(cv2.IMWRITE_JPEG_QUALITY), self.jpeg_quality])
        except cv2.error as e:
            raise ImageGenerationError(device_id=device_id, reason=str(e)) from e

        if not ok:
            raise ImageGenerationError(device_id=device_id, reason="JPEG encoding returned no data")

        image = GeneratedImage(
            device_id=device_id,
            jpeg_bytes=encoded.tobytes(),
            position=position,
            text_crop=text_crop,
            background_colors=background_colors,
            shapes=shapes,
            timestamp=timestamp,
            width=self.width,
            height=self.height,
        )
        logger.debug(
            f"Generated image for {device_id}: position={position}, "
            f"shapes={len(shapes)}, size={image.size_bytes} bytes"
        )
        return image

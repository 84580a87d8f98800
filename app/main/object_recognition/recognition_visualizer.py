import os
from typing import List, Optional

import cv2
import numpy as np

from app.main.object_recognition.recognition.models import RecognizedObject
from app.main.object_recognition.recognition.spatial.depth_projection import DepthProjection


class RecognitionVisualizer:
    """Renders the scene depth image with the pixels explained by each recognized object."""

    # BGR tints, one per recognized object (cycled)
    COLORS = [
        (60, 60, 230), (60, 200, 60), (230, 120, 40),
        (40, 200, 220), (200, 60, 200), (220, 220, 60),
    ]

    def __init__(self, output_dir: str = 'app/static/output', scale: int = 4, tint_alpha: float = 0.6):
        self.output_dir = output_dir
        self.scale = scale
        self.tint_alpha = tint_alpha
        os.makedirs(output_dir, exist_ok=True)

    def render(self, projection: DepthProjection,
               objects: Optional[List[RecognizedObject]] = None) -> np.ndarray:
        """
        Colour-mapped depth image with object overlays.

        Args:
            projection: Scene depth projection
            objects: Recognized objects whose explained pixels get tinted

        Returns:
            BGR uint8 image, rows = x pixels, columns = y pixels, upscaled
            by self.scale. Pixels without scene points are black.
        """
        depth = projection.as_depth_image()
        if depth.size == 0:
            return np.zeros((self.scale, self.scale, 3), dtype=np.uint8)

        valid = np.isfinite(depth)
        gray = np.zeros(depth.shape, dtype=np.uint8)
        if valid.any():
            lo, hi = depth[valid].min(), depth[valid].max()
            span = hi - lo if hi > lo else 1.0
            # Closer (smaller z) = brighter
            gray[valid] = (255.0 * (hi - depth[valid]) / span).astype(np.uint8)

        img = cv2.applyColorMap(gray, cv2.COLORMAP_JET)
        img[~valid] = 0

        flat = img.reshape(-1, 3)
        for i, obj in enumerate(objects or []):
            pixels = np.asarray(obj.explained_pixels, dtype=np.int64)
            pixels = pixels[(pixels >= 0) & (pixels < len(flat))]
            color = np.array(self.COLORS[i % len(self.COLORS)], dtype=float)
            blended = (1.0 - self.tint_alpha) * flat[pixels] + self.tint_alpha * color
            flat[pixels] = blended.astype(np.uint8)

        h, w = img.shape[:2]
        return cv2.resize(img, (w * self.scale, h * self.scale), interpolation=cv2.INTER_NEAREST)

    def save(self, image: np.ndarray, filename: str) -> str:
        """Write image as PNG into output_dir, returns the full path."""
        filepath = os.path.join(self.output_dir, filename)
        cv2.imwrite(filepath, image)
        return filepath

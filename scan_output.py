# scan_output.py

import logging
import os
from typing import Dict, List

import cv2
import matplotlib.pyplot as plt
import numpy as np

from scanner_contracts import ScanResult

logger = logging.getLogger(__name__)

JPEG_QUALITY = 95


def _to_rgb(image: np.ndarray) -> np.ndarray:
    # OpenCV keeps BGR, matplotlib expects RGB
    if image.ndim == 2:
        return image
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def show_results(result: ScanResult, title: str = "") -> None:
    """Display original, rectified and binarized images side by side."""
    panels = [("Original Doc", result.original),
              ("Scanned Doc", result.warped),
              ("Scanned and cleaned Doc", result.scanned)]
    panels = [(name, img) for name, img in panels if img is not None]
    if not panels:
        logger.warning("Nothing to display")
        return

    fig, axes = plt.subplots(1, len(panels), figsize=(6 * len(panels), 8), squeeze=False)
    for ax, (name, img) in zip(axes[0], panels):
        ax.imshow(_to_rgb(img), cmap="gray" if img.ndim == 2 else None)
        ax.set_title(name)
        ax.axis("off")
    if title:
        fig.suptitle(title)
    plt.tight_layout()
    plt.show()


def save_results(result: ScanResult, output_dir: str, base_name: str) -> List[str]:
    """Write the rectified and binarized images. Returns the written paths."""
    if not result.ok:
        return []
    os.makedirs(output_dir, exist_ok=True)

    written = []
    scanned_path = os.path.join(output_dir, f"{base_name}_scanned.jpg")
    if cv2.imwrite(scanned_path, result.warped, [int(cv2.IMWRITE_JPEG_QUALITY), JPEG_QUALITY]):
        written.append(scanned_path)
    else:
        logger.error("Failed to save %s", scanned_path)

    cleaned_path = os.path.join(output_dir, f"{base_name}_cleaned.png")
    if cv2.imwrite(cleaned_path, result.scanned):
        written.append(cleaned_path)
    else:
        logger.error("Failed to save %s", cleaned_path)

    for path in written:
        logger.info("Result saved to: %s", path)
    return written


def save_debug_images(images: Dict[str, np.ndarray], debug_dir: str, base_name: str) -> List[str]:
    if not images:
        return []
    os.makedirs(debug_dir, exist_ok=True)
    logger.info("Saving %d debug images to: %s", len(images), debug_dir)

    written = []
    for name in sorted(images):
        path = os.path.join(debug_dir, f"{base_name}_{name}.jpg")
        if cv2.imwrite(path, images[name]):
            written.append(path)
        else:
            logger.error("Write debug img %s failed", name)
    return written

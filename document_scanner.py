# document_scanner.py

import logging
import os
from functools import reduce
from typing import Dict, Iterable, List, Optional

import cv2
import numpy as np

from scanner_contracts import (
    NO_DOCUMENT_MESSAGE,
    SUCCESS_MESSAGE,
    DegenerateGeometry,
    InvalidImage,
    LoadFailure,
    OrderedQuad,
    QuadCandidate,
    ScanError,
    ScannerConfig,
    ScanResult,
    ScanStatus,
)

logger = logging.getLogger(__name__)


# --- Filter collaborators ---

def _require_image(image: Optional[np.ndarray], stage: str) -> np.ndarray:
    if image is None or not isinstance(image, np.ndarray) or image.size == 0:
        raise InvalidImage(f"{stage}: empty or degenerate image")
    if image.ndim not in (2, 3) or min(image.shape[:2]) <= 0:
        raise InvalidImage(f"{stage}: unsupported image shape {image.shape}")
    return image


def load_image(image_path: str) -> np.ndarray:
    """Decode a color image from disk. Raises LoadFailure on missing/corrupt input."""
    if not os.path.isfile(image_path):
        raise LoadFailure(f"Could not load image from {image_path}: file not found")
    image = cv2.imread(image_path, cv2.IMREAD_COLOR)
    if image is None or image.size == 0:
        raise LoadFailure(f"Could not load image from {image_path}")
    return image


def to_gray(image: np.ndarray) -> np.ndarray:
    image = _require_image(image, "grayscale")
    if image.ndim == 2:
        return image
    channels = image.shape[2]
    if channels == 1:
        return image[:, :, 0]
    if channels == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    if channels == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    raise InvalidImage(f"grayscale: unsupported channel count {channels}")


def blur_image(gray: np.ndarray, kernel_size: int = 5) -> np.ndarray:
    """Gaussian smoothing; sigma is derived from the kernel size."""
    gray = _require_image(gray, "blur")
    return cv2.GaussianBlur(gray, (kernel_size, kernel_size), 0)


def binarize_document(image: np.ndarray, config: Optional[ScannerConfig] = None) -> np.ndarray:
    """
    Produce the "scanned" look: local Gaussian-weighted thresholding removes
    light and shadow differences so that mostly the text stays black.
    """
    config = config or ScannerConfig()
    gray = to_gray(image)
    return cv2.adaptiveThreshold(
        gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY,
        config.adaptive_block_size, config.adaptive_offset)


# --- Edge map and contours ---

def build_edge_map(gray: np.ndarray, config: Optional[ScannerConfig] = None) -> np.ndarray:
    """
    Canny edges (hysteresis between `canny_low` and `canny_high`) thickened by a
    square dilation so broken segments such as book spines or faint edges merge.
    """
    config = config or ScannerConfig()
    gray = _require_image(gray, "edge map")
    if gray.ndim != 2:
        raise InvalidImage(f"edge map: expected a single-channel image, got shape {gray.shape}")
    if gray.dtype != np.uint8:
        raise InvalidImage(f"edge map: expected an 8-bit image, got {gray.dtype}")
    edges = cv2.Canny(gray, config.canny_low, config.canny_high)
    kernel = cv2.getStructuringElement(
        cv2.MORPH_RECT, (config.dilate_kernel_size, config.dilate_kernel_size))
    return cv2.dilate(edges, kernel)


def find_document_contours(edge_map: np.ndarray) -> List[np.ndarray]:
    """Outer boundaries of the white regions; order is not meaningful."""
    contours, _ = cv2.findContours(edge_map, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    return [cnt for cnt in contours if len(cnt) >= 3 and cv2.contourArea(cnt) > 0]


# --- Quadrilateral selection ---

def _quad_candidate(contour: np.ndarray, min_area: float) -> Optional[QuadCandidate]:
    raw_area = cv2.contourArea(contour)
    if raw_area <= min_area:
        return None
    # hull handles curved pages like open books
    hull = cv2.convexHull(contour)
    hull_area = cv2.contourArea(hull)
    box = cv2.boxPoints(cv2.minAreaRect(hull))
    return QuadCandidate(points=box.astype("float32"), area=float(hull_area))


def _keep_larger(best: Optional[QuadCandidate],
                 candidate: Optional[QuadCandidate]) -> Optional[QuadCandidate]:
    """Combine step of the selection fold. Equal areas keep `best` (first wins)."""
    if candidate is None:
        return best
    if best is None or candidate.area > best.area:
        return candidate
    return best


def select_document_quad(contours: Iterable[np.ndarray],
                         min_area: float = 5000.0) -> Optional[QuadCandidate]:
    """
    Pick the document boundary among `contours`.

    Contours whose own area is not above `min_area` are ignored. The rest are
    ranked by convex hull area, and the winner is reduced to the 4 corners of
    its hull's minimum-area bounding rectangle. Returns None when nothing
    passes the area filter.
    """
    candidates = (_quad_candidate(cnt, min_area) for cnt in contours)
    return reduce(_keep_larger, candidates, None)


# --- Corner ordering ---

def order_points(pts: np.ndarray) -> np.ndarray:
    """Order 4 points as top-left, top-right, bottom-right, bottom-left."""
    if not isinstance(pts, np.ndarray):
        try:
            pts = np.array(pts, dtype="float32")
        except ValueError:
            raise ValueError(f"Input pts type {type(pts)} cannot be converted.")
    if pts.size != 8:
        raise ValueError(f"order_points requires 4 points, got shape {pts.shape}")
    pts = pts.reshape((4, 2)).astype("float32")

    rect = np.zeros((4, 2), dtype="float32")
    s = pts.sum(axis=1)
    rect[0] = pts[np.argmin(s)]  # top-left: smallest sum
    rect[2] = pts[np.argmax(s)]  # bottom-right: largest sum
    diff = np.diff(pts, axis=1)  # y - x
    rect[1] = pts[np.argmin(diff)]  # top-right: smallest difference
    rect[3] = pts[np.argmax(diff)]  # bottom-left: largest difference
    return rect


def _cross(o: np.ndarray, a: np.ndarray, b: np.ndarray) -> float:
    return float((a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0]))


def _segments_cross(p1, p2, q1, q2) -> bool:
    d1 = _cross(q1, q2, p1)
    d2 = _cross(q1, q2, p2)
    d3 = _cross(p1, p2, q1)
    d4 = _cross(p1, p2, q2)
    return d1 * d2 < 0 and d3 * d4 < 0


def check_quad_geometry(quad: np.ndarray, min_area: float = 1.0) -> None:
    """
    Reject an ordered quad that cannot drive a perspective transform:
    repeated corners, crossing edges, or (near) zero area.
    """
    quad = np.asarray(quad, dtype="float32").reshape((4, 2))
    for i in range(4):
        for j in range(i + 1, 4):
            if np.allclose(quad[i], quad[j]):
                raise DegenerateGeometry(
                    f"Corners {i} and {j} coincide at {tuple(quad[i].tolist())}")

    tl, tr, br, bl = quad
    if _segments_cross(tl, tr, br, bl) or _segments_cross(tr, br, bl, tl):
        raise DegenerateGeometry("Ordered corners form a self-intersecting quadrilateral")

    area = cv2.contourArea(quad)
    if area <= min_area:
        raise DegenerateGeometry(f"Quadrilateral area {area:.2f} is too small")


# --- Perspective rectification ---

def compute_perspective_transform(corners: OrderedQuad, width: int = 1000,
                                  height: int = 1414) -> np.ndarray:
    """3x3 transform taking the ordered corners onto (0,0),(W,0),(W,H),(0,H)."""
    src = corners.as_array()
    dst = np.array([[0, 0], [width, 0], [width, height], [0, height]], dtype="float32")
    return cv2.getPerspectiveTransform(src, dst)


def map_points(matrix: np.ndarray, points: np.ndarray) -> np.ndarray:
    pts = np.asarray(points, dtype="float64").reshape((-1, 1, 2))
    return cv2.perspectiveTransform(pts, matrix).reshape((-1, 2))


def warp_document(image: np.ndarray, matrix: np.ndarray, width: int = 1000,
                  height: int = 1414) -> np.ndarray:
    """Resample `image` into a width x height canvas; outside samples are black."""
    image = _require_image(image, "warp")
    return cv2.warpPerspective(
        image, matrix, (width, height), flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT, borderValue=0)


# --- Pipeline ---

def _save_debug_img(debug_images: Optional[Dict[str, np.ndarray]], name: str,
                    img: np.ndarray) -> None:
    if debug_images is not None and img is not None:
        # numbered so the saved files keep pipeline order
        debug_images[f"{len(debug_images):02d}_{name}"] = img.copy()


def _as_bgr(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    return image.copy()


def detect_document(image: np.ndarray, config: Optional[ScannerConfig] = None,
                    debug_images: Optional[Dict[str, np.ndarray]] = None) -> Optional[OrderedQuad]:
    """
    Locate the document corners in a color image.

    Returns the ordered corners, or None when no contour is large enough.
    Raises InvalidImage for empty input and DegenerateGeometry when the
    selected corners cannot be ordered into a simple quadrilateral.
    """
    config = config or ScannerConfig()
    image = _require_image(image, "detect")

    gray = to_gray(image)
    _save_debug_img(debug_images, "Gray", gray)
    blurred = blur_image(gray, config.blur_kernel_size)
    _save_debug_img(debug_images, "Blurred", blurred)
    edges = build_edge_map(blurred, config)
    _save_debug_img(debug_images, "Edges_Dilated", edges)

    contours = find_document_contours(edges)
    logger.debug("Found %d external contours", len(contours))
    if debug_images is not None:
        overlay = cv2.drawContours(_as_bgr(image), contours, -1, (0, 165, 255), 2)
        _save_debug_img(debug_images, "Contours", overlay)

    best = select_document_quad(contours, config.min_contour_area)
    if best is None:
        return None
    logger.debug("Selected candidate with hull area %.0f", best.area)

    rect = order_points(best.points)
    check_quad_geometry(rect)
    if debug_images is not None:
        overlay = cv2.polylines(_as_bgr(image), [rect.astype(np.int32)], True, (0, 255, 0), 3)
        _save_debug_img(debug_images, "Selected_Quad", overlay)
    return OrderedQuad.from_array(rect)


def scan_image(image: np.ndarray, config: Optional[ScannerConfig] = None,
               keep_debug_images: bool = False) -> ScanResult:
    """
    Run detection, rectification and binarization on a decoded image.

    Every failure ends the run with a terminal status and message; no
    rectified output is produced in that case.
    """
    config = config or ScannerConfig()
    debug_images: Optional[Dict[str, np.ndarray]] = {} if keep_debug_images else None

    try:
        corners = detect_document(image, config, debug_images)
        if corners is None:
            logger.warning(NO_DOCUMENT_MESSAGE)
            return ScanResult(status=ScanStatus.NO_DOCUMENT, message=NO_DOCUMENT_MESSAGE,
                              original=image, debug_images=debug_images or {})

        matrix = compute_perspective_transform(
            corners, config.output_width, config.output_height)
        warped = warp_document(image, matrix, config.output_width, config.output_height)
        _save_debug_img(debug_images, "Warped", warped)
        scanned = binarize_document(warped, config)
        _save_debug_img(debug_images, "Scanned", scanned)
    except ScanError as e:
        logger.error("Scan failed (%s): %s", e.status.value, e)
        return ScanResult(status=e.status, message=str(e), debug_images=debug_images or {})

    logger.info(SUCCESS_MESSAGE)
    return ScanResult(status=ScanStatus.OK, message=SUCCESS_MESSAGE, original=image,
                      warped=warped, scanned=scanned, corners=corners, transform=matrix,
                      debug_images=debug_images or {})


def scan_document(image_path: str, config: Optional[ScannerConfig] = None,
                  keep_debug_images: bool = False) -> ScanResult:
    logger.info("--- Processing: %s ---", os.path.basename(image_path))
    try:
        image = load_image(image_path)
    except LoadFailure as e:
        logger.error("%s", e)
        return ScanResult(status=e.status, message=str(e))
    return scan_image(image, config, keep_debug_images)

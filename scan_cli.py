# scan_cli.py

from __future__ import annotations

import argparse
import logging
import os

from document_scanner import scan_document
from scan_output import save_debug_images, save_results, show_results
from scanner_contracts import ScannerConfig, ScanStatus

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_NO_DOCUMENT = 2


def build_arg_parser() -> argparse.ArgumentParser:
    defaults = ScannerConfig()
    p = argparse.ArgumentParser(
        prog="document-scanner",
        description="Detect a document in a photo, rectify it and produce a cleaned scan.",
    )
    p.add_argument("image_path", help="Input photo (any format OpenCV can decode).")
    p.add_argument("--output-dir", default=None, help="Write the scanned/cleaned images here.")
    p.add_argument("--debug-dir", default=None, help="Write intermediate pipeline images here.")
    p.add_argument("--show", action="store_true", help="Display the results with matplotlib.")
    p.add_argument("--blur-kernel", type=int, default=defaults.blur_kernel_size)
    p.add_argument("--canny-low", type=float, default=defaults.canny_low)
    p.add_argument("--canny-high", type=float, default=defaults.canny_high)
    p.add_argument("--dilate-kernel", type=int, default=defaults.dilate_kernel_size)
    p.add_argument(
        "--min-area",
        type=float,
        default=defaults.min_contour_area,
        help="Minimum contour area in pixels (absolute, not scaled with resolution).",
    )
    p.add_argument("--width", type=int, default=defaults.output_width, help="Output width.")
    p.add_argument("--height", type=int, default=defaults.output_height, help="Output height.")
    p.add_argument("--block-size", type=int, default=defaults.adaptive_block_size,
                   help="Adaptive threshold neighborhood size (odd).")
    p.add_argument("--offset", type=float, default=defaults.adaptive_offset,
                   help="Constant subtracted from the adaptive threshold mean.")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = ScannerConfig(
            blur_kernel_size=args.blur_kernel,
            canny_low=args.canny_low,
            canny_high=args.canny_high,
            dilate_kernel_size=args.dilate_kernel,
            min_contour_area=args.min_area,
            output_width=args.width,
            output_height=args.height,
            adaptive_block_size=args.block_size,
            adaptive_offset=args.offset,
        )
    except ValueError as e:
        parser.error(str(e))

    result = scan_document(args.image_path, config, keep_debug_images=args.debug_dir is not None)
    base_name = os.path.splitext(os.path.basename(args.image_path))[0]

    if args.debug_dir is not None:
        save_debug_images(result.debug_images, args.debug_dir, base_name)
    if args.output_dir is not None:
        save_results(result, args.output_dir, base_name)

    print(result.message)
    if args.show and result.original is not None:
        show_results(result, title=os.path.basename(args.image_path))

    if result.ok:
        return EXIT_OK
    if result.status == ScanStatus.NO_DOCUMENT:
        return EXIT_NO_DOCUMENT
    return EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())

#!/usr/bin/env python3
"""
Opening-Hours OCR

Reads opening hours from photos or videos of shop signs and prints them as a
compact schedule such as "Mo-Fr 09:00-18:00 Sa 10:00-14:00".

Usage:
    hours-ocr --input sign.mp4 --engine easyocr
    hours-ocr --input photos/ --out_dir out --mode single --lang de
"""

import argparse
import logging
import sys
from pathlib import Path

from .core import DayRunPolicy, ImageHoursPipeline, VideoHoursPipeline
from .core.utils import STABILITY_THRESHOLD, VIDEO_EXTENSIONS


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Opening-Hours OCR",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Read a video until the schedule is stable
  hours-ocr --input sign.mp4 --engine easyocr

  # Single photo
  hours-ocr --input sign.jpg --out_dir out --mode single

  # Folder of photos with German labels
  hours-ocr --input photos/ --out_dir out --mode single --lang de
        """
    )

    parser.add_argument(
        "--input", "-i", required=True,
        help="Path to video file, image, or folder of images"
    )
    parser.add_argument(
        "--out_dir", "-o", default="out",
        help="Output directory for single-image results (default: out)"
    )
    parser.add_argument(
        "--mode", "-m", choices=["video", "single", "auto"], default="auto",
        help="Processing mode: video (multi-frame vote), single (per-image), or auto-detect"
    )
    parser.add_argument(
        "--engine", "-e", choices=["paddle", "easyocr", "tesseract"], default="paddle",
        help="OCR engine (default: paddle)"
    )
    parser.add_argument(
        "--lang", "-l", choices=["en", "de"], default="en",
        help="Language of the sign (default: en)"
    )
    parser.add_argument(
        "--threshold", type=int, default=STABILITY_THRESHOLD,
        help=f"Identical frame results needed to finish (default: {STABILITY_THRESHOLD})"
    )
    parser.add_argument(
        "--frame_step", type=int, default=1,
        help="Use every Nth video frame (default: 1)"
    )
    parser.add_argument(
        "--day_policy", choices=[p.value for p in DayRunPolicy], default=DayRunPolicy.KEEP.value,
        help="How to treat runs of three or more days (default: keep)"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Verbose output"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s"
    )

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: Input path does not exist: {args.input}")
        return 1

    mode = args.mode
    if mode == "auto":
        if input_path.is_file() and input_path.suffix.lower() in VIDEO_EXTENSIONS:
            mode = "video"
        else:
            mode = "single"

    print(f"[Hours OCR] Mode: {mode}")
    print(f"[Hours OCR] Input: {args.input}")
    print(f"[Hours OCR] Engine: {args.engine}")
    print(f"[Hours OCR] Language: {args.lang}")
    print()

    if mode == "video":
        pipeline = VideoHoursPipeline(
            engine=args.engine,
            lang=args.lang,
            threshold=args.threshold,
            frame_step=args.frame_step,
            day_policy=args.day_policy
        )
        result = pipeline.process(args.input)

        print("\n" + "="*60)
        print("OPENING HOURS")
        print("="*60)
        print(f"Frames read: {result['frames_read']}")
        print(f"Frames used: {result['frames_used']}")
        print(f"Stable: {result['finished']}")
        print("-"*60)
        print(result["text"])
        print("="*60)

    else:
        pipeline = ImageHoursPipeline(
            engine=args.engine,
            lang=args.lang,
            day_policy=args.day_policy
        )

        if input_path.is_file():
            results = [pipeline.process_image(args.input, args.out_dir)]
        else:
            results = pipeline.process_folder(args.input, args.out_dir)

        print("\n" + "="*60)
        print("OPENING HOURS")
        print("="*60)
        for r in results:
            if "error" in r:
                print(f"Error: {r['error']}")
            else:
                print(f"\"{Path(r['image_path']).name}\" => \"{r['text']}\"")
        print("="*60)

    return 0


if __name__ == "__main__":
    sys.exit(main())

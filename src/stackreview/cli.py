#!/usr/bin/env python3
"""
Stack Review CLI

Command-line front end for archive ordering and single-image editing.
The CLI acts as the persistence collaborator: it is the only part that
writes files.

Usage:
    python -m stackreview.cli inspect study.zip
    python -m stackreview.cli edit slice_004.png -o out.png --crop 10 10 200 200
"""

import argparse
import logging
import sys
from pathlib import Path

from .archive import ArchiveExtractor, guess_content_type, is_archive_upload
from .config import EditorConfig, ExtractorConfig
from .editor import CropRegion, RasterEditSession
from .errors import StackReviewError
from .handoff import MODALITY_TEMPLATES, HandoffArtifact, get_template, validate_batch
from .ordering import get_ordering_label


def _print_progress(percent: float, stage: str) -> None:
    print(f"  [{percent:5.1f}%] {stage}", file=sys.stderr)


def cmd_inspect(args) -> int:
    if not args.archive.exists():
        print(f"Error: Archive does not exist: {args.archive}", file=sys.stderr)
        return 1
    if not is_archive_upload(args.archive.name):
        print(f"Error: Not a ZIP archive: {args.archive}", file=sys.stderr)
        return 1

    config = ExtractorConfig(timeout_seconds=args.timeout)
    extractor = ArchiveExtractor(config=config)
    progress = _print_progress if args.verbose else None

    try:
        result = extractor.extract_sync(args.archive.read_bytes(), progress)
    except StackReviewError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if result.is_empty:
        print(f"No images found in {args.archive} ({result.entries_scanned} entries scanned)")
        return 0

    print(f"{len(result)} images extracted from {args.archive}:")
    for image in result:
        icon, label = get_ordering_label(image.ordering_method)
        print(f"  #{image.order:<4} {image.name:<40} {image.size_label:>9}  {icon} {label}")

    if result.fallback_count:
        print(f"\nWarning: {result.fallback_count} image(s) ordered by first-character fallback")

    if args.template:
        template = get_template(args.template)
        artifacts = [HandoffArtifact.from_extracted(img) for img in result]
        try:
            validate_batch(artifacts, template)
        except StackReviewError as e:
            print(f"Template check failed: {e}", file=sys.stderr)
            return 1
        print(f"\nBatch fits template: {template.name}")

    return 0


def cmd_edit(args) -> int:
    if not args.image.exists():
        print(f"Error: Image does not exist: {args.image}", file=sys.stderr)
        return 1

    content_type = guess_content_type(args.image.name)
    session = RasterEditSession(
        args.image.name,
        args.image.read_bytes(),
        content_type,
        config=EditorConfig(),
    )

    try:
        with session:
            session.load()
            if args.square:
                session.toggle_aspect_lock()
            if args.crop:
                x, y, w, h = args.crop
                session.set_crop(CropRegion(x=x, y=y, width=w, height=h))
            elif args.full:
                session.set_crop(None)
            session.set_brightness(args.brightness)
            session.set_contrast(args.contrast)
            edited = session.export()
    except StackReviewError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_bytes(edited.data)
    print(f"Saved {edited.width}x{edited.height} {edited.content_type} to {args.output}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Order, edit and review stacks of diagnostic images',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List the inferred order of an archive
  stackreview inspect study.zip

  # Check a CT archive against its upload template
  stackreview inspect study.zip --template ct

  # Crop and brighten a single image
  stackreview edit slice_004.png -o edited.png --crop 10 10 200 200 --brightness 120
        """
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')

    sub = parser.add_subparsers(dest='command', required=True)

    inspect = sub.add_parser('inspect', help='Extract and order the images of a ZIP archive')
    inspect.add_argument('archive', type=Path, help='ZIP archive')
    inspect.add_argument(
        '--template',
        choices=sorted(MODALITY_TEMPLATES),
        help='Validate the batch against a modality upload template'
    )
    inspect.add_argument(
        '--timeout',
        type=float,
        default=None,
        help='Abort extraction after this many seconds (default: no timeout)'
    )
    inspect.set_defaults(func=cmd_inspect)

    edit = sub.add_parser('edit', help='Crop and adjust a single image')
    edit.add_argument('image', type=Path, help='Source image')
    edit.add_argument('-o', '--output', type=Path, required=True, help='Output file')
    edit.add_argument(
        '--crop',
        type=float,
        nargs=4,
        metavar=('X', 'Y', 'W', 'H'),
        help='Crop rectangle in source pixels (default: centered 80%% crop)'
    )
    edit.add_argument('--full', action='store_true', help='Export the whole image (no crop)')
    edit.add_argument('--square', action='store_true', help='Lock the crop to 1:1')
    edit.add_argument('--brightness', type=float, default=100, help='Brightness %% (50-150)')
    edit.add_argument('--contrast', type=float, default=100, help='Contrast %% (50-150)')
    edit.set_defaults(func=cmd_edit)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format='%(levelname)s %(name)s: %(message)s')

    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())

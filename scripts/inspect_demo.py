#!/usr/bin/env python
"""
Inspection demo script for the part defect pipeline.

Usage:
    python scripts/inspect_demo.py --image path/to/part.jpg
    python scripts/inspect_demo.py --base base.jpg --current current.jpg --output result.jpg
    python scripts/inspect_demo.py --image path/to/folder --output out/ --dashboard summary.png
"""

import argparse
import sys
from pathlib import Path
from typing import Optional

# Supported image extensions for folder processing
SUPPORTED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".bmp"}

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from part_inspection.config import get_settings, setup_logging
from part_inspection.errors import InspectionError, classify_error
from part_inspection.models import InspectionResult
from part_inspection.pipeline import InspectionPipeline, PipelineConfig
from part_inspection.preprocessing import ImageLoader
from part_inspection.visualization import ResultVisualizer

EXIT_CLEAN = 0
EXIT_DEFECTS = 1
EXIT_ERROR = 2


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Part Defect Inspection Demo",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--image",
        type=Path,
        default=None,
        help="Path to a single image or a folder of images",
    )
    parser.add_argument(
        "--base",
        type=Path,
        default=None,
        help="Path to the reference (base) photo",
    )
    parser.add_argument(
        "--current",
        type=Path,
        default=None,
        help="Path to the photo compared against --base",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Annotated output image (or folder in folder mode)",
    )
    parser.add_argument(
        "--dashboard",
        type=Path,
        default=None,
        help="Save a summary dashboard (folder mode only)",
    )

    args = parser.parse_args()
    if args.image is None and (args.base is None or args.current is None):
        parser.error("either --image or both --base and --current are required")
    if args.image is not None and (args.base is not None or args.current is not None):
        parser.error("--image cannot be combined with --base/--current")
    return args


def print_result(result: InspectionResult) -> None:
    """Print a single inspection result."""
    print("-" * 60)
    print("RESULTS")
    print("-" * 60)
    print(f"Frame: {result.image_width}x{result.image_height}")
    print(f"Has Defects: {result.has_defects}")
    print(f"Defect Count: {result.defect_count}")

    if result.defects:
        print("\nDefects:")
        for i, defect in enumerate(result.defects, 1):
            print(f"  {i}. {defect.stage}")
            print(f"     Box: ({defect.x}, {defect.y}, {defect.width}, {defect.height})")
            print(f"     Reason: {defect.reason}")


def save_annotated(
    image_path: Path,
    result: InspectionResult,
    output_path: Path,
) -> None:
    """Draw the result on the image at ``image_path`` and save it."""
    image = ImageLoader().load(image_path)
    visualizer = ResultVisualizer()
    annotated = visualizer.draw_results(image, result)
    visualizer.save_image(annotated, output_path)


def process_pair(
    pipeline: InspectionPipeline,
    base_path: Path,
    current_path: Path,
    output_path: Optional[Path],
) -> InspectionResult:
    """Compare a current photo with its base photo."""
    result = pipeline.inspect_diff_files(base_path, current_path)
    print_result(result)

    if output_path:
        image_loader = ImageLoader()
        visualizer = ResultVisualizer()
        base = image_loader.resize_to(
            image_loader.load(base_path), result.image_width, result.image_height
        )
        annotated = visualizer.draw_results(image_loader.load(current_path), result)
        annotated = image_loader.resize_to(annotated, result.image_width, result.image_height)
        visualizer.save_image(visualizer.create_comparison(base, annotated), output_path)
        print(f"\nSaved comparison image to: {output_path}")

    return result


def process_single_image(
    pipeline: InspectionPipeline,
    image_path: Path,
    output_path: Optional[Path],
) -> InspectionResult:
    """Inspect a single photo without a base photo."""
    result = pipeline.inspect_file(image_path)
    print_result(result)

    if output_path:
        save_annotated(image_path, result, output_path)
        print(f"\nSaved annotated image to: {output_path}")

    return result


def process_folder(
    pipeline: InspectionPipeline,
    folder_path: Path,
    output_folder: Optional[Path],
    dashboard_path: Optional[Path],
) -> tuple[int, int]:
    """Inspect every image in a folder.

    Returns:
        Tuple of (defective image count, failed image count).
    """
    images = [
        f for f in sorted(folder_path.iterdir())
        if f.is_file() and f.suffix.lower() in SUPPORTED_EXTENSIONS
    ]

    if not images:
        print(f"No supported images found in: {folder_path}")
        print(f"Supported extensions: {', '.join(sorted(SUPPORTED_EXTENSIONS))}")
        return 0, 0

    print(f"Found {len(images)} images")
    print("-" * 60)

    if output_folder:
        output_folder.mkdir(parents=True, exist_ok=True)

    results: list[InspectionResult] = []
    failed = 0

    for i, image_path in enumerate(images, 1):
        print(f"Processing: {image_path.name} ({i}/{len(images)})")
        try:
            result = pipeline.inspect_file(image_path)
        except InspectionError as e:
            failed += 1
            print(f"  -> skipped [{classify_error(e).value}] {e}")
            continue

        results.append(result)
        if output_folder:
            save_annotated(image_path, result, output_folder / f"{image_path.stem}_result.jpg")
        print(f"  -> {result.defect_count} defects")

    stats = pipeline.get_statistics(results)

    print("-" * 60)
    print("SUMMARY")
    print("-" * 60)
    print(f"Total: {len(images)} images")
    print(f"  Clean:     {stats['clean']}")
    print(f"  Defective: {stats['defective']}")
    print(f"  Failed:    {failed}")
    for stage, count in sorted(stats["defects_by_stage"].items()):
        print(f"  {stage}: {count}")
    if output_folder:
        print(f"Results saved to: {output_folder}")

    if dashboard_path:
        ResultVisualizer().create_summary_dashboard(results, save_path=dashboard_path)
        print(f"Dashboard saved to: {dashboard_path}")

    return stats["defective"], failed


def main() -> None:
    """Run inspection demo."""
    args = parse_args()
    settings = get_settings()
    setup_logging(settings.log_level)

    for path in (args.image, args.base, args.current):
        if path is not None and not path.exists():
            print(f"Error: Path not found: {path}")
            sys.exit(EXIT_ERROR)

    is_folder_mode = args.image is not None and args.image.is_dir()
    is_pair_mode = args.image is None

    print("=" * 60)
    if is_folder_mode:
        print("Part Defect Inspection Demo - Folder Mode")
    elif is_pair_mode:
        print("Part Defect Inspection Demo - Base/Current Mode")
    else:
        print("Part Defect Inspection Demo")
    print("=" * 60)

    pipeline = InspectionPipeline(PipelineConfig.from_settings(settings))
    pipeline.initialize()

    try:
        if is_folder_mode:
            defective, failed = process_folder(
                pipeline, args.image, args.output, args.dashboard
            )
            if failed:
                sys.exit(EXIT_ERROR)
            has_defects = defective > 0
        elif is_pair_mode:
            print(f"Base: {args.base}")
            print(f"Current: {args.current}")
            has_defects = process_pair(pipeline, args.base, args.current, args.output).has_defects
        else:
            print(f"Inspecting: {args.image.name}")
            has_defects = process_single_image(pipeline, args.image, args.output).has_defects
    except InspectionError as e:
        print(f"Error [{classify_error(e).value}]: {e}")
        sys.exit(EXIT_ERROR)

    print("-" * 60)
    print("Demo complete!")

    sys.exit(EXIT_DEFECTS if has_defects else EXIT_CLEAN)


if __name__ == "__main__":
    main()

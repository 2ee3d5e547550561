"""
Visualization utilities for inspection results.

Provides tools for drawing defect boxes on images, side-by-side
comparisons and summary dashboards for batches of results.
"""

from pathlib import Path
from typing import Optional

import cv2
import matplotlib.pyplot as plt
import numpy as np

from ..imaging import drawing
from ..models.types import InspectionResult


class ResultVisualizer:
    """Visualizer for inspection results.

    Draws defect boxes and stage labels on BGR images. Also provides
    dashboard generation for batch results.

    Attributes:
        font_scale: Scale factor for text annotations.
        line_thickness: Thickness of bounding box lines.

    Example:
        >>> visualizer = ResultVisualizer()
        >>> annotated = visualizer.draw_results(image, result)
        >>> visualizer.save_image(annotated, Path("output.jpg"))
    """

    # Box colors per stage tag (BGR format for OpenCV)
    STAGE_COLORS = {
        "edge_contour": (0, 255, 0),          # Green
        "diff_contour": (0, 255, 0),          # Green
        "broken_structural_mask": (0, 0, 255),  # Red
        "geometry_mismatch": (0, 165, 255),   # Orange
    }

    DEFAULT_COLOR = drawing.GREEN

    def __init__(
        self,
        font_scale: float = 0.5,
        line_thickness: int = 2,
    ) -> None:
        """Initialize the visualizer.

        Args:
            font_scale: Scale factor for text annotations.
            line_thickness: Thickness of bounding box lines.
        """
        self.font_scale = font_scale
        self.line_thickness = line_thickness

    def draw_results(
        self,
        image: np.ndarray,
        result: InspectionResult,
        show_labels: bool = True,
        show_summary: bool = True,
    ) -> np.ndarray:
        """Draw defect boxes on an image.

        Boxes are rescaled when the image is not the frame the result
        refers to.

        Args:
            image: Input image (BGR format).
            result: Inspection result to visualize.
            show_labels: Whether to label each box with its stage tag.
            show_summary: Whether to print the defect count in the corner.

        Returns:
            Annotated copy of the image (BGR format).
        """
        output = image.copy()
        h, w = output.shape[:2]
        boxes = drawing.scale_boxes(
            [(d.x, d.y, d.width, d.height) for d in result.defects],
            (result.image_width, result.image_height),
            (w, h),
        )

        for defect, (x, y, bw, bh) in zip(result.defects, boxes):
            color = self.STAGE_COLORS.get(defect.stage, self.DEFAULT_COLOR)
            cv2.rectangle(output, (x, y), (x + bw, y + bh), color, self.line_thickness)
            if show_labels:
                self._draw_label(output, defect.stage, (x, max(y - 10, 15)), color)

        if show_summary:
            text = f"defects: {result.defect_count}"
            color = (0, 0, 255) if result.has_defects else (0, 255, 0)
            self._draw_label(output, text, (10, 30), color)

        return output

    def _draw_label(
        self,
        image: np.ndarray,
        text: str,
        position: tuple[int, int],
        color: tuple[int, int, int],
    ) -> None:
        """Draw text label with background.

        Args:
            image: Image to draw on.
            text: Text to display.
            position: (x, y) position for text.
            color: Background color.
        """
        font = cv2.FONT_HERSHEY_SIMPLEX
        (text_w, text_h), baseline = cv2.getTextSize(text, font, self.font_scale, 1)
        x, y = position

        cv2.rectangle(
            image,
            (x, y - text_h - baseline),
            (x + text_w, y + baseline),
            color,
            -1,  # Filled
        )
        cv2.putText(
            image,
            text,
            (x, y),
            font,
            self.font_scale,
            (255, 255, 255),
            1,
            cv2.LINE_AA,
        )

    def save_image(
        self,
        image: np.ndarray,
        path: Path,
    ) -> None:
        """Save a BGR image to file.

        Raises:
            IOError: If OpenCV cannot write the file.
        """
        if not cv2.imwrite(str(path), image):
            raise IOError(f"Failed to write image: {path}")

    def create_comparison(
        self,
        original: np.ndarray,
        annotated: np.ndarray,
    ) -> np.ndarray:
        """Create side-by-side comparison image.

        Args:
            original: Original image (e.g. the base photo).
            annotated: Annotated image.

        Returns:
            Combined image showing both side by side.
        """
        h1 = original.shape[0]
        h2, w2 = annotated.shape[:2]

        if h1 != h2:
            scale = h1 / h2
            annotated = cv2.resize(annotated, (int(w2 * scale), h1))

        return np.concatenate([original, annotated], axis=1)

    def create_summary_dashboard(
        self,
        results: list[InspectionResult],
        save_path: Optional[Path] = None,
    ) -> plt.Figure:
        """Create summary dashboard for multiple results.

        Generates a matplotlib figure with:
        - Defective / clean pie chart
        - Defects per stage bar chart
        - Defects per image histogram
        - Defect box area histogram

        Args:
            results: List of inspection results.
            save_path: Optional path to save the figure.

        Returns:
            Matplotlib Figure object.
        """
        fig, axes = plt.subplots(2, 2, figsize=(12, 10))

        # 1. Defective vs clean (pie chart)
        defective = sum(1 for r in results if r.has_defects)
        clean = len(results) - defective
        ax1 = axes[0, 0]
        if results:
            ax1.pie(
                [clean, defective],
                labels=["Clean", "Defective"],
                colors=["green", "red"],
                autopct="%1.1f%%",
                startangle=90,
            )
        else:
            ax1.text(0.5, 0.5, "No results", ha="center", va="center")
        ax1.set_title("Inspection Outcome")

        # 2. Defects per stage (bar chart)
        stages: list[str] = []
        for r in results:
            stages.extend(d.stage for d in r.defects)

        ax2 = axes[0, 1]
        if stages:
            unique_stages = sorted(set(stages))
            stage_counts = [stages.count(s) for s in unique_stages]
            ax2.bar(unique_stages, stage_counts, color="steelblue")
            ax2.set_xlabel("Stage")
            ax2.set_ylabel("Count")
            plt.setp(ax2.get_xticklabels(), rotation=45, ha="right")
        else:
            ax2.text(0.5, 0.5, "No defects detected", ha="center", va="center")
        ax2.set_title("Defects by Stage")

        # 3. Defects per image
        counts = [r.defect_count for r in results]
        ax3 = axes[1, 0]
        if counts:
            ax3.hist(counts, bins=max(1, max(counts) + 1), edgecolor="black", color="lightblue")
            ax3.axvline(np.mean(counts), color="red", linestyle="--", label=f"Mean: {np.mean(counts):.2f}")
            ax3.legend()
        ax3.set_xlabel("Defects per Image")
        ax3.set_ylabel("Frequency")
        ax3.set_title("Defect Count Distribution")

        # 4. Defect box areas
        areas: list[int] = []
        for r in results:
            areas.extend(d.area for d in r.defects)

        ax4 = axes[1, 1]
        if areas:
            ax4.hist(areas, bins=20, edgecolor="black", color="lightgreen")
            ax4.set_xlabel("Box Area (px)")
            ax4.set_ylabel("Frequency")
        else:
            ax4.text(0.5, 0.5, "No defects detected", ha="center", va="center")
        ax4.set_title("Defect Area Distribution")

        plt.tight_layout()

        if save_path:
            fig.savefig(save_path, dpi=150, bbox_inches="tight")

        return fig

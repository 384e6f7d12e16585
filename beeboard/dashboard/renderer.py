"""Dashboard image renderer for the TRMNL display."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from beeboard.beeminder.models import Goal
from beeboard.beeminder.urgency import GoalStatus
from beeboard.timeline.controller import OutcomeKind, TimelineEntry

logger = logging.getLogger(__name__)

# Emoji don't survive the 1-bit conversion, so statuses are spelled out
STATUS_LABELS = {
    GoalStatus.DANGER: "! DERAIL SOON",
    GoalStatus.WARNING: "WARNING",
    GoalStatus.GOOD: "GOOD",
    GoalStatus.SAFE: "SAFE",
    GoalStatus.UNKNOWN: "?",
}


class DashboardRenderer:
    """Renders the most urgent goal to an e-ink image."""

    def __init__(self, output_dir: str = "static/images"):
        """
        Initialize renderer.

        Args:
            output_dir: Directory to save generated images
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        # Try to load fonts, fall back to default
        self.fonts = self._load_fonts()

    def _load_fonts(self) -> dict:
        """Load fonts for rendering."""
        fonts = {}

        font_paths = [
            "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
            "/System/Library/Fonts/Helvetica.ttc",  # macOS
        ]

        try:
            for path in font_paths:
                if Path(path).exists():
                    fonts["huge"] = ImageFont.truetype(path, 96)
                    fonts["header"] = ImageFont.truetype(path, 32)
                    fonts["title"] = ImageFont.truetype(path, 24)
                    fonts["normal"] = ImageFont.truetype(path, 18)
                    fonts["small"] = ImageFont.truetype(path, 14)
                    logger.info(f"Loaded fonts from {path}")
                    break
        except OSError as e:
            logger.warning(f"Could not load TrueType fonts: {e}, using default")
            fonts = {}

        if not fonts:
            default_font = ImageFont.load_default()
            for name in ("huge", "header", "title", "normal", "small"):
                fonts[name] = default_font

        return fonts

    def render(
        self,
        entry: TimelineEntry,
        width: int = 800,
        height: int = 480,
    ) -> tuple[str, str]:
        """
        Render a timeline entry.

        Args:
            entry: Outcome of the latest refresh
            width: Image width
            height: Image height

        Returns:
            Tuple of (filename, file_path)
        """
        image = Image.new("RGB", (width, height), "white")
        draw = ImageDraw.Draw(image)

        goal = entry.most_urgent
        if entry.kind == OutcomeKind.SUCCESS and goal is not None:
            logger.info(f"Rendering most urgent goal: {goal.slug}")
            self._draw_goal(draw, goal, width, height)
        elif entry.kind == OutcomeKind.SUCCESS:
            self._draw_message(draw, "No goals", "Nothing to beemind right now", width, height)
        elif entry.kind == OutcomeKind.PLACEHOLDER:
            self._draw_message(draw, "Loading...", "Waiting for the first sync", width, height)
        else:
            self._draw_message(draw, "Error", entry.message or "Failed to load goals", width, height)

        self._draw_footer(draw, entry, width, height)

        image = self._convert_to_monochrome(image)

        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        filename = f"dashboard-{timestamp}"
        file_path = self.output_dir / f"{filename}.png"

        image.save(file_path, "PNG")
        logger.info(f"Saved dashboard to {file_path}")

        return filename, str(file_path)

    def _draw_goal(self, draw: ImageDraw.ImageDraw, goal: Goal, width: int, height: int):
        """Draw the goal with its buffer, current value and rate."""
        x_margin = 30

        draw.text((x_margin, 20), "Most Urgent Goal", fill="black", font=self.fonts["normal"])
        self._draw_right(draw, STATUS_LABELS[goal.status], 20, width, self.fonts["normal"])
        draw.line([20, 55, width - 20, 55], fill="black", width=2)

        draw.text((x_margin, 75), goal.display_title, fill="black", font=self.fonts["header"])
        draw.text((x_margin, 120), goal.limsum, fill="black", font=self.fonts["normal"])

        # Buffer is the headline number
        draw.text((x_margin, 160), str(goal.safety_buffer_days), fill="black", font=self.fonts["huge"])
        draw.text((x_margin, 270), "days safe", fill="black", font=self.fonts["normal"])

        stats_x = 320
        self._draw_stat(draw, stats_x, 170, "Current Value", f"{goal.curval:.1f}")
        self._draw_stat(draw, stats_x + 220, 170, "Rate", f"{goal.currate:.1f}/day")
        self._draw_stat(draw, stats_x, 250, "Bare Minimum", goal.baremin)

        deadline = goal.deadline.astimezone().strftime("%b %d, %H:%M")
        draw.text((x_margin, 330), f"Deadline: {deadline}", fill="black", font=self.fonts["title"])

    def _draw_stat(self, draw: ImageDraw.ImageDraw, x: int, y: int, label: str, value: str):
        draw.text((x, y), label, fill="black", font=self.fonts["small"])
        draw.text((x, y + 20), value, fill="black", font=self.fonts["title"])

    def _draw_message(
        self, draw: ImageDraw.ImageDraw, headline: str, detail: str, width: int, height: int
    ):
        """Draw a centered placeholder or error message."""
        self._draw_centered(draw, headline, height // 2 - 60, width, self.fonts["header"])
        self._draw_centered(draw, detail, height // 2, width, self.fonts["normal"])

    def _draw_footer(self, draw: ImageDraw.ImageDraw, entry: TimelineEntry, width: int, height: int):
        """Draw footer with sync time and any refresh warning."""
        y = height - 35
        draw.line([20, y - 10, width - 20, y - 10], fill="black", width=2)

        if entry.stale and entry.message:
            draw.text((20, y), f"Offline: {entry.message}", fill="black", font=self.fonts["small"])

        time_text = f"Last update: {self._format_time(entry.last_update)}"
        self._draw_right(draw, time_text, y + 2, width, self.fonts["small"])

    def _format_time(self, instant: Optional[datetime]) -> str:
        if instant is None:
            return "never"
        return instant.astimezone().strftime("%H:%M")

    def _draw_right(self, draw: ImageDraw.ImageDraw, text: str, y: int, width: int, font):
        bbox = draw.textbbox((0, 0), text, font=font)
        text_width = bbox[2] - bbox[0]
        draw.text((width - text_width - 20, y), text, fill="black", font=font)

    def _draw_centered(self, draw: ImageDraw.ImageDraw, text: str, y: int, width: int, font):
        bbox = draw.textbbox((0, 0), text, font=font)
        text_width = bbox[2] - bbox[0]
        draw.text(((width - text_width) // 2, y), text, fill="black", font=font)

    def _convert_to_monochrome(self, image: Image.Image) -> Image.Image:
        """Convert image to monochrome for e-ink display."""
        return image.convert("1")

# ai/prompts/village.py
"""Image prompts for the farming village."""
from __future__ import annotations

VILLAGE_STYLE = (
    "Pixel art style with clean, retro gaming aesthetics. "
    "Warm, inviting atmosphere suitable for all ages."
)


def village_baseline_prompt(village_name: str, description: str | None = None) -> str:
    scene = description or (
        "a charming countryside village with rolling green hills, farmhouses, "
        "vegetable gardens and dirt paths under a clear blue sky"
    )
    return (
        f'Create a peaceful farming village scene for "{village_name}" '
        f"in a collaborative farming game: {scene}. "
        "Top-down view of a 10x10 grid of plots, village centered as the focal point. "
        f"{VILLAGE_STYLE}"
    )


def plant_baseline_prompt(description: str) -> str:
    return (
        f"A single {description} plant for a farming village game, "
        "isolated on a plain background, centered, full plant visible. "
        f"{VILLAGE_STYLE}"
    )


def village_composite_prompt(village_name: str, description: str, grid_x: int, grid_y: int) -> str:
    return (
        f'Update the village "{village_name}" from the first reference image. '
        f"Place the {description} from the second reference image on grid plot ({grid_x}, {grid_y}). "
        "Keep every other part of the village exactly as it is: same layout, "
        "colors, lighting and art style."
    )


def avatar_prompt(description: str) -> str:
    return f"A friendly villager character: {description}. {VILLAGE_STYLE}"


def village_show_prompt(village_name: str, member_count: int) -> str:
    return (
        f'Show the village "{village_name}" from the first reference image with its '
        f"{member_count} villager(s) from the other reference images gathered in the "
        "village square, smiling and waving. Keep the village layout unchanged."
    )

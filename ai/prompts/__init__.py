# ai/prompts/__init__.py
from ai.prompts.village import (
    avatar_prompt,
    plant_baseline_prompt,
    village_baseline_prompt,
    village_composite_prompt,
    village_show_prompt,
)

__all__ = [
    "avatar_prompt",
    "plant_baseline_prompt",
    "village_baseline_prompt",
    "village_composite_prompt",
    "village_show_prompt",
]

"""Bundled page templates the editor can append to a game in one step."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping


@dataclass(frozen=True)
class TemplatePage:
    page_type: str
    config: Mapping[str, Any]


@dataclass(frozen=True)
class PageTemplate:
    """A named sequence of pages with ready-made configs."""

    id: str
    label: str
    description: str
    pages: tuple[TemplatePage, ...]

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "pages": [
                {"pageType": page.page_type, "config": dict(page.config)}
                for page in self.pages
            ],
        }


PAGE_TEMPLATES: tuple[PageTemplate, ...] = (
    PageTemplate(
        id="intro_sequence",
        label="Intro sequence",
        description="Story opening, a guiding dialogue and a start confirmation.",
        pages=(
            TemplatePage("text_card", {"title": "Welcome to the village", "content": "A thrilling adventure is about to begin..."}),
            TemplatePage("dialogue", {"character": {"name": "Commander"}, "messages": [{"text": "Soldier, are you ready?"}]}),
            TemplatePage(
                "button",
                {
                    "prompt": "Ready to start the mission?",
                    "buttons": [
                        {"text": "Let's go!", "rewardPoints": 0},
                        {"text": "I need more instructions", "rewardPoints": 0},
                    ],
                },
            ),
        ),
    ),
    PageTemplate(
        id="combat_mission",
        label="Combat mission",
        description="Mission briefing, a shooting target and a completion reward.",
        pages=(
            TemplatePage("text_card", {"title": "Orders", "content": "The enemy outpost has been found. Take out every target!"}),
            TemplatePage("shooting_mission", {"requiredHits": 10, "timeLimit": 120, "targetScore": 100}),
            TemplatePage("text_card", {"title": "Mission complete", "content": "All targets down. Well done!"}),
        ),
    ),
    PageTemplate(
        id="exploration_quest",
        label="Exploration quest",
        description="GPS navigation, a photo record and a QR confirmation.",
        pages=(
            TemplatePage("text_card", {"title": "Recon", "content": "Head to the marked location and scout the area."}),
            TemplatePage(
                "gps_mission",
                {"targetLocation": {"lat": 25.033, "lng": 121.565}, "radius": 30, "instruction": "Head to the target location"},
            ),
            TemplatePage("photo_mission", {"instruction": "Photograph the target area as evidence"}),
            TemplatePage("qr_scan", {"qrCodeId": "CHECKPOINT-001", "instruction": "Scan the checkpoint QR code to confirm arrival"}),
        ),
    ),
    PageTemplate(
        id="puzzle_challenge",
        label="Puzzle challenge",
        description="Puzzle briefing, a multiple choice check and a text password.",
        pages=(
            TemplatePage("text_card", {"title": "Cipher", "content": "Crack the enemy's encrypted message and find the hidden password."}),
            TemplatePage(
                "choice_verify",
                {
                    "question": "Based on the clues, which answer is right?",
                    "options": [
                        {"text": "Option A", "correct": False},
                        {"text": "Option B", "correct": True},
                        {"text": "Option C", "correct": False},
                    ],
                },
            ),
            TemplatePage("text_verify", {"question": "Enter the decrypted password", "answers": ["password", "PASSWORD"]}),
        ),
    ),
    PageTemplate(
        id="branching_story",
        label="Branching story",
        description="Story dialogue, a branching choice and an outcome card.",
        pages=(
            TemplatePage(
                "dialogue",
                {"character": {"name": "Stranger"}, "messages": [{"text": "Do you want to know the truth?"}, {"text": "Choose your path..."}]},
            ),
            TemplatePage(
                "button",
                {
                    "prompt": "Your choice decides your fate",
                    "buttons": [
                        {"text": "Seek the truth", "rewardPoints": 10},
                        {"text": "Keep your distance", "rewardPoints": 5},
                    ],
                },
            ),
            TemplatePage("text_card", {"title": "Fate is sealed", "content": "Your choice will bring its own consequences..."}),
        ),
    ),
)

_TEMPLATE_INDEX: Mapping[str, PageTemplate] = MappingProxyType(
    {template.id: template for template in PAGE_TEMPLATES}
)


def get_page_template(template_id: str) -> PageTemplate:
    try:
        return _TEMPLATE_INDEX[template_id]
    except KeyError as exc:
        raise KeyError(f"Page template '{template_id}' does not exist.") from exc


__all__ = ["PAGE_TEMPLATES", "PageTemplate", "TemplatePage", "get_page_template"]

"""Default scoring templates a client can start from."""
from copy import deepcopy
from typing import Any


DEFAULT_TEMPLATES: list[dict[str, Any]] = [
    {
        "name": "Technical",
        "description": "Focus on technical approach and innovation",
        "criteria": [
            {"name": "Technical Approach", "description": "Quality and feasibility of technical solution", "weight": 30},
            {"name": "Innovation & Creativity", "description": "Novel ideas and creative solutions", "weight": 20},
            {"name": "Feasibility", "description": "Practicality and achievability", "weight": 25},
            {"name": "Team Expertise", "description": "Technical skills and experience", "weight": 25},
        ],
    },
    {
        "name": "Financial",
        "description": "Focus on budget and cost considerations",
        "criteria": [
            {"name": "Budget Competitiveness", "description": "Overall cost effectiveness", "weight": 40},
            {"name": "Cost Breakdown Clarity", "description": "Transparency of pricing", "weight": 20},
            {"name": "Value for Money", "description": "Quality relative to cost", "weight": 25},
            {"name": "Payment Terms", "description": "Flexibility and reasonableness", "weight": 15},
        ],
    },
    {
        "name": "Balanced",
        "description": "Balanced evaluation across all dimensions",
        "criteria": [
            {"name": "Technical Approach", "description": "Quality of technical solution", "weight": 25},
            {"name": "Budget", "description": "Cost effectiveness", "weight": 25},
            {"name": "Timeline", "description": "Delivery schedule", "weight": 20},
            {"name": "Team Quality", "description": "Experience and expertise", "weight": 20},
            {"name": "Communication", "description": "Clarity and responsiveness", "weight": 10},
        ],
    },
]


def list_default_templates() -> list[dict[str, Any]]:
    """Copies of the presets, safe for callers to mutate."""
    return deepcopy(DEFAULT_TEMPLATES)


def get_default_template(name: str) -> dict[str, Any] | None:
    for template in DEFAULT_TEMPLATES:
        if template["name"].lower() == name.strip().lower():
            return deepcopy(template)
    return None

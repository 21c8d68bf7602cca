# Baby development content - fixed fallback table used when no generated content exists
from typing import Dict, List, Optional

from models import DevelopmentSnapshot
from stage import clamp_week, trimester_for_week

DEFAULT_LANGUAGE = "en"

# Baby size comparisons by week (index 0 = week 1)
BABY_SIZES: List[str] = [
    "Poppy seed", "Poppy seed", "Poppy seed", "Poppy seed", "Apple seed",
    "Sweet pea", "Blueberry", "Kidney bean", "Grape", "Strawberry",
    "Lime", "Plum", "Peach", "Lemon", "Apple",
    "Avocado", "Pear", "Bell pepper", "Tomato", "Banana",
    "Carrot", "Coconut", "Grapefruit", "Corn", "Cauliflower",
    "Lettuce", "Rutabaga", "Eggplant", "Butternut squash", "Cabbage",
    "Coconut", "Squash", "Pineapple", "Cantaloupe", "Honeydew melon",
    "Romaine lettuce", "Winter melon", "Pumpkin", "Watermelon", "Watermelon",
]

MILESTONES: Dict[int, Dict] = {
    1: {
        "description": "Fertilization occurs",
        "keyDevelopments": [
            "The fertilized egg begins dividing",
            "The blastocyst is formed",
            "Implantation begins",
        ],
    },
    2: {
        "description": "The embryo implants in the uterus",
        "keyDevelopments": [
            "Implantation completes",
            "Placenta begins to form",
            "Amniotic sac develops",
        ],
    },
    18: {
        "description": (
            "Your baby is about 5.5 inches long and weighs approximately 7 ounces. "
            "The little one is busy flexing muscles and practicing different facial expressions."
        ),
        "keyDevelopments": [
            "Fingerprints are now forming on tiny fingertips",
            "Ears are now positioned properly on the sides of the head",
            "Baby can now hear sounds from outside the womb",
        ],
        "funFact": "Your baby is developing a unique sleep pattern and may already have periods of rest and activity!",
    },
}

GENERIC_MILESTONE = {
    "description": "Your baby is continuing to grow and develop this week.",
    "keyDevelopments": [
        "Organs keep maturing",
        "Your baby is gaining weight steadily",
    ],
    "funFact": "Every baby develops at their own pace, and the information provided is a general guideline.",
}


def baby_size_for_week(week: int) -> str:
    return BABY_SIZES[clamp_week(week) - 1]


def fallback_snapshot(week: int, language: Optional[str] = None) -> DevelopmentSnapshot:
    """Build the fallback development snapshot for a week"""
    week = clamp_week(week)
    milestone = MILESTONES.get(week, GENERIC_MILESTONE)
    size = baby_size_for_week(week)
    return DevelopmentSnapshot(
        week=week,
        language=language or DEFAULT_LANGUAGE,
        description=milestone["description"],
        keyDevelopments=list(milestone["keyDevelopments"]),
        funFact=milestone.get("funFact"),
        size=size,
        imageDescription=f"A baby in trimester {trimester_for_week(week)}, about the size of a {size.lower()}",
    )

"""
Static content shipped with the service: daily tasks, protocol guides,
equipment, videos, the supplement schedule and achievement definitions.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Optional


@dataclass(frozen=True)
class DailyTask:
    task_id: str
    title: str
    time: str
    duration_minutes: int
    category: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ProtocolGuide:
    protocol_id: str
    title: str
    duration: str
    category: str
    description: str
    steps: list[str] = field(default_factory=list)
    benefits: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class EquipmentItem:
    equipment_id: str
    name: str
    description: str
    price: str
    tier: str
    category: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Video:
    video_id: str
    title: str
    description: str
    duration: str
    category: str
    storage_path: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class SupplementDose:
    supplement_id: str
    name: str
    dose: str
    time: str
    time_of_day: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class AchievementDefinition:
    achievement_id: str
    title: str
    description: str
    icon: str
    points: int
    unlock_criteria: dict

    def to_dict(self) -> dict:
        return asdict(self)


DAILY_TASKS: tuple[DailyTask, ...] = (
    DailyTask("morning-light", "Morning Light Exposure", "6:30 AM", 15, "circadian"),
    DailyTask("cold-shower", "Cold Shower", "7:00 AM", 3, "contrast"),
    DailyTask("breathwork", "Breathwork Session", "7:15 AM", 10, "restoration"),
    DailyTask("morning-supps", "Morning Supplements", "8:00 AM", 2, "supplements"),
    DailyTask("movement", "Movement Practice", "5:00 PM", 30, "movement"),
    DailyTask("evening-supps", "Evening Supplements", "7:00 PM", 2, "supplements"),
    DailyTask("wind-down", "Evening Wind-Down", "9:00 PM", 20, "restoration"),
)

PROTOCOLS: tuple[ProtocolGuide, ...] = (
    ProtocolGuide(
        protocol_id="morning-awakening",
        title="Morning Awakening Ritual",
        duration="45-60 min",
        category="Foundation",
        description=(
            "Start your day with optimal circadian alignment and metabolic activation"
        ),
        steps=[
            "Wake naturally or with sunrise alarm (6:00-7:00 AM)",
            "Immediate sunlight exposure (15 min outdoors)",
            "Hydrate with mineralized water (16-24 oz)",
            "Light movement or stretching (5-10 min)",
            "Morning supplements stack",
        ],
        benefits=[
            "Improved energy",
            "Better sleep quality",
            "Metabolic activation",
            "Hormone optimization",
        ],
    ),
    ProtocolGuide(
        protocol_id="contrast-therapy",
        title="Contrast Therapy",
        duration="10-15 min",
        category="Advanced",
        description="Hot/cold exposure for cardiovascular health and longevity",
        steps=[
            "Hot shower or sauna (3-5 min)",
            "Cold shower (1-3 min)",
            "Repeat 2-3 cycles",
            "End with cold exposure",
            "Controlled breathing throughout",
        ],
        benefits=[
            "Cardiovascular health",
            "Inflammation reduction",
            "Immune boost",
            "Mental resilience",
        ],
    ),
    ProtocolGuide(
        protocol_id="breathwork",
        title="Breathwork Practice",
        duration="10-20 min",
        category="Foundation",
        description=(
            "Evidence-based breathing techniques for stress reduction and vitality"
        ),
        steps=[
            "Find quiet, comfortable space",
            "Box breathing (4-4-4-4) x 5 rounds",
            "Diaphragmatic breathing x 10",
            "Wim Hof method (optional, advanced)",
            "End with gratitude meditation (2 min)",
        ],
        benefits=[
            "Stress reduction",
            "Improved HRV",
            "Better oxygen efficiency",
            "Parasympathetic activation",
        ],
    ),
    ProtocolGuide(
        protocol_id="movement",
        title="Daily Movement",
        duration="20-30 min",
        category="Foundation",
        description="Functional movement for longevity and metabolic health",
        steps=[
            "Dynamic warmup (5 min)",
            "Strength training or bodyweight exercises (15 min)",
            "Mobility work (5 min)",
            "Walking or light cardio (10 min)",
            "Cool down and stretch",
        ],
        benefits=[
            "Muscle maintenance",
            "Bone density",
            "Metabolic health",
            "Longevity markers",
        ],
    ),
    ProtocolGuide(
        protocol_id="evening-winddown",
        title="Evening Wind-Down",
        duration="30-45 min",
        category="Foundation",
        description="Prepare your body for restorative sleep",
        steps=[
            "Dim lights 2 hours before bed",
            "Light dinner (stop eating 3 hours before sleep)",
            "Evening supplements",
            "Avoid screens 1 hour before bed",
            "Meditation or journaling (10 min)",
            "Cool bedroom temperature (65-68°F)",
        ],
        benefits=[
            "Better sleep quality",
            "Deeper recovery",
            "Hormone optimization",
            "Cellular repair",
        ],
    ),
    ProtocolGuide(
        protocol_id="grounding",
        title="Grounding Practice",
        duration="15-20 min",
        category="Intermediate",
        description="Connect with earth energy for inflammation reduction",
        steps=[
            "Find natural outdoor space",
            "Remove shoes and socks",
            "Stand or walk on earth/grass (15 min)",
            "Practice mindful breathing",
            "Morning or evening optimal",
        ],
        benefits=[
            "Inflammation reduction",
            "Better sleep",
            "Stress reduction",
            "Circadian alignment",
        ],
    ),
)

EQUIPMENT: tuple[EquipmentItem, ...] = (
    EquipmentItem(
        "1",
        "Blue Light Blocking Glasses",
        "Wear 2-3 hours before bed to improve melatonin production",
        "$25-50",
        "essential",
        "Sleep",
    ),
    EquipmentItem(
        "2",
        "Water Mineralization Drops",
        "Add 70+ trace minerals to your drinking water",
        "$20-35",
        "essential",
        "Hydration",
    ),
    EquipmentItem(
        "3",
        "Red Light Therapy Panel",
        "Near-infrared and red light for recovery and skin health",
        "$300-800",
        "intermediate",
        "Recovery",
    ),
    EquipmentItem(
        "4",
        "Oura Ring (Gen 3)",
        "Track sleep stages, HRV and readiness every night",
        "$299-449",
        "intermediate",
        "Tracking",
    ),
    EquipmentItem(
        "5",
        "Infrared Sauna",
        "Heat exposure at home for cardiovascular and longevity benefits",
        "$2,500-5,000",
        "premium",
        "Recovery",
    ),
    EquipmentItem(
        "6",
        "Cold Plunge Tub",
        "Temperature controlled cold exposure for daily plunges",
        "$3,000-8,000",
        "premium",
        "Recovery",
    ),
)

VIDEOS: tuple[Video, ...] = (
    Video(
        "1",
        "Morning Light Exposure Protocol",
        "Learn the optimal way to get morning sunlight for circadian rhythm",
        "8:32",
        "circadian",
        "videos/morning-light-exposure.mp4",
    ),
    Video(
        "2",
        "Contrast Shower Technique",
        "Step-by-step guide to hot/cold therapy at home",
        "12:15",
        "contrast",
        "videos/contrast-shower-technique.mp4",
    ),
    Video(
        "3",
        "Box Breathing for Beginners",
        "Master the 4-4-4-4 breathing pattern for stress reduction",
        "6:45",
        "breathwork",
        "videos/box-breathing-beginners.mp4",
    ),
    Video(
        "4",
        "Setting Up Your Sleep Sanctuary",
        "Optimize your bedroom for deep, restorative sleep",
        "15:20",
        "environment",
        "videos/sleep-sanctuary.mp4",
    ),
    Video(
        "5",
        "Supplement Timing & Stacking",
        "When and how to take your longevity supplements",
        "18:40",
        "supplements",
        "videos/supplement-timing.mp4",
    ),
    Video(
        "6",
        "Advanced Cold Exposure",
        "Ice baths and advanced techniques for experienced practitioners",
        "22:10",
        "advanced",
        "videos/advanced-cold-exposure.mp4",
    ),
)

SUPPLEMENT_SCHEDULE: tuple[SupplementDose, ...] = (
    SupplementDose("morning-1", "Vitamin D3 + K2", "5000 IU + 100mcg", "8:00 AM", "morning"),
    SupplementDose("morning-2", "Omega-3 (Fish Oil)", "2g EPA/DHA", "8:00 AM", "morning"),
    SupplementDose("morning-3", "Magnesium L-Threonate", "2000mg", "8:00 AM", "morning"),
    SupplementDose("morning-4", "B-Complex", "1 capsule", "8:00 AM", "morning"),
    SupplementDose("afternoon-1", "NAD+ Precursor (NMN)", "500mg", "12:00 PM", "afternoon"),
    SupplementDose("afternoon-2", "Creatine Monohydrate", "5g", "12:00 PM", "afternoon"),
    SupplementDose("evening-1", "Magnesium Glycinate", "400mg", "7:00 PM", "evening"),
    SupplementDose("evening-2", "Zinc", "30mg", "7:00 PM", "evening"),
    SupplementDose("evening-3", "Ashwagandha", "600mg", "7:00 PM", "evening"),
    SupplementDose("bedtime-1", "Melatonin", "0.5mg", "9:30 PM", "bedtime"),
    SupplementDose("bedtime-2", "L-Theanine", "200mg", "9:30 PM", "bedtime"),
)

ACHIEVEMENTS: tuple[AchievementDefinition, ...] = (
    AchievementDefinition(
        "first-day",
        "First Steps",
        "Complete your first day of protocols",
        "1ST",
        50,
        {"type": "first_completion"},
    ),
    AchievementDefinition(
        "streak-7",
        "Week Warrior",
        "Maintain a 7-day streak",
        "7D",
        100,
        {"type": "streak", "days": 7},
    ),
    AchievementDefinition(
        "streak-30",
        "Monthly Master",
        "Maintain a 30-day streak",
        "30D",
        300,
        {"type": "streak", "days": 30},
    ),
    AchievementDefinition(
        "streak-90",
        "Quarterly Champion",
        "Maintain a 90-day streak",
        "90D",
        1000,
        {"type": "streak", "days": 90},
    ),
    AchievementDefinition(
        "all-protocols",
        "Protocol Perfectionist",
        "Complete all daily protocols in one day",
        "100",
        150,
        {"type": "all_protocols_one_day"},
    ),
    AchievementDefinition(
        "early-bird",
        "Early Bird",
        "Complete morning protocol before 7 AM",
        "AM",
        75,
        {"type": "time_based", "before": "07:00"},
    ),
    AchievementDefinition(
        "cold-plunge-10",
        "Ice Warrior",
        "Complete 10 cold exposure sessions",
        "ICE",
        200,
        {"type": "protocol_count", "protocol": "cold-shower", "count": 10},
    ),
    AchievementDefinition(
        "community-engage",
        "Community Champion",
        "Help 5 members in the community",
        "COM",
        250,
        {"type": "community_interaction", "count": 5},
    ),
    AchievementDefinition(
        "bio-age-reverse",
        "Time Traveler",
        "Reverse your biological age by 5+ years",
        "AGE",
        500,
        {"type": "bio_age_improvement", "years": 5},
    ),
)


def find_daily_task(task_id: str) -> Optional[DailyTask]:
    for task in DAILY_TASKS:
        if task.task_id == task_id:
            return task
    return None


def find_video(video_id: str) -> Optional[Video]:
    for video in VIDEOS:
        if video.video_id == video_id:
            return video
    return None


def find_equipment(equipment_id: str) -> Optional[EquipmentItem]:
    for item in EQUIPMENT:
        if item.equipment_id == equipment_id:
            return item
    return None


def list_protocols(category: str | None = None) -> list[ProtocolGuide]:
    if not category or category == "all":
        return list(PROTOCOLS)
    return [p for p in PROTOCOLS if p.category.lower() == category.lower()]


def list_equipment(tier: str | None = None) -> list[EquipmentItem]:
    if not tier:
        return list(EQUIPMENT)
    return [item for item in EQUIPMENT if item.tier == tier]


def list_videos(category: str | None = None) -> list[Video]:
    if not category or category == "all":
        return list(VIDEOS)
    return [video for video in VIDEOS if video.category == category]

"""Prompt templates for AI card generation."""

from enum import IntEnum
from typing import List, Sequence

from ..models.card import RelationshipType
from ..models.generate import ModelTier


class QualityTier(IntEnum):
    """Ordered quality bands derived from the quality coefficient."""

    BASIC = 1
    STANDARD = 2
    HIGH = 3
    PREMIUM = 4

    @property
    def label(self) -> str:
        return self.name.capitalize()


# Lower bound of each band, highest first
QUALITY_TIER_THRESHOLDS = (
    (0.8, QualityTier.PREMIUM),
    (0.6, QualityTier.HIGH),
    (0.4, QualityTier.STANDARD),
)


def get_quality_tier(theta: float) -> QualityTier:
    """Map the quality coefficient onto its quality band."""
    for threshold, tier in QUALITY_TIER_THRESHOLDS:
        if theta >= threshold:
            return tier
    return QualityTier.BASIC


def get_model_tier(theta: float) -> ModelTier:
    """HIGH and PREMIUM quality bands use the high model tier."""
    if get_quality_tier(theta) >= QualityTier.HIGH:
        return ModelTier.HIGH
    return ModelTier.STANDARD


QUALITY_INSTRUCTIONS = {
    QualityTier.PREMIUM: [
        "Create highly sophisticated, nuanced content",
        "Use advanced psychological insights and emotional intelligence",
        "Include multi-layered questions that evolve during discussion",
        "Incorporate cultural awareness and diverse perspectives",
        "Generate transformative, memorable experiences",
    ],
    QualityTier.HIGH: [
        "Develop thoughtful, engaging content",
        "Balance emotional depth with broad accessibility",
        "Include creative and unexpected elements",
        "Focus on meaningful connection opportunities",
    ],
    QualityTier.STANDARD: [
        "Create clear, engaging content",
        "Use proven conversation techniques",
        "Balance fun with meaningful interaction",
        "Ensure broad appeal and comfort",
    ],
    QualityTier.BASIC: [
        "Generate simple, accessible content",
        "Use straightforward language",
        "Focus on light, comfortable interactions",
        "Prioritize ease of use and broad appeal",
    ],
}


RELATIONSHIP_CONTEXTS = {
    RelationshipType.FRIENDS: {
        "description": (
            "Focus on shared experiences, humor, and deepening existing bonds. "
            "Encourage storytelling, shared memories, and discovering new aspects of friendship. "
            "Maintain playful energy while allowing for meaningful moments."
        ),
        "characteristics": [
            "Shared history and common experiences",
            "Mutual support and understanding",
            "Humor and playful interaction",
            "Comfortable vulnerability",
            "Future planning and shared goals",
        ],
        "avoid": [
            "Overly intimate personal details",
            "Financial obligations between friends",
            "Romantic relationship advice",
        ],
    },
    RelationshipType.COLLEAGUES: {
        "description": (
            "Maintain professional boundaries while building workplace rapport. "
            "Focus on work-life balance, professional goals, communication styles, and team dynamics. "
            "Avoid overly personal topics."
        ),
        "characteristics": [
            "Professional respect and boundaries",
            "Career development and goals",
            "Team collaboration skills",
            "Work-life balance perspectives",
            "Industry insights and expertise",
        ],
        "avoid": [
            "Personal financial situations",
            "Intimate relationship details",
            "Political or controversial opinions",
            "Personal family problems",
        ],
    },
    RelationshipType.NEW_COUPLES: {
        "description": (
            "Facilitate discovery and compatibility exploration. "
            "Focus on values, life goals, preferences, and getting to know each other. "
            "Build emotional intimacy gradually and appropriately."
        ),
        "characteristics": [
            "Value system exploration",
            "Future compatibility assessment",
            "Personal preference discovery",
            "Communication style understanding",
            "Emotional intimacy building",
        ],
        "avoid": [
            "Ex-relationship details",
            "Deeply traumatic experiences",
            "Financial obligations",
            "Family drama or conflicts",
        ],
    },
    RelationshipType.ESTABLISHED_COUPLES: {
        "description": (
            "Refresh and deepen long-term relationships. "
            "Address relationship growth, shared dreams, intimacy, and reconnection. "
            "Include both fun and serious relationship-building content."
        ),
        "characteristics": [
            "Relationship renewal and growth",
            "Shared future visioning",
            "Appropriate intimacy deepening",
            "Conflict resolution skills",
            "Appreciation and gratitude",
        ],
        "avoid": [
            "Comparison with other couples",
            "Past relationship mistakes unless constructive",
            "Financial stress unless supportive",
        ],
    },
    RelationshipType.FAMILY: {
        "description": (
            "Bridge generational gaps and strengthen family bonds. "
            "Include traditions, heritage, family history, and intergenerational understanding. "
            "Respect diverse family structures and dynamics."
        ),
        "characteristics": [
            "Intergenerational understanding",
            "Family history and traditions",
            "Cultural heritage sharing",
            "Value transmission",
            "Conflict resolution and forgiveness",
        ],
        "avoid": [
            "Divisive political topics",
            "Personal financial details",
            "Romantic relationship details",
            "Substance abuse unless supportive",
        ],
    },
}


CONNECTION_LEVELS = {
    1: {
        "name": "Surface",
        "description": "Light, fun, low-vulnerability topics",
        "guidelines": [
            "Focus on preferences and opinions",
            "External observations and experiences",
            "Entertainment and leisure topics",
            "Safe, comfortable sharing",
        ],
    },
    2: {
        "name": "Personal",
        "description": "Share experiences, background stories, and personal preferences",
        "guidelines": [
            "Background stories and formative experiences",
            "Personal values on non-controversial topics",
            "Goals and aspirations",
            "Life experiences and lessons learned",
        ],
    },
    3: {
        "name": "Vulnerable",
        "description": "Encourage deeper emotional sharing",
        "guidelines": [
            "Fears and insecurities appropriate to the relationship",
            "Personal growth areas and challenges",
            "Emotional responses to life events",
            "Meaningful beliefs and values",
        ],
    },
    4: {
        "name": "Deep",
        "description": "Core values, life philosophy, and transformative experiences",
        "guidelines": [
            "Transformative life experiences",
            "Core identity elements and life philosophy",
            "Profound hopes and dreams",
            "Life-changing realizations or insights",
        ],
    },
}


LANGUAGE_NAMES = {
    "en": "English",
    "vn": "Vietnamese",
    "vi": "Vietnamese",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "ja": "Japanese",
}

ENGLISH_INSTRUCTIONS = [
    "Use natural, conversational American English",
    "Avoid regional slang or highly cultural references",
    "Ensure clarity for international English speakers",
    "Use inclusive, gender-neutral language where appropriate",
]


# Only some relationship/level combinations have a reference card
EXAMPLE_CARDS = {
    "question": {
        RelationshipType.FRIENDS: {
            1: "What's your go-to karaoke song and why does it represent you?",
            2: "What's a skill you learned as a kid that still serves you today?",
            3: "What's a fear you had as a child that you've since overcome?",
            4: "What moment in our friendship changed how you see relationships?",
        },
        RelationshipType.COLLEAGUES: {
            1: "What's the most unusual job you've ever had or heard of?",
            2: "What professional skill do you wish you could master instantly?",
            3: "What work challenge taught you the most about yourself?",
            4: "What legacy do you want to leave in your career?",
        },
    },
    "challenge": {
        RelationshipType.FRIENDS: {
            1: "Show everyone your best thinking face and explain what you're pondering.",
            2: "Demonstrate how you would explain your job to a 5-year-old.",
            3: "Share a vulnerable moment by showing your most embarrassing photo.",
            4: "Express your gratitude to each person here without using words.",
        },
    },
    "scenario": {
        RelationshipType.FRIENDS: {
            1: "You win a free weekend trip for two. Where do you go and who do you take?",
            2: "You can give your younger self one piece of advice. What is it?",
            3: "You discover you have a secret admirer. How do you handle the situation?",
            4: "You can change one decision from your past. What is it and why?",
        },
    },
}


def _bullets(lines: Sequence[str]) -> str:
    return "\n".join(f"- {line}" for line in lines)


def get_card_type_distribution(count: int) -> str:
    """Describe the mix of card types to request for ``count`` cards."""
    if count <= 3:
        return "primarily questions"
    if count <= 5:
        return "60% questions, 30% challenges, 10% scenarios"
    return "50% questions, 25% challenges, 15% scenarios, 5% connection, 5% wild"


def get_language_instructions(target_languages: Sequence[str]) -> str:
    sections = []
    for code in target_languages:
        name = LANGUAGE_NAMES.get(code, code)
        if code == "en":
            sections.append(f"LANGUAGE: {name} (\"{code}\")\n{_bullets(ENGLISH_INSTRUCTIONS)}")
        else:
            sections.append(
                f"LANGUAGE: {name} (\"{code}\")\n"
                f"- Write natural, culturally appropriate {name}, not a literal translation"
            )
    return "\n\n".join(sections)


def get_uniqueness_instructions(batch_index: int) -> str:
    lines = [
        "CRITICAL: Each card must be completely unique. Avoid:",
        "- Similar question patterns or phrasings",
        "- Repetitive scenarios or themes",
        "- Common conversation starters",
        "- Generic relationship advice",
        "Generate diverse, specific, and engaging content that stands apart.",
    ]
    if batch_index > 0:
        lines.append(
            f"This is batch {batch_index + 1}, ensure complete novelty from previous batches."
        )
    return "\n".join(lines)


def _get_examples(relationship_type: RelationshipType, connection_level: int) -> List[str]:
    examples = []
    for card_type, by_relationship in EXAMPLE_CARDS.items():
        example = by_relationship.get(relationship_type, {}).get(connection_level)
        if example:
            examples.append(f"{card_type}: {example}")
    return examples


def get_output_schema(
    relationship_type: RelationshipType,
    connection_level: int,
    target_languages: Sequence[str],
) -> str:
    """JSON layout the model must answer with; parsed back by the generation service."""
    content_lines = ",\n".join(
        f'        "{code}": "{LANGUAGE_NAMES.get(code, code)} content here"'
        for code in target_languages
    )
    return f"""```json
{{
  "cards": [
    {{
      "content": {{
{content_lines}
      }},
      "type": "question|challenge|scenario|connection|wild",
      "connectionLevel": {connection_level},
      "relationshipTypes": ["{relationship_type.value}"],
      "tier": "FREE|PREMIUM",
      "categories": ["category1", "category2"],
      "contentWarnings": []
    }}
  ]
}}
```"""


def get_card_generation_prompt(
    relationship_type: RelationshipType,
    connection_level: int,
    count: int,
    theta: float,
    target_languages: Sequence[str],
    batch_index: int = 0,
) -> str:
    """Generate prompt for one batch of party-game cards.

    Args:
        relationship_type: Relationship the cards are written for.
        connection_level: Connection level (1-4).
        count: Number of cards requested in this batch.
        theta: Quality coefficient (0.1-1.0).
        target_languages: Language codes every card must be written in.
        batch_index: Zero-based index of the batch within the run.

    Returns:
        Formatted prompt string.
    """
    relationship_type = RelationshipType(relationship_type)
    quality_tier = get_quality_tier(theta)
    relationship = RELATIONSHIP_CONTEXTS[relationship_type]
    level = CONNECTION_LEVELS[connection_level]

    if get_model_tier(theta) is ModelTier.HIGH:
        tier_bias = "Mix of FREE and PREMIUM with bias toward PREMIUM"
    else:
        tier_bias = "Primarily FREE tier"

    examples = _get_examples(relationship_type, connection_level)
    examples_section = ""
    if examples:
        examples_section = f"\n## Example Cards\n{_bullets(examples)}\n"

    return f"""You are an expert at designing conversation cards for a connection-building party game.

## Quality Level: {quality_tier.label.upper()} QUALITY MODE (theta={theta})
{_bullets(QUALITY_INSTRUCTIONS[quality_tier])}

## Relationship Type: {relationship_type.value.upper()}
{relationship['description']}

Key characteristics:
{_bullets(relationship['characteristics'])}

Avoid these topics:
{_bullets(relationship['avoid'])}

## Connection Level: {connection_level}/4 - {level['name']}
{level['description']}
{_bullets(level['guidelines'])}

## Anti-Duplication Requirements
{get_uniqueness_instructions(batch_index)}

## Language
{get_language_instructions(target_languages)}

## Requirements
- Generate exactly {count} unique cards
- Content should be appropriate for the relationship type and level
- Every card must include content for each language: {", ".join(target_languages)}
- Each content entry must be between 10 and 500 characters
- Include diverse card types ({get_card_type_distribution(count)})
- Ensure cultural sensitivity and inclusivity
- Tier assignment: {tier_bias}
{examples_section}
## Output Format
Output in the following JSON format only. Do not include any other text.
{get_output_schema(relationship_type, connection_level, target_languages)}"""

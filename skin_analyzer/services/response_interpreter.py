from __future__ import annotations

import re
from typing import Optional

from skin_analyzer.models import InterpretedProfile

UNKNOWN_SKIN_TYPE = "Type de peau non déterminé"

MAX_OBSERVATIONS = 4
MAX_PRIORITIES = 3
FALLBACK_EXCERPT_CHARS = 200

RANGE_SEBOCYLIQUE = "Sebocylique"
RANGE_RETILIFT = "Retilift"
RANGE_VITALIGHT = "Vitalight"
RANGE_HYDRAMELON = "Hydramelon"
KNOWN_RANGES = (RANGE_SEBOCYLIQUE, RANGE_RETILIFT, RANGE_VITALIGHT, RANGE_HYDRAMELON)

_FLAGS = re.IGNORECASE


def _skin_phrase(*words: str) -> str:
    # "peau mixte", "votre peau est plutôt mixte", "type de peau : mixte", "pour peaux mixtes"...
    alternatives = "|".join(words)
    return rf"\b(?:peaux?|type)\b[^.\n]{{0,40}}?\b(?:{alternatives})\b"


# Order matters: "mixte à tendance grasse" must read as combination skin, and a
# sensitive oily skin is reported as oily.
_SKIN_TYPE_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(_skin_phrase("mixte", "mixtes"), _FLAGS), "Peau mixte"),
    (re.compile(r"\bcombination\s+skin\b", _FLAGS), "Peau mixte"),
    (re.compile(_skin_phrase("grasse", "grasses"), _FLAGS), "Peau grasse"),
    (re.compile(r"\boily\s+skin\b", _FLAGS), "Peau grasse"),
    (re.compile(_skin_phrase("s[èeé]che", "s[èeé]ches"), _FLAGS), "Peau sèche"),
    (re.compile(r"\bdry\s+skin\b", _FLAGS), "Peau sèche"),
    (re.compile(_skin_phrase("sensible", "sensibles", "r[ée]active"), _FLAGS), "Peau sensible"),
    (re.compile(r"\bsensitive\s+skin\b", _FLAGS), "Peau sensible"),
    (re.compile(_skin_phrase("normale", "normales", "[ée]quilibr[ée]e"), _FLAGS), "Peau normale"),
    (re.compile(r"\bnormal\s+skin\b", _FLAGS), "Peau normale"),
)

_RANGE_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\bs[ée]bocyli(?:que|c)\b", _FLAGS), RANGE_SEBOCYLIQUE),
    (re.compile(r"\br[ée]tilift\b", _FLAGS), RANGE_RETILIFT),
    (re.compile(r"\bvitalight\b", _FLAGS), RANGE_VITALIGHT),
    (re.compile(r"\bhydra[\s-]?melon\b", _FLAGS), RANGE_HYDRAMELON),
)

_BULLET_RE = re.compile(r"^(?:[•·]\s*|[-*–—]\s+|\d{1,2}[.)]\s+)(.*)$")

_SKIN_VOCABULARY_RE = re.compile(
    r"peau|pores?\b|imperfection|bouton|acn[ée]|com[ée]don|points?\s+noirs|rides?\b|ridules?|"
    r"taches?\b|rougeurs?|brillance|s[ée]bum|teint|texture|grain\s+de\s+peau|[ée]clat|"
    r"hydrat|s[ée]cheresse|cernes?|skin|wrinkles?|blemish|redness",
    _FLAGS,
)

# One fixed sentence per topic, emitted in this order.
_PRIORITY_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(
            r"imperfection|bouton|acn[ée]|s[ée]bum|brillan|grasse|pores?\b|com[ée]don|points?\s+noirs|"
            r"oily|blemish|breakout|acne",
            _FLAGS,
        ),
        "Réguler l'excès de sébum et limiter l'apparition des imperfections.",
    ),
    (
        re.compile(
            r"\brides?\b|ridules?|fermet[ée]|rel[âa]chement|\b[âa]ge\b|vieillissement|anti-[âa]ge|"
            r"wrinkles?|fine\s+lines|aging|ageing",
            _FLAGS,
        ),
        "Lisser les rides et ridules et préserver la fermeté de la peau.",
    ),
    (
        re.compile(
            r"taches?\b|pigment|\bternes?\b|manque\s+d'[ée]clat|[ée]clat|uniformi|"
            r"dark\s+spots?|dull",
            _FLAGS,
        ),
        "Unifier le teint, atténuer les taches et raviver l'éclat.",
    ),
    (
        re.compile(
            r"s[ée]cheresse|d[ée]shydrat|\bs[èeé]ches?\b|tiraillement|inconfort|"
            r"dryness|dehydrat|\bdry\b",
            _FLAGS,
        ),
        "Hydrater en profondeur et renforcer la barrière cutanée.",
    ),
    (
        re.compile(
            r"sensib|rougeurs?|irrit|r[ée]activ|couperose|\bapaiser\b|"
            r"sensitiv|redness",
            _FLAGS,
        ),
        "Apaiser les rougeurs et respecter la sensibilité de la peau.",
    ),
)

FALLBACK_OBSERVATION = "Analyse de ta peau réalisée avec succès."
FALLBACK_PRIORITY = "Suivre une routine personnalisée adaptée à ta peau."


def _first_match(rules: tuple[tuple[re.Pattern[str], str], ...], text: str) -> Optional[str]:
    for pattern, label in rules:
        if pattern.search(text):
            return label
    return None


def extract_skin_type(message: str) -> str:
    return _first_match(_SKIN_TYPE_RULES, message) or UNKNOWN_SKIN_TYPE


def extract_range(message: str) -> str:
    return _first_match(_RANGE_RULES, message) or ""


def extract_observations(message: str) -> list[str]:
    candidates: list[str] = []
    for raw_line in message.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        bullet = _BULLET_RE.match(line)
        if bullet:
            text = bullet.group(1).strip()
            if text:
                candidates.append(text)
        elif len(candidates) < MAX_OBSERVATIONS and _SKIN_VOCABULARY_RE.search(line):
            candidates.append(line)
    return candidates[:MAX_OBSERVATIONS]


def derive_priorities(message: str) -> list[str]:
    priorities = [sentence for pattern, sentence in _PRIORITY_RULES if pattern.search(message)]
    return priorities[:MAX_PRIORITIES]


def interpret(raw_message: Optional[str]) -> InterpretedProfile:
    """Turn the webhook's free-text analysis into an `InterpretedProfile`.

    Never fails: an empty or unstructured message yields the sentinel skin
    type, no range and the fallback observations/priorities.
    """

    message = raw_message or ""

    observations = extract_observations(message)
    if not observations:
        observations = [FALLBACK_OBSERVATION, f"{message[:FALLBACK_EXCERPT_CHARS]}..."]

    priorities = derive_priorities(message)
    if not priorities:
        priorities = [FALLBACK_PRIORITY]

    return InterpretedProfile(
        skin_type=extract_skin_type(message),
        recommended_range=extract_range(message),
        global_appearance=message,
        observations=tuple(observations),
        priorities=tuple(priorities),
    )

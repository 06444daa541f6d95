"""Camera angle inference and follow-up phrasing.

Angles are free-form labels. They come either from an explicit hint on the
request or from the first keyword of ``CAMERA_KEYWORDS`` found in the edit
instruction. Declaration order decides which label wins when several
keywords appear in the same instruction.
"""

from typing import Optional

# keyword -> angle label, scanned in declaration order
CAMERA_KEYWORDS: dict[str, str] = {
    "north": "north",
    "patio": "patio",
    "south": "south",
    "east": "east",
    "west": "west",
    "stairs": "stairs",
    "entry": "entry",
    "foyer": "entry",
    "kitchen": "kitchen",
    "living": "living",
    "exterior": "exterior",
}

SUPPORTED_ASPECT_RATIOS = frozenset({"1:1", "3:2", "4:3", "4:5", "16:9", "9:16", "2:3"})


def infer_angle(text: str, explicit_hint: Optional[str] = None) -> Optional[str]:
    """Infer a viewpoint label for an edit instruction.

    A non-blank hint is returned trimmed and always wins. Otherwise the
    instruction is scanned case-insensitively for each keyword as a substring.
    """
    if explicit_hint and explicit_hint.strip():
        return explicit_hint.strip()

    lowered = (text or "").lower()
    for keyword, label in CAMERA_KEYWORDS.items():
        if keyword in lowered:
            return label
    return None


def resolve_aspect_ratio(requested: Optional[str], inherited: Optional[str] = None) -> Optional[str]:
    """Pick the requested ratio when supported, else the parent's, else none."""
    if requested and requested in SUPPORTED_ASPECT_RATIOS:
        return requested
    return inherited or None


def build_followup_suggestion(angle: Optional[str], has_diff_text: bool) -> str:
    if angle:
        return f"Would you like to explore another perspective beyond the {angle} angle?"
    if has_diff_text:
        return "Should we generate a comparison view or adjust lighting next?"
    return "Would you like to request another refinement?"

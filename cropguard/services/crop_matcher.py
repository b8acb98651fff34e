# =============================================================================
# CropGuard API
# services/crop_matcher.py - Crop Name Normalization & Matching
#
# Resolves free-text crop names against the canonical crop list and decides
# whether a declared crop agrees with the crop detected in an image.
# =============================================================================

from typing import Dict, List, Optional

# Canonical crop name -> known aliases
CROP_ALIASES: Dict[str, List[str]] = {
    'Tomato': ['tomato', 'tomatoes', 'cherry tomato', 'beefsteak tomato'],
    'Apple': ['apple', 'apples', 'red apple', 'green apple', 'granny smith'],
    'Banana': ['banana', 'bananas', 'plantain', 'cooking banana'],
    'Orange': ['orange', 'oranges', 'mandarin', 'tangerine', 'citrus'],
    'Mango': ['mango', 'mangoes', 'mango tree'],
    'Potato': ['potato', 'potatoes', 'sweet potato', 'irish potato'],
    'Corn': ['corn', 'maize', 'sweet corn', 'field corn'],
    'Rice': ['rice', 'paddy', 'rice plant', 'rice grain'],
    'Wheat': ['wheat', 'wheat plant', 'grain'],
    'Cotton': ['cotton', 'cotton plant', 'cotton boll'],
    'Soybean': ['soybean', 'soy', 'soya bean'],
    'Pepper': ['pepper', 'bell pepper', 'chili', 'capsicum'],
    'Cucumber': ['cucumber', 'cucumbers', 'pickle'],
    'Cabbage': ['cabbage', 'lettuce', 'leafy greens'],
    'Carrot': ['carrot', 'carrots'],
    'Onion': ['onion', 'onions', 'shallot'],
    'Grape': ['grape', 'grapes', 'wine grape', 'table grape'],
    'Strawberry': ['strawberry', 'strawberries'],
    'Watermelon': ['watermelon', 'melon'],
    'Pineapple': ['pineapple', 'pine apple']
}

SUPPORTED_CROPS = list(CROP_ALIASES)

UNKNOWN_CROP_VALUES = {'', 'unknown', 'none', 'null', 'n/a'}


class CropMatchVerdict:
    """Outcome of comparing the declared crop with the detected crop."""

    __slots__ = ('matches', 'selected_crop', 'detected_crop', 'confidence', 'message')

    def __init__(self, matches, selected_crop, detected_crop, confidence, message):
        self.matches = matches
        self.selected_crop = selected_crop
        self.detected_crop = detected_crop
        self.confidence = confidence
        self.message = message

    def to_dict(self):
        return {
            'matches': self.matches,
            'selected_crop': self.selected_crop,
            'detected_crop': self.detected_crop,
            'confidence': self.confidence,
            'message': self.message
        }

    def __repr__(self):
        return (
            f'<CropMatchVerdict matches={self.matches} '
            f'{self.selected_crop!r} vs {self.detected_crop!r}>'
        )


def normalize_crop_name(crop_name: str) -> str:
    """
    Normalize a free-text crop name to its canonical spelling.

    Returns the canonical name when the input equals a canonical name or one
    of its aliases, otherwise the input with only its first letter capitalized.
    """
    text = (crop_name or '').strip()
    normalized = text.lower()

    for standard_name, aliases in CROP_ALIASES.items():
        if normalized == standard_name.lower() or normalized in aliases:
            return standard_name

    return text[:1].upper() + text[1:].lower()


def _is_unknown(detected_crop: Optional[str]) -> bool:
    return detected_crop is None or detected_crop.strip().lower() in UNKNOWN_CROP_VALUES


def match_crop_types(selected_crop: str, detected_crop: Optional[str]) -> CropMatchVerdict:
    """
    Decide whether the detected crop agrees with the user's selection.

    Rules, in order:
        - detected crop missing or unknown: match (confidence 50)
        - identical after normalization: match (confidence 95)
        - one is an alias of the other: match (confidence 85)
        - otherwise: mismatch (confidence 90)
    """
    if _is_unknown(detected_crop):
        return CropMatchVerdict(
            matches=True,
            selected_crop=selected_crop,
            detected_crop='Unknown',
            confidence=50,
            message=(
                f"Analyzing as {selected_crop} - please ensure your image "
                f"shows a {selected_crop.lower()}"
            )
        )

    normalized_selected = normalize_crop_name(selected_crop)
    normalized_detected = normalize_crop_name(detected_crop)

    if normalized_selected == normalized_detected:
        return CropMatchVerdict(
            matches=True,
            selected_crop=normalized_selected,
            detected_crop=normalized_detected,
            confidence=95,
            message=f"Detected {normalized_detected} matches your selection"
        )

    selected_aliases = CROP_ALIASES.get(normalized_selected, [])
    detected_aliases = CROP_ALIASES.get(normalized_detected, [])

    if normalized_detected.lower() in selected_aliases or \
            normalized_selected.lower() in detected_aliases:
        return CropMatchVerdict(
            matches=True,
            selected_crop=normalized_selected,
            detected_crop=normalized_detected,
            confidence=85,
            message=(
                f"{normalized_detected} is compatible with "
                f"{normalized_selected} analysis"
            )
        )

    return CropMatchVerdict(
        matches=False,
        selected_crop=normalized_selected,
        detected_crop=normalized_detected,
        confidence=90,
        message=(
            f"You selected {normalized_selected} but the image shows "
            f"{normalized_detected}. Please upload a {normalized_selected.lower()} "
            f"image or change the selected crop."
        )
    )


def crop_suggestions(partial: str, limit: int = 5) -> List[str]:
    """
    Canonical crop names whose name or any alias contains the input.

    Inputs shorter than two characters yield no suggestions.
    """
    if not partial or len(partial.strip()) < 2:
        return []

    needle = partial.strip().lower()
    suggestions = []
    for standard_name, aliases in CROP_ALIASES.items():
        if needle in standard_name.lower() or any(needle in alias for alias in aliases):
            suggestions.append(standard_name)
    return suggestions[:limit]


def validate_custom_crop(crop_name: str) -> Dict:
    """
    Check whether a user-typed crop name is reasonable.

    Returns:
        dict: {'valid': bool, 'message': str, 'suggestion': str | None}
    """
    trimmed = (crop_name or '').strip()

    if len(trimmed) < 2:
        return {'valid': False, 'message': 'Crop name must be at least 2 characters', 'suggestion': None}

    if len(trimmed) > 50:
        return {'valid': False, 'message': 'Crop name is too long', 'suggestion': None}

    normalized = normalize_crop_name(trimmed)
    if normalized in SUPPORTED_CROPS:
        return {'valid': True, 'message': f'Found exact match: {normalized}', 'suggestion': normalized}

    suggestions = crop_suggestions(trimmed)
    if suggestions:
        return {
            'valid': True,
            'message': f"Similar crops found: {', '.join(suggestions)}",
            'suggestion': suggestions[0]
        }

    return {
        'valid': True,
        'message': f'Custom crop "{trimmed}" will be analyzed with general plant disease detection',
        'suggestion': None
    }

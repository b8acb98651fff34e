# =============================================================================
# CropGuard API
# services/disease_reference.py - Disease Reference Store
#
# Read-only table of disease facts (symptoms, treatment, prevention, organic
# alternatives, cost estimate) loaded once at start-up and shared by reference.
# =============================================================================

import json
import logging
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from cropguard.constants import HEALTHY_PLANT, SEVERITY_ORDER, WILDCARD_CROP
from cropguard.errors import DiseaseNotFoundError

logger = logging.getLogger(__name__)

SORT_KEYS = ('name', 'severity', 'crop')


class DiseaseProfile(BaseModel):
    """Immutable reference entry for one disease."""
    model_config = ConfigDict(frozen=True)

    name: str
    crop: str
    severity: str
    scientific_name: str
    description: str
    symptoms: Tuple[str, ...] = ()
    treatment: Tuple[str, ...] = ()
    prevention: Tuple[str, ...] = ()
    organic_treatment: Tuple[str, ...] = ()
    cost_estimate: str = ''

    def to_dict(self) -> Dict:
        data = self.model_dump()
        for key in ('symptoms', 'treatment', 'prevention', 'organic_treatment'):
            data[key] = list(data[key])
        return data


class DiseaseReferenceStore:
    """
    In-memory keyed table of disease profiles.

    Lookups that miss return None; callers decide whether that is an error
    because classifiers may name diseases absent from the table.
    """

    def __init__(self, profiles):
        self._profiles: Dict[str, DiseaseProfile] = {}
        for profile in profiles:
            if profile.name in self._profiles:
                raise ValueError(f"Duplicate disease profile: {profile.name}")
            self._profiles[profile.name] = profile

        if HEALTHY_PLANT not in self._profiles:
            raise ValueError(f"Disease table must contain '{HEALTHY_PLANT}'")

        self._folded = {name.strip().casefold(): name for name in self._profiles}

    @classmethod
    def from_json(cls, path: str) -> 'DiseaseReferenceStore':
        """
        Load the disease table from a JSON file.

        Args:
            path: Path to a file with a top-level "diseases" list

        Returns:
            DiseaseReferenceStore: Loaded store
        """
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        profiles = [DiseaseProfile(**entry) for entry in data.get('diseases', [])]
        logger.info(f"Loaded {len(profiles)} disease profiles from {path}")
        return cls(profiles)

    def __len__(self):
        return len(self._profiles)

    def __contains__(self, name):
        return self.lookup(name) is not None

    def lookup(self, name: Optional[str]) -> Optional[DiseaseProfile]:
        """
        Find a profile by disease name.

        Exact match first, then a case-insensitive, whitespace-trimmed match.
        """
        if not name:
            return None

        profile = self._profiles.get(name)
        if profile is not None:
            return profile

        canonical = self._folded.get(name.strip().casefold())
        return self._profiles.get(canonical) if canonical else None

    def require(self, name: str) -> DiseaseProfile:
        """Find a profile or raise DiseaseNotFoundError."""
        profile = self.lookup(name)
        if profile is None:
            raise DiseaseNotFoundError(name)
        return profile

    def names(self) -> List[str]:
        return list(self._profiles)

    def all(self) -> List[DiseaseProfile]:
        return list(self._profiles.values())

    def by_crop(self, crop: str) -> List[DiseaseProfile]:
        """Profiles for the given crop plus the wildcard entries."""
        return [
            profile for profile in self._profiles.values()
            if profile.crop == crop or profile.crop == WILDCARD_CROP
        ]

    def search(self, query: str) -> List[DiseaseProfile]:
        """Case-insensitive substring search over name, description and symptoms."""
        needle = (query or '').lower()
        return [
            profile for profile in self._profiles.values()
            if needle in profile.name.lower()
            or needle in profile.description.lower()
            or any(needle in symptom.lower() for symptom in profile.symptoms)
        ]


def sort_profiles(profiles, sort: str = 'name') -> List[DiseaseProfile]:
    """
    Sort profiles for listing.

    Args:
        profiles: Iterable of DiseaseProfile
        sort: 'name' (A-Z), 'severity' (most severe first) or 'crop' (A-Z)

    Returns:
        list: Sorted profiles
    """
    if sort == 'severity':
        return sorted(
            profiles,
            key=lambda p: (-SEVERITY_ORDER.get(p.severity, 0), p.name)
        )
    if sort == 'crop':
        return sorted(profiles, key=lambda p: (p.crop, p.name))
    return sorted(profiles, key=lambda p: p.name)

import json

import pytest

from cropguard.constants import HEALTHY_PLANT
from cropguard.errors import DiseaseNotFoundError
from cropguard.services.disease_reference import DiseaseProfile, DiseaseReferenceStore, sort_profiles


def _profile(name, crop='Tomato', severity='Moderate', **extra):
    return DiseaseProfile(
        name=name,
        crop=crop,
        severity=severity,
        scientific_name=extra.pop('scientific_name', 'Testus'),
        description=extra.pop('description', f'{name} description'),
        **extra
    )


def test_bundled_table_loads(store):
    assert len(store) == 10
    assert HEALTHY_PLANT in store.names()
    healthy = store.lookup(HEALTHY_PLANT)
    assert healthy.crop == 'All'
    assert healthy.severity == 'None'


def test_lookup_exact_then_case_insensitive(store):
    assert store.lookup('Early Blight').name == 'Early Blight'
    assert store.lookup('  early blight ').name == 'Early Blight'
    assert store.lookup('Unknown Rot') is None
    assert store.lookup('') is None


def test_require_raises_for_unknown_disease(store):
    with pytest.raises(DiseaseNotFoundError) as exc:
        store.require('Banana Wilt')
    assert exc.value.status_code == 500
    assert 'Banana Wilt' in exc.value.message


def test_by_crop_includes_wildcard_entries(store):
    names = [p.name for p in store.by_crop('Apple')]
    assert names == [HEALTHY_PLANT]

    tomato = [p.name for p in store.by_crop('Tomato')]
    assert 'Late Blight' in tomato
    assert HEALTHY_PLANT in tomato


def test_search_matches_name_description_and_symptoms(store):
    assert [p.name for p in store.search('mildew')] == ['Powdery Mildew']
    symptom = store.lookup('Late Blight').symptoms[0]
    assert 'Late Blight' in [p.name for p in store.search(symptom.upper())]


def test_store_requires_healthy_plant():
    with pytest.raises(ValueError):
        DiseaseReferenceStore([_profile('Early Blight')])


def test_store_rejects_duplicates():
    with pytest.raises(ValueError):
        DiseaseReferenceStore([
            _profile(HEALTHY_PLANT, crop='All', severity='None'),
            _profile('Early Blight'),
            _profile('Early Blight'),
        ])


def test_from_json(tmp_path):
    path = tmp_path / 'table.json'
    path.write_text(json.dumps({'diseases': [
        {'name': HEALTHY_PLANT, 'crop': 'All', 'severity': 'None',
         'scientific_name': 'N/A', 'description': 'No disease', 'symptoms': ['Green leaves']}
    ]}))

    store = DiseaseReferenceStore.from_json(str(path))

    assert len(store) == 1
    assert store.lookup(HEALTHY_PLANT).to_dict()['symptoms'] == ['Green leaves']


def test_profiles_are_immutable(store):
    profile = store.lookup('Early Blight')
    with pytest.raises(Exception):
        profile.name = 'Changed'


def test_sort_profiles():
    profiles = [
        _profile('Mosaic Virus', crop='Tomato', severity='Severe'),
        _profile('Apple Scab', crop='Apple', severity='Mild'),
        _profile(HEALTHY_PLANT, crop='All', severity='None'),
    ]

    assert [p.name for p in sort_profiles(profiles, 'name')] == ['Apple Scab', HEALTHY_PLANT, 'Mosaic Virus']
    assert [p.severity for p in sort_profiles(profiles, 'severity')] == ['Severe', 'Mild', 'None']
    assert [p.crop for p in sort_profiles(profiles, 'crop')] == ['All', 'Apple', 'Tomato']

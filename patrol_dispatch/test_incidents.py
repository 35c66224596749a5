"""
Tests for incident report validation and display helpers.
"""

import pytest

from patrol_dispatch.geometry import Location
from patrol_dispatch.incidents import (
    freshness_for_age,
    parse_incident_payload,
    severity_for_priority,
)

VALID = {
    'description': 'Reported armed robbery near Britomart.',
    'priority_level': 9,
    'latitude': -36.847,
    'longitude': 174.763,
}


def test_valid_payload():
    report = parse_incident_payload(VALID)

    assert report.description == 'Reported armed robbery near Britomart.'
    assert report.priority_level == 9
    assert report.location == Location(-36.847, 174.763)


def test_camel_case_and_string_numbers_accepted():
    report = parse_incident_payload({
        'description': '  Noise complaint  ',
        'priorityLevel': '2',
        'lat': '-36.861',
        'lng': '174.76',
    })

    assert report.description == 'Noise complaint'
    assert report.priority_level == 2
    assert report.location == Location(-36.861, 174.76)


@pytest.mark.parametrize("changes, message", [
    ({'description': ''}, "Description is required."),
    ({'description': '   '}, "Description is required."),
    ({'description': 12}, "Description is required."),
    ({'priority_level': 0}, "priority_level"),
    ({'priority_level': 11}, "priority_level"),
    ({'priority_level': 'urgent'}, "priority_level"),
    ({'priority_level': True}, "priority_level"),
    ({'priority_level': 7.9}, "priority_level"),
    ({'priority_level': '2.5'}, "priority_level"),
    ({'latitude': 'north'}, "latitude and longitude"),
    ({'longitude': float('inf')}, "latitude and longitude"),
    ({'latitude': None}, "latitude and longitude"),
])
def test_invalid_payloads(changes, message):
    with pytest.raises(ValueError, match=message):
        parse_incident_payload({**VALID, **changes})


def test_non_object_body_rejected():
    with pytest.raises(ValueError):
        parse_incident_payload(['not', 'an', 'object'])


@pytest.mark.parametrize("priority, severity", [
    (1, 'low'), (3, 'low'), (4, 'medium'), (7, 'medium'), (8, 'high'), (10, 'high'),
])
def test_severity_for_priority(priority, severity):
    assert severity_for_priority(priority) == severity


@pytest.mark.parametrize("age_seconds, freshness", [
    (0, 'recent'), (14 * 60, 'recent'), (15 * 60, 'warm'), (59 * 60, 'warm'), (60 * 60, 'old'),
])
def test_freshness_for_age(age_seconds, freshness):
    assert freshness_for_age(age_seconds) == freshness


def test_integral_float_priority_accepted():
    assert parse_incident_payload({**VALID, 'priority_level': 5.0}).priority_level == 5

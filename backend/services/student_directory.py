"""
Student Directory
=================
Resolve free-text name fragments against a class roster.

Matching is case-insensitive substring containment and the first roster
entry wins, so "Sam" resolves to whichever of "Sampath"/"Samantha" comes
first in the roster.
"""
import re


def _contains(student, fragment):
    return fragment.lower() in (student.get("name") or "").lower()


def find_by_fragment(roster, fragment):
    """First student whose name contains fragment, or None."""
    for student in roster:
        if _contains(student, fragment):
            return student
    return None


def find_exact(roster, name):
    """Student whose name equals name (case-insensitive), or None."""
    target = name.strip().lower()
    for student in roster:
        if (student.get("name") or "").strip().lower() == target:
            return student
    return None


def find_many(roster, fragments):
    """Resolve each fragment in order.

    Returns {"matches": [student, ...], "not_found": [fragment, ...]}.
    Match order follows the fragments, not the roster.
    """
    matches = []
    not_found = []
    for fragment in fragments:
        student = find_by_fragment(roster, fragment)
        if student is not None:
            matches.append(student)
        else:
            not_found.append(fragment)
    return {"matches": matches, "not_found": not_found}


def all_except(roster, excluded_fragments):
    """Every student whose name contains none of the excluded fragments."""
    return [
        student for student in roster
        if not any(_contains(student, fragment) for fragment in excluded_fragments)
    ]


def next_index(roster, grade, class_name):
    """Next sequential index for the class, e.g. '10B007'.

    Takes the lexicographically last index carrying the class prefix and
    increments its trailing digits; starts at 001.
    """
    prefix = f"{grade}{class_name}"
    existing = sorted(
        s["index"] for s in roster
        if s.get("index") and s["index"].startswith(prefix)
    )
    next_num = 1
    if existing:
        match = re.search(r'\d+$', existing[-1])
        if match:
            next_num = int(match.group()) + 1
    return f"{prefix}{next_num:03d}"

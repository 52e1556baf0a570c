"""
Candidate blocking keys.

Cheap keys that two certificates must share before they are worth an
edit-distance comparison. Used only when blocking is switched on for an
evaluator; the default evaluation scores every record.
"""

import re
from typing import Iterable, Set

import jellyfish

from ..models import CheckField

_NON_ALPHA = re.compile(r"[^a-z]")


def _phonetic(token: str) -> str:
    letters = _NON_ALPHA.sub("", token.lower())
    return jellyfish.soundex(letters) if letters else ""


def blocking_keys(record, fields: Iterable[CheckField]) -> Set[str]:
    """Blocking keys of a candidate or stored certificate for the given fields.

    - recipient email: its domain
    - recipient name: Soundex code of the last name token
    - title: Soundex code of the first title token
    - issuer id: the id itself
    """
    keys: Set[str] = set()
    for field in fields:
        value = (record.field_value(field) or "").strip().lower()
        if not value:
            continue

        if field == CheckField.RECIPIENT_EMAIL:
            if value.count("@") == 1:
                keys.add(f"domain:{value.split('@')[1]}")
            else:
                keys.add(f"email:{value}")
        elif field == CheckField.RECIPIENT_NAME:
            code = _phonetic(value.split()[-1])
            if code:
                keys.add(f"name:{code}")
        elif field == CheckField.TITLE:
            code = _phonetic(value.split()[0])
            if code:
                keys.add(f"title:{code}")
        elif field == CheckField.ISSUER_ID:
            keys.add(f"issuer:{value}")

    return keys


def shares_block(candidate_keys: Set[str], record, fields: Iterable[CheckField]) -> bool:
    """Whether a stored record shares at least one key with the candidate.

    A candidate with no keys at all cannot be blocked and matches everything.
    """
    if not candidate_keys:
        return True
    return bool(candidate_keys & blocking_keys(record, fields))

"""Display sanitization — replace leaked anonymization tokens with readable placeholders.

This is a lossy path. Token values are never mapped back to the original
facts; each token collapses to a generic bracketed label.
"""
import re

# Order matters only for readability; token prefixes do not overlap.
_TOKEN_PLACEHOLDERS = [
    (re.compile(r"\$?\bAMOUNT_\w+"), "[Amount]"),
    (re.compile(r"\bINCOME_\w+"), "[Income]"),
    (re.compile(r"\bGOAL_\w+"), "[Goal]"),
    (re.compile(r"\bRATE_\w+"), "[Rate]"),
    (re.compile(r"\bLOCATION_\w+"), "[Location]"),
    (re.compile(r"\bPERSON_\w+"), "[Name]"),
    (re.compile(r"\bSPOUSE_\w+"), "[Spouse]"),
    (re.compile(r"\bAGE_\w+"), "[Age]"),
    (re.compile(r"\bAGES_\w+"), "[Ages]"),
    (re.compile(r"\bINSTITUTION_\w+"), "[Institution]"),
    (re.compile(r"\bCHILDREN_\w+"), "[Children]"),
]

TOKEN_PREFIXES = (
    "AMOUNT", "INCOME", "GOAL", "RATE", "LOCATION", "PERSON",
    "SPOUSE", "AGE", "AGES", "INSTITUTION", "CHILDREN",
)

_ANY_TOKEN_PATTERN = re.compile(r"\b(?:%s)_\w" % "|".join(TOKEN_PREFIXES))


def contains_anonymized_tokens(text: str) -> bool:
    """Check whether text carries any anonymization token prefix."""
    return bool(text) and _ANY_TOKEN_PATTERN.search(text) is not None


def deanonymize(text: str) -> str:
    """Replace every anonymization token with its generic placeholder."""
    for pattern, placeholder in _TOKEN_PLACEHOLDERS:
        text = pattern.sub(placeholder, text)
    return text

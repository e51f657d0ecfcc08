"""Profile anonymizer — replace identifying spans with per-session opaque tokens.

Anonymization is an ordered fold of pattern rules over the profile text.
Each rule scans the output of the previous one, so the order of RULES is
part of the behaviour:

    names -> ages -> family -> income -> goals -> amounts -> locations -> institutions

Ages run before family details so a children clause can wrap an already
tokenized age group, and income/goal phrasings run before generic amounts so
those figures get INCOME_/GOAL_ tokens instead of AMOUNT_.

Tokens look like ``INCOME_<session>_<epoch ms>_<random hex>``. Within one
anonymizer the same fact always maps to the same token; two anonymizers
never share tokens.
"""
import logging
import re
import secrets
import time
from dataclasses import dataclass
from functools import reduce
from typing import Callable

from .schema import AnonymizationResult

logger = logging.getLogger(__name__)

_NAME = r"[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*"
_AMOUNT = r"(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?"
_MONEY = rf"(?P<money>\$(?P<value>{_AMOUNT}))"
_AGE_LIST = r"\d+(?:(?:,\s*(?:and\s+)?|\s+and\s+)\d+)*"

INSTITUTIONS = (
    "Chase", "Bank of America", "Wells Fargo", "Citibank", "US Bank", "PNC",
    "Capital One", "Ally Bank", "Marcus", "Fidelity", "Vanguard", "Schwab",
    "TD Ameritrade", "Robinhood", "Navy Federal", "PenFed", "Alliant",
    "State Employees",
)
_INSTITUTION_NAMES = {name.lower(): name for name in INSTITUTIONS}


def canonical_amount(raw: str) -> str:
    """Normalise a dollar figure so "$100,000.00" and "$100000" share a key."""
    value = float(raw.replace(",", ""))
    return str(int(value)) if value.is_integer() else repr(value)


def _swap_group(match: re.Match, group: str, replacement: str) -> str:
    """Return the matched text with one named group replaced."""
    whole = match.group(0)
    start, end = match.span(group)
    offset = match.start()
    return whole[:start - offset] + replacement + whole[end - offset:]


def _keyed(prefix: str) -> Callable[[re.Match], str]:
    return lambda match: f"{prefix}_{match.group('value')}"


def _amount_keyed(prefix: str) -> Callable[[re.Match], str]:
    return lambda match: f"{prefix}_{canonical_amount(match.group('value'))}"


def _location_key(match: re.Match) -> str:
    return f"LOCATION_{match.group('city')}_{match.group('state')}"


def _institution_key(match: re.Match) -> str:
    spelled = re.sub(r"\s+", " ", match.group("value")).lower()
    return f"INSTITUTION_{_INSTITUTION_NAMES.get(spelled, spelled)}"


@dataclass(frozen=True)
class AnonymizationRule:
    """One pattern pass: every match of ``pattern`` has its ``group`` tokenized."""
    pass_name: str
    token_type: str
    pattern: re.Pattern
    key: Callable[[re.Match], str]
    group: str = "value"

    def rewrite(self, anonymizer: "ProfileAnonymizer", match: re.Match) -> str:
        token = anonymizer.get_or_create_token(self.key(match), self.token_type)
        return _swap_group(match, self.group, token)

    def apply(self, text: str, anonymizer: "ProfileAnonymizer") -> str:
        return self.pattern.sub(lambda match: self.rewrite(anonymizer, match), text)


@dataclass(frozen=True)
class GenericAmountRule(AnonymizationRule):
    """Dollar figures left over after the income and goal passes.

    A figure whose value already has a live INCOME_ or GOAL_ token in the
    text is collapsed onto that token instead of getting an AMOUNT_ one.
    """
    claimed_by: tuple[str, ...] = ("INCOME", "GOAL")

    def rewrite(self, anonymizer: "ProfileAnonymizer", match: re.Match) -> str:
        amount = canonical_amount(match.group("value"))
        for prefix in self.claimed_by:
            existing = anonymizer.lookup_token(f"{prefix}_{amount}")
            if existing and existing in match.string:
                return existing
        return super().rewrite(anonymizer, match)


def _institution_pattern() -> re.Pattern:
    names = sorted(INSTITUTIONS, key=len, reverse=True)
    alternation = "|".join(r"\s+".join(map(re.escape, name.split())) for name in names)
    return re.compile(rf"\b(?P<value>{alternation})\b", re.IGNORECASE)


RULES: tuple[AnonymizationRule, ...] = (
    # names
    AnonymizationRule(
        "names", "person",
        re.compile(rf"\b(?:I am|My name is)\s+(?P<value>{_NAME})"),
        _keyed("PERSON"),
    ),
    AnonymizationRule(
        "names", "spouse",
        re.compile(r"(?i:\bmy\s+(?:husband|wife|spouse))\s+(?P<value>[A-Z][a-z]+)"),
        _keyed("SPOUSE"),
    ),
    AnonymizationRule(
        "names", "spouse",
        re.compile(rf"\b(?P<value>{_NAME})\s+earning\b"),
        _keyed("SPOUSE"),
    ),
    # ages
    AnonymizationRule(
        "ages", "ages",
        re.compile(rf"\b[Aa]ges\s+(?P<value>{_AGE_LIST})"),
        _keyed("AGES"),
    ),
    AnonymizationRule(
        "ages", "age",
        re.compile(r"\b(?P<value>\d+)[- ]year[- ]old"),
        _keyed("AGE"),
    ),
    AnonymizationRule(
        "ages", "age",
        re.compile(r"\((?P<value>\d+),\s*[^)]+\)"),
        _keyed("AGE"),
    ),
    AnonymizationRule(
        "ages", "age",
        re.compile(r"\((?P<value>\d+)\)"),
        _keyed("AGE"),
    ),
    # family details
    AnonymizationRule(
        "family", "children",
        re.compile(r"\b(?:(?:[Oo]ur|[Tt]wo)\s+)?[Cc]hildren\s+\((?P<value>[^)]+)\)"),
        _keyed("CHILDREN"),
    ),
    # income
    AnonymizationRule(
        "income", "income",
        re.compile(rf"\b[Ii]ncome\s+is\s+{_MONEY}\s+annually"),
        _amount_keyed("INCOME"), group="money",
    ),
    AnonymizationRule(
        "income", "income",
        re.compile(rf"\b[Ee]arning\s+{_MONEY}\s+as\s+an?\b"),
        _amount_keyed("INCOME"), group="money",
    ),
    AnonymizationRule(
        "income", "income",
        re.compile(rf"\b{_NAME}\s+earning\s+{_MONEY}"),
        _amount_keyed("INCOME"), group="money",
    ),
    AnonymizationRule(
        "income", "income",
        re.compile(rf"\bme\s+earning\s+{_MONEY}"),
        _amount_keyed("INCOME"), group="money",
    ),
    AnonymizationRule(
        "income", "income",
        re.compile(rf"\b[Ee]arning\s+{_MONEY}"),
        _amount_keyed("INCOME"), group="money",
    ),
    # goals
    AnonymizationRule(
        "goals", "goal",
        re.compile(rf"{_MONEY}\s+(?:target|emergency\s+fund|down\s+payment)\b"),
        _amount_keyed("GOAL"), group="money",
    ),
    # generic amounts and rates
    GenericAmountRule(
        "amounts", "amount",
        re.compile(rf"\$(?P<value>{_AMOUNT})"),
        _amount_keyed("AMOUNT"),
    ),
    AnonymizationRule(
        "amounts", "rate",
        re.compile(r"\b(?P<value>\d+(?:\.\d+)?)%\s+(?:interest\s+)?rate\b"),
        _keyed("RATE"),
    ),
    # locations
    AnonymizationRule(
        "locations", "location",
        re.compile(
            rf"\b(?:[Ll]iving\s+)?[Ii]n\s+(?P<value>(?P<city>{_NAME}),\s+(?P<state>[A-Z]{{2}}))\b"
        ),
        _location_key,
    ),
    # institutions
    AnonymizationRule(
        "institutions", "institution",
        _institution_pattern(),
        _institution_key,
    ),
)


class ProfileAnonymizer:
    """Stateful anonymizer scoped to one session.

    Not safe to share between requests for different users: the token map
    is what links repeated mentions of a fact to one token.
    """

    def __init__(self, session_id: str, rules: tuple[AnonymizationRule, ...] = RULES):
        self.session_id = session_id
        self._session_tag = re.sub(r"[^A-Za-z0-9]", "", session_id) or "session"
        self._rules = rules
        self._tokens: dict[str, str] = {}

    @property
    def tokenization_map(self) -> dict[str, str]:
        return dict(self._tokens)

    def anonymize(self, profile_text: str) -> AnonymizationResult:
        """Tokenize every sensitive span in profile_text."""
        if not profile_text or not profile_text.strip():
            return AnonymizationResult(
                anonymized_text=profile_text or "",
                tokenization_map={},
                original_text=profile_text or "",
            )

        anonymized = reduce(
            lambda text, rule: rule.apply(text, self), self._rules, profile_text
        )
        logger.debug(
            "Anonymized profile: %d tokens, %d -> %d chars",
            len(self._tokens), len(profile_text), len(anonymized),
        )
        return AnonymizationResult(
            anonymized_text=anonymized,
            tokenization_map=dict(self._tokens),
            original_text=profile_text,
        )

    def lookup_token(self, canonical_key: str) -> str | None:
        return self._tokens.get(canonical_key)

    def get_or_create_token(self, canonical_key: str, token_type: str) -> str:
        """Return the token for canonical_key, minting one on first sight."""
        token = self._tokens.get(canonical_key)
        if token is None:
            token = "_".join((
                token_type.upper(),
                self._session_tag,
                str(int(time.time() * 1000)),
                secrets.token_hex(5),
            ))
            self._tokens[canonical_key] = token
        return token

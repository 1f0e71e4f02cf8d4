"""
Rules-text and type-line tokenization for scoring.

Everything here is a pure function of its string inputs.
"""

import re
from functools import lru_cache

from manasight.models.card import CardIdentity

SUPERTYPES = frozenset({"basic", "legendary", "ongoing", "snow", "world", "host", "elite"})

CARD_TYPES = frozenset(
    {
        "artifact",
        "battle",
        "conspiracy",
        "creature",
        "dungeon",
        "enchantment",
        "instant",
        "kindred",
        "land",
        "phenomenon",
        "plane",
        "planeswalker",
        "scheme",
        "sorcery",
        "tribal",
        "vanguard",
    }
)

# Card types too common in rules text to count as a call-out
GENERIC_TYPE_WORDS = frozenset({"creature", "kindred", "tribal"})

_TYPE_SEPARATORS = re.compile(r"\s+|—|–|//")
_WORD = re.compile(r"[a-z][a-z'\-]*")

IRREGULAR_PLURALS: dict[str, str] = {
    "allies": "ally",
    "dwarves": "dwarf",
    "elves": "elf",
    "faeries": "faerie",
    "foxes": "fox",
    "fungi": "fungus",
    "mice": "mouse",
    "oxen": "ox",
    "sphinxes": "sphinx",
    "werewolves": "werewolf",
    "wolves": "wolf",
    "zombies": "zombie",
}

# (label, enabler pattern, payoff pattern); enablers are matched against the
# type line and rules text, payoffs against rules text only
MECHANIC_PAIRS: tuple[tuple[str, str, str], ...] = (
    ("tokens", r"\bcreates? [^.]*\btokens?\b", r"\b(sacrifice|populate|convoke|tokens you control)\b"),
    ("sacrifice", r"\bsacrifices? (a|an|another)\b", r"\b(dies|die|leaves the battlefield)\b"),
    (
        "graveyard",
        r"\bmills?\b|\binto (your|their) graveyard\b",
        r"\b(from your graveyard|flashback|escape|unearth|delve)\b",
    ),
    ("counters", r"\+1/\+1 counters?", r"\b(proliferate|evolve|adapt|modular)\b"),
    ("lifegain", r"\bgains? (\d+|x) life\b|\blifelink\b", r"\bwhenever you gain life\b"),
    (
        "spells",
        r"\b(instant|sorcery)\b",
        r"\b(prowess|magecraft|storm)\b|whenever you cast an instant or sorcery",
    ),
    ("artifacts", r"\bartifacts?\b", r"\b(affinity|improvise|metalcraft)\b"),
    ("enchantments", r"\benchantments?\b", r"\b(constellation|enchantress)\b"),
    ("etb", r"\benters( the battlefield)?\b", r"\breturn [^.]* to (its|their) owner's hand\b"),
)


def singularize(word: str) -> str:
    """Best-effort singular form for type words ("Humans" -> "human")."""
    word = word.lower()
    if word in IRREGULAR_PLURALS:
        return IRREGULAR_PLURALS[word]
    if word.endswith("ies") and len(word) > 4:
        return word[:-3] + "y"
    if word.endswith("s") and not word.endswith("ss") and len(word) > 3:
        return word[:-1]
    return word


def type_tokens(type_line: str) -> frozenset[str]:
    """All lowercase words of a type line, separators removed."""
    return frozenset(t.lower() for t in _TYPE_SEPARATORS.split(type_line) if t and t != "-")


def subtypes(type_line: str) -> frozenset[str]:
    """Words after the dash on each face (e.g., {"human", "soldier"})."""
    found: set[str] = set()
    for face in type_line.split("//"):
        for dash in ("—", " - "):
            if dash in face:
                found.update(type_tokens(face.split(dash, 1)[1]))
                break
    return frozenset(found)


def card_types(type_line: str) -> frozenset[str]:
    """Card types named in a type line (artifact, creature, instant, ...)."""
    return type_tokens(type_line) & CARD_TYPES


def _strip_self_references(card: CardIdentity) -> str:
    """Rules text with the card's own name(s) removed, lowercased."""
    text = card.oracle_text.lower()
    names = [card.name] + card.name.split(" // ")
    for name in sorted(set(names), key=len, reverse=True):
        if name:
            text = text.replace(name.lower(), " ")
    return text


def rules_words(card: CardIdentity) -> frozenset[str]:
    """Singularized words of a card's rules text, excluding its own name."""
    return frozenset(singularize(w) for w in _WORD.findall(_strip_self_references(card)))


@lru_cache(maxsize=4096)
def _phrase_pattern(phrase: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![a-z]){re.escape(phrase.lower())}(?![a-z])")


def mentions(text: str, phrase: str) -> bool:
    """True if `phrase` appears in `text` as whole words (case-insensitive)."""
    return _phrase_pattern(phrase).search(text.lower()) is not None


def mentions_keyword(card: CardIdentity, keyword: str) -> bool:
    """True if the card's rules text names `keyword`, ignoring its own name."""
    return _phrase_pattern(keyword).search(_strip_self_references(card)) is not None


@lru_cache(maxsize=64)
def _compiled(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def matches_enabler(card: CardIdentity, pattern: str) -> bool:
    body = f"{card.type_line}\n{_strip_self_references(card)}".lower()
    return _compiled(pattern).search(body) is not None


def matches_payoff(card: CardIdentity, pattern: str) -> bool:
    return _compiled(pattern).search(_strip_self_references(card)) is not None


def jaccard(a: frozenset[str], b: frozenset[str]) -> float:
    """Set similarity in [0, 1]; two empty sets are identical."""
    if not a and not b:
        return 1.0
    return len(a & b) / len(a | b)

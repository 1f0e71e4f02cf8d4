"""
Identity Resolution Service.

Maps any printing reference to the canonical identity key of its card.

INVARIANTS:
1. A printing with an oracle_id resolves to that id (or to the id it is
   merged with when ids collide on one name + rules text)
2. A printing without an oracle_id resolves to the oracle_id of any printing
   sharing its name + rules text, otherwise to a derived key
3. Resolution is a pure function of the printing and the catalog snapshot
4. Unknown references are TERMINAL (CardNotFoundError), never retried

Missing oracle ids used to leave one card under several keys, which made
recommendations point back at the source card forever. The derived key and
the alias index exist to close that hole.
"""

import hashlib
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from manasight.models.card import CardPrinting
from manasight.models.failure import FailureKind, KnownError

if TYPE_CHECKING:
    from manasight.services.card_catalog import CardCatalog

logger = logging.getLogger(__name__)

DERIVED_KEY_PREFIX = "derived:"

_WHITESPACE = re.compile(r"\s+")
_DASHES = str.maketrans({"—": "-", "–": "-", "−": "-"})


class CardNotFoundError(KnownError):
    """Raised when a card reference does not exist in the catalog."""

    def __init__(self, ref: str):
        self.ref = ref
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message="Card not found.",
            detail=f"No printing or identity matches '{ref}'",
            suggestion="Use a Scryfall card id or oracle id from a search result.",
            status_code=404,
        )


def normalize_name(name: str) -> str:
    """Case- and whitespace-insensitive form of a card name."""
    return _WHITESPACE.sub(" ", name.translate(_DASHES)).strip().casefold()


def normalize_text(text: str) -> str:
    """Case- and whitespace-insensitive form of rules text."""
    return _WHITESPACE.sub(" ", text.translate(_DASHES)).strip().casefold()


def derived_identity_key(name: str, oracle_text: str) -> str:
    """
    Build a stable identity key from name and rules text.

    Two printings with the same name and the same rules text (ignoring case
    and whitespace) always produce the same key.
    """
    digest = hashlib.sha256(normalize_text(oracle_text).encode("utf-8")).hexdigest()[:16]
    return f"{DERIVED_KEY_PREFIX}{normalize_name(name)}:{digest}"


def _clean_oracle_id(oracle_id: str | None) -> str | None:
    if oracle_id is None:
        return None
    oracle_id = oracle_id.strip()
    return oracle_id or None


def printing_fingerprint(printing: CardPrinting) -> str:
    """Derived key for a printing, regardless of its oracle_id."""
    return derived_identity_key(printing.name, printing.full_oracle_text)


def raw_identity_key(printing: CardPrinting) -> str:
    """
    Identity key of a single printing, without cross-printing aliasing.

    Returns the oracle_id when present, otherwise the derived key.
    """
    return _clean_oracle_id(printing.oracle_id) or printing_fingerprint(printing)


class _DisjointSet:
    """Union-find over oracle ids; the smallest id is always the root."""

    def __init__(self) -> None:
        self._parent: dict[str, str] = {}

    def add(self, item: str) -> None:
        self._parent.setdefault(item, item)

    def find(self, item: str) -> str:
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, a: str, b: str) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return
        low, high = sorted((root_a, root_b))
        self._parent[high] = low

    def items(self) -> list[str]:
        return list(self._parent)


@dataclass(frozen=True)
class IdentityIndex:
    """
    Alias tables that collapse every printing of a card onto one key.

    Attributes:
        oracle_aliases: oracle_id -> canonical oracle_id
        fingerprint_keys: derived key -> canonical key for id-less printings
        ambiguous_groups: Groups of distinct oracle ids merged into one identity
    """

    oracle_aliases: dict[str, str]
    fingerprint_keys: dict[str, str]
    ambiguous_groups: tuple[tuple[str, ...], ...] = ()

    @classmethod
    def build(cls, printings: Iterable[CardPrinting]) -> "IdentityIndex":
        """
        Build the alias tables for a set of printings.

        Distinct oracle ids sharing a name + rules text are merged onto the
        smallest id and logged as a data-quality warning.
        """
        ids_by_fingerprint: dict[str, set[str]] = {}
        forest = _DisjointSet()

        for printing in printings:
            ids = ids_by_fingerprint.setdefault(printing_fingerprint(printing), set())
            oracle_id = _clean_oracle_id(printing.oracle_id)
            if oracle_id:
                ids.add(oracle_id)
                forest.add(oracle_id)

        for ids in ids_by_fingerprint.values():
            ordered = sorted(ids)
            for other in ordered[1:]:
                forest.union(ordered[0], other)

        oracle_aliases = {oracle_id: forest.find(oracle_id) for oracle_id in forest.items()}

        fingerprint_keys: dict[str, str] = {}
        for fingerprint, ids in ids_by_fingerprint.items():
            if ids:
                fingerprint_keys[fingerprint] = oracle_aliases[min(ids)]

        groups: dict[str, list[str]] = {}
        for oracle_id, root in oracle_aliases.items():
            groups.setdefault(root, []).append(oracle_id)
        ambiguous = tuple(
            tuple(sorted(members)) for _, members in sorted(groups.items()) if len(members) > 1
        )
        for members in ambiguous:
            logger.warning(
                "IDENTITY_AMBIGUITY",
                extra={"oracle_ids": list(members), "canonical_key": members[0]},
            )

        return cls(
            oracle_aliases=oracle_aliases,
            fingerprint_keys=fingerprint_keys,
            ambiguous_groups=ambiguous,
        )

    def key_for(self, printing: CardPrinting) -> str:
        """Canonical identity key for a printing."""
        oracle_id = _clean_oracle_id(printing.oracle_id)
        if oracle_id:
            return self.oracle_aliases.get(oracle_id, oracle_id)
        fingerprint = printing_fingerprint(printing)
        return self.fingerprint_keys.get(fingerprint, fingerprint)


class IdentityResolver:
    """
    Resolves printing references against the current catalog snapshot.

    Accepted references, in lookup order:
    - Scryfall printing id
    - oracle id (including ids merged into another identity)
    - identity key (oracle id or derived key)
    - derived key since merged into an oracle identity
    """

    def __init__(self, catalog: "CardCatalog") -> None:
        self._catalog = catalog

    def resolve(self, ref: str) -> str:
        """
        Resolve a reference to its canonical identity key.

        Raises:
            CardNotFoundError: If nothing in the catalog matches
        """
        ref = ref.strip()
        if not ref:
            raise CardNotFoundError(ref)

        snapshot = self._catalog.snapshot

        printing = snapshot.printings.get(ref)
        if printing is not None:
            return snapshot.index.key_for(printing)

        alias = snapshot.index.oracle_aliases.get(ref)
        if alias is not None:
            return alias

        if ref in snapshot.identities:
            return ref

        # Derived keys handed out before a twin with an oracle id arrived
        merged = snapshot.index.fingerprint_keys.get(ref)
        if merged is not None:
            return merged

        raise CardNotFoundError(ref)

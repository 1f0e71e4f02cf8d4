"""
Card Catalog Store.

Holds the deduplicated card catalog as an immutable snapshot. Writers build a
complete new snapshot and swap it in with a single assignment, so readers
(scoring, filtering, search) never observe a half-applied import.

INVARIANTS:
- Every printing belongs to exactly one identity
- Printings sharing a resolved key share one CardIdentity
- Identities are enumerated in (name, key) order
- An empty catalog is a service failure, not an empty result
"""

import dataclasses
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from threading import Lock

from manasight.models.card import CardIdentity, CardPrinting
from manasight.models.failure import FailureKind, KnownError
from manasight.services.identity_resolver import IdentityIndex

logger = logging.getLogger(__name__)


class CatalogUnavailableError(KnownError):
    """
    Raised when the catalog cannot enumerate any identities.

    Retrying does not help: the data is structurally missing until the
    next import.
    """

    def __init__(self) -> None:
        super().__init__(
            kind=FailureKind.SERVICE_UNAVAILABLE,
            message="The card catalog is not available.",
            detail="Catalog contains no card identities",
            suggestion="Run the card import job, then retry.",
            status_code=503,
        )


def build_identity(key: str, printings: list[CardPrinting]) -> CardIdentity:
    """
    Collapse the printings of one card into its identity.

    Rules attributes come from a representative printing (one carrying an
    oracle_id wins, then the smallest printing id); facet attributes are
    aggregated across every printing.
    """
    representative = min(printings, key=lambda p: (p.oracle_id is None, p.printing_id))
    oracle_ids = sorted(p.oracle_id for p in printings if p.oracle_id)
    prices = [p.price_usd for p in printings if p.price_usd is not None]

    image_url = representative.image_url()
    if image_url is None:
        image_url = next((p.image_url() for p in printings if p.image_url()), None)

    return CardIdentity(
        key=key,
        oracle_id=oracle_ids[0] if oracle_ids else None,
        name=representative.name,
        type_line=representative.full_type_line,
        oracle_text=representative.full_oracle_text,
        mana_cost=representative.mana_cost,
        cmc=representative.cmc,
        colors=representative.colors,
        color_identity=representative.color_identity,
        keywords=representative.keywords,
        rarities=frozenset(p.rarity for p in printings),
        set_codes=frozenset(p.set_code for p in printings if p.set_code),
        legalities=dict(representative.legalities),
        price_usd=min(prices) if prices else None,
        image_url=image_url,
        printing_ids=tuple(sorted(p.printing_id for p in printings)),
    )


@dataclass(frozen=True)
class CatalogSnapshot:
    """One consistent view of the catalog."""

    printings: dict[str, CardPrinting]
    identities: dict[str, CardIdentity]
    printings_by_identity: dict[str, tuple[str, ...]]
    index: IdentityIndex
    ordered_identities: tuple[CardIdentity, ...]
    version: int = 0

    @classmethod
    def build(cls, printings: Iterable[CardPrinting], version: int = 0) -> "CatalogSnapshot":
        """Group printings by resolved key and build their identities."""
        by_id = {p.printing_id: p for p in printings}
        index = IdentityIndex.build(by_id.values())

        grouped: dict[str, list[CardPrinting]] = {}
        for printing in by_id.values():
            grouped.setdefault(index.key_for(printing), []).append(printing)

        identities = {key: build_identity(key, members) for key, members in grouped.items()}
        ordered = tuple(sorted(identities.values(), key=lambda c: (c.name, c.key)))

        return cls(
            printings=by_id,
            identities=identities,
            printings_by_identity={
                key: tuple(sorted(p.printing_id for p in members))
                for key, members in grouped.items()
            },
            index=index,
            ordered_identities=ordered,
            version=version,
        )


@dataclass(frozen=True)
class CatalogChange:
    """
    Identity keys affected by a catalog write.

    Attributes:
        identity_keys: Keys whose identity was added, removed, or changed
        full_reload: True for a full re-import
        prices_only: True when only prices changed
    """

    identity_keys: frozenset[str] = field(default_factory=frozenset)
    full_reload: bool = False
    prices_only: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.identity_keys and not self.full_reload


def _diff_identities(old: CatalogSnapshot, new: CatalogSnapshot) -> frozenset[str]:
    keys = old.identities.keys() | new.identities.keys()
    return frozenset(k for k in keys if old.identities.get(k) != new.identities.get(k))


class CardCatalog:
    """
    Read contract over the current snapshot plus snapshot-swapping writers.

    Usage:
        catalog = CardCatalog(printings)
        identity = catalog.get_by_key(key)
        printings = catalog.get_all_for_identity(key)
    """

    def __init__(self, printings: Iterable[CardPrinting] = ()) -> None:
        self._write_lock = Lock()
        self._snapshot = CatalogSnapshot.build(printings)

    @property
    def snapshot(self) -> CatalogSnapshot:
        """Current immutable snapshot."""
        return self._snapshot

    def __len__(self) -> int:
        return len(self._snapshot.identities)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_printing(self, printing_id: str) -> CardPrinting | None:
        return self._snapshot.printings.get(printing_id)

    def get_by_key(self, key: str) -> CardIdentity | None:
        """Identity for a resolved key, or None."""
        return self._snapshot.identities.get(key)

    def get_all_for_identity(self, key: str) -> list[CardPrinting]:
        """All printings of an identity, ordered by printing id."""
        snapshot = self._snapshot
        ids = snapshot.printings_by_identity.get(key, ())
        return [snapshot.printings[printing_id] for printing_id in ids]

    def identities(self) -> tuple[CardIdentity, ...]:
        """
        Every identity in (name, key) order.

        Raises:
            CatalogUnavailableError: If the catalog holds no identities
        """
        ordered = self._snapshot.ordered_identities
        if not ordered:
            logger.error("CATALOG_EMPTY", extra={"version": self._snapshot.version})
            raise CatalogUnavailableError()
        return ordered

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def replace_all(self, printings: Iterable[CardPrinting]) -> CatalogChange:
        """Full re-import: the new printings replace everything."""
        with self._write_lock:
            old = self._snapshot
            new = CatalogSnapshot.build(printings, version=old.version + 1)
            self._snapshot = new

        logger.info(
            "CATALOG_REPLACED",
            extra={"printings": len(new.printings), "identities": len(new.identities)},
        )
        return CatalogChange(identity_keys=_diff_identities(old, new), full_reload=True)

    def ingest(self, printings: Iterable[CardPrinting]) -> CatalogChange:
        """
        Incremental load: add or overwrite printings by printing id.

        Existing identities may be re-keyed when a new printing supplies the
        oracle_id an id-less printing was missing.
        """
        incoming = list(printings)
        with self._write_lock:
            old = self._snapshot
            merged = dict(old.printings)
            merged.update((p.printing_id, p) for p in incoming)
            new = CatalogSnapshot.build(merged.values(), version=old.version + 1)
            self._snapshot = new

        changed = _diff_identities(old, new)
        logger.info(
            "CATALOG_INGESTED",
            extra={"printings": len(incoming), "changed_identities": len(changed)},
        )
        return CatalogChange(identity_keys=changed)

    def refresh_prices(self, updates: Mapping[str, Mapping[str, float | None]]) -> CatalogChange:
        """
        Patch prices on existing printings.

        Unknown printing ids are ignored. Returns the identities touched.
        """
        with self._write_lock:
            old = self._snapshot
            merged = dict(old.printings)
            for printing_id, prices in updates.items():
                printing = merged.get(printing_id)
                if printing is None:
                    continue
                merged[printing_id] = dataclasses.replace(
                    printing, prices={**printing.prices, **prices}
                )
            new = CatalogSnapshot.build(merged.values(), version=old.version + 1)
            self._snapshot = new

        changed = _diff_identities(old, new)
        return CatalogChange(identity_keys=changed, prices_only=True)

    def refresh_legalities(self, updates: Mapping[str, Mapping[str, str]]) -> CatalogChange:
        """Patch format legalities on existing printings."""
        with self._write_lock:
            old = self._snapshot
            merged = dict(old.printings)
            for printing_id, legalities in updates.items():
                printing = merged.get(printing_id)
                if printing is None:
                    continue
                merged[printing_id] = dataclasses.replace(
                    printing, legalities={**printing.legalities, **legalities}
                )
            new = CatalogSnapshot.build(merged.values(), version=old.version + 1)
            self._snapshot = new

        return CatalogChange(identity_keys=_diff_identities(old, new))

"""Reply, pair and query models for API sentences."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..errors import NotFoundError

# Filter operators accepted in query words. "" matches on equality.
FILTER_OPS = ("", "=", "-", "<", ">")


@dataclass
class Pair:
    """A key/value attribute.

    ``op`` only matters when the pair is used as a query filter; pairs
    decoded from a reply always carry an empty ``op``.
    """

    key: str
    value: str = ""
    op: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"key": self.key, "value": self.value}


@dataclass
class Reply:
    """One parsed reply.

    ``pairs`` keeps the flat attributes in arrival order. ``sub_pairs``
    holds one mapping per ``!re`` record, as rows of a table.
    """

    pairs: list[Pair] = field(default_factory=list)
    sub_pairs: list[dict[str, str]] = field(default_factory=list)

    def get_pair_val(self, key: str) -> str:
        """Return the value of the first flat pair named ``key``.

        Raises:
            NotFoundError: If no flat pair has that key.
        """
        return get_pair_val(self.pairs, key)

    def get_sub_pair_by_name(self, name: str) -> dict[str, str]:
        """Return the first record whose ``name`` attribute equals ``name``."""
        for record in self.sub_pairs:
            if record.get("name") == name:
                return record
        raise NotFoundError(f"No record named {name!r}")

    def to_dict(self) -> dict:
        return {
            "pairs": [p.to_dict() for p in self.pairs],
            "records": [dict(r) for r in self.sub_pairs],
        }


@dataclass
class Query:
    """Filters, combining operator and property list for a query command."""

    pairs: list[Pair] = field(default_factory=list)
    op: str = ""
    proplist: list[str] = field(default_factory=list)


def get_pair_val(pairs: list[Pair], key: str) -> str:
    """Return the value of the first pair in ``pairs`` named ``key``."""
    for pair in pairs:
        if pair.key == key:
            return pair.value
    raise NotFoundError(f"Key {key!r} not found")

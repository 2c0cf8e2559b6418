"""Range-expression selections of k-points, ions, and orbitals.

A selection string is a whitespace-separated list of tokens:

    * ``i``: the ``i``-th element (1-based)
    * ``-i``: the ``i``-th element counting from the end (``-1`` is the last one)
    * ``a..b``: every element between ``a`` and ``b`` (inclusive), where ``a`` and ``b``
      follow the two rules above
    * ``label``: an orbital label (e.g. ``px``), only when a label table is provided

Tokens are merged into one sorted set of unique indices, e.g. ``"1 3..7 -1"`` against 10
elements selects ``(1, 3, 4, 5, 6, 7, 10)``.
"""

from dataclasses import dataclass
import re
import typing as ty

import numpy as np
import numpy.typing as npt

from .exceptions import ConfigurationError

__all__ = (
    "Selection",
    "IndexToken",
    "RangeToken",
    "LabelToken",
    "is_label",
    "tokenize",
    "resolve_index",
    "resolve_token",
    "parse_selection",
)

_INDEX_RE = re.compile(r"^[+-]?\d+$")
_RANGE_RE = re.compile(r"^([+-]?\d+)\.\.([+-]?\d+)$")
_LABEL_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_\-]*$")


def is_label(text: str) -> bool:
    """Whether `text` can be written as an orbital label token in a selection string."""
    return isinstance(text, str) and _LABEL_RE.fullmatch(text) is not None


@dataclass(frozen=True)
class IndexToken:
    """A single signed index."""

    text: str
    value: int


@dataclass(frozen=True)
class RangeToken:
    """An inclusive range between two signed indices."""

    text: str
    start: int
    stop: int


@dataclass(frozen=True)
class LabelToken:
    """A symbolic label (orbital name)."""

    text: str
    label: str


Token = ty.Union[IndexToken, RangeToken, LabelToken]


@dataclass(frozen=True)
class Selection:
    """Sorted, unique 1-based indices resolved against a collection of `total` elements."""

    indices: ty.Tuple[int, ...]
    total: int

    def __post_init__(self):
        if self.total < 1:
            raise ConfigurationError(f"Cannot select from an empty collection (total={self.total})")
        if any(i < 1 or i > self.total for i in self.indices):
            raise ConfigurationError(f"Selection {self.indices} has indices outside of [1, {self.total}]")
        if list(self.indices) != sorted(set(self.indices)):
            raise ConfigurationError(f"Selection indices {self.indices} must be sorted and unique")

    @classmethod
    def full(cls, total: int) -> "Selection":
        """Select every element of a collection of size `total`."""
        return cls(indices=tuple(range(1, total + 1)), total=total)

    def __len__(self) -> int:
        return len(self.indices)

    def __iter__(self) -> ty.Iterator[int]:
        return iter(self.indices)

    def __contains__(self, index: object) -> bool:
        return index in self.indices

    @property
    def is_full(self) -> bool:
        """True if every element is selected."""
        return len(self.indices) == self.total

    def as_array(self) -> npt.NDArray[np.intp]:
        """0-based indices, suitable for numpy fancy indexing."""
        return np.asarray(self.indices, dtype=np.intp) - 1


def tokenize(spec: str) -> ty.List[Token]:
    """Split a selection string on whitespace and classify each token.

    Args:
        spec (str): selection string, e.g. ``"1 3..7 -1"``.

    Raises:
        ConfigurationError: if a token is neither an integer, a range, nor a label.

    Returns:
        list[Token]: tokens in order of appearance.
    """
    tokens = []
    for text in spec.split():
        if _INDEX_RE.match(text):
            tokens.append(IndexToken(text=text, value=int(text)))
            continue
        match = _RANGE_RE.match(text)
        if match:
            tokens.append(RangeToken(text=text, start=int(match.group(1)), stop=int(match.group(2))))
            continue
        if is_label(text):
            tokens.append(LabelToken(text=text, label=text))
            continue
        raise ConfigurationError(f"Cannot parse selection token '{text}'")
    return tokens


def resolve_index(value: int, total: int, token: str) -> int:
    """Resolve a signed index to an absolute 1-based position.

    Args:
        value (int): positive 1-based index, or negative index counting from the end.
        total (int): number of elements.
        token (str): token text, for error messages.

    Raises:
        ConfigurationError: if the resolved index is outside of [1, total].

    Returns:
        int: 1-based index.
    """
    index = total + value + 1 if value < 0 else value
    if index < 1 or index > total:
        raise ConfigurationError(f"Selection token '{token}' is out of range [1, {total}] (or [-{total}, -1])")
    return index


def resolve_token(
    token: Token, total: int, orbital_table: ty.Optional[ty.Mapping[str, int]] = None
) -> ty.List[int]:
    """Resolve a single token to the 1-based indices it selects."""
    if isinstance(token, IndexToken):
        return [resolve_index(token.value, total, token.text)]
    if isinstance(token, RangeToken):
        start = resolve_index(token.start, total, token.text)
        stop = resolve_index(token.stop, total, token.text)
        if start > stop:
            raise ConfigurationError(
                f"Selection range '{token.text}' is inverted (resolves to {start}..{stop})"
            )
        return list(range(start, stop + 1))
    if orbital_table is None:
        raise ConfigurationError(f"Selection token '{token.text}' is a label, but only indices are allowed here")
    if token.label not in orbital_table:
        known = " ".join(orbital_table)
        raise ConfigurationError(f"Unknown orbital label '{token.text}' (known labels: {known})")
    return [resolve_index(orbital_table[token.label], total, token.text)]


def parse_selection(
    spec: ty.Optional[str], total: int, orbital_table: ty.Optional[ty.Mapping[str, int]] = None
) -> Selection:
    """Parse a selection string into a `Selection`.

    An absent (`None`) or blank string selects everything.

    Args:
        spec (ty.Optional[str]): selection string.
        total (int): number of elements in the collection.
        orbital_table (ty.Optional[ty.Mapping[str, int]]): mapping of orbital labels to
            1-based indices; labels are rejected if not provided.

    Raises:
        ConfigurationError: for unparseable tokens, out-of-range indices, inverted ranges,
            or unknown labels.

    Returns:
        Selection: sorted unique indices.
    """
    if total < 1:
        raise ConfigurationError(f"Cannot select from an empty collection (total={total})")
    if spec is None or not spec.strip():
        return Selection.full(total)

    indices = set()
    for token in tokenize(spec):
        indices.update(resolve_token(token, total, orbital_table))
    return Selection(indices=tuple(sorted(indices)), total=total)

"""
Box constraints ``lower <= x <= upper``.

Each coordinate carries a :class:`BoundType` tag. Inactive sides are stored
as ``-inf``/``+inf`` so that the vector kernels in :mod:`lbfgsb.linalg` can
operate on full-length arrays without branching on the tag.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Sequence, Union

import numpy as np

from .core import InvalidInputError
from .linalg import project_box

ArrayLike = Union[float, Sequence[float], np.ndarray, None]


class BoundType(IntEnum):
    """Which sides of a coordinate are bounded (codes follow ``nbd`` of L-BFGS-B)."""

    FREE = 0
    LOWER = 1
    BOTH = 2
    UPPER = 3


def _as_vector(values: ArrayLike, n: int, fill: float, name: str) -> np.ndarray:
    if values is None:
        return np.full(n, fill, dtype=float)
    arr = np.asarray(values, dtype=float)
    if arr.ndim == 0:
        return np.full(n, float(arr), dtype=float)
    arr = arr.reshape(-1)
    if arr.size != n:
        raise InvalidInputError(
            f"{name} bounds have length {arr.size}, expected {n}."
        )
    return arr.copy()


@dataclass(frozen=True, eq=False)
class Bounds:
    """
    Immutable per-coordinate box.

    Attributes:
        lower: Lower bounds, ``-inf`` where inactive.
        upper: Upper bounds, ``+inf`` where inactive.
        kinds: ``BoundType`` codes as an ``int8`` array.
    """

    lower: np.ndarray
    upper: np.ndarray
    kinds: np.ndarray

    def __post_init__(self) -> None:
        # Own copies; the caller's arrays stay writable.
        object.__setattr__(self, "lower", np.array(self.lower, dtype=float))
        object.__setattr__(self, "upper", np.array(self.upper, dtype=float))
        object.__setattr__(self, "kinds", np.array(self.kinds, dtype=np.int8))
        n = self.kinds.size
        if self.lower.shape != (n,) or self.upper.shape != (n,):
            raise InvalidInputError("Bounds arrays must share one length.")
        if np.any(np.isnan(self.lower)) or np.any(np.isnan(self.upper)):
            raise InvalidInputError("Bounds must not contain NaN.")
        bad = np.flatnonzero(self.lower > self.upper)
        if bad.size:
            i = int(bad[0])
            raise InvalidInputError(
                f"Lower bound exceeds upper bound at index {i}: "
                f"{self.lower[i]} > {self.upper[i]}."
            )
        for arr in (self.lower, self.upper, self.kinds):
            arr.setflags(write=False)

    @classmethod
    def free(cls, n: int) -> "Bounds":
        """Unconstrained box of dimension ``n``."""
        return cls(
            lower=np.full(n, -np.inf),
            upper=np.full(n, np.inf),
            kinds=np.zeros(n, dtype=np.int8),
        )

    @classmethod
    def from_arrays(
        cls,
        lower: ArrayLike = None,
        upper: ArrayLike = None,
        kinds: Optional[Sequence[Union[BoundType, int, str]]] = None,
        n: Optional[int] = None,
    ) -> "Bounds":
        """
        Build bounds from value arrays and optional explicit tags.

        Scalars broadcast to ``n``. Without ``kinds`` the tag of each
        coordinate is inferred from which sides are finite. With ``kinds``,
        the tag wins: values on inactive sides are ignored and values on
        active sides must be finite.
        """
        if n is None:
            for candidate in (kinds, lower, upper):
                if candidate is not None and np.ndim(candidate) > 0:
                    n = len(candidate)  # type: ignore[arg-type]
                    break
            else:
                raise InvalidInputError(
                    "Cannot infer the dimension of scalar-only bounds; pass n."
                )
        lo = _as_vector(lower, n, -np.inf, "lower")
        hi = _as_vector(upper, n, np.inf, "upper")
        if kinds is None:
            codes = np.where(
                np.isfinite(lo),
                np.where(np.isfinite(hi), BoundType.BOTH, BoundType.LOWER),
                np.where(np.isfinite(hi), BoundType.UPPER, BoundType.FREE),
            ).astype(np.int8)
        else:
            if len(kinds) != n:
                raise InvalidInputError(
                    f"Bound tags have length {len(kinds)}, expected {n}."
                )
            codes = np.array([int(_coerce_kind(k)) for k in kinds], dtype=np.int8)
            has_lower = (codes == BoundType.LOWER) | (codes == BoundType.BOTH)
            has_upper = (codes == BoundType.UPPER) | (codes == BoundType.BOTH)
            if np.any(~np.isfinite(lo[has_lower])) or np.any(~np.isfinite(hi[has_upper])):
                raise InvalidInputError("Active bounds must be finite.")
            lo = np.where(has_lower, lo, -np.inf)
            hi = np.where(has_upper, hi, np.inf)
        # -inf upper or +inf lower would make the box empty.
        if np.any(lo == np.inf) or np.any(hi == -np.inf):
            raise InvalidInputError("Bounds describe an empty box.")
        return cls(lower=lo, upper=hi, kinds=codes)

    @property
    def dim(self) -> int:
        return int(self.kinds.size)

    @property
    def is_unconstrained(self) -> bool:
        return bool(np.all(self.kinds == BoundType.FREE))

    @property
    def is_fully_boxed(self) -> bool:
        """True when every coordinate has both bounds."""
        return bool(self.dim) and bool(np.all(self.kinds == BoundType.BOTH))

    def types(self) -> list[BoundType]:
        return [BoundType(int(k)) for k in self.kinds]

    def project(self, x: np.ndarray) -> np.ndarray:
        return project_box(x, self.lower, self.upper)

    def contains(self, x: np.ndarray, tol: float = 0.0) -> bool:
        return bool(np.all(x >= self.lower - tol) and np.all(x <= self.upper + tol))

    def __repr__(self) -> str:
        return f"Bounds(dim={self.dim}, constrained={int(np.count_nonzero(self.kinds))})"


def _coerce_kind(kind: Union[BoundType, int, str]) -> BoundType:
    if isinstance(kind, str):
        try:
            return BoundType[kind.strip().upper()]
        except KeyError:
            raise InvalidInputError(f"Unknown bound tag {kind!r}.") from None
    try:
        return BoundType(int(kind))
    except ValueError:
        raise InvalidInputError(f"Unknown bound tag {kind!r}.") from None


__all__ = ["BoundType", "Bounds"]

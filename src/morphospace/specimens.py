"""
Specimen-by-variable matrices.

Rows are specimens (or taxonomic units), columns are measured variables.
A matrix carries exactly one kind of variable: landmark coordinates,
Fourier harmonic coefficients, continuous traits, or discrete characters.
Downstream distance and ordination functions rely on that homogeneity.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Hashable, Sequence

import numpy as np
import pandas as pd

from morphospace.errors import ShapeMismatchError

if TYPE_CHECKING:
    from numpy.typing import NDArray


class VariableKind(enum.Enum):
    COORDINATES = "coordinates"
    HARMONICS = "harmonics"
    TRAITS = "traits"
    CHARACTERS = "characters"

    @property
    def is_numeric(self) -> bool:
        return self is not VariableKind.CHARACTERS


@dataclass(frozen=True)
class SpecimenMatrix:
    """A labelled specimen-by-variable table of a single variable kind.

    Attributes:
        data: DataFrame indexed by specimen label, one column per variable
        kind: The variable kind shared by every column
    """

    data: pd.DataFrame
    kind: VariableKind = VariableKind.TRAITS

    def __post_init__(self) -> None:
        if not isinstance(self.kind, VariableKind):
            object.__setattr__(self, "kind", VariableKind(self.kind))

        data = self.data.copy()
        data.index = data.index.map(str)
        data.columns = data.columns.map(str)
        object.__setattr__(self, "data", data)

        if data.shape[0] == 0 or data.shape[1] == 0:
            raise ShapeMismatchError(
                f"Specimen matrix needs at least one row and one column, got {data.shape}"
            )
        if not data.index.is_unique:
            duplicated = sorted(set(data.index[data.index.duplicated()]))
            raise ValueError(f"Duplicate specimen labels: {', '.join(duplicated)}")
        if not data.columns.is_unique:
            raise ValueError("Variable names must be unique")

        if self.kind.is_numeric:
            non_numeric = [
                col for col in data.columns
                if not pd.api.types.is_numeric_dtype(data[col])
            ]
            if non_numeric:
                raise TypeError(
                    f"{self.kind.value} matrix has non-numeric columns: "
                    f"{', '.join(non_numeric)}"
                )

    @property
    def n_specimens(self) -> int:
        return self.data.shape[0]

    @property
    def n_variables(self) -> int:
        return self.data.shape[1]

    @property
    def labels(self) -> list[str]:
        return list(self.data.index)

    @property
    def variables(self) -> list[str]:
        return list(self.data.columns)

    @property
    def values(self) -> NDArray:
        """Matrix values; float for numeric kinds, object for characters."""
        if self.kind.is_numeric:
            return self.data.to_numpy(dtype=float)
        return self.data.to_numpy(dtype=object)

    @property
    def has_missing(self) -> bool:
        return bool(self.data.isna().to_numpy().any())

    @classmethod
    def from_array(
        cls,
        values: NDArray | Sequence[Sequence],
        labels: Sequence[Hashable] | None = None,
        columns: Sequence[Hashable] | None = None,
        kind: VariableKind | str = VariableKind.TRAITS,
    ) -> SpecimenMatrix:
        """Build a matrix from a 2D array.

        Args:
            values: Values, shape (n_specimens, n_variables)
            labels: Specimen labels; defaults to ``specimen_1`` ...
            columns: Variable names; defaults to ``V1`` ...
            kind: Variable kind of every column

        Returns:
            SpecimenMatrix
        """
        values = np.asarray(values)
        if values.ndim != 2:
            raise ShapeMismatchError(
                f"Expected a 2D array (n_specimens, n_variables), got {values.ndim}D"
            )
        n_specimens, n_variables = values.shape
        if labels is None:
            labels = [f"specimen_{i + 1}" for i in range(n_specimens)]
        if columns is None:
            columns = [f"V{j + 1}" for j in range(n_variables)]
        if len(labels) != n_specimens:
            raise ShapeMismatchError(
                f"Got {len(labels)} labels for {n_specimens} specimens"
            )
        frame = pd.DataFrame(values, index=list(labels), columns=list(columns))
        return cls(frame, kind)

    @classmethod
    def from_landmarks(
        cls,
        landmarks: NDArray[np.floating],
        labels: Sequence[Hashable] | None = None,
    ) -> SpecimenMatrix:
        """Flatten a landmark stack into a coordinates matrix.

        Each specimen becomes one row laid out as ``x1..xp, y1..yp[, z1..zp]``.

        Args:
            landmarks: Coordinates, shape (n_landmarks, n_dims, n_specimens)
            labels: Specimen labels

        Returns:
            SpecimenMatrix of kind COORDINATES
        """
        landmarks = np.asarray(landmarks, dtype=float)
        if landmarks.ndim != 3:
            raise ShapeMismatchError(
                "Expected landmarks of shape (n_landmarks, n_dims, n_specimens), "
                f"got {landmarks.shape}"
            )
        n_landmarks, n_dims, n_specimens = landmarks.shape
        flat = np.zeros((n_specimens, n_landmarks * n_dims))
        for i in range(n_specimens):
            flat[i, :] = landmarks[:, :, i].reshape(-1, order="F")

        axes = "xyzw"[:n_dims] if n_dims <= 4 else [f"d{d + 1}" for d in range(n_dims)]
        columns = [f"{axis}{j + 1}" for axis in axes for j in range(n_landmarks)]
        return cls.from_array(flat, labels, columns, VariableKind.COORDINATES)

    def to_landmarks(self, n_dims: int) -> NDArray[np.floating]:
        """Reshape a coordinates matrix back into a landmark stack.

        Args:
            n_dims: Number of dimensions per landmark (2 or 3)

        Returns:
            Coordinates, shape (n_landmarks, n_dims, n_specimens)
        """
        if self.kind is not VariableKind.COORDINATES:
            raise TypeError(f"Cannot reshape a {self.kind.value} matrix into landmarks")
        if self.n_variables % n_dims:
            raise ShapeMismatchError(
                f"{self.n_variables} coordinates do not divide into {n_dims} dimensions"
            )
        n_landmarks = self.n_variables // n_dims
        values = self.values
        landmarks = np.zeros((n_landmarks, n_dims, self.n_specimens))
        for i in range(self.n_specimens):
            landmarks[:, :, i] = values[i].reshape(n_landmarks, n_dims, order="F")
        return landmarks

    def subset(self, labels: Sequence[Hashable]) -> SpecimenMatrix:
        """Keep the named specimens, in the order given."""
        labels = [str(label) for label in labels]
        missing = [label for label in labels if label not in self.data.index]
        if missing:
            raise KeyError(f"Unknown specimens: {', '.join(missing)}")
        return SpecimenMatrix(self.data.loc[labels], self.kind)

    def drop_variables(self, columns: Sequence[Hashable]) -> SpecimenMatrix:
        return SpecimenMatrix(self.data.drop(columns=[str(c) for c in columns]), self.kind)

    def __len__(self) -> int:
        return self.n_specimens

    def __repr__(self) -> str:
        return (
            f"SpecimenMatrix(kind={self.kind.value}, "
            f"n_specimens={self.n_specimens}, n_variables={self.n_variables})"
        )

"""
Summaries of analysis results as tables and text.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence, Union

import numpy as np
import pandas as pd

from morphospace.efourier import HarmonicPowerCalibration
from morphospace.ordination import OrdinationResult
from morphospace.stats import PermanovaResult

if TYPE_CHECKING:
    from numpy.typing import NDArray

SUMMARY_LABELS = ["Min.", "1st Qu.", "Median", "Mean", "3rd Qu.", "Max."]

Section = Union[pd.DataFrame, pd.Series, str]


def summarize(values: NDArray | pd.Series | Sequence[float]) -> pd.Series:
    """Six-number summary: min, quartiles, median, mean and max.

    Missing values are ignored; quartiles use linear interpolation.
    """
    values = np.asarray(values, dtype=float)
    values = values[~np.isnan(values)]
    if values.size == 0:
        raise ValueError("Cannot summarize an empty set of values")
    q1, median, q3 = np.percentile(values, [25, 50, 75])
    return pd.Series(
        [values.min(), q1, median, values.mean(), q3, values.max()],
        index=SUMMARY_LABELS,
    )


def variance_table(result: OrdinationResult) -> pd.DataFrame:
    """Eigenvalue, proportion and cumulative proportion of each axis."""
    return pd.DataFrame(
        {
            "eigenvalue": result.eigenvalues,
            "proportion": result.variance_explained,
            "cumulative": np.cumsum(result.variance_explained),
        },
        index=pd.Index(result.scores.columns, name="axis"),
    )


def calibration_table(calibration: HarmonicPowerCalibration) -> pd.DataFrame:
    """Minimum harmonics for each power threshold, with the spread of power there."""
    rows = {}
    for threshold, harmonic in calibration.min_harmonics.items():
        row = {"harmonics": harmonic}
        if harmonic is not None:
            row.update(summarize(calibration.power_at(harmonic)).to_dict())
        rows[f"{threshold:g}%"] = row
    table = pd.DataFrame.from_dict(rows, orient="index")
    table.index.name = "threshold"
    return table


def permanova_table(result: PermanovaResult) -> pd.Series:
    return pd.Series(
        {
            "pseudo-F": result.statistic,
            "R2": result.r_squared,
            "p": result.p_value,
            "df (between)": result.df_between,
            "df (within)": result.df_within,
            "permutations": result.permutations,
        },
        name="PERMANOVA",
    )


def format_report(*sections: tuple[str, Section], float_format: str = "{:.4g}") -> str:
    """Render titled tables as plain text.

    Args:
        sections: ``(title, table)`` pairs; a table may be a DataFrame,
            a Series or preformatted text
        float_format: Format applied to floating point cells

    Returns:
        Report text
    """
    formatter = float_format.format
    blocks = []
    for title, body in sections:
        if isinstance(body, (pd.DataFrame, pd.Series)):
            text = body.to_string(float_format=formatter)
        else:
            text = str(body)
        blocks.append(f"{title}\n{'-' * len(title)}\n{text}")
    return "\n\n".join(blocks) + "\n"

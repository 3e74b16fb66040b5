"""レポートモジュール

解析結果を構造化されたレコードの列に変換し、
固定幅テキストまたは JSON として整形する。
"""

from __future__ import annotations

import json
from typing import Any

from errcalc.estimators import BlockEstimate
from errcalc.runner import AnalysisResult

_LABEL_WIDTH = 39
_FIELD_WIDTH = 15

_TABLE_NOTES = (
    "Plateau at large tblock (small nblock)",
    "should agree quite well with exact error estimate",
    "Can plot SI or error**2 against 1/tblock",
)


def report_records(result: AnalysisResult) -> list[dict[str, Any]]:
    """解析結果を出力順のレコードのリストに変換する。

    Returns:
        section キーを持つ辞書のリスト。順序は
        config, process, exact, multi_run, naive, traditional, flyvbjerg_petersen。
    """
    run = result.config.run
    process = result.config.process
    coeffs = result.coefficients
    multi = result.multi_run
    return [
        {
            "section": "config",
            "nstep": run.nstep,
            "nequil": run.nequil,
            "delta": run.delta,
            "average": run.average,
            "variance": run.variance,
        },
        {
            "section": "process",
            "m": process.m,
            "kappa": process.kappa,
            "e": coeffs.e,
            "b": coeffs.b,
            "d": coeffs.d,
            "stddev": coeffs.stddev,
        },
        {
            "section": "exact",
            "tcor": result.exact.tcor,
            "run_over_tcor": result.exact.run_over_tcor,
            "si": result.exact.si,
            "error": result.exact.error,
        },
        {
            "section": "multi_run",
            "n_repeat": multi.n_repeat,
            "mean": multi.mean,
            "error": multi.error,
        },
        {
            "section": "naive",
            "mean": result.naive.mean,
            "variance": result.naive.variance,
            "error": result.naive.error,
        },
        {
            "section": "traditional",
            "rows": [row.to_dict() for row in result.traditional],
        },
        {
            "section": "flyvbjerg_petersen",
            "rows": [row.to_dict() for row in result.flyvbjerg],
        },
    ]


def report_json(result: AnalysisResult) -> str:
    """レコードを JSON 文字列にする"""
    return json.dumps(report_records(result), indent=2)


def _line(label: str, value: float | int | None, fmt: str) -> str:
    if value is None:
        text = "n/a".rjust(_FIELD_WIDTH)
    else:
        text = format(value, f"{_FIELD_WIDTH}{fmt}")
    # 数値欄は常に40桁目から始める
    return f"{label[:_LABEL_WIDTH]:<{_LABEL_WIDTH}}{text}"


def _table(rows: list[BlockEstimate]) -> list[str]:
    header = ("tblock", "nblock", "error estimate", "estimate of SI")
    lines = ["".join(h.rjust(_FIELD_WIDTH) for h in header)]
    for row in rows:
        lines.append(
            f"{row.block_length:{_FIELD_WIDTH}d}"
            f"{row.num_blocks:{_FIELD_WIDTH}d}"
            f"{row.error_estimate:{_FIELD_WIDTH}.6f}"
            f"{row.statistical_inefficiency:{_FIELD_WIDTH}.6f}"
        )
    lines.extend(_TABLE_NOTES)
    return lines


def format_report(result: AnalysisResult) -> str:
    """人間が読みやすい固定幅のレポートを生成する。"""
    run = result.config.run
    process = result.config.process
    exact = result.exact
    multi = result.multi_run
    naive = result.naive

    lines = [
        _line("Number of steps in run = ", run.nstep, "d"),
        _line("Equilibration steps = ", run.nequil, "d"),
        _line("Time step delta = ", run.delta, ".5f"),
        _line("Desired average value = ", run.average, ".5f"),
        _line("Desired variance = ", run.variance, ".5f"),
        _line("m ", process.m, ".5f"),
        _line("kappa ", process.kappa, ".5f"),
        _line("Exact correlation time in steps = ", exact.tcor, ".6f"),
        _line("Run length / correlation time = ", exact.run_over_tcor, ".6f"),
        _line("Exact value of SI = ", exact.si, ".6f"),
        _line("Exact error estimate = ", exact.error, ".6f"),
        "",
        _line("Number of independent runs = ", multi.n_repeat, "d"),
        _line("Average value = ", multi.mean, ".6f"),
        _line("Empirical error estimate = ", multi.error, ".6f"),
        "This should be in reasonable agreement with exact error estimate",
        "",
        _line("Sample average value = ", naive.mean, ".5f"),
        _line("Deviation from exact average = ", naive.mean - run.average, ".5f"),
        "Deviation should (typically) lie within +/- exact error estimate",
        _line("Sample variance = ", naive.variance, ".5f"),
        _line("Error estimate neglecting correlations=", naive.error, ".5f"),
        "This should be very over-optimistic!",
        "",
        "Traditional block averaging",
        *_table(result.traditional),
        "",
        "Flyvbjerg-Petersen blocking",
        *_table(result.flyvbjerg),
    ]
    return "\n".join(lines)

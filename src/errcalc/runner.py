"""実行エンジンモジュール

データ生成、独立ランの繰り返しによる経験的誤差推定、
単一ランに対する各種誤差推定を1本のパイプラインとして実行する。
"""

from __future__ import annotations

import logging
import math
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field

import numpy as np
import numpy.typing as npt

from errcalc.config import Config, ProcessConfig, RunConfig
from errcalc.estimators import (
    BlockEstimate,
    ExactResult,
    NaiveResult,
    block_average,
    exact_error,
    flyvbjerg_petersen,
    naive_error,
)
from errcalc.process import (
    ProcessCoefficients,
    generate_sequence,
    make_rng,
    process_coefficients,
)

logger = logging.getLogger(__name__)


# =============================================================================
# データ構造
# =============================================================================


@dataclass
class MultiRunResult:
    """独立ランの繰り返しから求めた平均値の分布

    n_repeat が 1 の場合、分散と誤差は定義できないので None。
    last_sequence は最後のランの生データで、単一ラン解析に引き渡す。
    """

    n_repeat: int
    mean: float
    variance: float | None
    error: float | None
    run_means: npt.NDArray[np.float64]
    last_sequence: npt.NDArray[np.float64]


@dataclass
class AnalysisResult:
    """パイプライン全体の結果"""

    config: Config
    coefficients: ProcessCoefficients
    exact: ExactResult
    multi_run: MultiRunResult
    naive: NaiveResult
    traditional: list[BlockEstimate] = field(default_factory=list)
    flyvbjerg: list[BlockEstimate] = field(default_factory=list)
    walltime_seconds: float = 0.0


# =============================================================================
# 独立ランの繰り返し
# =============================================================================


def _run_once(
    run: RunConfig,
    process: ProcessConfig,
    coefficients: ProcessCoefficients,
    seed_seq: np.random.SeedSequence,
    keep_sequence: bool,
) -> tuple[float, npt.NDArray[np.float64] | None]:
    """1本のランを生成し、ラン平均（と必要なら生データ）を返す。"""
    rng = make_rng(seed_seq)
    sequence = generate_sequence(run, process, rng, coefficients)
    return float(np.mean(sequence)), (sequence if keep_sequence else None)


def run_repeats(
    run: RunConfig,
    process: ProcessConfig,
    *,
    n_repeat: int = 50,
    seed: int | None = None,
    max_workers: int = 1,
) -> MultiRunResult:
    """独立なランを n_repeat 回行い、ラン平均のばらつきから誤差を直接推定する。

    各ランは SeedSequence.spawn による独立な部分乱数列を使う。
    ラン平均はランの番号順に並べてから集計するので、
    max_workers によらず結果は同一になる。

    Parameters
    ----------
    run : RunConfig
        ラン長・時間刻みなど
    process : ProcessConfig
        メモリ関数の係数
    n_repeat : int
        ランの繰り返し回数
    seed : int | None
        乱数シード。None の場合は OS のエントロピー源を使う。
    max_workers : int
        並列ワーカー数。1 の場合は逐次実行。

    Returns
    -------
    MultiRunResult
        ラン平均の平均・バイアス補正済み分散・誤差と、最後のランのデータ

    Raises
    ------
    ValueError
        n_repeat または max_workers が 1 未満の場合
    """
    if n_repeat < 1:
        raise ValueError(f"n_repeat は 1 以上が必要です: {n_repeat}")
    if max_workers < 1:
        raise ValueError(f"max_workers は 1 以上が必要です: {max_workers}")

    coefficients = process_coefficients(run.delta, process.kappa, run.variance)
    children = np.random.SeedSequence(seed).spawn(n_repeat)
    run_means = np.empty(n_repeat, dtype=np.float64)
    last_sequence: npt.NDArray[np.float64] | None = None
    last = n_repeat - 1

    if max_workers == 1:
        for i_repeat, child in enumerate(children):
            a_run, sequence = _run_once(run, process, coefficients, child, i_repeat == last)
            run_means[i_repeat] = a_run
            if sequence is not None:
                last_sequence = sequence
            logger.debug("repeat %d/%d: ラン平均 %.6f", i_repeat + 1, n_repeat, a_run)
    else:
        with ProcessPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                executor.submit(
                    _run_once, run, process, coefficients, child, i_repeat == last
                ): i_repeat
                for i_repeat, child in enumerate(children)
            }
            for future in as_completed(futures):
                i_repeat = futures[future]
                a_run, sequence = future.result()
                run_means[i_repeat] = a_run
                if sequence is not None:
                    last_sequence = sequence
                logger.debug("repeat %d/%d: ラン平均 %.6f", i_repeat + 1, n_repeat, a_run)

    assert last_sequence is not None

    a_avg = float(np.mean(run_means))
    variance: float | None = None
    error: float | None = None
    if n_repeat > 1:
        # バイアス補正済みの分散
        variance = float(np.sum((run_means - a_avg) ** 2)) / (n_repeat - 1)
        error = math.sqrt(variance)

    return MultiRunResult(
        n_repeat=n_repeat,
        mean=a_avg,
        variance=variance,
        error=error,
        run_means=run_means,
        last_sequence=last_sequence,
    )


# =============================================================================
# パイプライン
# =============================================================================


def run_analysis(config: Config, *, max_workers: int = 1) -> AnalysisResult:
    """設定から時系列を生成し、全ての誤差推定を行う。

    厳密解 → 独立ランの繰り返し → 最後のランに対する
    独立仮定の推定 → 従来のブロック平均 → Flyvbjerg-Petersen の順に実行する。
    単一ランの3つの解析は、同じデータのそれぞれ独立したコピーを使う。

    Parameters
    ----------
    config : Config
        解析設定
    max_workers : int
        独立ランの並列ワーカー数

    Returns
    -------
    AnalysisResult
        全段階の結果
    """
    start = time.monotonic()
    run = config.run
    process = config.process
    analysis = config.analysis

    coefficients = process_coefficients(run.delta, process.kappa, run.variance)
    logger.debug(
        "係数: e=%.6g, b=%.6g, d=%.6g, stddev=%.6g",
        coefficients.e,
        coefficients.b,
        coefficients.d,
        coefficients.stddev,
    )

    exact = exact_error(process.m, run.delta, run.variance, run.nstep)
    logger.info("厳密解: tcor=%.3f, SI=%.3f, error=%.6f", exact.tcor, exact.si, exact.error)

    multi_run = run_repeats(
        run,
        process,
        n_repeat=analysis.n_repeat,
        seed=config.seed.get_seed(),
        max_workers=max_workers,
    )
    logger.info("%d 回の独立ラン完了: error=%s", multi_run.n_repeat, multi_run.error)

    naive = naive_error(multi_run.last_sequence.copy())
    traditional = block_average(naive.centered.copy(), naive.variance, analysis.nblocks)
    flyvbjerg = list(flyvbjerg_petersen(naive.centered.copy(), naive.variance))
    logger.info(
        "ブロック平均完了: 従来法 %d 行, Flyvbjerg-Petersen %d 行",
        len(traditional),
        len(flyvbjerg),
    )

    return AnalysisResult(
        config=config,
        coefficients=coefficients,
        exact=exact,
        multi_run=multi_run,
        naive=naive,
        traditional=traditional,
        flyvbjerg=flyvbjerg,
        walltime_seconds=time.monotonic() - start,
    )

"""誤差推定モジュール

相関のある時系列データの平均値の統計誤差を推定する。

主な機能:
- exact_error: GLE 過程の厳密な相関時間・統計的非効率・誤差
- naive_error: 独立性を仮定した（相関データでは過小な）誤差
- block_average: ブロック数を固定しブロック長を変える従来のブロック平均
- flyvbjerg_petersen: Flyvbjerg-Petersen の繰り返しブロッキング変換

ブロック平均の2手法はどちらも BlockEstimate の列を返す。
大きなブロック長（少ないブロック数）でのプラトーが
厳密な誤差とよく一致するはずである。
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

logger = logging.getLogger(__name__)


# =============================================================================
# データ構造
# =============================================================================


@dataclass(frozen=True)
class ExactResult:
    """厳密に計算できる相関時間と誤差"""

    tcor: float
    si: float
    error: float
    run_over_tcor: float


@dataclass(frozen=True)
class NaiveResult:
    """独立性を仮定した推定の結果

    centered は平均を引いたデータのコピーで、ブロック平均の入力になる。
    """

    mean: float
    variance: float
    error: float
    centered: npt.NDArray[np.float64]


@dataclass(frozen=True)
class BlockEstimate:
    """ブロック平均の1行分の結果"""

    block_length: int
    num_blocks: int
    error_estimate: float
    statistical_inefficiency: float

    def to_dict(self) -> dict[str, float | int]:
        return {
            "block_length": self.block_length,
            "num_blocks": self.num_blocks,
            "error_estimate": self.error_estimate,
            "statistical_inefficiency": self.statistical_inefficiency,
        }


# =============================================================================
# 厳密解
# =============================================================================


def exact_error(m: float, delta: float, variance: float, nstep: int) -> ExactResult:
    """GLE 過程の厳密な相関時間、統計的非効率 (SI)、平均値の誤差を計算する。

    相関時間はメモリ関数で決まり、1/m をステップ数で表したもの。
    SI = 2 * tcor、誤差 = sqrt(SI * variance / nstep)。

    Parameters
    ----------
    m : float
        メモリ関数の係数
    delta : float
        時間刻み
    variance : float
        データの分散
    nstep : int
        ランの長さ（ステップ数）

    Returns
    -------
    ExactResult
        tcor, si, error と、ラン長/相関時間
    """
    tcor = 1.0 / (m * delta)
    si = 2.0 * tcor
    error = math.sqrt(si * variance / nstep)
    return ExactResult(tcor=tcor, si=si, error=error, run_over_tcor=nstep / tcor)


# =============================================================================
# 独立性を仮定した推定
# =============================================================================


def naive_error(data: npt.ArrayLike) -> NaiveResult:
    """サンプルが独立であると仮定して平均値の誤差を計算する。

    正の自己相関があるデータでは誤差を系統的に過小評価する。
    比較用の基準としてのみ使う。

    Raises
    ------
    ValueError
        サンプル数が2未満の場合
    """
    centered = np.array(data, dtype=np.float64)
    n = centered.size
    if centered.ndim != 1 or n < 2:
        raise ValueError(f"2個以上の1次元データが必要です: shape={centered.shape}")

    mean = float(np.mean(centered))
    centered -= mean
    variance = float(np.sum(centered**2) / (n - 1))
    error = math.sqrt(variance / n)
    return NaiveResult(mean=mean, variance=variance, error=error, centered=centered)


# =============================================================================
# ブロック平均
# =============================================================================


def _check_inputs(data: npt.ArrayLike, var_1: float) -> npt.NDArray[np.float64]:
    arr = np.array(data, dtype=np.float64)
    if arr.ndim != 1:
        raise ValueError(f"1次元データが必要です: shape={arr.shape}")
    if not var_1 > 0:
        raise ValueError(f"var_1 は正の値が必要です: {var_1}")
    return arr


def block_average(
    centered: npt.ArrayLike,
    var_1: float,
    nblocks: Iterable[int] = range(20, 3, -1),
) -> list[BlockEstimate]:
    """ブロック数を固定し、ブロック長を変えてブロック平均を行う。

    各 nblock について、ブロック長 tblock = n // nblock（切り捨て）、
    実際に使うラン長 trun = nblock * tblock として、
    各ブロック平均の trun 区間平均からのずれの分散からの誤差を推定する。

    Args:
        centered: 平均を引いたデータ。変更されない。
        var_1: 元データの分散（SI の規格化に使う）。
        nblocks: ブロック数の列。この順に結果を返す。

    Returns:
        nblock ごとの BlockEstimate のリスト。tblock が 0 になる nblock は飛ばす。

    Raises
    ------
    ValueError
        データが1次元でない、var_1 が正でない、nblock が2未満の場合
    """
    data = _check_inputs(centered, var_1)
    n = data.size
    results: list[BlockEstimate] = []

    for nblock in nblocks:
        if nblock < 2:
            raise ValueError(f"nblock は 2 以上が必要です: {nblock}")
        tblock = n // nblock
        if tblock == 0:
            logger.debug("nblock=%d はデータ長 %d より大きいのでスキップ", nblock, n)
            continue
        trun = nblock * tblock
        run = data[:trun]
        a_run = float(np.mean(run))
        # ブロックごとの平均値のずれ
        a_blk = (run - a_run).reshape(nblock, tblock).mean(axis=1)
        a_var = float(np.sum(a_blk**2)) / (nblock - 1)
        results.append(
            BlockEstimate(
                block_length=tblock,
                num_blocks=nblock,
                error_estimate=math.sqrt(a_var / nblock),
                statistical_inefficiency=tblock * a_var / var_1,
            )
        )

    return results


def flyvbjerg_petersen(centered: npt.ArrayLike, var_1: float) -> Iterator[BlockEstimate]:
    """Flyvbjerg-Petersen のブロッキング変換を繰り返し、各段階の推定を返す。

    H. Flyvbjerg and H.G. Petersen, J. Chem. Phys. 91, 461 (1989)

    各段階で隣り合う2点の平均をとってデータ長を半分にし（奇数なら末尾を捨てる）、
    平均を引き直してから分散・誤差・SI を計算する。ブロック数が3未満に
    なった時点で終了する。ブロック長は段階ごとに2倍になるので、
    プラトーはブロッキング変換の回数 log2(tblock) に対して探すとよい。

    入力のコピーを作業領域として使うので、呼び出し側の配列は変更されない。
    やり直す場合は元の centered で再度呼び出す。

    Args:
        centered: 平均を引いたデータ。
        var_1: 元データの分散（SI の規格化に使う）。

    Returns:
        各ブロッキング段階の BlockEstimate を順に返すイテレータ。

    Raises
    ------
    ValueError
        1次元でないデータ、または var_1 が正でない場合（呼び出し時点で送出）
    """
    work = _check_inputs(centered, var_1)
    return _blocking_transforms(work, var_1)


def _blocking_transforms(work: npt.NDArray[np.float64], var_1: float) -> Iterator[BlockEstimate]:
    nblock = work.size
    tblock = 1

    while True:
        nblock //= 2
        tblock *= 2
        if nblock < 3:
            break
        work = 0.5 * (work[0 : 2 * nblock : 2] + work[1 : 2 * nblock : 2])
        work -= np.mean(work)
        a_var = float(np.sum(work**2)) / (nblock - 1)
        yield BlockEstimate(
            block_length=tblock,
            num_blocks=nblock,
            error_estimate=math.sqrt(a_var / nblock),
            statistical_inefficiency=tblock * a_var / var_1,
        )

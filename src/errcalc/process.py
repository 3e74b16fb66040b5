"""相関データ生成モジュール

メモリ関数を単一の減衰指数関数で表した一般化 Langevin 方程式 (GLE) に
従う確率過程を積分し、相関のある時系列データを生成する。

参考文献:
- G. Ciccotti and J.P. Ryckaert, Mol. Phys. 40, 141 (1980)
- A.D. Baczewski and S.D. Bond, J. Chem. Phys. 139, 044107 (2013)

相関時間はおよそ 1/(m*delta) ステップで、統計的非効率は厳密に
2/(m*delta) となる（estimators.exact_error を参照）。
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from errcalc.config import ProcessConfig, RunConfig

logger = logging.getLogger(__name__)

# x = delta*kappa がこれ以下なら Taylor 展開を使う
TAYLOR_THRESHOLD = 1.0e-4

# 1 - exp(-2x) = x*(b1 + x*(b2 + x*(b3 + x*b4))) + O(x^5)
_B1, _B2, _B3, _B4 = 2.0, -2.0, 4.0 / 3.0, -2.0 / 3.0
# 1 - exp(-x) = x*(d1 + x*(d2 + x*(d3 + x*d4))) + O(x^5)
_D1, _D2, _D3, _D4 = 1.0, -1.0 / 2.0, 1.0 / 6.0, -1.0 / 24.0


@dataclass(frozen=True)
class ProcessCoefficients:
    """積分アルゴリズムで使う係数

    e は B&B 論文の theta、b は alpha に対応する。
    stddev はデータではなくランダム力の標準偏差。
    """

    e: float
    b: float
    d: float
    stddev: float


def closed_form_terms(x: float) -> tuple[float, float]:
    """(1 - exp(-2x), 1 - exp(-x)) を直接計算する"""
    return 1.0 - math.exp(-2.0 * x), 1.0 - math.exp(-x)


def taylor_terms(x: float) -> tuple[float, float]:
    """(1 - exp(-2x), 1 - exp(-x)) を x の4次までの Taylor 展開で計算する

    小さい x で 1 - exp(...) の桁落ちを避けるため。
    """
    b_raw = x * (_B1 + x * (_B2 + x * (_B3 + x * _B4)))
    d = x * (_D1 + x * (_D2 + x * (_D3 + x * _D4)))
    return b_raw, d


def process_coefficients(delta: float, kappa: float, variance: float) -> ProcessCoefficients:
    """時間刻み、減衰率、目標分散から積分係数を計算する。

    Parameters
    ----------
    delta : float
        時間刻み
    kappa : float
        メモリ関数の減衰率
    variance : float
        生成データの目標分散（温度に相当）

    Returns
    -------
    ProcessCoefficients
        係数 e, b, d, stddev
    """
    x = delta * kappa
    e = math.exp(-x)
    if x > TAYLOR_THRESHOLD:
        b_raw, d = closed_form_terms(x)
    else:
        b_raw, d = taylor_terms(x)
    b = math.sqrt(b_raw) * math.sqrt(kappa / 2.0)
    stddev = math.sqrt(2.0 * variance)
    return ProcessCoefficients(e=e, b=b, d=d, stddev=stddev)


def make_rng(seed: int | np.random.SeedSequence | None = None) -> np.random.Generator:
    """乱数生成器を作成する。seed が None の場合は OS のエントロピー源を使う。"""
    return np.random.default_rng(seed)


def generate_sequence(
    run: RunConfig,
    process: ProcessConfig,
    rng: np.random.Generator,
    coefficients: ProcessCoefficients | None = None,
) -> npt.NDArray[np.float64]:
    """GLE を積分して長さ nstep の時系列を1本生成する。

    t = -nequil, ..., nstep について対称分割積分を行い、
    t <= 0 の出力は平衡化として捨てる。状態変数 at, s は毎回 0 から始める。

    Args:
        run: ステップ数・時間刻み・目標平均と分散。
        process: メモリ関数の係数 m, kappa。
        rng: 正規乱数の供給源。
        coefficients: 計算済みの係数。None の場合はここで計算する。

    Returns:
        長さ nstep の float64 配列。
    """
    if coefficients is None:
        coefficients = process_coefficients(run.delta, process.kappa, run.variance)

    e, b, d = coefficients.e, coefficients.b, coefficients.d
    m = process.m
    half_delta = 0.5 * run.delta
    dm = d * m
    b_sqrt_m = b * math.sqrt(m)

    # 1ステップ1個ずつ引くのと同じ乱数列になる
    n_total = run.nequil + run.nstep + 1
    zetas = rng.normal(0.0, coefficients.stddev, size=n_total).tolist()

    out = np.empty(run.nstep, dtype=np.float64)
    at = 0.0
    s = 0.0
    t = -run.nequil
    for zeta in zetas:
        at += half_delta * s
        s = e * s - dm * at + b_sqrt_m * zeta
        at += half_delta * s
        if t > 0:
            out[t - 1] = at
        t += 1

    out += run.average
    return out

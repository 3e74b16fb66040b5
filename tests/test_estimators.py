"""誤差推定モジュールのテスト

conftest.py により np.random.seed(42) が全テストで自動適用される。
"""
from __future__ import annotations

import math

import numpy as np
import pytest

from errcalc.estimators import (
    BlockEstimate,
    block_average,
    exact_error,
    flyvbjerg_petersen,
    naive_error,
)

# ============================================================
# Round 1: exact_error
# ============================================================


class TestExactError:
    """厳密解のテスト"""

    def test_厳密解_過減衰の例で既知の値(self) -> None:
        result = exact_error(m=0.25, delta=0.01, variance=1.0, nstep=65536)
        assert result.tcor == pytest.approx(400.0)
        assert result.si == pytest.approx(800.0)
        assert result.error == pytest.approx(math.sqrt(800.0 / 65536))
        assert result.error == pytest.approx(0.1105, abs=5e-4)
        assert result.run_over_tcor == pytest.approx(65536 / 400.0)

    def test_厳密解_誤差はラン長の平方根に反比例(self) -> None:
        short = exact_error(m=1.0, delta=0.01, variance=2.0, nstep=1000)
        long = exact_error(m=1.0, delta=0.01, variance=2.0, nstep=4000)
        assert short.error == pytest.approx(2.0 * long.error)
        assert short.si == long.si


# ============================================================
# Round 2: naive_error
# ============================================================


class TestNaiveError:
    """独立性を仮定した推定のテスト"""

    def test_独立仮定_既知のデータで正しい値(self) -> None:
        data = np.array([1.0, 2.0, 3.0, 4.0])
        result = naive_error(data)
        assert result.mean == pytest.approx(2.5)
        # 偏差の2乗和 5.0 を n-1 = 3 で割る
        assert result.variance == pytest.approx(5.0 / 3.0)
        assert result.error == pytest.approx(math.sqrt(5.0 / 3.0 / 4.0))
        np.testing.assert_allclose(result.centered, [-1.5, -0.5, 0.5, 1.5])

    def test_独立仮定_入力を変更しない(self) -> None:
        data = np.array([1.0, 2.0, 3.0, 4.0])
        result = naive_error(data)
        np.testing.assert_array_equal(data, [1.0, 2.0, 3.0, 4.0])
        assert not np.shares_memory(result.centered, data)

    def test_独立仮定_ホワイトノイズでは標準誤差(self) -> None:
        data = np.random.randn(10000)
        result = naive_error(data)
        assert result.error == pytest.approx(np.std(data, ddof=1) / 100.0)

    def test_独立仮定_データが2個未満でValueError(self) -> None:
        with pytest.raises(ValueError):
            naive_error(np.array([1.0]))
        with pytest.raises(ValueError):
            naive_error(np.zeros((3, 3)))

    def test_独立仮定_相関データでは過小評価(self, ar1_data: np.ndarray) -> None:
        """正の自己相関があると nblock=4 のブロック平均より小さい"""
        naive = naive_error(ar1_data)
        blocks = block_average(naive.centered, naive.variance, [4])
        assert naive.error < blocks[0].error_estimate


# ============================================================
# Round 3: block_average
# ============================================================


class TestBlockAverage:
    """従来のブロック平均のテスト"""

    def test_ブロック平均_ブロック数の降順で1行ずつ(self) -> None:
        data = np.random.randn(1000)
        rows = block_average(data - data.mean(), 1.0)
        assert [row.num_blocks for row in rows] == list(range(20, 3, -1))

    def test_ブロック平均_truncated_run_lengthの範囲(self) -> None:
        """trun = nblock*tblock は nstep 以下かつ nstep - nblock より大きい"""
        nstep = 1003
        data = np.random.randn(nstep)
        for row in block_average(data - data.mean(), 1.0):
            trun = row.num_blocks * row.block_length
            assert trun <= nstep
            assert trun > nstep - row.num_blocks
            assert row.block_length == nstep // row.num_blocks

    def test_ブロック平均_既知のデータで正しい値(self) -> None:
        # 3ブロック x 長さ2、末尾1点は捨てられる
        data = np.array([1.0, 3.0, 2.0, 2.0, 6.0, 4.0, 100.0])
        rows = block_average(data, 2.0, [3])
        assert len(rows) == 1
        row = rows[0]
        assert row.block_length == 2
        assert row.num_blocks == 3
        # trun の平均 3.0、ブロック平均 2, 2, 5 のずれ -1, -1, 2
        a_var = (1.0 + 1.0 + 4.0) / 2
        assert row.error_estimate == pytest.approx(math.sqrt(a_var / 3))
        assert row.statistical_inefficiency == pytest.approx(2 * a_var / 2.0)

    def test_ブロック平均_入力を変更しない(self) -> None:
        data = np.random.randn(500)
        original = data.copy()
        block_average(data, 1.0)
        np.testing.assert_array_equal(data, original)

    def test_ブロック長が0になるブロック数は飛ばす(self) -> None:
        data = np.random.randn(10)
        rows = block_average(data, 1.0)
        assert [row.num_blocks for row in rows] == list(range(10, 3, -1))

    def test_ブロック平均_不正な入力でValueError(self) -> None:
        data = np.random.randn(100)
        with pytest.raises(ValueError):
            block_average(data, 0.0)
        with pytest.raises(ValueError):
            block_average(data, 1.0, [1])

    def test_ブロック平均_独立データではSIが1に近い(self) -> None:
        data = np.random.randn(2**16)
        naive = naive_error(data)
        rows = block_average(naive.centered, naive.variance, [1000, 500])
        for row in rows:
            assert row.statistical_inefficiency == pytest.approx(1.0, abs=0.25)


# ============================================================
# Round 4: flyvbjerg_petersen
# ============================================================


class TestFlyvbjergPetersen:
    """Flyvbjerg-Petersen のブロッキングのテスト"""

    def test_FP_データ長は毎回半分になる(self) -> None:
        data = np.random.randn(1000)
        rows = list(flyvbjerg_petersen(data - data.mean(), 1.0))
        lengths = [row.num_blocks for row in rows]
        previous = 1000
        for length in lengths:
            assert length == previous // 2
            previous = length
        assert [row.block_length for row in rows] == [2 ** (i + 1) for i in range(len(rows))]

    def test_FP_65536点では15回目の半減で終了する(self) -> None:
        """65536 / 2**15 = 2 < 3 なので記録は 14 行"""
        data = np.random.randn(65536)
        rows = list(flyvbjerg_petersen(data - data.mean(), 1.0))
        assert len(rows) == 14
        assert rows[0] == BlockEstimate(
            block_length=2,
            num_blocks=32768,
            error_estimate=rows[0].error_estimate,
            statistical_inefficiency=rows[0].statistical_inefficiency,
        )
        assert rows[-1].num_blocks == 4
        assert rows[-1].block_length == 16384
        assert all(row.num_blocks >= 3 for row in rows)

    def test_FP_既知のデータで正しい値(self) -> None:
        # 7点 -> 3ブロック（末尾1点を捨てる）
        data = np.array([1.0, 3.0, 2.0, 2.0, 6.0, 4.0, 100.0])
        rows = list(flyvbjerg_petersen(data, 2.0))
        assert len(rows) == 1
        row = rows[0]
        assert row.block_length == 2
        assert row.num_blocks == 3
        a_var = (1.0 + 1.0 + 4.0) / 2
        assert row.error_estimate == pytest.approx(math.sqrt(a_var / 3))
        assert row.statistical_inefficiency == pytest.approx(2 * a_var / 2.0)

    def test_FP_短いデータでは何も返さない(self) -> None:
        assert list(flyvbjerg_petersen(np.random.randn(5), 1.0)) == []

    def test_FP_入力を変更しない(self) -> None:
        data = np.random.randn(256)
        original = data.copy()
        list(flyvbjerg_petersen(data, 1.0))
        np.testing.assert_array_equal(data, original)

    def test_FP_再度呼び出すと同じ結果(self) -> None:
        data = np.random.randn(512)
        first = list(flyvbjerg_petersen(data, 1.0))
        second = list(flyvbjerg_petersen(data, 1.0))
        assert first == second

    def test_FP_初段は従来法のブロック長2と一致する(self) -> None:
        """偶数長のデータでは1回目の変換が nblock=n/2 のブロック平均と同じ"""
        data = np.random.randn(64)
        centered = data - data.mean()
        fp_first = next(flyvbjerg_petersen(centered, 1.0))
        trad = block_average(centered, 1.0, [32])[0]
        assert fp_first.error_estimate == pytest.approx(trad.error_estimate)
        assert fp_first.statistical_inefficiency == pytest.approx(trad.statistical_inefficiency)

    def test_FP_不正な分散でValueError(self) -> None:
        with pytest.raises(ValueError):
            list(flyvbjerg_petersen(np.random.randn(64), -1.0))

    def test_FP_不正な入力は呼び出し時点でValueError(self) -> None:
        """イテレータを消費しなくても検証される"""
        with pytest.raises(ValueError, match="var_1"):
            flyvbjerg_petersen(np.random.randn(64), -1.0)
        with pytest.raises(ValueError, match="1次元"):
            flyvbjerg_petersen(np.zeros((4, 4)), 1.0)

    def test_FP_相関データでSIが増加しプラトーに近づく(self, ar1_data: np.ndarray) -> None:
        naive = naive_error(ar1_data)
        rows = list(flyvbjerg_petersen(naive.centered, naive.variance))
        # phi=0.95 の AR(1) の SI は (1+phi)/(1-phi) = 39
        assert rows[0].statistical_inefficiency < rows[5].statistical_inefficiency
        assert rows[7].statistical_inefficiency == pytest.approx(39.0, rel=0.5)

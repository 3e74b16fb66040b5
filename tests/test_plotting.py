"""plotting.py のテスト

ブロック平均の SI プロットのテスト。
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from errcalc.estimators import BlockEstimate
from errcalc.plotting import plot_blocking

_TRADITIONAL = [
    BlockEstimate(block_length=50, num_blocks=20, error_estimate=0.05, statistical_inefficiency=500.0),
    BlockEstimate(block_length=100, num_blocks=10, error_estimate=0.07, statistical_inefficiency=700.0),
    BlockEstimate(block_length=250, num_blocks=4, error_estimate=0.08, statistical_inefficiency=780.0),
]
_FLYVBJERG = [
    BlockEstimate(block_length=2, num_blocks=500, error_estimate=0.01, statistical_inefficiency=4.0),
    BlockEstimate(block_length=4, num_blocks=250, error_estimate=0.02, statistical_inefficiency=8.0),
    BlockEstimate(block_length=8, num_blocks=125, error_estimate=0.03, statistical_inefficiency=16.0),
]


class TestPlotBlocking:
    """plot_blocking() のテスト群"""

    def test_plot_blocking_ファイルを正しく保存する(self, tmp_path: Path) -> None:
        savepath = tmp_path / "blocking.png"
        plot_blocking(_TRADITIONAL, _FLYVBJERG, 800.0, savepath)
        assert savepath.exists()
        assert savepath.stat().st_size > 0

    def test_plot_blocking_ディレクトリを自動作成する(self, tmp_path: Path) -> None:
        savepath = tmp_path / "deep" / "nested" / "blocking.png"
        plot_blocking(_TRADITIONAL, _FLYVBJERG, 800.0, str(savepath))
        assert savepath.exists()

    def test_plot_blocking_空の表でも保存できる(self, tmp_path: Path) -> None:
        savepath = tmp_path / "empty.png"
        plot_blocking([], [], 1.0, savepath)
        assert savepath.exists()

    def test_plot_blocking_設定は一度だけ行う(self, tmp_path: Path) -> None:
        with patch("errcalc.plotting._configured", False), patch(
            "seaborn.set_theme"
        ) as mock_theme:
            plot_blocking(_TRADITIONAL, _FLYVBJERG, 800.0, tmp_path / "a.png")
            plot_blocking(_TRADITIONAL, _FLYVBJERG, 800.0, tmp_path / "b.png")
        assert mock_theme.call_count == 1

"""プロットモジュール

ブロック平均の結果の可視化を担当する。
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from errcalc.estimators import BlockEstimate

logger = logging.getLogger(__name__)


_configured = False


def configure_plot() -> None:
    """matplotlib / seaborn のグローバル設定を行う（初回のみ実行）。"""
    global _configured  # noqa: PLW0603
    if _configured:
        return
    import matplotlib
    import seaborn

    matplotlib.use("Agg")
    seaborn.set_theme(style="darkgrid", font_scale=1.2)
    _configured = True


def plot_blocking(
    traditional: list[BlockEstimate],
    flyvbjerg: list[BlockEstimate],
    exact_si: float,
    savepath: str | Path,
) -> None:
    """ブロック平均による SI の推定値をプロットして保存する。

    左は従来のブロック平均の SI を 1/tblock に対して、
    右は Flyvbjerg-Petersen の SI をブロッキング変換の回数 log2(tblock) に対して
    プロットする。どちらにも厳密な SI を水平線で示す。

    Parameters
    ----------
    traditional : list[BlockEstimate]
        従来のブロック平均の結果
    flyvbjerg : list[BlockEstimate]
        Flyvbjerg-Petersen の結果
    exact_si : float
        厳密な統計的非効率
    savepath : str | Path
        保存先パス
    """
    import matplotlib.pyplot as plt

    configure_plot()
    savepath = Path(savepath)
    savepath.parent.mkdir(parents=True, exist_ok=True)

    plt.close()
    fig, (ax_trad, ax_fp) = plt.subplots(1, 2, figsize=(12, 5), dpi=100)

    ax_trad.plot(
        [1.0 / row.block_length for row in traditional],
        [row.statistical_inefficiency for row in traditional],
        "o-",
        label="block average",
    )
    ax_trad.axhline(exact_si, color="k", linestyle="--", label="exact")
    ax_trad.set_xlabel(r"$1/t_{\mathrm{block}}$")
    ax_trad.set_ylabel("SI")
    ax_trad.set_title("Traditional")
    ax_trad.legend()

    ax_fp.plot(
        [math.log2(row.block_length) for row in flyvbjerg],
        [row.statistical_inefficiency for row in flyvbjerg],
        "o-",
        label="blocking",
    )
    ax_fp.axhline(exact_si, color="k", linestyle="--", label="exact")
    ax_fp.set_xlabel(r"$\log_2 t_{\mathrm{block}}$")
    ax_fp.set_ylabel("SI")
    ax_fp.set_title("Flyvbjerg-Petersen")
    ax_fp.legend()

    fig.savefig(savepath, bbox_inches="tight")
    plt.close(fig)
    logger.info("プロット保存完了: %s", savepath)

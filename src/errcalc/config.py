"""設定管理モジュール

解析の入力パラメータを一元管理するための dataclass 群と、
YAML / JSON / Fortran namelist による読み書きを提供する。
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, TextIO

import yaml

from errcalc.namelist import parse_namelist


class _ConfigLoader(yaml.SafeLoader):
    """`1e-2` のような小数点のない指数表記も実数として読む SafeLoader"""


_ConfigLoader.add_implicit_resolver(
    "tag:yaml.org,2002:float",
    re.compile(r"^[-+]?(?:[0-9][0-9_]*)(?:\.[0-9_]*)?[eE][-+]?[0-9]+$"),
    list("-+0123456789"),
)


# =============================================================================
# RunConfig
# =============================================================================


def _check_int(name: str, value: Any) -> None:
    # bool は int のサブクラスなので明示的に除外する
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} は整数が必要です: {value!r}")


def _check_real(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} は実数が必要です: {value!r}")
    if not math.isfinite(value):
        raise ValueError(f"{name} は有限の値が必要です: {value!r}")


@dataclass(frozen=True)
class RunConfig:
    """相関データ生成の基本パラメータ

    デフォルト値は 2**16 ステップ、平衡化 10000 ステップ。
    """

    nstep: int = 2**16
    nequil: int = 10000
    delta: float = 0.01
    variance: float = 1.0
    average: float = 1.0

    def __post_init__(self) -> None:
        _check_int("nstep", self.nstep)
        _check_int("nequil", self.nequil)
        for name in ("delta", "variance", "average"):
            _check_real(name, getattr(self, name))

        if self.nstep < 2:
            raise ValueError(f"nstep は 2 以上が必要です: {self.nstep}")
        if self.nequil < 0:
            raise ValueError(f"nequil は 0 以上が必要です: {self.nequil}")
        if self.delta <= 0:
            raise ValueError(f"delta は正の値が必要です: {self.delta}")
        if self.variance <= 0:
            raise ValueError(f"variance は正の値が必要です: {self.variance}")

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunConfig:
        """辞書から RunConfig を構築する。全フィールドが必須。

        Raises
        ------
        ValueError
            フィールドの欠落・未知のフィールド・不正な値がある場合
        """
        if not isinstance(data, dict):
            raise ValueError(f"run セクションはマッピングが必要です: {data!r}")
        names = cls.field_names()
        unknown = sorted(set(data) - set(names))
        if unknown:
            raise ValueError(f"未知のフィールドがあります: {', '.join(unknown)}")
        missing = [name for name in names if name not in data]
        if missing:
            raise ValueError(f"必須フィールドがありません: {', '.join(missing)}")
        return cls(**data)


# =============================================================================
# ProcessConfig
# =============================================================================

# Baczewski & Bond の例で用いられている (m, kappa) の組
PRESETS: dict[str, tuple[float, float]] = {
    "underdamped": (1.0, 1.0),
    "critically_damped": (0.5, 2.0),
    "overdamped": (0.25, 4.0),
}


@dataclass(frozen=True)
class ProcessConfig:
    """GLE メモリ関数の係数 m と減衰率 kappa"""

    m: float = 0.25
    kappa: float = 4.0

    def __post_init__(self) -> None:
        for name in ("m", "kappa"):
            value = getattr(self, name)
            _check_real(name, value)
            if value <= 0:
                raise ValueError(f"{name} は正の値が必要です: {value}")

    @classmethod
    def from_preset(cls, name: str) -> ProcessConfig:
        """名前付きプリセットから ProcessConfig を構築する"""
        if name not in PRESETS:
            raise ValueError(f"未知のプリセット: {name} (候補: {', '.join(PRESETS)})")
        m, kappa = PRESETS[name]
        return cls(m=m, kappa=kappa)


# =============================================================================
# SeedConfig
# =============================================================================


@dataclass
class SeedConfig:
    """乱数シード設定

    mode:
        "system"  - OS のエントロピー源を使用（デフォルト）
        "fixed"   - base_seed をそのまま使用（再現性確保）
    """

    mode: str = "system"
    base_seed: int | None = None

    def __post_init__(self) -> None:
        if self.mode not in ("system", "fixed"):
            raise ValueError(f"未知のモード: {self.mode}")
        if self.mode == "fixed":
            if self.base_seed is None:
                raise ValueError("fixed モードでは base_seed が必要です")
            _check_int("base_seed", self.base_seed)
            if self.base_seed < 0:
                raise ValueError(f"base_seed は 0 以上が必要です: {self.base_seed}")

    def get_seed(self) -> int | None:
        """シード値を返す。system モードでは None を返す。"""
        if self.mode == "fixed":
            return self.base_seed
        return None


# =============================================================================
# AnalysisConfig
# =============================================================================


@dataclass
class AnalysisConfig:
    """誤差解析の設定

    n_repeat は経験的誤差推定のための独立ランの数。
    nblock_max から nblock_min まで降順にブロック数を変えて
    ブロック平均を行う。
    """

    n_repeat: int = 50
    nblock_max: int = 20
    nblock_min: int = 4

    def __post_init__(self) -> None:
        for name in ("n_repeat", "nblock_max", "nblock_min"):
            _check_int(name, getattr(self, name))
        if self.n_repeat < 1:
            raise ValueError(f"n_repeat は 1 以上が必要です: {self.n_repeat}")
        if self.nblock_min < 2:
            raise ValueError(f"nblock_min は 2 以上が必要です: {self.nblock_min}")
        if self.nblock_max < self.nblock_min:
            raise ValueError(
                f"nblock_max ({self.nblock_max}) は nblock_min ({self.nblock_min}) 以上が必要です"
            )

    @property
    def nblocks(self) -> range:
        """ブロック数の降順の範囲"""
        return range(self.nblock_max, self.nblock_min - 1, -1)


# =============================================================================
# Config (統合)
# =============================================================================


@dataclass
class Config:
    """全設定を統合するトップレベル設定クラス"""

    run: RunConfig = field(default_factory=RunConfig)
    process: ProcessConfig = field(default_factory=ProcessConfig)
    seed: SeedConfig = field(default_factory=SeedConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)

    # -------------------------------------------------------------------------
    # YAML
    # -------------------------------------------------------------------------

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        """YAML ファイルから Config を構築する"""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"設定ファイルが見つかりません: {path}")
        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.load(f, Loader=_ConfigLoader) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"YAML の解析に失敗しました: {path}: {e}") from e
        return cls._from_dict(data)

    def to_yaml(self, path: Path) -> None:
        """Config を YAML ファイルに書き出す"""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self._to_dict(), f, default_flow_style=False, sort_keys=False)

    # -------------------------------------------------------------------------
    # JSON
    # -------------------------------------------------------------------------

    @classmethod
    def from_json(cls, path: Path) -> Config:
        """JSON ファイルから Config を構築する"""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"設定ファイルが見つかりません: {path}")
        with open(path, encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"JSON の解析に失敗しました: {path}: {e}") from e
        return cls._from_dict(data)

    def to_json(self, path: Path) -> None:
        """Config を JSON ファイルに書き出す"""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self._to_dict(), f, indent=2)

    # -------------------------------------------------------------------------
    # namelist
    # -------------------------------------------------------------------------

    @classmethod
    def from_namelist(cls, source: str | TextIO, group: str = "nml") -> Config:
        """Fortran namelist (`&nml ... /`) から Config を構築する。

        namelist が与えるのは RunConfig の5フィールドのみで、
        残りの設定はデフォルト値になる。

        Args:
            source: namelist テキスト、または読み込み可能なストリーム。
            group: namelist グループ名。
        """
        text = source if isinstance(source, str) else source.read()
        values = parse_namelist(
            text,
            group=group,
            types={
                "nstep": int,
                "nequil": int,
                "delta": float,
                "variance": float,
                "average": float,
            },
        )
        return cls(run=RunConfig.from_dict(values))

    @classmethod
    def from_file(cls, path: Path) -> Config:
        """拡張子から形式を判定して Config を構築する"""
        suffix = Path(path).suffix.lower()
        if suffix in (".yaml", ".yml"):
            return cls.from_yaml(path)
        if suffix == ".json":
            return cls.from_json(path)
        if suffix in (".nml", ".inp", ".txt"):
            path = Path(path)
            if not path.exists():
                raise FileNotFoundError(f"設定ファイルが見つかりません: {path}")
            return cls.from_namelist(path.read_text(encoding="utf-8"))
        raise ValueError(f"未対応の設定ファイル形式です: {path}")

    # -------------------------------------------------------------------------
    # dict 変換ヘルパー
    # -------------------------------------------------------------------------

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> Config:
        """辞書から Config を構築する"""
        if not isinstance(data, dict):
            raise ValueError("設定のトップレベルはマッピングが必要です")
        unknown = sorted(set(data) - {"run", "process", "seed", "analysis"})
        if unknown:
            raise ValueError(f"未知のセクションがあります: {', '.join(unknown)}")

        run_data = data.get("run")
        process_data = data.get("process", {})
        seed_data = data.get("seed", {})
        analysis_data = data.get("analysis", {})

        try:
            run = RunConfig.from_dict(run_data) if run_data is not None else RunConfig()
            process = ProcessConfig(**process_data) if process_data else ProcessConfig()
            seed = SeedConfig(**seed_data) if seed_data else SeedConfig()
            analysis = AnalysisConfig(**analysis_data) if analysis_data else AnalysisConfig()
        except TypeError as e:
            # 未知のキーワード引数
            raise ValueError(f"設定の形式が不正です: {e}") from e

        return cls(run=run, process=process, seed=seed, analysis=analysis)

    def _to_dict(self) -> dict[str, Any]:
        """Config を辞書に変換する"""
        return {
            "run": asdict(self.run),
            "process": asdict(self.process),
            "seed": {
                "mode": self.seed.mode,
                "base_seed": self.seed.base_seed,
            },
            "analysis": asdict(self.analysis),
        }

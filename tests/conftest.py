import numpy as np
import pytest

from errcalc.config import AnalysisConfig, Config, ProcessConfig, RunConfig, SeedConfig


@pytest.fixture(autouse=True)
def fix_random_seed() -> None:
    """全テストで乱数シードを固定"""
    np.random.seed(42)


@pytest.fixture
def small_run() -> RunConfig:
    """テスト用の短いラン（相関時間 400 ステップ）"""
    return RunConfig(nstep=4096, nequil=500, delta=0.01, variance=1.0, average=1.0)


@pytest.fixture
def small_config(small_run: RunConfig) -> Config:
    """短いランと少ない繰り返し回数の Config"""
    return Config(
        run=small_run,
        process=ProcessConfig(),
        seed=SeedConfig(mode="fixed", base_seed=12345),
        analysis=AnalysisConfig(n_repeat=4),
    )


@pytest.fixture
def ar1_data() -> np.ndarray:
    """正の自己相関を持つ AR(1) データ (phi=0.95)"""
    rng = np.random.default_rng(2024)
    n = 2**14
    phi = 0.95
    noise = rng.normal(size=n)
    data = np.empty(n)
    data[0] = noise[0]
    for i in range(1, n):
        data[i] = phi * data[i - 1] + noise[i]
    return data

from __future__ import annotations

import logging
from dataclasses import asdict, replace
from pathlib import Path
from typing import TextIO

import click

from errcalc.config import PRESETS, AnalysisConfig, Config, ProcessConfig, SeedConfig
from errcalc.estimators import exact_error
from errcalc.namelist import write_namelist
from errcalc.report import format_report, report_json
from errcalc.runner import run_analysis

logger = logging.getLogger(__name__)


@click.group()
@click.version_option(version="0.1.0", prog_name="errcalc")
def cli() -> None:
    """errcalc: statistical error estimation for correlated simulation data"""
    pass


@cli.command()
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True),
    default=None,
    help="Path to YAML / JSON / namelist config file",
)
@click.option(
    "-n",
    "--namelist",
    type=click.File("r"),
    default=None,
    help="Read the &nml namelist from a file ('-' for standard input)",
)
@click.option("--nstep", type=int, default=None, help="Number of steps in run")
@click.option("--nequil", type=int, default=None, help="Number of equilibration steps")
@click.option("--delta", type=float, default=None, help="Time step")
@click.option("--variance", type=float, default=None, help="Desired variance of data")
@click.option("--average", type=float, default=None, help="Desired average value of data")
@click.option(
    "--preset",
    type=click.Choice(sorted(PRESETS)),
    default=None,
    help="Named (m, kappa) memory function preset",
)
@click.option("--m", "m", type=float, default=None, help="GLE memory function coefficient")
@click.option("--kappa", type=float, default=None, help="GLE memory function decay rate")
@click.option("--seed", type=int, default=None, help="Fixed random seed")
@click.option("--n-repeat", type=int, default=None, help="Number of independent runs")
@click.option("--workers", type=int, default=1, show_default=True, help="Parallel workers")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
    help="Report format",
)
@click.option(
    "--plot",
    "plot_path",
    type=click.Path(),
    default=None,
    help="Save blocking plots to this path",
)
@click.option("--dry-run", is_flag=True, default=False, help="Print plan without executing")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Enable debug logging")
@click.option("-q", "--quiet", is_flag=True, default=False, help="Suppress non-essential output")
def run(
    config_path: str | None,
    namelist: TextIO | None,
    nstep: int | None,
    nequil: int | None,
    delta: float | None,
    variance: float | None,
    average: float | None,
    preset: str | None,
    m: float | None,
    kappa: float | None,
    seed: int | None,
    n_repeat: int | None,
    workers: int,
    output_format: str,
    plot_path: str | None,
    dry_run: bool,
    verbose: bool,
    quiet: bool,
) -> None:
    """Generate correlated data and compare error estimates."""
    _configure_logging(verbose=verbose, quiet=quiet)

    if config_path is not None and namelist is not None:
        raise click.UsageError("Cannot specify both --config and --namelist.")
    if workers < 1:
        raise click.UsageError(f"--workers must be at least 1, got {workers}.")

    try:
        config_obj = _build_config(
            config_path=config_path,
            namelist=namelist,
            nstep=nstep,
            nequil=nequil,
            delta=delta,
            variance=variance,
            average=average,
            preset=preset,
            m=m,
            kappa=kappa,
            seed=seed,
            n_repeat=n_repeat,
        )
    except (ValueError, FileNotFoundError) as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e

    run_cfg = config_obj.run
    logger.debug(
        "Run configuration: nstep=%d, nequil=%d, delta=%g, m=%g, kappa=%g, n_repeat=%d",
        run_cfg.nstep,
        run_cfg.nequil,
        run_cfg.delta,
        config_obj.process.m,
        config_obj.process.kappa,
        config_obj.analysis.n_repeat,
    )

    if dry_run:
        exact = exact_error(config_obj.process.m, run_cfg.delta, run_cfg.variance, run_cfg.nstep)
        click.echo(f"Dry run: {config_obj.analysis.n_repeat} runs of {run_cfg.nstep} steps")
        click.echo(f"  nequil = {run_cfg.nequil}, delta = {run_cfg.delta}")
        click.echo(f"  m = {config_obj.process.m}, kappa = {config_obj.process.kappa}")
        click.echo(f"  exact SI = {exact.si:.6f}, exact error = {exact.error:.6f}")
        click.echo(f"  {workers} workers")
        return

    result = run_analysis(config_obj, max_workers=workers)

    if output_format == "json":
        click.echo(report_json(result))
    else:
        click.echo(format_report(result))

    if plot_path is not None:
        from errcalc.plotting import plot_blocking

        plot_blocking(result.traditional, result.flyvbjerg, result.exact.si, plot_path)

    logger.info("Finished in %.1f s", result.walltime_seconds)


@cli.group()
def config() -> None:
    """Manage configuration files."""
    pass


@config.command("init")
@click.option(
    "--output",
    type=click.Path(),
    default="config.yaml",
    help="Output path for the configuration file",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["yaml", "json", "namelist"]),
    default="yaml",
    show_default=True,
    help="Configuration file format",
)
def config_init(output: str, output_format: str) -> None:
    """Generate a default configuration file."""
    cfg = Config()
    if output_format == "json":
        cfg.to_json(Path(output))
    elif output_format == "namelist":
        write_namelist(asdict(cfg.run), Path(output))
    else:
        cfg.to_yaml(Path(output))
    click.echo(f"Configuration file created: {output}")


@config.command("show")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True),
    default="config.yaml",
    help="Path to the configuration file",
)
def config_show(config_path: str) -> None:
    """Show the current configuration."""
    try:
        cfg = Config.from_file(Path(config_path))
    except ValueError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e
    click.echo("Current configuration:")
    click.echo("  run:")
    click.echo(f"    nstep: {cfg.run.nstep}")
    click.echo(f"    nequil: {cfg.run.nequil}")
    click.echo(f"    delta: {cfg.run.delta}")
    click.echo(f"    variance: {cfg.run.variance}")
    click.echo(f"    average: {cfg.run.average}")
    click.echo("  process:")
    click.echo(f"    m: {cfg.process.m}")
    click.echo(f"    kappa: {cfg.process.kappa}")
    click.echo("  seed:")
    click.echo(f"    mode: {cfg.seed.mode}")
    click.echo(f"    base_seed: {cfg.seed.base_seed}")
    click.echo("  analysis:")
    click.echo(f"    n_repeat: {cfg.analysis.n_repeat}")
    click.echo(f"    nblock_max: {cfg.analysis.nblock_max}")
    click.echo(f"    nblock_min: {cfg.analysis.nblock_min}")


def _build_config(
    *,
    config_path: str | None,
    namelist: TextIO | None,
    nstep: int | None,
    nequil: int | None,
    delta: float | None,
    variance: float | None,
    average: float | None,
    preset: str | None,
    m: float | None,
    kappa: float | None,
    seed: int | None,
    n_repeat: int | None,
) -> Config:
    """CLI引数とオプションの設定ファイルから Config を構築する。"""
    # Base config: from file, namelist or defaults
    if config_path is not None:
        base_config = Config.from_file(Path(config_path))
    elif namelist is not None:
        base_config = Config.from_namelist(namelist)
    else:
        base_config = Config()

    # Run settings (CLI overrides)
    run_overrides = {
        name: value
        for name, value in (
            ("nstep", nstep),
            ("nequil", nequil),
            ("delta", delta),
            ("variance", variance),
            ("average", average),
        )
        if value is not None
    }
    run_cfg = replace(base_config.run, **run_overrides)

    # Process settings: preset first, then individual coefficients
    process = ProcessConfig.from_preset(preset) if preset is not None else base_config.process
    process = ProcessConfig(
        m=m if m is not None else process.m,
        kappa=kappa if kappa is not None else process.kappa,
    )

    seed_cfg = SeedConfig(mode="fixed", base_seed=seed) if seed is not None else base_config.seed

    analysis = base_config.analysis
    if n_repeat is not None:
        analysis = AnalysisConfig(
            n_repeat=n_repeat,
            nblock_max=analysis.nblock_max,
            nblock_min=analysis.nblock_min,
        )

    return Config(run=run_cfg, process=process, seed=seed_cfg, analysis=analysis)


def _configure_logging(*, verbose: bool, quiet: bool) -> None:
    """Configure logging level based on verbosity flags."""
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )
    logger.setLevel(level)


if __name__ == "__main__":
    cli()

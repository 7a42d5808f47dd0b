from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional, cast

import typer
from pydantic import ValidationError

from escalation_trends import __version__
from escalation_trends.config import (
    DEFAULT_CONFIG_PATH,
    AppConfig,
    load_config,
    read_credential,
)
from escalation_trends.report.fill import fill_records
from escalation_trends.report.llm import LLMClient, build_llm_client
from escalation_trends.report.records import (
    RecordSourceError,
    RecordTable,
    load_records,
    save_records,
)
from escalation_trends.report.run import run_pipeline
from escalation_trends.utils.logging import init_logger, run_context
from escalation_trends.utils.rand import make_rng

app = typer.Typer(
    add_completion=False, help="Summarize support escalation trends."
)


def _version_callback(ctx: typer.Context, value: Optional[bool]) -> Optional[bool]:
    if not value or ctx.resilient_parsing:
        return value
    typer.echo(__version__)
    raise typer.Exit()


def _context(ctx: typer.Context) -> tuple[AppConfig, Optional[logging.Logger], bool]:
    ctx_obj = ctx.obj or {}
    config = cast(Optional[AppConfig], ctx_obj.get("config"))
    if config is None:
        config = load_config(
            default_path=DEFAULT_CONFIG_PATH,
            override_yaml_path_or_none=None,
            env=os.environ,
            cli_overrides={},
        )
    return config, ctx_obj.get("logger"), bool(ctx_obj.get("no_llm", False))


def _client_for(
    config: AppConfig, no_llm: bool, logger: Optional[logging.Logger]
) -> Optional[LLMClient]:
    api_key = None if no_llm else read_credential(config, os.environ)
    client = build_llm_client(config, api_key)
    if logger:
        if client is None:
            logger.info("No model credential configured; using offline fallbacks")
        else:
            logger.info("Using %s model %s", config.llm.provider, config.llm.model)
    return client


def _load_table(
    input_path: Path, config: AppConfig, logger: Optional[logging.Logger]
) -> RecordTable:
    try:
        table = load_records(input_path, config.columns)
    except RecordSourceError as exc:
        typer.echo(str(exc), err=True)
        if logger:
            logger.error("Unable to load records: %s", exc)
        raise typer.Exit(code=1) from exc
    if logger:
        logger.info("Loaded %d records from %s", len(table), input_path)
    return table


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        callback=_version_callback,
        expose_value=False,
        is_flag=True,
        flag_value=True,
        is_eager=True,
        help="Show the application version and exit.",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        help="Path to an alternate YAML configuration file.",
        is_flag=False,
    ),
    threshold: Optional[int] = typer.Option(
        None,
        "--threshold",
        help="Override the confidence threshold (0-100).",
        is_flag=False,
    ),
    days_back: Optional[int] = typer.Option(
        None,
        "--days-back",
        help="Override the recency window in days.",
        is_flag=False,
    ),
    fill_mode: Optional[str] = typer.Option(
        None,
        "--fill-mode",
        help="Override the fill mode: mirror, mock or external.",
        is_flag=False,
    ),
    no_llm: bool = typer.Option(
        False,
        "--no-llm",
        help="Ignore any model credential for this run.",
    ),
) -> None:
    cli_overrides: dict[str, object] = {}
    if threshold is not None:
        cli_overrides["filter.confidence_threshold"] = threshold
    if days_back is not None:
        cli_overrides["filter.days_back"] = days_back
    if fill_mode is not None:
        cli_overrides["fill.mode"] = fill_mode

    try:
        config = load_config(
            default_path=DEFAULT_CONFIG_PATH,
            override_yaml_path_or_none=config_path,
            env=os.environ,
            cli_overrides=cli_overrides,
        )
    except (FileNotFoundError, ValueError, ValidationError) as exc:
        typer.echo(f"Invalid configuration: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    context_obj = ctx.ensure_object(dict)
    context_obj["config"] = config
    context_obj["no_llm"] = no_llm

    logger = init_logger()
    context_obj["logger"] = logger

    if ctx.invoked_subcommand is not None:
        run_cm = run_context()
        run_id = run_cm.__enter__()
        context_obj["run_id"] = run_id

        def _close() -> None:
            run_cm.__exit__(None, None, None)

        ctx.call_on_close(_close)

    if ctx.invoked_subcommand is None:
        typer.echo(
            "Usage: esc-trends [OPTIONS] COMMAND [ARGS]...\n\n"
            "Use 'esc-trends --help' for more information."
        )
        raise typer.Exit()


@app.command("init")
def init_cmd(ctx: typer.Context) -> None:
    """Scaffold the reports directory and default config file."""
    config, logger, _ = _context(ctx)

    created_items: list[tuple[str, Path]] = []

    reports_dir = Path(config.paths.reports)
    if not reports_dir.exists():
        reports_dir.mkdir(parents=True, exist_ok=True)
        created_items.append(("directory", reports_dir))

    target_config_path = Path("configs") / "default.yaml"
    if not target_config_path.exists():
        target_config_path.parent.mkdir(parents=True, exist_ok=True)
        target_config_path.write_text(
            DEFAULT_CONFIG_PATH.read_text(encoding="utf-8"),
            encoding="utf-8",
        )
        created_items.append(("file", target_config_path))

    if created_items:
        for item_type, path in created_items:
            label = "directory" if item_type == "directory" else "file"
            typer.echo(f"Created {label}: {path}")
            if logger:
                logger.info("Created %s %s", label, path)
    else:
        typer.echo("Repository assets already initialized.")
        if logger:
            logger.info("Repository assets already initialized.")


@app.command("fill")
def fill_cmd(
    ctx: typer.Context,
    input_path: Optional[Path] = typer.Option(
        None,
        "--input",
        help="Record table (CSV or Parquet). Defaults to paths.input.",
        is_flag=False,
    ),
    records_out: Optional[Path] = typer.Option(
        None,
        "--records-out",
        help="Where to write the filled table. Defaults to the input path.",
        is_flag=False,
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Seed for randomized fills.",
        is_flag=False,
    ),
) -> None:
    """Populate empty classification columns and write the table back."""
    config, logger, no_llm = _context(ctx)
    source = Path(input_path or config.paths.input)
    table = _load_table(source, config, logger)

    client = None
    if config.fill.mode == "external":
        client = _client_for(config, no_llm, logger)
    stats = fill_records(
        table,
        config.fill,
        rng=make_rng(seed),
        client=client,
        temperature=config.llm.classify_temperature,
        logger=logger,
    )

    target = Path(records_out or source)
    save_records(table, target)
    typer.echo(
        f"Filled {stats.rows_filled} of {stats.rows_total} rows "
        f"({stats.mode} mode); wrote {target}"
    )


@app.command("run")
def run_cmd(
    ctx: typer.Context,
    input_path: Optional[Path] = typer.Option(
        None,
        "--input",
        help="Record table (CSV or Parquet). Defaults to paths.input.",
        is_flag=False,
    ),
    out: Optional[Path] = typer.Option(
        None,
        "--out",
        help="Output directory for reports. Defaults to paths.reports.",
        is_flag=False,
    ),
    records_out: Optional[Path] = typer.Option(
        None,
        "--records-out",
        help="Where to write the filled table. Defaults to the input path.",
        is_flag=False,
    ),
    write_back: bool = typer.Option(
        True,
        "--write-back/--no-write-back",
        help="Persist filled classification columns.",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Seed for randomized fills.",
        is_flag=False,
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the run summary as JSON.",
    ),
) -> None:
    """Run fill, qualification, aggregation and insights for one batch."""
    config, logger, no_llm = _context(ctx)
    source = Path(input_path or config.paths.input)
    out_dir = Path(out or config.paths.reports)
    table = _load_table(source, config, logger)
    client = _client_for(config, no_llm, logger)

    result = run_pipeline(
        config,
        table,
        client=client,
        rng=make_rng(seed),
        out_dir=out_dir,
        logger=logger,
    )

    if write_back and result.fill.rows_filled:
        target = Path(records_out or source)
        save_records(table, target)
        result.outputs["records"] = target
        if logger:
            logger.info("Wrote filled records to %s", target)

    if as_json:
        typer.echo(json.dumps(result.as_dict(), indent=2, ensure_ascii=False))
        return

    typer.echo(
        f"Qualified {result.qualified_count} of {result.total_count} records "
        f"(threshold {result.threshold}%, since {result.cutoff:%Y-%m-%d})"
    )
    for name, path in result.outputs.items():
        typer.echo(f"{name}: {path}")


__all__ = ["app"]

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Union

import polars as pl

PathLike = Union[str, Path]
TABLE_SUFFIXES = (".csv", ".parquet")


def write_json_atomic(path: PathLike, obj: Any) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    with _tempfile(target) as tmp_path:
        with open(tmp_path, "w", encoding="utf-8") as fp:
            json.dump(obj, fp, indent=2, sort_keys=True, ensure_ascii=False)
            fp.flush()
            os.fsync(fp.fileno())
        os.replace(tmp_path, target)


def read_json(path: PathLike) -> Any:
    with open(Path(path), "r", encoding="utf-8") as fp:
        return json.load(fp)


def write_text_atomic(path: PathLike, text: str) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    with _tempfile(target) as tmp_path:
        with open(tmp_path, "w", encoding="utf-8") as fp:
            fp.write(text)
            fp.flush()
            os.fsync(fp.fileno())
        os.replace(tmp_path, target)


def write_parquet_atomic(path: PathLike, dataframe: pl.DataFrame) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    with _tempfile(target, suffix=".parquet") as tmp_path:
        dataframe.write_parquet(tmp_path)
        _fsync_path(tmp_path)
        os.replace(tmp_path, target)


def write_csv_atomic(path: PathLike, dataframe: pl.DataFrame) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    with _tempfile(target, suffix=".csv") as tmp_path:
        dataframe.write_csv(tmp_path)
        _fsync_path(tmp_path)
        os.replace(tmp_path, target)


def read_table(path: PathLike) -> pl.DataFrame:
    """Read a CSV or Parquet table, inferring column types from every row."""
    source = Path(path)
    suffix = source.suffix.lower()
    if suffix == ".parquet":
        return pl.read_parquet(source)
    if suffix == ".csv":
        return pl.read_csv(source, infer_schema_length=None)
    raise ValueError(
        f"Unsupported table format {suffix or '<none>'}; expected one of "
        f"{', '.join(TABLE_SUFFIXES)}"
    )


def write_table_atomic(path: PathLike, dataframe: pl.DataFrame) -> None:
    suffix = Path(path).suffix.lower()
    if suffix == ".parquet":
        write_parquet_atomic(path, dataframe)
    elif suffix == ".csv":
        write_csv_atomic(path, dataframe)
    else:
        raise ValueError(
            f"Unsupported table format {suffix or '<none>'}; expected one of "
            f"{', '.join(TABLE_SUFFIXES)}"
        )


class _AtomicTempFile:
    def __init__(self, temp_path: Path):
        self.temp_path = temp_path

    def __enter__(self) -> Path:
        return self.temp_path

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None and self.temp_path.exists():
            self.temp_path.unlink(missing_ok=True)


def _tempfile(target: Path, suffix: str = "") -> _AtomicTempFile:
    fd, tmp = tempfile.mkstemp(
        dir=str(target.parent),
        prefix=f".{target.name}.tmp-",
        suffix=suffix,
    )
    os.close(fd)
    return _AtomicTempFile(Path(tmp))


def _fsync_path(temp_path: Path) -> None:
    with open(temp_path, "rb") as fp:
        fp.flush()
        os.fsync(fp.fileno())


__all__ = [
    "read_json",
    "read_table",
    "write_csv_atomic",
    "write_json_atomic",
    "write_parquet_atomic",
    "write_table_atomic",
    "write_text_atomic",
]

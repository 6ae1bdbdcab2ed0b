import io
import logging
import os
import shutil
import urllib.request
import zipfile
from datetime import datetime, time
from typing import Dict, Iterator, NamedTuple, Optional, Protocol, Tuple

import pandas as pd
from pydantic import ValidationError

from store_monitor import config
from store_monitor.errors import DatasetParseError, DatasetUnavailableError
from store_monitor.models.schemas import BusinessInterval, StorePoll, TimezoneEntry

logger = logging.getLogger(__name__)

# canonical column -> accepted header names, first match wins
POLL_COLUMNS = {
    "store_id": ("store_id",),
    "timestamp_utc": ("timestamp_utc",),
    "status": ("status",),
}
BUSINESS_HOURS_COLUMNS = {
    "store_id": ("store_id",),
    "day": ("day", "dayOfWeek", "day_of_week"),
    "start": ("start_time_local",),
    "end": ("end_time_local",),
}
TIMEZONE_COLUMNS = {
    "store_id": ("store_id",),
    "timezone": ("timezone_str", "timezone"),
}

LOCAL_TIME_FORMATS = ("%H:%M:%S", "%H:%M", "%H:%M:%S.%f")

# Archive member names seen in published versions of the dataset
ARCHIVE_MEMBERS = {
    "store_status.csv": "store_status",
    "store status.csv": "store_status",
    "business_hours.csv": "business_hours",
    "menu_hours.csv": "business_hours",
    "menu.csv": "business_hours",
    "timezones.csv": "timezones",
}


class DatasetPaths(NamedTuple):
    store_status: str
    business_hours: str
    timezones: str

    @classmethod
    def from_config(cls) -> "DatasetPaths":
        return cls(config.STORE_STATUS_CSV, config.BUSINESS_HOURS_CSV, config.TIMEZONES_CSV)


class DatasetSource(Protocol):
    """Anything able to stream the three typed datasets.

    Every call returns a fresh single-pass iterator.
    """

    def iter_polls(self) -> Iterator[StorePoll]: ...

    def iter_business_hours(self) -> Iterator[BusinessInterval]: ...

    def iter_timezones(self) -> Iterator[TimezoneEntry]: ...


class CsvDatasetSource:
    """Streams typed rows out of the three CSV files.

    Files are read with pandas in chunks of ``chunk_size`` rows so the status
    polls never have to fit in memory at once. Any malformed row aborts the
    iteration with a DatasetParseError.
    """

    def __init__(self, paths: DatasetPaths, chunk_size: int = config.CSV_CHUNK_SIZE):
        self.paths = paths
        self.chunk_size = chunk_size

    def iter_polls(self) -> Iterator[StorePoll]:
        dataset = "store status"
        for first_line, frame in self._read_chunks(dataset, self.paths.store_status, POLL_COLUMNS):
            timestamps = _parse_timestamps(frame["timestamp_utc"], dataset, first_line)
            is_active = frame["status"].str.lower() == "active"
            for store_id, timestamp, active in zip(frame["store_id"], timestamps, is_active):
                yield StorePoll(
                    store_id=store_id,
                    timestamp_utc=timestamp.to_pydatetime(),
                    is_active=bool(active),
                )

    def iter_business_hours(self) -> Iterator[BusinessInterval]:
        dataset = "business hours"
        for first_line, frame in self._read_chunks(dataset, self.paths.business_hours, BUSINESS_HOURS_COLUMNS):
            for position, row in enumerate(frame.itertuples(index=False)):
                line = first_line + position
                try:
                    yield BusinessInterval(
                        store_id=row.store_id,
                        day_of_week=row.day,
                        start_local=_parse_local_time(row.start, dataset, line),
                        end_local=_parse_local_time(row.end, dataset, line),
                    )
                except ValidationError as e:
                    raise DatasetParseError(f"{dataset} line {line}: {_describe(e)}") from e

    def iter_timezones(self) -> Iterator[TimezoneEntry]:
        dataset = "timezones"
        for first_line, frame in self._read_chunks(dataset, self.paths.timezones, TIMEZONE_COLUMNS):
            for position, row in enumerate(frame.itertuples(index=False)):
                try:
                    yield TimezoneEntry(store_id=row.store_id, timezone=row.timezone)
                except ValidationError as e:
                    raise DatasetParseError(f"{dataset} line {first_line + position}: {_describe(e)}") from e

    def _read_chunks(
        self, dataset: str, path: str, columns: Dict[str, Tuple[str, ...]]
    ) -> Iterator[Tuple[int, pd.DataFrame]]:
        """Yield (line number of the first row, normalized frame) per chunk"""
        if not os.path.exists(path):
            raise DatasetUnavailableError(f"{dataset} dataset not found at {path}")

        rows_seen = 0
        try:
            with pd.read_csv(path, dtype=str, keep_default_na=False, chunksize=self.chunk_size) as reader:
                for chunk in reader:
                    # line 1 is the header
                    first_line = rows_seen + 2
                    yield first_line, _select_columns(chunk, dataset, columns, first_line)
                    rows_seen += len(chunk)
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise DatasetParseError(f"{dataset}: unreadable CSV ({e})") from e


def _select_columns(
    chunk: pd.DataFrame, dataset: str, columns: Dict[str, Tuple[str, ...]], first_line: int
) -> pd.DataFrame:
    selected = {}
    for name, aliases in columns.items():
        source = next((alias for alias in aliases if alias in chunk.columns), None)
        if source is None:
            raise DatasetParseError(
                f"{dataset}: missing required column '{aliases[0]}' (accepted: {', '.join(aliases)})"
            )
        values = chunk[source].fillna("").astype(str).str.strip()
        blank = (values == "").to_numpy().nonzero()[0]
        if len(blank):
            raise DatasetParseError(f"{dataset} line {first_line + blank[0]}: missing value for '{source}'")
        selected[name] = values
    return pd.DataFrame(selected)


def _parse_timestamps(raw: pd.Series, dataset: str, first_line: int) -> pd.Series:
    cleaned = raw.str.replace(r"\s*UTC$", "", regex=True)
    parsed = pd.to_datetime(cleaned, utc=True, errors="coerce", format="ISO8601")
    bad = parsed.isna().to_numpy().nonzero()[0]
    if len(bad):
        position = bad[0]
        raise DatasetParseError(
            f"{dataset} line {first_line + position}: unparseable timestamp '{raw.iloc[position]}'"
        )
    return parsed


def _parse_local_time(value: str, dataset: str, line: int) -> time:
    for fmt in LOCAL_TIME_FORMATS:
        try:
            return datetime.strptime(value, fmt).time()
        except ValueError:
            continue
    raise DatasetParseError(f"{dataset} line {line}: unparseable local time '{value}'")


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    return f"{field}: {first.get('msg')} (got {first.get('input')!r})"


def fetch_datasets(paths: DatasetPaths, url: Optional[str] = None) -> bool:
    """Download and extract the dataset archive when any CSV file is missing.

    Returns True when files were written, False when everything was already
    in place.
    """
    if all(os.path.exists(path) for path in paths):
        return False

    url = url or config.DATASET_URL
    logger.info(f"Downloading store monitoring datasets from {url}")
    try:
        with urllib.request.urlopen(url) as response:
            archive = response.read()
    except OSError as e:
        raise DatasetUnavailableError(f"Failed to download datasets from {url}: {e}") from e

    targets = paths._asdict()
    extracted = set()
    try:
        with zipfile.ZipFile(io.BytesIO(archive)) as zf:
            for member in zf.infolist():
                if member.is_dir():
                    continue
                kind = ARCHIVE_MEMBERS.get(os.path.basename(member.filename).lower())
                if kind is None:
                    continue
                target = targets[kind]
                os.makedirs(os.path.dirname(os.path.abspath(target)), exist_ok=True)
                with zf.open(member) as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                extracted.add(kind)
    except zipfile.BadZipFile as e:
        raise DatasetUnavailableError(f"Dataset archive from {url} is not a valid zip file") from e

    missing = [kind for kind, target in targets.items() if kind not in extracted and not os.path.exists(target)]
    if missing:
        raise DatasetUnavailableError(f"Dataset archive is missing: {', '.join(missing)}")

    logger.info(f"Datasets extracted: {', '.join(sorted(extracted))}")
    return True

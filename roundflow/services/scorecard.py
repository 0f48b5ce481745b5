"""Reference scorecard collaborators: a CSV parser and an HTTP fetcher.

The parser understands a plain layout only: one header row naming a player
column plus either a total column or per-hole columns.  ``Par`` rows are
skipped.  Real export formats with their own column heuristics plug in
through the ``ScorecardParser`` protocol.
"""

from __future__ import annotations

import csv
import io
import logging
import re

import httpx

from roundflow.errors import ScorecardFetchError, ScorecardParseError
from roundflow.models.imports import ParsedPlayerScore

logger = logging.getLogger(__name__)

_NAME_COLUMNS = {"name", "player", "playername", "player_name"}
_TOTAL_COLUMNS = {"total", "score", "strokes"}
_HOLE_COLUMN = re.compile(r"^(?:hole[ _]?|h)?(\d{1,2})$")
_PAR_LABELS = {"par", "pars", "p"}
_XLSX_SIGNATURE = b"PK\x03\x04"


def normalize_player_name(name: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    cleaned = re.sub(r"[^\w\s]", "", name.lower())
    return " ".join(cleaned.split())


def _to_int(value: str, what: str, line: int) -> int:
    try:
        return int(value.strip())
    except ValueError:
        raise ScorecardParseError(
            f"line {line}: {what} {value!r} is not a number"
        ) from None


class CsvScorecardParser:
    """Minimal ``ScorecardParser`` for CSV files."""

    def parse(self, file_name: str, data: bytes) -> list[ParsedPlayerScore]:
        if not data:
            raise ScorecardParseError(f"{file_name or 'scorecard'} is empty")
        if data.startswith(_XLSX_SIGNATURE):
            raise ScorecardParseError(
                f"{file_name or 'scorecard'} looks like a spreadsheet, not CSV"
            )
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ScorecardParseError(f"{file_name}: not UTF-8 text") from exc

        rows = [
            row
            for row in csv.reader(io.StringIO(text))
            if any(cell.strip() for cell in row)
        ]
        if not rows:
            raise ScorecardParseError(f"{file_name or 'scorecard'} has no rows")

        header = [cell.strip().lower() for cell in rows[0]]
        name_col = next(
            (i for i, col in enumerate(header) if col.replace(" ", "") in _NAME_COLUMNS),
            None,
        )
        if name_col is None:
            raise ScorecardParseError("no player name column in header")
        total_col = next(
            (i for i, col in enumerate(header) if col in _TOTAL_COLUMNS), None
        )
        hole_cols = [i for i, col in enumerate(header) if _HOLE_COLUMN.match(col)]
        if total_col is None and not hole_cols:
            raise ScorecardParseError("no total or hole columns in header")

        players: list[ParsedPlayerScore] = []
        for line, row in enumerate(rows[1:], start=2):
            if name_col >= len(row):
                continue
            raw_name = row[name_col].strip()
            if not raw_name or raw_name.lower() in _PAR_LABELS:
                continue
            holes = [
                _to_int(row[i], f"hole {header[i]}", line)
                for i in hole_cols
                if i < len(row) and row[i].strip()
            ]
            if total_col is not None and total_col < len(row) and row[total_col].strip():
                score = _to_int(row[total_col], "total", line)
            elif holes:
                score = sum(holes)
            else:
                raise ScorecardParseError(f"line {line}: no score for {raw_name!r}")
            players.append(
                ParsedPlayerScore(
                    raw_name=raw_name,
                    normalized_name=normalize_player_name(raw_name),
                    score=score,
                    hole_scores=holes,
                )
            )

        if not players:
            raise ScorecardParseError("scorecard contains no player rows")
        logger.debug("Parsed %d player rows from %s", len(players), file_name)
        return players


class HttpScorecardFetcher:
    """``ScorecardFetcher`` backed by ``httpx``.

    Parameters
    ----------
    timeout_seconds:
        Total request timeout.
    max_bytes:
        Downloads larger than this are rejected.
    client:
        Pre-built ``httpx.Client`` (tests pass one with a ``MockTransport``).
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 10.0,
        max_bytes: int = 5 * 1024 * 1024,
        client: httpx.Client | None = None,
    ) -> None:
        self._max_bytes = max_bytes
        self._client = client or httpx.Client(
            timeout=timeout_seconds, follow_redirects=True
        )

    def fetch(self, url: str) -> bytes:
        if not url.startswith(("http://", "https://")):
            raise ScorecardFetchError(f"Unsupported scorecard URL: {url!r}")
        try:
            with self._client.stream("GET", url) as response:
                response.raise_for_status()
                data = self._read_limited(response)
        except httpx.HTTPStatusError as exc:
            raise ScorecardFetchError(
                f"Scorecard download failed with HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ScorecardFetchError(f"Scorecard download failed: {exc}") from exc

        logger.info("Fetched %d byte scorecard from %s", len(data), url)
        return data

    def _read_limited(self, response: httpx.Response) -> bytes:
        """Read the body, stopping as soon as it passes ``max_bytes``."""
        declared = response.headers.get("Content-Length", "")
        if declared.isdigit() and int(declared) > self._max_bytes:
            raise ScorecardFetchError(
                f"Scorecard is {declared} bytes; limit is {self._max_bytes}"
            )
        received = bytearray()
        for chunk in response.iter_bytes():
            received += chunk
            if len(received) > self._max_bytes:
                raise ScorecardFetchError(
                    f"Scorecard passed {len(received)} bytes; limit is {self._max_bytes}"
                )
        return bytes(received)

    def close(self) -> None:
        self._client.close()

"""Retrieval of the benchmark fixture from its fixed URL."""

from __future__ import annotations

import hashlib
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlparse

import requests

from binbench import __version__
from binbench.logging import get_logger
from binbench.stages import StageError

log = get_logger("fixture")

_USER_AGENT = f"binbench/{__version__}"
_CHUNK_SIZE = 64 * 1024


def fixture_filename(url: str) -> str:
    """The local file name for *url*: the last path segment (like ``curl -O``)."""
    name = PurePosixPath(unquote(urlparse(url).path)).name
    return name or "fixture"


def fetch_fixture(
    url: str,
    dest_dir: Path,
    *,
    timeout: float = 60.0,
    sha256: str | None = None,
) -> Path:
    """Download *url* into *dest_dir* and return the file path.

    No retry is attempted.  When *sha256* is given the download must
    match it.

    Raises:
        StageError: On a network error, a non-2xx response, a local write
            error, or a checksum mismatch.
    """
    dest = dest_dir / fixture_filename(url)
    log.info("Fetching fixture %s", url)

    try:
        resp = requests.get(
            url, timeout=timeout, stream=True, headers={"User-Agent": _USER_AGENT}
        )
    except requests.ConnectionError as exc:
        raise StageError("measure", "fixture", f"Connection error fetching {url}: {exc}") from exc
    except requests.Timeout as exc:
        raise StageError("measure", "fixture", f"Timeout fetching {url}") from exc
    except requests.RequestException as exc:
        raise StageError("measure", "fixture", f"Request error fetching {url}: {exc}") from exc

    with resp:
        if not 200 <= resp.status_code < 300:
            raise StageError(
                "measure",
                "fixture",
                f"Fixture download returned HTTP {resp.status_code} for {url}",
            )

        digest = hashlib.sha256()
        size = 0
        try:
            with dest.open("wb") as fh:
                for chunk in resp.iter_content(chunk_size=_CHUNK_SIZE):
                    fh.write(chunk)
                    digest.update(chunk)
                    size += len(chunk)
        except requests.RequestException as exc:
            dest.unlink(missing_ok=True)
            raise StageError(
                "measure", "fixture", f"Download of {url} interrupted: {exc}"
            ) from exc
        except OSError as exc:
            dest.unlink(missing_ok=True)
            raise StageError("measure", "fixture", f"Cannot write {dest}: {exc}") from exc

    if sha256 is not None and digest.hexdigest() != sha256.lower():
        dest.unlink(missing_ok=True)
        raise StageError(
            "measure",
            "fixture",
            f"Fixture checksum mismatch: expected {sha256.lower()}, got {digest.hexdigest()}",
        )

    log.info("Fixture saved to %s (%d bytes)", dest, size)
    return dest

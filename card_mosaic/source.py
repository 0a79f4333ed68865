"""Remote tile source: random card art crops from the Scryfall API."""

from __future__ import annotations

import io
import logging
import time
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import requests
from PIL import Image, UnidentifiedImageError

from card_mosaic.config import RetryPolicy
from card_mosaic.tiles import save_tile

logger = logging.getLogger(__name__)

DEFAULT_RANDOM_URL = "https://api.scryfall.com/cards/random"
ACCEPTED_LAYOUTS = frozenset({"normal"})


class FetchError(RuntimeError):
    """A tile could not be fetched or decoded."""


class LayoutRejected(FetchError):
    """The card's layout is not one we crop art from."""


class ScryfallSource:
    """Fetches random card art crops.

    Only cards whose ``layout`` is in *accepted_layouts* are returned; others
    raise :class:`LayoutRejected` so the caller can simply try again.
    """

    def __init__(
        self,
        url: str = DEFAULT_RANDOM_URL,
        accepted_layouts: frozenset[str] = ACCEPTED_LAYOUTS,
        timeout: int = 30,
        session: requests.Session | None = None,
    ):
        self.url = url
        self.accepted_layouts = accepted_layouts
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": "card-mosaic/1.0",
            "Accept": "application/json",
        })

    def _get(self, url: str) -> requests.Response:
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise FetchError(f"GET {url} failed: {exc}") from exc
        return response

    def fetch_random_tile(self) -> tuple[Image.Image, uuid.UUID]:
        """One random accepted card's art crop and its id.

        Raises:
            LayoutRejected: if the drawn card has an unaccepted layout.
            FetchError:     on transport, HTTP, JSON or decode failures.
        """
        try:
            info = self._get(self.url).json()
            layout = info.get("layout")
            card_id = uuid.UUID(info["id"])
            if layout not in self.accepted_layouts:
                raise LayoutRejected(f"card {card_id} has layout {layout!r}")
            art_url = info["image_uris"]["art_crop"]
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise FetchError(f"malformed card payload: {exc}") from exc

        content = self._get(art_url).content
        try:
            with Image.open(io.BytesIO(content)) as img:
                image = img.convert("RGB")
        except (OSError, UnidentifiedImageError) as exc:
            raise FetchError(f"art crop for {card_id} is not an image") from exc
        return image, card_id


def fetch_with_retry(
    source: ScryfallSource,
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[Image.Image, uuid.UUID]:
    """Call ``source.fetch_random_tile`` until it succeeds or *policy* runs out.

    Raises:
        FetchError: the last failure, once ``policy.max_attempts`` are used.
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return source.fetch_random_tile()
        except FetchError as exc:
            if attempt == policy.max_attempts:
                raise
            delay = policy.delay(attempt)
            logger.debug("Attempt %d failed (%s); retrying in %.1f s", attempt, exc, delay)
            sleep(delay)
    raise FetchError("retry policy allows no attempts")


def pull_tiles(
    source: ScryfallSource,
    count: int,
    directory: Path,
    aspect: float,
    policy: RetryPolicy,
    workers: int = 4,
    sleep: Callable[[float], None] = time.sleep,
) -> list[Path]:
    """Fetch *count* tiles concurrently, cropping and caching each one.

    Returns:
        Paths of the saved tiles, in submission order.
    """
    if count < 0:
        raise ValueError(f"count must be >= 0, got {count}")

    def _pull_one(_: int) -> Path:
        image, card_id = fetch_with_retry(source, policy, sleep)
        path = save_tile(image, str(card_id), directory, aspect)
        logger.info("Got card %s", card_id)
        return path

    with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
        return list(executor.map(_pull_one, range(count)))

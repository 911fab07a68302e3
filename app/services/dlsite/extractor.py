"""DLsite product page extraction.

Each field is extracted independently. A field that cannot be read falls
back to its empty value (``""`` or ``None``) and never aborts the page.
"""

import re
import unicodedata
from collections.abc import Callable
from typing import TypeVar

from bs4 import BeautifulSoup, Tag
from loguru import logger

from app.core.constants import DEFAULT_GENRE, DESCRIPTION_MAX_LENGTH
from app.core.exceptions import ParseError
from app.models.game import GameDetails

T = TypeVar("T")

TITLE_SELECTOR = "#work_name, .work_name, h1[id*='work']"
CIRCLE_SELECTOR = "span[class*='maker'] a, .maker_name a"
DESCRIPTION_SELECTOR = ".work_parts_area, .summary, [class*='introduction']"

IMAGE_SELECTORS = (
    ".slider_item img",
    ".work_slider img",
    "#work_left img",
    ".work_img img",
    ".work_main img",
    ".pd_img img",
)
# Lazy-loading attributes come before src, which is often a placeholder
IMAGE_ATTRIBUTES = ("data-src", "data-original", "data-lazy-src", "data-lazy", "src")

PRICE_LABELS = ("サークル設定価格", "価格", "販売価格", "通常価格")
PRICE_SELECTORS = (
    ".work_price",
    ".price",
    "dd:-soup-contains('価格')",
    "span.price",
    ".work_info .price",
    "[itemprop='price']",
)
FREE_MARKER = "無料"

RELEASE_DATE_LABELS = ("販売日", "配信開始日")
GENRE_LABELS = ("ジャンル",)

_FULL_DATE = re.compile(r"(\d{4})[/年](\d{1,2})[/月](\d{1,2})")
_MONTH_DAY = re.compile(r"(\d{1,2})[/月](\d{1,2})")
_PRICE_NUMBER = re.compile(r"\d[\d,]*")

# Checked in order; the first group with a hit wins
_GENRE_MARKERS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("RPG", ("rpg",)),
    ("アドベンチャー", ("adv", "アドベンチャー", "ノベル", "脱出", "探索")),
    ("シミュレーション", ("slg", "シミュレーション", "育成")),
    ("アクション", ("act", "アクション")),
    ("パズル", ("パズル", "puzzle")),
)


def clean_text(text: str | None) -> str:
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def _normalize(text: str) -> str:
    # Folds full-width digits and punctuation (１，９８０ -> 1,980)
    return unicodedata.normalize("NFKC", text)


def _select_text(soup: BeautifulSoup, selector: str) -> str:
    node = soup.select_one(selector)
    if node is None:
        raise ParseError(f"nothing matches {selector!r}")
    return clean_text(node.get_text())


def _label_value(soup: BeautifulSoup, labels: tuple[str, ...]) -> str:
    """Return the ``<td>`` text next to the first ``<th>`` containing a label."""
    for label in labels:
        th = soup.select_one(f"th:-soup-contains('{label}')")
        if th is None:
            continue
        td = th.find_next_sibling("td")
        text = clean_text(td.get_text()) if isinstance(td, Tag) else ""
        if text:
            return text
    return ""


def parse_price_text(text: str | None) -> int | None:
    """Parse a displayed price.

    ``"無料"`` is 0, ``"1,980円"`` is 1980 and text without digits is None.
    """
    if not text:
        return None
    normalized = clean_text(_normalize(text))
    if FREE_MARKER in normalized:
        return 0
    match = _PRICE_NUMBER.search(normalized)
    if not match:
        return None
    digits = match.group(0).replace(",", "")
    return int(digits) if digits else None


def _price_from_attributes(soup: BeautifulSoup, game_id: str) -> int | None:
    # Prices rendered client-side still ship as data attributes in the HTML
    candidates = (
        f".ga4_event_item_{game_id}[data-price], .ga4_event_item_{game_id}[data-official_price], "
        f"[data-product_id='{game_id}'][data-price], [data-product_id='{game_id}'][data-official_price]",
        f"template[data-vue-component='product-price'][data-product-id='{game_id}'], "
        f"[data-vue-component='product-price'][data-product-id='{game_id}']",
    )
    for selector in candidates:
        node = soup.select_one(selector)
        if node is None:
            continue
        raw = str(node.get("data-price") or node.get("data-official_price") or "").replace(",", "").strip()
        match = re.match(r"\d+", raw)
        if match:
            return int(match.group(0))
    return None


def extract_price(soup: BeautifulSoup, game_id: str) -> int | None:
    price = _price_from_attributes(soup, game_id)
    if price is not None:
        return price

    price_text = _label_value(soup, PRICE_LABELS)
    if not price_text:
        for selector in PRICE_SELECTORS:
            node = soup.select_one(selector)
            text = clean_text(node.get_text()) if node else ""
            if text:
                price_text = text
                break

    return parse_price_text(price_text)


def extract_image_url(soup: BeautifulSoup) -> str:
    image_url = ""
    for selector in IMAGE_SELECTORS:
        img = soup.select_one(selector)
        if img is None:
            continue
        for attr in IMAGE_ATTRIBUTES:
            value = str(img.get(attr) or "").strip()
            if value:
                image_url = value
                break
        if image_url:
            break
        srcset = str(img.get("srcset") or "")
        first = srcset.split(",")[0].strip().split(" ")[0] if srcset else ""
        if first:
            image_url = first
            break

    if not image_url:
        meta = soup.select_one("meta[property='og:image'], meta[name='og:image']")
        image_url = str(meta.get("content") or "") if meta else ""

    if not image_url:
        link = soup.select_one("link[rel='image_src']")
        image_url = str(link.get("href") or "") if link else ""

    image_url = image_url.strip()
    if image_url.startswith("//"):
        image_url = "https:" + image_url
    return image_url


def parse_release_date(text: str | None, year: int | None = None, month: int | None = None) -> str:
    """Normalize a release date to ``YYYY-MM-DD``.

    Without a recognizable date the middle of the requested month is used,
    and without a requested month the result is an empty string.
    """
    has_context = year is not None and month is not None
    fallback = f"{year:04d}-{month:02d}-15" if has_context else ""
    if not text:
        return fallback

    normalized = _normalize(text)
    match = _FULL_DATE.search(normalized)
    if match:
        y, m, d = (int(g) for g in match.groups())
        return f"{y:04d}-{m:02d}-{d:02d}"

    match = _MONTH_DAY.search(normalized)
    if match:
        if year is None:
            return ""
        m, d = (int(g) for g in match.groups())
        return f"{year:04d}-{m:02d}-{d:02d}"

    return fallback


def detect_genre(title: str) -> str:
    """Guess a genre from title keywords."""
    lowered = _normalize(title or "").lower()
    for genre, markers in _GENRE_MARKERS:
        if any(marker in lowered for marker in markers):
            return genre
    return DEFAULT_GENRE


def _field(game_id: str, name: str, extract: Callable[[], T], default: T) -> T:
    try:
        return extract()
    except (ParseError, AttributeError, ValueError, TypeError) as e:
        logger.debug(f"[{game_id}] {name} not extracted: {e}")
        return default


def parse_game_details(
    html: str,
    game_id: str,
    url: str,
    year: int | None = None,
    month: int | None = None,
) -> GameDetails:
    """Build a GameDetails record from a product page."""
    soup = BeautifulSoup(html or "", "html.parser")

    title = _field(game_id, "title", lambda: _select_text(soup, TITLE_SELECTOR), "")
    circle = _field(game_id, "circle", lambda: _select_text(soup, CIRCLE_SELECTOR), "")
    description = _field(game_id, "description", lambda: _select_text(soup, DESCRIPTION_SELECTOR), "")
    image_url = _field(game_id, "image_url", lambda: extract_image_url(soup), "")
    price = _field(game_id, "price", lambda: extract_price(soup, game_id), None)
    release_date = _field(
        game_id,
        "release_date",
        lambda: parse_release_date(_label_value(soup, RELEASE_DATE_LABELS), year, month),
        "",
    )
    genre = _field(game_id, "genre", lambda: _label_value(soup, GENRE_LABELS), "") or detect_genre(title)

    return GameDetails(
        id=game_id,
        title=title,
        circle=circle,
        description=description[:DESCRIPTION_MAX_LENGTH],
        image_url=image_url,
        price=price,
        release_date=release_date,
        genre=genre,
        dlsite_url=url,
    )

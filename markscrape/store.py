"""
Selector group persistence: every group lives in one JSON array under a fixed key.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from pydantic import ValidationError

from .config import get_settings
from .models import ExtractionType, Selector, SelectorGroup, SelectorOrigin
from .selectors import SelectorSet

logger = logging.getLogger(__name__)

GROUPS_KEY = "selector-groups"


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...


class MemoryStore:
    def __init__(self):
        self.data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value


class JsonFileStore:
    """Key-value entries kept in a single JSON object on disk."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path or get_settings().store_path).expanduser()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, encoding="utf-8") as f:
            return json.load(f)

    def _write(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        tmp.replace(self.path)

    async def get(self, key: str) -> Optional[str]:
        data = await asyncio.to_thread(self._read)
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, key, value)


class SelectorGroupStore:
    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store = store if store is not None else JsonFileStore()

    async def list_groups(self) -> List[SelectorGroup]:
        raw = await self.store.get(GROUPS_KEY)
        if not raw:
            return []
        try:
            items: List[Any] = json.loads(raw)
        except json.JSONDecodeError:
            logger.error("selector group entry is not valid JSON", extra={"key": GROUPS_KEY})
            return []

        groups = []
        for item in items:
            try:
                groups.append(SelectorGroup.model_validate(item))
            except ValidationError:
                logger.warning("dropping malformed selector group", extra={"group": item})
        return groups

    async def _save_all(self, groups: List[SelectorGroup]) -> None:
        payload = json.dumps([g.model_dump(mode="json") for g in groups])
        await self.store.set(GROUPS_KEY, payload)

    async def get_group(self, group_id_or_name: str) -> Optional[SelectorGroup]:
        for group in await self.list_groups():
            if group.id == group_id_or_name or group.name == group_id_or_name:
                return group
        return None

    async def save_group(self, group: SelectorGroup) -> SelectorGroup:
        """Create the group, or update the one with the same id or name."""
        groups = await self.list_groups()
        for i, existing in enumerate(groups):
            if existing.id == group.id or existing.name == group.name:
                group = group.model_copy(update={"id": existing.id})
                groups[i] = group
                break
        else:
            groups.append(group)
        await self._save_all(groups)
        logger.info("selector group saved", extra={"group": group.name, "selectors": len(group.selectors)})
        return group

    async def delete_group(self, group_id_or_name: str) -> bool:
        groups = await self.list_groups()
        remaining = [g for g in groups if g.id != group_id_or_name and g.name != group_id_or_name]
        if len(remaining) == len(groups):
            return False
        await self._save_all(remaining)
        return True

    async def load_into(self, selectors: SelectorSet, group_id_or_name: str) -> Optional[SelectorGroup]:
        """Replace the active selector set with a stored group's selectors."""
        group = await self.get_group(group_id_or_name)
        if group is not None:
            selectors.replace(group.selectors)
        return group


def _suggested(css: str, kind: ExtractionType, name: str) -> Selector:
    return Selector(css_selector=css, extraction_type=kind, field_name=name, origin=SelectorOrigin.SUGGESTED)


def templates() -> List[SelectorGroup]:
    """Ready-made groups for common page types."""
    return [
        SelectorGroup(
            id="template-ecommerce-product",
            name="E-commerce Product",
            selectors=[
                _suggested('h1, .product-title, [itemprop="name"]', ExtractionType.TEXT, "title"),
                _suggested('.price, [itemprop="price"]', ExtractionType.TEXT, "price"),
                _suggested('.description, [itemprop="description"]', ExtractionType.TEXT, "description"),
                _suggested('.product-image, [itemprop="image"]', ExtractionType.IMAGE, "image"),
                _suggested('.rating, [itemprop="ratingValue"]', ExtractionType.TEXT, "rating"),
                _suggested('.reviews, [itemprop="reviewCount"]', ExtractionType.TEXT, "reviewCount"),
            ],
        ),
        SelectorGroup(
            id="template-news-article",
            name="News Article",
            selectors=[
                _suggested('h1, .article-title, [itemprop="headline"]', ExtractionType.TEXT, "title"),
                _suggested('.article-content, [itemprop="articleBody"]', ExtractionType.TEXT, "content"),
                _suggested('.author, [itemprop="author"]', ExtractionType.TEXT, "author"),
                _suggested('.published-date, [itemprop="datePublished"]', ExtractionType.TEXT, "date"),
                _suggested('.featured-image, [itemprop="image"]', ExtractionType.IMAGE, "image"),
            ],
        ),
        SelectorGroup(
            id="template-search-results",
            name="Search Results",
            selectors=[
                _suggested(".result-title, .search-result-title", ExtractionType.LIST, "titles"),
                _suggested(".result-link, .search-result-link", ExtractionType.LINK, "links"),
                _suggested(".result-description, .search-result-description", ExtractionType.LIST, "descriptions"),
            ],
        ),
    ]

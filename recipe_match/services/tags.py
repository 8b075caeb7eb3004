from typing import Any, Dict, List

from sqlalchemy import select

from recipe_match.database import Database
from recipe_match.models import TAG_AXES
from recipe_match.services.cache import TTL_TAGS, CacheKeys, CacheStore


def _tag_to_dict(tag, kind: str) -> Dict[str, Any]:
    return {"id": tag.id, "tag": tag.tag, "slug": tag.slug, "name": tag.name, "type": kind}


class TagResolver:
    """Diet / meal-type / kitchen reference rows, loaded once and cached as one list."""

    def __init__(self, db: Database, cache: CacheStore):
        self.db = db
        self.cache = cache

    def _load(self) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        with self.db.session() as session:
            for kind, (model, _) in TAG_AXES.items():
                rows = session.execute(select(model).order_by(model.id)).scalars().all()
                out.extend(_tag_to_dict(t, kind) for t in rows)
        return out

    def all_tags(self) -> List[Dict[str, Any]]:
        return self.cache.get_or_compute(CacheKeys.tags(), TTL_TAGS, self._load)

    def lookup(self) -> Dict[str, Dict[int, Dict[str, Any]]]:
        """kind -> {tag id: tag}"""
        by_kind: Dict[str, Dict[int, Dict[str, Any]]] = {kind: {} for kind in TAG_AXES}
        for tag in self.all_tags():
            by_kind.setdefault(tag["type"], {})[tag["id"]] = tag
        return by_kind

"""Read-only lookups against the user and product collections."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from app.infra.documents import DocumentStore

from .models import PRODUCTS_COLLECTION, USERS_COLLECTION


def _text(data: Mapping[str, Any], *names: str) -> Optional[str]:
	for name in names:
		value = data.get(name)
		if isinstance(value, str) and value.strip():
			return value.strip()
	return None


@dataclass(slots=True)
class ProductRef:
	id: str
	owner_id: Optional[str]
	title: Optional[str] = None
	image: Optional[str] = None
	farm_name: Optional[str] = None


async def display_name(store: DocumentStore, user_id: str) -> Optional[str]:
	doc = await store.get(USERS_COLLECTION, user_id)
	if doc is None:
		return None
	return _text(doc.data, "name", "display_name", "displayName")


async def load_product(store: DocumentStore, product_id: str) -> Optional[ProductRef]:
	doc = await store.get(PRODUCTS_COLLECTION, product_id)
	if doc is None:
		return None
	images = doc.data.get("images")
	image = images[0] if isinstance(images, list) and images and isinstance(images[0], str) else None
	return ProductRef(
		id=doc.id,
		owner_id=_text(doc.data, "user_id", "userId"),
		title=_text(doc.data, "title", "name"),
		image=image,
		farm_name=_text(doc.data, "farm_name", "farmName"),
	)

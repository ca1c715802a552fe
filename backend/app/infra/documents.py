"""Document store used by the chat domain.

Two backends share one protocol: an in-memory store (dev and tests) and a
Postgres store that keeps each document as a JSONB row. Child collections
(e.g. a room's messages) are addressed as ``"<collection>/<doc_id>/<child>"``.
"""

from __future__ import annotations

import asyncio
import copy
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

import ulid

from app.infra.postgres import get_pool
from app.settings import settings

Filter = Tuple[str, str, Any]

EQ = "=="
ARRAY_CONTAINS = "array_contains"


class DocumentNotFound(LookupError):
	"""Raised when updating a document that does not exist."""


@dataclass(slots=True)
class Document:
	id: str
	data: Dict[str, Any] = field(default_factory=dict)


def child_path(collection: str, doc_id: str, child: str) -> str:
	return f"{collection}/{doc_id}/{child}"


def _matches(data: Mapping[str, Any], filters: Sequence[Filter]) -> bool:
	for name, op, value in filters:
		current = data.get(name)
		if op == EQ:
			if current != value:
				return False
		elif op == ARRAY_CONTAINS:
			if not isinstance(current, list) or value not in current:
				return False
		else:
			raise ValueError(f"unsupported filter op: {op}")
	return True


class DocumentStore(Protocol):
	async def get(self, collection: str, doc_id: str) -> Optional[Document]:
		...

	async def query(self, collection: str, filters: Sequence[Filter] = ()) -> List[Document]:
		...

	async def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
		...

	async def create(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> bool:
		...

	async def update(self, collection: str, doc_id: str, partial: Mapping[str, Any]) -> None:
		...

	async def delete(self, collection: str, doc_id: str) -> bool:
		...

	async def append_child(self, collection: str, doc_id: str, child: str, data: Mapping[str, Any]) -> str:
		...

	async def list_children(
		self,
		collection: str,
		doc_id: str,
		child: str,
		*,
		order_by: str,
	) -> List[Document]:
		...

	async def delete_children(self, collection: str, doc_id: str, child: str) -> int:
		...


class InMemoryDocumentStore:
	"""Process-local store; documents are copied in and out to avoid aliasing."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

	async def get(self, collection: str, doc_id: str) -> Optional[Document]:
		async with self._lock:
			data = self._collections.get(collection, {}).get(doc_id)
			if data is None:
				return None
			return Document(id=doc_id, data=copy.deepcopy(data))

	async def query(self, collection: str, filters: Sequence[Filter] = ()) -> List[Document]:
		async with self._lock:
			docs = self._collections.get(collection, {})
			return [
				Document(id=doc_id, data=copy.deepcopy(data))
				for doc_id, data in docs.items()
				if _matches(data, filters)
			]

	async def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
		async with self._lock:
			self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(dict(data))

	async def create(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> bool:
		async with self._lock:
			docs = self._collections.setdefault(collection, {})
			if doc_id in docs:
				return False
			docs[doc_id] = copy.deepcopy(dict(data))
			return True

	async def update(self, collection: str, doc_id: str, partial: Mapping[str, Any]) -> None:
		async with self._lock:
			existing = self._collections.get(collection, {}).get(doc_id)
			if existing is None:
				raise DocumentNotFound(f"{collection}/{doc_id}")
			existing.update(copy.deepcopy(dict(partial)))

	async def delete(self, collection: str, doc_id: str) -> bool:
		async with self._lock:
			return self._collections.get(collection, {}).pop(doc_id, None) is not None

	async def append_child(self, collection: str, doc_id: str, child: str, data: Mapping[str, Any]) -> str:
		child_id = str(ulid.new())
		async with self._lock:
			path = child_path(collection, doc_id, child)
			self._collections.setdefault(path, {})[child_id] = copy.deepcopy(dict(data))
		return child_id

	async def list_children(
		self,
		collection: str,
		doc_id: str,
		child: str,
		*,
		order_by: str,
	) -> List[Document]:
		async with self._lock:
			docs = self._collections.get(child_path(collection, doc_id, child), {})
			items = [Document(id=key, data=copy.deepcopy(value)) for key, value in docs.items()]
		items.sort(key=lambda d: (str(d.data.get(order_by) or ""), d.id))
		return items

	async def delete_children(self, collection: str, doc_id: str, child: str) -> int:
		async with self._lock:
			removed = self._collections.pop(child_path(collection, doc_id, child), {})
			return len(removed)

	async def clear(self) -> None:
		async with self._lock:
			self._collections.clear()


class PostgresDocumentStore:
	"""JSONB-backed store; one row per document keyed by (collection, id)."""

	def __init__(self) -> None:
		self._schema_ready = False

	async def _pool(self):
		pool = await get_pool()
		if not self._schema_ready:
			async with pool.acquire() as conn:
				await conn.execute(
					"""
					CREATE TABLE IF NOT EXISTS documents (
						collection TEXT NOT NULL,
						id TEXT NOT NULL,
						data JSONB NOT NULL,
						PRIMARY KEY (collection, id)
					);
					CREATE INDEX IF NOT EXISTS idx_documents_data ON documents USING GIN (data);
					"""
				)
			self._schema_ready = True
		return pool

	@staticmethod
	def _load(row) -> Document:
		raw = row["data"]
		data = json.loads(raw) if isinstance(raw, str) else dict(raw)
		return Document(id=str(row["id"]), data=data)

	async def get(self, collection: str, doc_id: str) -> Optional[Document]:
		pool = await self._pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"SELECT id, data FROM documents WHERE collection = $1 AND id = $2",
				collection,
				doc_id,
			)
		return self._load(row) if row else None

	async def query(self, collection: str, filters: Sequence[Filter] = ()) -> List[Document]:
		params: List[object] = [collection]
		clauses = ["collection = $1"]
		for name, op, value in filters:
			params.append(name)
			key_ref = f"${len(params)}"
			if op == EQ:
				params.append(json.dumps(value))
				clauses.append(f"data -> {key_ref} = ${len(params)}::jsonb")
			elif op == ARRAY_CONTAINS:
				params.append(json.dumps([value]))
				clauses.append(f"data -> {key_ref} @> ${len(params)}::jsonb")
			else:
				raise ValueError(f"unsupported filter op: {op}")
		pool = await self._pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"SELECT id, data FROM documents WHERE " + " AND ".join(clauses),
				*params,
			)
		return [self._load(row) for row in rows]

	async def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
		pool = await self._pool()
		async with pool.acquire() as conn:
			await conn.execute(
				"""
				INSERT INTO documents (collection, id, data)
				VALUES ($1, $2, $3::jsonb)
				ON CONFLICT (collection, id) DO UPDATE SET data = EXCLUDED.data
				""",
				collection,
				doc_id,
				json.dumps(dict(data)),
			)

	async def create(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> bool:
		pool = await self._pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				INSERT INTO documents (collection, id, data)
				VALUES ($1, $2, $3::jsonb)
				ON CONFLICT (collection, id) DO NOTHING
				RETURNING id
				""",
				collection,
				doc_id,
				json.dumps(dict(data)),
			)
		return row is not None

	async def update(self, collection: str, doc_id: str, partial: Mapping[str, Any]) -> None:
		pool = await self._pool()
		async with pool.acquire() as conn:
			result = await conn.execute(
				"UPDATE documents SET data = data || $3::jsonb WHERE collection = $1 AND id = $2",
				collection,
				doc_id,
				json.dumps(dict(partial)),
			)
		if result.endswith(" 0"):
			raise DocumentNotFound(f"{collection}/{doc_id}")

	async def delete(self, collection: str, doc_id: str) -> bool:
		pool = await self._pool()
		async with pool.acquire() as conn:
			result = await conn.execute(
				"DELETE FROM documents WHERE collection = $1 AND id = $2",
				collection,
				doc_id,
			)
		return not result.endswith(" 0")

	async def append_child(self, collection: str, doc_id: str, child: str, data: Mapping[str, Any]) -> str:
		child_id = str(ulid.new())
		await self.set(child_path(collection, doc_id, child), child_id, data)
		return child_id

	async def list_children(
		self,
		collection: str,
		doc_id: str,
		child: str,
		*,
		order_by: str,
	) -> List[Document]:
		pool = await self._pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT id, data FROM documents
				WHERE collection = $1
				ORDER BY data ->> $2 ASC, id ASC
				""",
				child_path(collection, doc_id, child),
				order_by,
			)
		return [self._load(row) for row in rows]

	async def delete_children(self, collection: str, doc_id: str, child: str) -> int:
		pool = await self._pool()
		async with pool.acquire() as conn:
			result = await conn.execute(
				"DELETE FROM documents WHERE collection = $1",
				child_path(collection, doc_id, child),
			)
		return int(result.split()[-1]) if result else 0


_store: Optional[DocumentStore] = None


def get_document_store() -> DocumentStore:
	global _store
	if _store is None:
		_store = PostgresDocumentStore() if settings.document_store == "postgres" else InMemoryDocumentStore()
	return _store


def set_document_store(store: Optional[DocumentStore]) -> None:
	global _store
	_store = store

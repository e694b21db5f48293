"""
JSON-file persistence for ordered record collections (groups, custom themes).
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Generic, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, TypeAdapter

from .errors import RecordNotFoundError, StoreError
from .models import Group

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class JsonCollection(Generic[T]):
    """
    Ordered list of records stored as a JSON array in a single file.

    A missing file is an empty collection. Saves replace the file atomically.
    """

    def __init__(self, path: Union[str, Path], model: Type[T]):
        self.path = Path(path)
        self.model = model
        self._adapter = TypeAdapter(List[model])

    def load(self) -> List[T]:
        if not self.path.exists():
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return self._adapter.validate_python(data)

    def save(self, items: List[T]) -> None:
        payload = [item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in items]

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        except OSError as e:
            raise self._store_error(e) from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise self._store_error(e) from e
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Saved {len(items)} records to {self.path}")

    def _store_error(self, error: OSError) -> StoreError:
        logger.error(f"Failed to save {self.path}: {error}")
        return StoreError(f"Failed to save {self.path.name}: {error}", details={"path": str(self.path)})


class GroupRepository:
    """Ordered group records, optionally persisted to a JsonCollection."""

    def __init__(self, collection: Optional[JsonCollection[Group]] = None):
        self._collection = collection
        self._groups: List[Group] = collection.load() if collection else []

    def list(self) -> List[Group]:
        return list(self._groups)

    def get(self, group_id: str) -> Group:
        for group in self._groups:
            if group.id == group_id:
                return group
        raise RecordNotFoundError("group", group_id)

    def save(self, group: Group) -> Group:
        """Insert or replace a group, keeping its position in the list."""
        groups = list(self._groups)
        for i, existing in enumerate(groups):
            if existing.id == group.id:
                groups[i] = group
                break
        else:
            groups.append(group)
        self._commit(groups)
        return group

    def delete(self, group_id: str) -> Group:
        group = self.get(group_id)
        self._commit([g for g in self._groups if g.id != group_id])
        return group

    def _commit(self, groups: List[Group]) -> None:
        # Persist before swapping in memory so a failed write changes nothing
        if self._collection:
            self._collection.save(groups)
        self._groups = groups

"""
GroupEditor - Group, product and background mutations.

Every mutation that touches image bytes follows the same order: write new
blobs first, commit the group record, delete old blobs last. A failed write
aborts the mutation with the record unchanged; a failed delete only leaves an
orphaned blob, which find_orphans() reports.
"""

import logging
import uuid
from typing import Iterable, List, Optional, Set

from .blob_store import BlobStore, replace_blob
from .errors import RecordNotFoundError, StoreError
from .models import ColorBackground, Group, ImageBackground, Product
from .repository import GroupRepository

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


def _find_product(group: Group, product_id: str) -> Product:
    for product in group.products:
        if product.id == product_id:
            return product
    raise RecordNotFoundError("product", product_id)


class GroupEditor:
    """Applies editing operations to groups stored in a GroupRepository."""

    def __init__(self, blob_store: BlobStore, groups: GroupRepository):
        self.blob_store = blob_store
        self.groups = groups

    def _update(self, group_id: str, **changes) -> Group:
        # Re-read so changes made while awaiting the store are kept
        group = self.groups.get(group_id)
        return self.groups.save(group.model_copy(update=changes))

    def _update_product(self, group_id: str, product_id: str, **changes) -> Product:
        group = self.groups.get(group_id)
        _find_product(group, product_id)
        products = [p.model_copy(update=changes) if p.id == product_id else p for p in group.products]
        saved = self.groups.save(group.model_copy(update={"products": products}))
        return _find_product(saved, product_id)

    async def _discard(self, blob_ids: Iterable[str]) -> None:
        for blob_id in blob_ids:
            try:
                await self.blob_store.delete(blob_id)
            except StoreError as e:
                logger.warning(f"Blob {blob_id} could not be deleted and is now orphaned: {e}")

    # ============== Groups ==============

    def create_group(self, name: str, theme_id: Optional[str] = None) -> Group:
        group = Group(id=_new_id(), name=name, theme_id=theme_id)
        logger.info(f"Created group {group.id} ({name})")
        return self.groups.save(group)

    def rename_group(self, group_id: str, name: str) -> Group:
        return self._update(group_id, name=name)

    def set_theme(self, group_id: str, theme_id: Optional[str]) -> Group:
        return self._update(group_id, theme_id=theme_id)

    async def delete_group(self, group_id: str) -> Group:
        group = self.groups.delete(group_id)
        await self._discard(group.blob_ids)
        logger.info(f"Deleted group {group_id} and {len(group.blob_ids)} blobs")
        return group

    # ============== Products ==============

    async def add_product(self, group_id: str, name: str, data: bytes) -> Product:
        self.groups.get(group_id)
        image_id = await self.blob_store.put(data)
        product = Product(id=_new_id(), name=name, image_id=image_id, is_active=True)

        try:
            group = self.groups.get(group_id)
            self.groups.save(group.model_copy(update={"products": group.products + [product]}))
        except Exception:
            logger.error(f"Failed to add product {name}; blob {image_id} left orphaned")
            raise

        logger.info(f"Added product {product.id} ({name}) to group {group_id}")
        return product

    def get_product(self, group_id: str, product_id: str) -> Product:
        return _find_product(self.groups.get(group_id), product_id)

    def rename_product(self, group_id: str, product_id: str, name: str) -> Product:
        return self._update_product(group_id, product_id, name=name)

    def set_product_active(self, group_id: str, product_id: str, is_active: bool) -> Product:
        return self._update_product(group_id, product_id, is_active=is_active)

    def toggle_product(self, group_id: str, product_id: str) -> Product:
        product = self.get_product(group_id, product_id)
        return self.set_product_active(group_id, product_id, not product.is_active)

    async def replace_product_image(self, group_id: str, product_id: str, data: bytes) -> Product:
        product = self.get_product(group_id, product_id)

        async def commit(new_id: str) -> None:
            self._update_product(group_id, product_id, image_id=new_id)

        await replace_blob(self.blob_store, product.image_id, data, commit)
        return self.get_product(group_id, product_id)

    async def delete_product(self, group_id: str, product_id: str) -> Group:
        group = self.groups.get(group_id)
        product = _find_product(group, product_id)
        updated = self._update(group_id, products=[p for p in group.products if p.id != product_id])
        await self._discard([product.image_id])
        return updated

    # ============== Background ==============

    def _background_image_id(self, group_id: str) -> Optional[str]:
        background = self.groups.get(group_id).background
        return background.image_id if isinstance(background, ImageBackground) else None

    async def set_background_color(self, group_id: str, value: str) -> Group:
        old_id = self._background_image_id(group_id)
        updated = self._update(group_id, background=ColorBackground(value=value))
        if old_id:
            await self._discard([old_id])
        return updated

    async def set_background_image(self, group_id: str, data: bytes) -> Group:
        old_id = self._background_image_id(group_id)

        async def commit(new_id: str) -> None:
            self._update(group_id, background=ImageBackground(image_id=new_id))

        await replace_blob(self.blob_store, old_id, data, commit)
        return self.groups.get(group_id)

    async def remove_background(self, group_id: str) -> Group:
        old_id = self._background_image_id(group_id)
        updated = self._update(group_id, background=None)
        if old_id:
            await self._discard([old_id])
        return updated


def referenced_blob_ids(groups: Iterable[Group]) -> Set[str]:
    ids = set()
    for group in groups:
        ids.update(group.blob_ids)
    return ids


async def find_orphans(blob_store: BlobStore, groups: Iterable[Group]) -> List[str]:
    """Blob ids no group references. Report only; nothing is deleted."""
    referenced = referenced_blob_ids(groups)
    return [blob_id for blob_id in await blob_store.list_ids() if blob_id not in referenced]

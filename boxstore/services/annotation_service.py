from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path
from typing import Any, Coroutine, Dict, List, Optional, Sequence, TypeVar

from boxstore.codecs.base import AnnotationCodec
from boxstore.codecs.registry import CodecRegistry
from boxstore.core.annotation_store import AnnotationStore
from boxstore.core.errors import NoCurrentImageError, NoFolderOpenError
from boxstore.core.file_access import FileAccess, LocalFileAccess
from boxstore.core.image_index import DiscoveredImage, discover_images
from boxstore.models.annotation import Box, Image

T = TypeVar("T")


class AnnotationService:
    """Opens folders through the active codec, saves the current image, and guards the store.

    Synchronous methods take `self.lock`; coroutines are driven through `run()`,
    which holds the same lock, so a threaded web server never runs two loads or
    saves at once.
    """

    def __init__(self,
                 store: Optional[AnnotationStore] = None,
                 registry: Optional[CodecRegistry] = None,
                 default_format: str = "yolo"):
        self.store = store if store is not None else AnnotationStore()
        self.registry = registry if registry is not None else CodecRegistry()
        self.default_format = default_format
        self.files: Optional[FileAccess] = None
        self.folder: Optional[Path] = None
        self.codec: Optional[AnnotationCodec] = None
        self.lock = threading.RLock()
        self._log = logging.getLogger("boxstore.service")

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        with self.lock:
            return asyncio.run(coro)

    def formats(self) -> List[str]:
        return self.registry.formats()

    # ---------------------------
    # Loading
    # ---------------------------

    async def open_folder(self, folder: str | Path, format_id: Optional[str] = None) -> Dict[str, Any]:
        """Discover images in `folder` and load their annotations with the chosen codec."""
        folder = Path(folder).expanduser().resolve()
        discovered = await asyncio.to_thread(discover_images, folder)
        return await self.load_images(LocalFileAccess(folder), discovered, format_id, folder=folder)

    async def load_images(self,
                          files: FileAccess,
                          discovered: Sequence[DiscoveredImage],
                          format_id: Optional[str] = None,
                          folder: Optional[Path] = None) -> Dict[str, Any]:
        """Replace the store contents with `discovered` images and their annotations.

        The store is only touched after the codec load succeeded, so an I/O or
        parse failure leaves the previous folder intact.
        """
        format_id = format_id or self.default_format
        codec = self.registry.fresh(format_id)
        images = [
            Image(id=f"img_{n}", file_name=d.file_name, file_path=d.file_path, width=d.width, height=d.height)
            for n, d in enumerate(discovered, start=1)
        ]
        result = await codec.load(files, images)

        with self.lock:
            self.store.clear()
            self.store.set_format(format_id)
            for img in images:
                self.store.add_image(img.file_name, img.file_path, img.width, img.height, image_id=img.id)
            added = self.store.ingest(result)
            self.files = files
            self.folder = folder
            self.codec = codec
            if images:
                self.store.set_current_image(images[0].id)

        self._log.info("opened folder=%s format=%s images=%d boxes=%d", folder, format_id, len(images), added)
        return self.summary()

    def _require_folder(self) -> None:
        if self.codec is None or self.files is None:
            raise NoFolderOpenError("No folder is open")

    def summary(self) -> Dict[str, Any]:
        with self.lock:
            current = self.store.get_current_image()
            return {
                "folder": str(self.folder) if self.folder is not None else None,
                "format": self.store.format,
                "images": len(self.store.get_all_images()),
                "classes": self.store.get_classes(),
                "current_image_id": current.id if current is not None else None,
                "state": self.store.state.value,
                "modified": self.store.current_image_modified,
            }

    # ---------------------------
    # Navigation
    # ---------------------------

    def list_images(self) -> List[Dict[str, Any]]:
        with self.lock:
            out = []
            for img in self.store.get_all_images():
                row = img.to_dict()
                row["box_count"] = len(img.box_ids)
                row["is_current"] = img.id == self.store.current_image_id
                out.append(row)
            return out

    def set_current_image(self, image_id: str) -> Dict[str, Any]:
        with self.lock:
            if self.store.get_image(image_id) is None:
                raise KeyError(f"Image not found: {image_id}")
            self.store.set_current_image(image_id)
            return self.summary()

    def navigate(self, offset: int) -> Dict[str, Any]:
        """Move the current image by `offset` positions, stopping at either end."""
        with self.lock:
            images = self.store.get_all_images()
            if not images:
                raise NoFolderOpenError("No images loaded")
            ids = [img.id for img in images]
            current = self.store.current_image_id
            pos = ids.index(current) if current in ids else 0
            target = min(max(pos + offset, 0), len(ids) - 1)
            if ids[target] != current:
                self.store.set_current_image(ids[target])
            return self.summary()

    # ---------------------------
    # Boxes and classes
    # ---------------------------

    def _box_view(self, box: Box) -> Dict[str, Any]:
        row = box.to_dict()
        row["class_name"] = self.store.class_name(box.class_id)
        return row

    def boxes_for_image(self, image_id: str) -> List[Dict[str, Any]]:
        with self.lock:
            if self.store.get_image(image_id) is None:
                raise KeyError(f"Image not found: {image_id}")
            return [self._box_view(b) for b in self.store.get_boxes_for_image(image_id)]

    def add_box(self, image_id: str, class_id: int, x: float, y: float, width: float, height: float) -> Dict[str, Any]:
        with self.lock:
            box_id = self.store.add_box(image_id, class_id, x, y, width, height, clamp=True)
            return self._box_view(self.store.get_box(box_id))

    def update_box(self, box_id: str, **updates: Any) -> Dict[str, Any]:
        with self.lock:
            box = self.store.update_box(box_id, **updates)
            if box is None:
                raise KeyError(f"Box not found: {box_id}")
            return self._box_view(box)

    def delete_box(self, box_id: str) -> bool:
        with self.lock:
            return self.store.delete_box(box_id)

    def list_classes(self) -> List[Dict[str, Any]]:
        with self.lock:
            return [{"id": idx, "name": name} for idx, name in enumerate(self.store.get_classes())]

    def add_class(self, name: str) -> Dict[str, Any]:
        with self.lock:
            class_id = self.store.add_class(name)
            return {"id": class_id, "name": self.store.class_name(class_id)}

    def _classes_for_save(self, boxes: Sequence[Box]) -> List[str]:
        """Class table padded so every referenced class id has a name."""
        classes = self.store.get_classes()
        max_id = max((b.class_id for b in boxes), default=-1)
        for idx in range(len(classes), max_id + 1):
            classes.append(self.store.class_name(idx))
        return classes

    # ---------------------------
    # Saving
    # ---------------------------

    async def save_current(self) -> Dict[str, Any]:
        """Write the current image through the active codec, then mark it clean.

        A failed write propagates and leaves the modified flag set.
        """
        self._require_folder()
        image = self.store.get_current_image()
        if image is None:
            raise NoCurrentImageError("No image selected")
        boxes = self.store.get_boxes_for_image(image.id)
        await self.codec.save(self.files, image, boxes, self._classes_for_save(boxes))
        self.store.clear_image_modified()
        self._log.info("saved image=%s boxes=%d format=%s", image.file_name, len(boxes), self.store.format)
        return {"image_id": image.id, "file_name": image.file_name, "boxes": len(boxes)}

    def discard_current(self) -> Dict[str, Any]:
        with self.lock:
            if self.store.current_image_id is None:
                raise NoCurrentImageError("No image selected")
            self.store.discard_current_image_edits()
            return self.summary()

    async def export(self, format_id: str) -> Dict[str, Any]:
        """Write every image of the open folder with another codec.

        The target codec loads first so an existing target file keeps the
        records of images that are not part of this folder.
        """
        self._require_folder()
        if format_id == self.store.format:
            raise ValueError(f"folder is already in {format_id!r} format")
        target = self.registry.fresh(format_id)
        images = self.store.get_all_images()
        await target.load(self.files, images)
        per_image = [(image, self.store.get_boxes_for_image(image.id)) for image in images]
        classes = self._classes_for_save([b for _, boxes in per_image for b in boxes])
        written = 0
        for image, boxes in per_image:
            await target.save(self.files, image, boxes, classes)
            written += len(boxes)
        self._log.info("exported %d images (%d boxes) from %s to %s", len(images), written, self.store.format,
                       format_id)
        return {"format": format_id, "images": len(images), "boxes": written}

    def stats(self) -> Dict[str, Any]:
        with self.lock:
            out = self.store.stats()
            out["format"] = self.store.format
            out["folder"] = str(self.folder) if self.folder is not None else None
            return out

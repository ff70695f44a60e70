"""
Tests for AnnotationService folder loading, saving and export.
"""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from boxstore.core.errors import AnnotationParseError, NoCurrentImageError, NoFolderOpenError, UnknownFormatError
from boxstore.core.image_index import DiscoveredImage
from boxstore.services.annotation_service import AnnotationService
from tests.fixtures.helpers import FailingFileAccess, MemoryFileAccess


class TestOpenFolder:
    """Test opening folders."""

    def test_open_empty_yolo_folder(self, service: AnnotationService, image_folder: Path):
        """Test a folder without labels opens with the default class."""
        summary = service.run(service.open_folder(image_folder, "yolo"))

        assert summary["images"] == 2
        assert summary["format"] == "yolo"
        assert summary["classes"] == ["object"]
        assert summary["current_image_id"] == "img_1"
        assert summary["state"] == "active-clean"

    def test_open_loads_existing_labels(self, service: AnnotationService, image_folder: Path):
        """Test labels on disk become boxes in the store."""
        (image_folder / "classes.txt").write_text("cat\ndog\n", encoding="utf-8")
        (image_folder / "a.txt").write_text("1 0.5 0.5 0.25 0.5\n", encoding="utf-8")

        service.run(service.open_folder(image_folder, "yolo"))

        boxes = service.boxes_for_image("img_1")
        assert len(boxes) == 1
        assert boxes[0]["class_name"] == "dog"
        assert boxes[0]["x"] == pytest.approx(240)

    def test_open_defaults_to_service_format(self, image_folder: Path):
        """Test the default format is used when none is given."""
        service = AnnotationService(default_format="ndjson")

        assert service.run(service.open_folder(image_folder))["format"] == "ndjson"

    def test_missing_folder(self, service: AnnotationService, temp_data_dir: Path):
        """Test a missing folder raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            service.run(service.open_folder(temp_data_dir / "missing", "yolo"))

    def test_unknown_format(self, service: AnnotationService, image_folder: Path):
        """Test an unknown format id raises UnknownFormatError."""
        with pytest.raises(UnknownFormatError):
            service.run(service.open_folder(image_folder, "voc"))

    def test_parse_failure_keeps_previous_folder(self, service: AnnotationService, image_folder: Path):
        """Test a failed load leaves the store on the previously opened folder."""
        service.run(service.open_folder(image_folder, "yolo"))
        service.add_box("img_1", 0, 1, 1, 5, 5)
        (image_folder / "annotations.json").write_text("{broken", encoding="utf-8")

        with pytest.raises(AnnotationParseError):
            service.run(service.open_folder(image_folder, "coco"))

        assert service.summary()["format"] == "yolo"
        assert len(service.boxes_for_image("img_1")) == 1


class TestNavigation:
    """Test current image selection."""

    def test_navigate_stops_at_ends(self, service: AnnotationService, image_folder: Path):
        """Test navigation clamps to the first and last image."""
        service.run(service.open_folder(image_folder, "yolo"))

        assert service.navigate(1)["current_image_id"] == "img_2"
        assert service.navigate(5)["current_image_id"] == "img_2"
        assert service.navigate(-10)["current_image_id"] == "img_1"

    def test_navigate_without_images(self, service: AnnotationService):
        """Test navigation before opening a folder raises NoFolderOpenError."""
        with pytest.raises(NoFolderOpenError):
            service.navigate(1)

    def test_switch_discards_unsaved_boxes(self, service: AnnotationService, image_folder: Path):
        """Test leaving a dirty image rolls its edits back."""
        service.run(service.open_folder(image_folder, "yolo"))
        service.add_box("img_1", 0, 1, 1, 5, 5)

        service.set_current_image("img_2")

        assert service.boxes_for_image("img_1") == []

    def test_set_unknown_image(self, service: AnnotationService, image_folder: Path):
        """Test selecting an unknown image raises KeyError."""
        service.run(service.open_folder(image_folder, "yolo"))

        with pytest.raises(KeyError):
            service.set_current_image("img_99")

    def test_list_images(self, service: AnnotationService, image_folder: Path):
        """Test image rows carry box counts and the current marker."""
        service.run(service.open_folder(image_folder, "yolo"))
        service.add_box("img_1", 0, 1, 1, 5, 5)

        rows = service.list_images()

        assert [(r["id"], r["box_count"], r["is_current"]) for r in rows] == [("img_1", 1, True), ("img_2", 0, False)]


class TestBoxes:
    """Test box and class operations."""

    def test_add_box_is_clamped(self, service: AnnotationService, image_folder: Path):
        """Test boxes are clipped to the image bounds."""
        service.run(service.open_folder(image_folder, "yolo"))

        box = service.add_box("img_2", 0, 90, 40, 50, 50)

        assert (box["x"], box["y"], box["width"], box["height"]) == (90.0, 40.0, 10.0, 10.0)

    def test_update_and_delete(self, service: AnnotationService, image_folder: Path):
        """Test updates return the new view and deletes report success."""
        service.run(service.open_folder(image_folder, "yolo"))
        box = service.add_box("img_1", 0, 1, 1, 5, 5)

        assert service.update_box(box["id"], width=7)["width"] == 7.0
        assert service.delete_box(box["id"]) is True
        assert service.delete_box(box["id"]) is False

    def test_update_unknown_box(self, service: AnnotationService, image_folder: Path):
        """Test updating an unknown box raises KeyError."""
        service.run(service.open_folder(image_folder, "yolo"))

        with pytest.raises(KeyError):
            service.update_box("box_404", x=1)

    def test_boxes_for_unknown_image(self, service: AnnotationService):
        """Test listing boxes of an unknown image raises KeyError."""
        with pytest.raises(KeyError):
            service.boxes_for_image("img_1")

    def test_add_class(self, service: AnnotationService, image_folder: Path):
        """Test classes are appended and listed with their ids."""
        service.run(service.open_folder(image_folder, "yolo"))

        assert service.add_class("person") == {"id": 1, "name": "person"}
        assert service.list_classes() == [{"id": 0, "name": "object"}, {"id": 1, "name": "person"}]


class TestSave:
    """Test saving and discarding."""

    def test_save_current_writes_labels(self, service: AnnotationService, image_folder: Path):
        """Test saving writes the label file and clears the modified flag."""
        service.run(service.open_folder(image_folder, "yolo"))
        service.add_box("img_1", 0, 160, 120, 320, 240)

        saved = service.run(service.save_current())

        assert saved == {"image_id": "img_1", "file_name": "a.jpg", "boxes": 1}
        assert (image_folder / "a.txt").read_text(encoding="utf-8") == "0 0.500000 0.500000 0.500000 0.500000\n"
        assert (image_folder / "classes.txt").read_text(encoding="utf-8") == "object\n"
        assert service.summary()["modified"] is False

    def test_saved_boxes_survive_navigation(self, service: AnnotationService, image_folder: Path):
        """Test saved edits become the new baseline."""
        service.run(service.open_folder(image_folder, "yolo"))
        service.add_box("img_1", 0, 160, 120, 320, 240)
        service.run(service.save_current())

        service.navigate(1)

        assert len(service.boxes_for_image("img_1")) == 1

    def test_save_pads_class_list(self, service: AnnotationService, image_folder: Path):
        """Test class ids beyond the class table get placeholder names on save."""
        service.run(service.open_folder(image_folder, "coco"))
        service.add_box("img_1", 2, 0, 0, 10, 10)

        service.run(service.save_current())

        data = json.loads((image_folder / "annotations.json").read_text(encoding="utf-8"))
        assert [c["name"] for c in data["categories"]] == ["object", "class_1", "class_2"]

    def test_save_without_folder(self, service: AnnotationService):
        """Test saving before opening a folder raises NoFolderOpenError."""
        with pytest.raises(NoFolderOpenError):
            service.run(service.save_current())

    def test_failed_write_keeps_modified(self, service: AnnotationService):
        """Test a write failure propagates and leaves the edits dirty."""
        images = [DiscoveredImage(file_name="a.jpg", file_path="a.jpg", width=64, height=48)]
        service.run(service.load_images(FailingFileAccess(), images, "ndjson"))
        service.add_box("img_1", 0, 1, 1, 5, 5)

        with pytest.raises(OSError):
            service.run(service.save_current())

        assert service.summary()["modified"] is True

    @pytest.mark.parametrize("fmt", ["yolo", "coco", "ndjson"])
    def test_failed_write_does_not_leak_into_next_save(self, service: AnnotationService, fmt: str):
        """Test boxes from a failed save are not written by a later save of another image."""
        files = MemoryFileAccess()
        images = [
            DiscoveredImage(file_name="a.jpg", file_path="a.jpg", width=100, height=100),
            DiscoveredImage(file_name="b.jpg", file_path="b.jpg", width=100, height=100),
        ]
        service.run(service.load_images(files, images, fmt))
        service.add_box("img_1", 0, 10, 10, 20, 20)

        with patch.object(files, "write_text", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                service.run(service.save_current())

        service.set_current_image("img_2")
        service.add_box("img_2", 0, 50, 50, 20, 20)
        service.run(service.save_current())

        reloaded = AnnotationService()
        reloaded.run(reloaded.load_images(files, images, fmt))
        assert reloaded.boxes_for_image("img_1") == []
        assert len(reloaded.boxes_for_image("img_2")) == 1

    def test_discard_current(self, service: AnnotationService, image_folder: Path):
        """Test discarding rolls back edits of the current image."""
        service.run(service.open_folder(image_folder, "yolo"))
        service.add_box("img_1", 0, 1, 1, 5, 5)

        summary = service.discard_current()

        assert summary["state"] == "active-clean"
        assert service.boxes_for_image("img_1") == []

    def test_discard_without_current_image(self, service: AnnotationService):
        """Test discarding with no image selected raises NoCurrentImageError."""
        with pytest.raises(NoCurrentImageError):
            service.discard_current()


class TestExport:
    """Test converting a folder to another format."""

    def _loaded(self, service: AnnotationService) -> MemoryFileAccess:
        files = MemoryFileAccess({
            "classes.txt": "cat\ndog\n",
            "a.txt": "1 0.5 0.5 0.25 0.5\n",
            "b.txt": "0 0.5 0.5 0.5 0.5\n",
        })
        images = [
            DiscoveredImage(file_name="a.jpg", file_path="a.jpg", width=640, height=480),
            DiscoveredImage(file_name="b.jpg", file_path="b.jpg", width=100, height=100),
        ]
        service.run(service.load_images(files, images, "yolo"))
        return files

    def test_export_to_coco(self, service: AnnotationService):
        """Test every image is written to the COCO document."""
        files = self._loaded(service)

        result = service.run(service.export("coco"))

        assert result == {"format": "coco", "images": 2, "boxes": 2}
        data = json.loads(files.files["annotations.json"])
        assert [c["name"] for c in data["categories"]] == ["cat", "dog"]
        assert sorted(img["file_name"] for img in data["images"]) == ["a.jpg", "b.jpg"]
        assert data["annotations"][0]["bbox"] == pytest.approx([240, 120, 160, 240])

    def test_export_to_ndjson(self, service: AnnotationService):
        """Test the NDJSON export has one dataset and one record per image."""
        files = self._loaded(service)

        service.run(service.export("ndjson"))

        lines = files.files["dataset.ndjson"].splitlines()
        assert len(lines) == 3
        assert json.loads(lines[0])["class_names"] == {"0": "cat", "1": "dog"}

    def test_export_same_format(self, service: AnnotationService):
        """Test exporting to the open format raises ValueError."""
        self._loaded(service)

        with pytest.raises(ValueError):
            service.run(service.export("yolo"))

    def test_export_unknown_format(self, service: AnnotationService):
        """Test exporting to an unknown format raises UnknownFormatError."""
        self._loaded(service)

        with pytest.raises(UnknownFormatError):
            service.run(service.export("voc"))

    def test_export_without_folder(self, service: AnnotationService):
        """Test exporting before opening a folder raises NoFolderOpenError."""
        with pytest.raises(NoFolderOpenError):
            service.run(service.export("coco"))

    def test_stats(self, service: AnnotationService):
        """Test stats include the format and per-class counts."""
        self._loaded(service)

        stats = service.stats()

        assert stats["format"] == "yolo"
        assert stats["boxes"] == 2
        assert stats["boxes_per_class"] == {"cat": 1, "dog": 1}

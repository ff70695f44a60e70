from .annotation_service import AnnotationService

__all__ = ["AnnotationService"]

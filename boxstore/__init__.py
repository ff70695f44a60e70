"""
boxstore: bounding-box annotation storage with YOLO, COCO and NDJSON codecs.
"""

__version__ = "0.1.0"

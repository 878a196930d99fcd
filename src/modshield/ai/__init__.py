"""
NSFW frame classification.

- **nsfw_classifier.py**: onnxruntime model adapter and a thread-pool wrapper
  that classifies frames and batches without blocking the event loop.
"""

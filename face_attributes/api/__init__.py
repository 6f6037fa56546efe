"""
Hosted HTTP variant of the pipeline.

Exposes the prediction endpoint and the model loading status over FastAPI.
"""

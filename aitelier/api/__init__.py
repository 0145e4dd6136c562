# @TASK P4-T4.1 - API package

"""aitelier REST API package.

Sub-modules expose FastAPI routers for each domain:
- examples: example capture, rating and JSONL export
- splits: train/validation split preparation and dataset statistics
- training: fine-tune launch, status polling and cancellation
- evaluation: blind A/B evaluation, results and trends
"""

"""Infrastructure layer — FFmpeg engine, worker loop, journals and capture."""
